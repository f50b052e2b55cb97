"""
Transition Engine 검증: 전이 그래프, payload 검증, 원자성, 경쟁 조건, rejection_stage.
"""

import pytest

from services.qa_service import QAService
from services.transition_engine import TRANSITIONS, QAAction, TransitionEngine
from storage.errors import (
    AlreadyTerminal,
    IllegalTransition,
    InvalidActionPayload,
    NotFound,
)
from storage.models import AssessmentStatus

# (source, action) -> target; every pair not listed must be refused.
LEGAL = {
    ("pending_digital_review", "approve_digital"): "waiting_for_sample",
    ("waiting_for_sample", "submit_sample"): "pending_physical_review",
    ("pending_physical_review", "verify"): "verified",
    ("for_revision", "resubmit"): "pending_digital_review",
}
for _source in (
    "pending_digital_review",
    "waiting_for_sample",
    "pending_physical_review",
    "for_revision",
):
    LEGAL[(_source, "reject")] = "rejected"
    LEGAL[(_source, "request_revision")] = "for_revision"

ALL_PAIRS = [(s.value, a.value) for s in AssessmentStatus for a in QAAction]

EXPECTED_KIND = {
    "approve_digital": "approval",
    "submit_sample": "logistics",
    "verify": "approval",
    "reject": "rejection",
    "request_revision": "revision",
    "resubmit": "revision",
}

EXPECTED_PRODUCT = {
    "pending_digital_review": "pending",
    "waiting_for_sample": "pending",
    "pending_physical_review": "pending",
    "for_revision": "pending",
    "verified": "approved",
    "rejected": "rejected",
}

PAYLOAD = {
    "description": "Blurry product images",
    "logistics": "Drop-off by Courier",
}


def _audit_count(qa, assessment_id):
    return len(qa.audit_trail(assessment_id))


@pytest.mark.parametrize("source, action", ALL_PAIRS)
def test_check_legal_matches_graph(source, action):
    if (source, action) in LEGAL:
        rule = TransitionEngine.check_legal(source, action)
        assert rule.target.value == LEGAL[(source, action)]
    elif source in ("verified", "rejected"):
        with pytest.raises(AlreadyTerminal):
            TransitionEngine.check_legal(source, action)
    else:
        with pytest.raises(IllegalTransition):
            TransitionEngine.check_legal(source, action)


@pytest.mark.parametrize("source, action", ALL_PAIRS)
def test_transition_end_to_end(qa, catalog, make_product, force_status, source, action):
    product_id = make_product()
    a = qa.submit_for_review(product_id)
    force_status(a["id"], source)
    before = catalog.get_product(product_id)["approval_status"]

    if (source, action) in LEGAL:
        target = LEGAL[(source, action)]
        updated = qa.engine.transition(a["id"], action, **PAYLOAD)
        assert updated["status"] == target
        (record,) = qa.audit_trail(a["id"])
        assert record["kind"] == EXPECTED_KIND[action]
        assert catalog.get_product(product_id)["approval_status"] == EXPECTED_PRODUCT[target]
    else:
        with pytest.raises(IllegalTransition):
            qa.engine.transition(a["id"], action, **PAYLOAD)
        assert qa.get_assessment(a["id"])["status"] == source
        assert _audit_count(qa, a["id"]) == 0
        assert catalog.get_product(product_id)["approval_status"] == before


def test_terminal_check_precedes_payload_check(qa, make_product):
    a = qa.submit_for_review(make_product())
    qa.reject(a["id"], "Counterfeit label")

    with pytest.raises(AlreadyTerminal):
        qa.engine.transition(a["id"], "reject")
    with pytest.raises(AlreadyTerminal):
        qa.engine.transition(a["id"], "submit_sample")


def test_missing_assessment_precedes_payload_check(qa):
    with pytest.raises(NotFound):
        qa.engine.transition("missing-assessment", "reject")


def test_illegal_source_precedes_payload_check(qa, make_product):
    a = qa.submit_for_review(make_product())

    with pytest.raises(IllegalTransition) as exc:
        qa.engine.transition(a["id"], "submit_sample")
    assert not isinstance(exc.value, AlreadyTerminal)


def test_terminal_refusal_is_already_terminal(qa, make_product, force_status):
    a = qa.submit_for_review(make_product())
    force_status(a["id"], "verified")

    with pytest.raises(AlreadyTerminal) as exc:
        qa.reject(a["id"], "late rejection")
    assert exc.value.from_status == "verified"
    assert exc.value.action == "reject"


def test_every_action_has_a_rule():
    assert set(TRANSITIONS) == set(QAAction)


@pytest.mark.parametrize(
    "action, kwargs, field",
    [
        ("reject", {}, "description"),
        ("reject", {"description": "   "}, "description"),
        ("request_revision", {"description": ""}, "description"),
        ("submit_sample", {"logistics": None}, "logistics"),
    ],
)
def test_missing_payload(qa, make_product, force_status, action, kwargs, field):
    a = qa.submit_for_review(make_product())
    if action == "submit_sample":
        force_status(a["id"], "waiting_for_sample")
    before = qa.get_assessment(a["id"])["status"]

    with pytest.raises(InvalidActionPayload) as exc:
        qa.engine.transition(a["id"], action, **kwargs)

    assert exc.value.field == field
    assert qa.get_assessment(a["id"])["status"] == before
    assert _audit_count(qa, a["id"]) == 0


def test_unknown_assessment(qa):
    with pytest.raises(NotFound):
        qa.approve_digital("missing-assessment")


def test_audit_failure_rolls_back(qa, catalog, make_product, monkeypatch):
    """감사 기록 쓰기 실패 시 status / approval_status 모두 원복."""
    product_id = make_product()
    a = qa.submit_for_review(product_id)

    def boom(*args, **kwargs):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(qa.ledger, "append", boom)
    with pytest.raises(RuntimeError):
        qa.reject(a["id"], "Does not meet quality standards")
    monkeypatch.undo()

    assert qa.get_assessment(a["id"])["status"] == "pending_digital_review"
    assert catalog.get_product(product_id)["approval_status"] == "pending"
    assert _audit_count(qa, a["id"]) == 0


def test_projection_failure_rolls_back(qa, catalog, make_product, monkeypatch):
    product_id = make_product()
    a = qa.submit_for_review(product_id)

    def boom(*args, **kwargs):
        raise RuntimeError("projector down")

    monkeypatch.setattr(qa.projector, "apply_to_product", boom)
    with pytest.raises(RuntimeError):
        qa.approve_digital(a["id"], actor="admin")
    monkeypatch.undo()

    assert qa.get_assessment(a["id"])["status"] == "pending_digital_review"
    assert qa.get_assessment(a["id"])["approved_at"] is None
    assert _audit_count(qa, a["id"]) == 0


def test_concurrent_transition_loses_race(qa, session_factory, make_product, monkeypatch):
    """읽은 직후 다른 세션이 먼저 reject → 조건부 업데이트 실패."""
    product_id = make_product()
    a = qa.submit_for_review(product_id)
    rival = QAService(session_factory, bypass_tiers=())

    original_get = qa.store.get
    fired = []

    def get_then_race(assessment_id, session=None):
        current = original_get(assessment_id, session=session)
        if not fired:
            fired.append(True)
            rival.reject(assessment_id, "Rejected by another admin", actor="admin-2")
        return current

    monkeypatch.setattr(qa.store, "get", get_then_race)

    with pytest.raises(AlreadyTerminal):
        qa.approve_digital(a["id"], actor="admin-1")
    monkeypatch.undo()

    final = qa.get_assessment(a["id"])
    assert final["status"] == "rejected"
    trail = qa.audit_trail(a["id"])
    assert [r["kind"] for r in trail] == ["rejection"]
    assert trail[0]["created_by"] == "admin-2"
    assert qa.catalog.get_product(product_id)["approval_status"] == "rejected"


def test_concurrent_non_terminal_race(qa, session_factory, make_product, monkeypatch):
    a = qa.submit_for_review(make_product())
    rival = QAService(session_factory, bypass_tiers=())

    original_get = qa.store.get
    fired = []

    def get_then_race(assessment_id, session=None):
        current = original_get(assessment_id, session=session)
        if not fired:
            fired.append(True)
            rival.request_revision(assessment_id, "Add more images")
        return current

    monkeypatch.setattr(qa.store, "get", get_then_race)

    with pytest.raises(IllegalTransition) as exc:
        qa.approve_digital(a["id"])
    monkeypatch.undo()

    assert not isinstance(exc.value, AlreadyTerminal)
    assert exc.value.from_status == "for_revision"
    assert qa.get_assessment(a["id"])["status"] == "for_revision"


@pytest.mark.parametrize(
    "source, expected_stage",
    [
        ("pending_digital_review", "digital"),
        ("waiting_for_sample", "physical"),
        ("pending_physical_review", "physical"),
    ],
)
def test_rejection_stage(qa, make_product, force_status, source, expected_stage):
    a = qa.submit_for_review(make_product())
    force_status(a["id"], source)

    rejected = qa.reject(a["id"], "Not acceptable")

    assert rejected["rejection_stage"] == expected_stage
    assert rejected["rejected_at"] is not None


def test_revision_stage_carries_into_rejection(qa, make_product):
    a = qa.submit_for_review(make_product())
    qa.approve_digital(a["id"])
    qa.submit_sample(a["id"], "Pickup by Rider")

    revised = qa.request_revision(a["id"], "Stitching is loose")
    assert revised["rejection_stage"] == "physical"
    assert revised["revision_requested_at"] is not None

    rejected = qa.reject(a["id"], "Still loose")
    assert rejected["rejection_stage"] == "physical"


def test_resubmit_clears_stage(qa, make_product):
    a = qa.submit_for_review(make_product())
    first_submitted = a["submitted_at"]
    qa.request_revision(a["id"], "Update description")

    again = qa.resubmit(a["id"], actor="seller")

    assert again["status"] == AssessmentStatus.PENDING_DIGITAL_REVIEW.value
    assert again["rejection_stage"] is None
    assert again["submitted_at"] >= first_submitted
    kinds = [r["kind"] for r in qa.audit_trail(a["id"])]
    assert kinds == ["revision", "revision"]
