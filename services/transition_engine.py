"""
Transition Engine — the only entry point that moves an assessment between
states.

One call = one database transaction holding the conditional status write,
the audit record, and the product approval_status sync.

Graph:
    pending_digital_review ──approve_digital──▶ waiting_for_sample
    waiting_for_sample ──submit_sample──▶ pending_physical_review
    pending_physical_review ──verify──▶ verified
    any non-terminal ──reject──▶ rejected
    any non-terminal ──request_revision──▶ for_revision
    for_revision ──resubmit──▶ pending_digital_review
"""

import logging
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy.orm import sessionmaker

from services.status_projector import ProductStatusProjector, project
from storage.errors import AlreadyTerminal, IllegalTransition, InvalidActionPayload
from storage.models import (
    TERMINAL_STATUSES,
    AssessmentStatus,
    AuditKind,
    RejectionStage,
    utc_now,
)
from storage.repository import AssessmentStore, AuditLedger, get_db

logger = logging.getLogger(__name__)


class QAAction(str, PyEnum):
    APPROVE_DIGITAL = "approve_digital"
    SUBMIT_SAMPLE = "submit_sample"
    VERIFY = "verify"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset
    target: AssessmentStatus
    audit_kind: AuditKind
    required_field: Optional[str] = None
    default_description: Optional[str] = None


NON_TERMINAL_STATUSES = frozenset(AssessmentStatus) - TERMINAL_STATUSES

TRANSITIONS: dict[QAAction, TransitionRule] = {
    QAAction.APPROVE_DIGITAL: TransitionRule(
        sources=frozenset({AssessmentStatus.PENDING_DIGITAL_REVIEW}),
        target=AssessmentStatus.WAITING_FOR_SAMPLE,
        audit_kind=AuditKind.APPROVAL,
        default_description="Digital review passed, awaiting sample",
    ),
    QAAction.SUBMIT_SAMPLE: TransitionRule(
        sources=frozenset({AssessmentStatus.WAITING_FOR_SAMPLE}),
        target=AssessmentStatus.PENDING_PHYSICAL_REVIEW,
        audit_kind=AuditKind.LOGISTICS,
        required_field="logistics",
    ),
    QAAction.VERIFY: TransitionRule(
        sources=frozenset({AssessmentStatus.PENDING_PHYSICAL_REVIEW}),
        target=AssessmentStatus.VERIFIED,
        audit_kind=AuditKind.APPROVAL,
        default_description="Physical quality check passed",
    ),
    QAAction.REJECT: TransitionRule(
        sources=NON_TERMINAL_STATUSES,
        target=AssessmentStatus.REJECTED,
        audit_kind=AuditKind.REJECTION,
        required_field="description",
    ),
    QAAction.REQUEST_REVISION: TransitionRule(
        sources=NON_TERMINAL_STATUSES,
        target=AssessmentStatus.FOR_REVISION,
        audit_kind=AuditKind.REVISION,
        required_field="description",
    ),
    QAAction.RESUBMIT: TransitionRule(
        sources=frozenset({AssessmentStatus.FOR_REVISION}),
        target=AssessmentStatus.PENDING_DIGITAL_REVIEW,
        audit_kind=AuditKind.REVISION,
        default_description="Seller resubmitted for digital review",
    ),
}

if set(TRANSITIONS) != set(QAAction):
    raise RuntimeError("Every QAAction needs a transition rule")

AUTO_VERIFY_NOTE = "Auto-verified: seller tier bypasses assessment"


def _rejection_stage(source: AssessmentStatus, current_stage: Optional[str]) -> str:
    if source is AssessmentStatus.PENDING_DIGITAL_REVIEW:
        return RejectionStage.DIGITAL.value
    if source is AssessmentStatus.FOR_REVISION:
        return current_stage or RejectionStage.DIGITAL.value
    return RejectionStage.PHYSICAL.value


def _status_fields(action: QAAction, current: dict) -> dict:
    """Timestamps and markers written alongside the new status."""
    now = utc_now()
    source = AssessmentStatus(current["status"])
    if action is QAAction.APPROVE_DIGITAL:
        return {"approved_at": now}
    if action is QAAction.VERIFY:
        return {"verified_at": now}
    if action is QAAction.REJECT:
        return {
            "rejected_at": now,
            "rejection_stage": _rejection_stage(source, current["rejection_stage"]),
        }
    if action is QAAction.REQUEST_REVISION:
        return {
            "revision_requested_at": now,
            "rejection_stage": _rejection_stage(source, current["rejection_stage"]),
        }
    if action is QAAction.RESUBMIT:
        return {"submitted_at": now, "rejection_stage": None}
    return {}


class TransitionEngine:

    def __init__(
        self,
        session_factory: sessionmaker,
        store: AssessmentStore,
        ledger: AuditLedger,
        projector: ProductStatusProjector,
    ):
        self._session_factory = session_factory
        self._store = store
        self._ledger = ledger
        self._projector = projector

    @staticmethod
    def check_legal(source, action) -> TransitionRule:
        """Return the rule for (source, action) or raise."""
        source = AssessmentStatus(source)
        action = QAAction(action)
        rule = TRANSITIONS[action]
        if source in TERMINAL_STATUSES:
            raise AlreadyTerminal(source.value, action.value)
        if source not in rule.sources:
            raise IllegalTransition(source.value, action.value)
        return rule

    def open_assessment(
        self,
        product_id: str,
        created_by: str | None = None,
        auto_verify: bool = False,
    ) -> dict:
        """Create the product's assessment and project its status.

        With ``auto_verify`` (bypass-tier sellers) the assessment lands on
        ``verified`` in the same transaction, with an approval record.
        """
        with get_db(self._session_factory) as db:
            assessment = self._store.create_assessment(
                product_id, created_by=created_by, session=db
            )
            if auto_verify:
                now = utc_now()
                assessment = self._store.set_status(
                    assessment["id"],
                    AssessmentStatus.VERIFIED,
                    expected_status=AssessmentStatus.PENDING_DIGITAL_REVIEW,
                    session=db,
                    approved_at=now,
                    verified_at=now,
                )
                self._ledger.append(
                    AuditKind.APPROVAL,
                    assessment["id"],
                    description=AUTO_VERIFY_NOTE,
                    created_by=created_by,
                    session=db,
                )
            self._projector.apply_to_product(
                product_id, project(assessment["status"]), session=db
            )

        logger.info(
            "Opened assessment %s for product %s at %s",
            assessment["id"], product_id, assessment["status"],
        )
        return assessment

    def transition(
        self,
        assessment_id: str,
        action,
        *,
        description: str | None = None,
        actor: str | None = None,
        logistics: str | None = None,
        vendor_submitted_category: str | None = None,
        admin_reclassified_category: str | None = None,
    ) -> dict:
        """Apply ``action`` to the assessment atomically. Returns the new row."""
        action = QAAction(action)
        rule = TRANSITIONS[action]

        if action is QAAction.SUBMIT_SAMPLE:
            record_text = logistics
        else:
            record_text = description or rule.default_description

        with get_db(self._session_factory) as db:
            current = self._store.get(assessment_id, session=db)
            source = AssessmentStatus(current["status"])
            try:
                self.check_legal(source, action)
            except IllegalTransition:
                logger.warning(
                    "Rejected %s on assessment %s (status %s)",
                    action.value, assessment_id, source.value,
                )
                raise

            payload = {"description": description, "logistics": logistics}
            if rule.required_field and not (payload[rule.required_field] or "").strip():
                raise InvalidActionPayload(action.value, rule.required_field)

            updated = self._store.set_status(
                assessment_id,
                rule.target,
                expected_status=source,
                session=db,
                **_status_fields(action, current),
            )
            if updated is None:
                latest = self._store.get(assessment_id, session=db)
                logger.warning(
                    "Lost race on assessment %s: %s expected %s, found %s",
                    assessment_id, action.value, source.value, latest["status"],
                )
                if AssessmentStatus(latest["status"]) in TERMINAL_STATUSES:
                    raise AlreadyTerminal(latest["status"], action.value)
                raise IllegalTransition(latest["status"], action.value)

            self._ledger.append(
                rule.audit_kind,
                assessment_id,
                description=record_text,
                created_by=actor,
                vendor_submitted_category=vendor_submitted_category,
                admin_reclassified_category=admin_reclassified_category,
                session=db,
            )
            self._projector.apply_to_product(
                current["product_id"], project(rule.target), session=db
            )

        logger.info(
            "Assessment %s: %s -> %s (%s)",
            assessment_id, source.value, rule.target.value, action.value,
        )
        return updated
