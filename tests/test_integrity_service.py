"""
approval_status 불일치 / assessment 없는 상품 점검.
"""

from services.integrity_service import IntegrityService


def test_clean_store(qa, session_factory, make_product):
    qa.submit_for_review(make_product())
    service = IntegrityService(session_factory, qa.projector)

    assert service.check() == {"status_drift": [], "orphan_products": [], "ok": True}


def test_drift_detected_and_repaired(qa, catalog, session_factory, make_product, force_status):
    product_id = make_product()
    a = qa.submit_for_review(product_id)
    force_status(a["id"], "verified")
    service = IntegrityService(session_factory, qa.projector)

    report = service.check()
    assert not report["ok"]
    (drift,) = report["status_drift"]
    assert drift == {
        "product_id": product_id,
        "assessment_id": a["id"],
        "assessment_status": "verified",
        "approval_status": "pending",
        "expected_approval_status": "approved",
    }

    assert service.repair_drift() == 1
    assert catalog.get_product(product_id)["approval_status"] == "approved"
    assert service.check()["ok"]


def test_orphan_products(qa, catalog, session_factory, make_product):
    orphan = make_product()
    deleted = make_product()
    catalog.soft_delete_product(deleted)
    qa.submit_for_review(make_product())
    service = IntegrityService(session_factory, qa.projector)

    assert service.find_orphan_products() == [orphan]
    assert not service.check()["ok"]
