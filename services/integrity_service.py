"""
Integrity Service — consistency checks between products and assessments.

    status_drift     products.approval_status != project(assessment.status)
    orphan_products  live products that never got an assessment
"""

import logging

from sqlalchemy.orm import sessionmaker

from services.status_projector import ProductStatusProjector, project
from storage.models import Product, ProductAssessment
from storage.repository import get_db

logger = logging.getLogger(__name__)


class IntegrityService:

    def __init__(
        self, session_factory: sessionmaker, projector: ProductStatusProjector
    ):
        self._session_factory = session_factory
        self._projector = projector

    def find_drift(self) -> list[dict]:
        with get_db(self._session_factory) as db:
            rows = (
                db.query(Product, ProductAssessment)
                .join(ProductAssessment, ProductAssessment.product_id == Product.id)
                .all()
            )
            drift = []
            for product, assessment in rows:
                expected = project(assessment.status).value
                if product.approval_status != expected:
                    drift.append(
                        {
                            "product_id": product.id,
                            "assessment_id": assessment.id,
                            "assessment_status": assessment.status,
                            "approval_status": product.approval_status,
                            "expected_approval_status": expected,
                        }
                    )
            return drift

    def find_orphan_products(self) -> list[str]:
        with get_db(self._session_factory) as db:
            rows = (
                db.query(Product.id)
                .outerjoin(ProductAssessment, ProductAssessment.product_id == Product.id)
                .filter(ProductAssessment.id.is_(None), Product.deleted_at.is_(None))
                .order_by(Product.created_at)
                .all()
            )
            return [r[0] for r in rows]

    def check(self) -> dict:
        drift = self.find_drift()
        orphans = self.find_orphan_products()
        if drift or orphans:
            logger.warning(
                "Integrity check: %d drifted products, %d orphan products",
                len(drift), len(orphans),
            )
        return {
            "status_drift": drift,
            "orphan_products": orphans,
            "ok": not drift and not orphans,
        }

    def repair_drift(self) -> int:
        """Re-apply the projection to every drifted product. Returns count."""
        drift = self.find_drift()
        for item in drift:
            self._projector.apply_to_product(
                item["product_id"], item["expected_approval_status"]
            )
            logger.info(
                "Repaired product %s: %s -> %s",
                item["product_id"],
                item["approval_status"],
                item["expected_approval_status"],
            )
        return len(drift)
