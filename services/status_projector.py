"""
Product Status Projector — derives products.approval_status from the
assessment status and writes it.

This is the only writer of ``approval_status``.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from storage.errors import NotFound
from storage.models import ApprovalStatus, AssessmentStatus, Product, utc_now
from storage.repository import session_scope

logger = logging.getLogger(__name__)

PROJECTION: dict[AssessmentStatus, ApprovalStatus] = {
    AssessmentStatus.PENDING_DIGITAL_REVIEW: ApprovalStatus.PENDING,
    AssessmentStatus.WAITING_FOR_SAMPLE: ApprovalStatus.PENDING,
    AssessmentStatus.PENDING_PHYSICAL_REVIEW: ApprovalStatus.PENDING,
    AssessmentStatus.FOR_REVISION: ApprovalStatus.PENDING,
    AssessmentStatus.VERIFIED: ApprovalStatus.APPROVED,
    AssessmentStatus.REJECTED: ApprovalStatus.REJECTED,
}

_missing = set(AssessmentStatus) - set(PROJECTION)
if _missing:
    raise RuntimeError(f"Unprojected assessment statuses: {sorted(_missing)}")


def project(status) -> ApprovalStatus:
    """Map an assessment status (enum or token) to the coarse product status."""
    return PROJECTION[AssessmentStatus(status)]


class ProductStatusProjector:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def apply_to_product(
        self,
        product_id: str,
        approval_status,
        session: Optional[Session] = None,
    ) -> str:
        value = ApprovalStatus(approval_status).value
        with session_scope(self._session_factory, session) as db:
            product = db.get(Product, product_id)
            if product is None:
                raise NotFound("Product", product_id)
            if product.approval_status != value:
                logger.debug(
                    "Product %s approval_status %s -> %s",
                    product_id, product.approval_status, value,
                )
            product.approval_status = value
            product.updated_at = utc_now()
            db.flush()
            return value
