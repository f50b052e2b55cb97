"""
QA Service — product QA entry point for the seller and admin UIs.

Wires the assessment store, audit ledger, projector, transition engine and
query façade around one injected session factory.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from config import settings
from services.audit_service import AuditService
from services.status_projector import ProductStatusProjector
from services.transition_engine import QAAction, TransitionEngine
from storage.errors import NotFound
from storage.queries import QueryFacade
from storage.repository import AssessmentStore, AuditLedger, CatalogRepository

logger = logging.getLogger(__name__)


class QAService:

    def __init__(
        self,
        session_factory: sessionmaker,
        bypass_tiers: tuple[str, ...] | None = None,
    ):
        self.catalog = CatalogRepository(session_factory)
        self.store = AssessmentStore(session_factory)
        self.ledger = AuditLedger(session_factory)
        self.projector = ProductStatusProjector(session_factory)
        self.engine = TransitionEngine(
            session_factory, self.store, self.ledger, self.projector
        )
        self.queries = QueryFacade(session_factory)
        self.audit = AuditService(self.ledger)
        self.bypass_tiers = (
            settings.QA_BYPASS_TIERS if bypass_tiers is None else bypass_tiers
        )

    # ── Seller flow ──

    def submit_for_review(
        self, product_id: str, submitted_by: str | None = None
    ) -> dict:
        """Open the product's assessment right after the product is saved.

        Sellers on a bypass tier land directly on ``verified``.
        """
        product = self.catalog.get_product(product_id)
        if product is None or product["deleted_at"] is not None:
            raise NotFound("Product", product_id)

        bypass = self.catalog.seller_bypasses_assessment(
            product["seller_id"], self.bypass_tiers
        )
        if bypass:
            logger.info(
                "Seller %s bypasses QA; auto-verifying product %s",
                product["seller_id"], product_id,
            )
        return self.engine.open_assessment(
            product_id, created_by=submitted_by, auto_verify=bypass
        )

    def submit_sample(
        self, assessment_id: str, logistics: str, actor: str | None = None
    ) -> dict:
        return self.engine.transition(
            assessment_id, QAAction.SUBMIT_SAMPLE, logistics=logistics, actor=actor
        )

    def resubmit(
        self,
        assessment_id: str,
        description: str | None = None,
        actor: str | None = None,
    ) -> dict:
        return self.engine.transition(
            assessment_id, QAAction.RESUBMIT, description=description, actor=actor
        )

    # ── Admin flow ──

    def approve_digital(
        self,
        assessment_id: str,
        description: str | None = None,
        actor: str | None = None,
    ) -> dict:
        return self.engine.transition(
            assessment_id,
            QAAction.APPROVE_DIGITAL,
            description=description,
            actor=actor,
        )

    def verify(
        self,
        assessment_id: str,
        description: str | None = None,
        actor: str | None = None,
    ) -> dict:
        return self.engine.transition(
            assessment_id, QAAction.VERIFY, description=description, actor=actor
        )

    def reject(
        self,
        assessment_id: str,
        description: str,
        vendor_submitted_category: str | None = None,
        admin_reclassified_category: str | None = None,
        actor: str | None = None,
    ) -> dict:
        return self.engine.transition(
            assessment_id,
            QAAction.REJECT,
            description=description,
            vendor_submitted_category=vendor_submitted_category,
            admin_reclassified_category=admin_reclassified_category,
            actor=actor,
        )

    def request_revision(
        self,
        assessment_id: str,
        description: str,
        actor: str | None = None,
    ) -> dict:
        return self.engine.transition(
            assessment_id,
            QAAction.REQUEST_REVISION,
            description=description,
            actor=actor,
        )

    # ── Reads ──

    def get_assessment(self, assessment_id: str) -> dict:
        return self.store.get(assessment_id)

    def get_by_product(self, product_id: str) -> Optional[dict]:
        return self.store.get_by_product(product_id)

    def get_detail(self, assessment_id: str) -> dict:
        detail = self.queries.get_detail(assessment_id)
        if detail is None:
            raise NotFound("Assessment", assessment_id)
        return detail

    def seller_dashboard(self, seller_id: str, **filters) -> list[dict]:
        return self.queries.seller_view(seller_id, **filters)

    def admin_dashboard(self, **filters) -> list[dict]:
        return self.queries.admin_view(**filters)

    def audit_trail(self, assessment_id: str) -> list[dict]:
        return self.audit.get_trail(assessment_id)
