"""
Query façade — read models for the seller and admin QA dashboards.

Two named query builders with fixed join semantics:

    seller-scoped  INNER JOIN products ON … AND seller_id = :seller
                   (a row whose product fails the filter never appears)
    admin-scoped   LEFT OUTER JOIN products ON … AND deleted_at IS NULL
                   (soft-deleted products surface as ``product = None``)

Product children and the four audit collections are batch-loaded with
``selectinload``, so the number of statements is fixed regardless of how
many assessments are returned.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Query, Session, contains_eager, selectinload, sessionmaker

from storage.models import (
    AUDIT_MODELS,
    AssessmentStatus,
    AuditKind,
    Product,
    ProductAssessment,
)
from storage.repository import (
    assessment_to_dict,
    audit_to_dict,
    get_db,
    product_to_dict,
)

_AUDIT_ATTRS = {
    AuditKind.APPROVAL: "approvals",
    AuditKind.REJECTION: "rejections",
    AuditKind.REVISION: "revisions",
    AuditKind.LOGISTICS: "logistics",
}


def _with_related(q: Query) -> Query:
    product = contains_eager(ProductAssessment.product)
    return q.options(
        product.selectinload(Product.category),
        product.selectinload(Product.seller),
        product.selectinload(Product.images),
        product.selectinload(Product.variants),
        selectinload(ProductAssessment.approvals),
        selectinload(ProductAssessment.rejections),
        selectinload(ProductAssessment.revisions),
        selectinload(ProductAssessment.logistics),
    )


def seller_scoped_query(db: Session, seller_id: str) -> Query:
    return db.query(ProductAssessment).join(
        Product,
        and_(
            Product.id == ProductAssessment.product_id,
            Product.seller_id == seller_id,
            Product.deleted_at.is_(None),
        ),
    )


def admin_scoped_query(db: Session) -> Query:
    return db.query(ProductAssessment).outerjoin(
        Product,
        and_(
            Product.id == ProductAssessment.product_id,
            Product.deleted_at.is_(None),
        ),
    )


def _apply_filters(
    q: Query,
    status=None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Query:
    if status is not None:
        q = q.filter(ProductAssessment.status == AssessmentStatus(status).value)
    if date_from is not None:
        q = q.filter(ProductAssessment.submitted_at >= date_from)
    if date_to is not None:
        q = q.filter(ProductAssessment.submitted_at <= date_to)
    return q


def _page(q: Query, limit: Optional[int], offset: int) -> Query:
    q = q.order_by(ProductAssessment.created_at.desc(), ProductAssessment.id.desc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q


def _row_to_dict(a: ProductAssessment) -> dict:
    row = assessment_to_dict(a)
    row["product"] = product_to_dict(a.product) if a.product is not None else None
    for kind, attr in _AUDIT_ATTRS.items():
        row[attr] = [audit_to_dict(kind, rec) for rec in getattr(a, attr)]
    return row


if set(_AUDIT_ATTRS) != set(AUDIT_MODELS):
    raise RuntimeError("Every audit kind needs a read-model collection")


class QueryFacade:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def seller_view(
        self,
        seller_id: str,
        *,
        status=None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        """Assessments for one seller's live products, newest first."""
        with get_db(self._session_factory) as db:
            q = _with_related(seller_scoped_query(db, seller_id))
            q = _apply_filters(q, status, date_from, date_to)
            return [_row_to_dict(a) for a in _page(q, limit, offset).all()]

    def admin_view(
        self,
        *,
        status=None,
        seller_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        """All assessments, including those whose product is gone."""
        with get_db(self._session_factory) as db:
            q = _with_related(admin_scoped_query(db))
            q = _apply_filters(q, status, date_from, date_to)
            if seller_id is not None:
                q = q.filter(Product.seller_id == seller_id)
            return [_row_to_dict(a) for a in _page(q, limit, offset).all()]

    def get_detail(self, assessment_id: str) -> Optional[dict]:
        with get_db(self._session_factory) as db:
            a = (
                _with_related(admin_scoped_query(db))
                .filter(ProductAssessment.id == assessment_id)
                .first()
            )
            if not a:
                return None
            return _row_to_dict(a)
