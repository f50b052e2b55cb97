"""
Repository layer — assessment store, audit ledger and catalog writes.

Every public method either joins the caller's session (``session=...``) or
opens its own transaction, and returns plain dicts so callers (services, UI)
are decoupled from SQLAlchemy.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from storage.errors import DuplicateAssessment, NotFound, StoreUnavailable
from storage.models import (
    AUDIT_MODELS,
    AssessmentStatus,
    AuditKind,
    Category,
    Product,
    ProductAssessment,
    ProductAssessmentLogistics,
    ProductImage,
    ProductRejection,
    ProductVariant,
    Seller,
    SellerTier,
    TierLevel,
    utc_now,
)

logger = logging.getLogger(__name__)


# ───────────────────────────────────────────
# Session helpers
# ───────────────────────────────────────────

@contextmanager
def get_db(session_factory: sessionmaker) -> Iterator[Session]:
    """Provide a transactional database session scope."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except DBAPIError as e:
        session.rollback()
        if isinstance(e, OperationalError) or e.connection_invalidated:
            logger.error("Store unavailable: %s", e.orig)
            raise StoreUnavailable(str(e.orig)) from e
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(
    session_factory: sessionmaker, session: Optional[Session]
) -> Iterator[Session]:
    """Join the caller's transaction when given one, else open a new one."""
    if session is not None:
        yield session
        return
    with get_db(session_factory) as db:
        yield db


def _token(value) -> Optional[str]:
    return value.value if hasattr(value, "value") else value


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


# ───────────────────────────────────────────
# Serializers
# ───────────────────────────────────────────

def assessment_to_dict(a: ProductAssessment) -> dict:
    return {
        "id": a.id,
        "product_id": a.product_id,
        "status": a.status,
        "submitted_at": a.submitted_at,
        "approved_at": a.approved_at,
        "verified_at": a.verified_at,
        "rejected_at": a.rejected_at,
        "revision_requested_at": a.revision_requested_at,
        "rejection_stage": a.rejection_stage,
        "created_by": a.created_by,
        "assigned_to": a.assigned_to,
        "created_at": a.created_at,
        "updated_at": a.updated_at,
    }


def audit_to_dict(kind: AuditKind, rec) -> dict:
    data = {
        "id": rec.id,
        "kind": kind.value,
        "assessment_id": rec.assessment_id,
        "created_by": rec.created_by,
        "created_at": rec.created_at,
    }
    if isinstance(rec, ProductAssessmentLogistics):
        data["details"] = rec.details
    else:
        data["description"] = rec.description
    if isinstance(rec, ProductRejection):
        data["vendor_submitted_category"] = rec.vendor_submitted_category
        data["admin_reclassified_category"] = rec.admin_reclassified_category
    return data


def product_to_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": _money(p.price),
        "seller_id": p.seller_id,
        "category_id": p.category_id,
        "category_name": p.category.name if p.category else None,
        "seller_name": p.seller.store_name if p.seller else None,
        "variant_label_1": p.variant_label_1,
        "variant_label_2": p.variant_label_2,
        "approval_status": p.approval_status,
        "deleted_at": p.deleted_at,
        "images": [
            {
                "id": img.id,
                "image_url": img.image_url,
                "is_primary": img.is_primary,
                "sort_order": img.sort_order,
            }
            for img in p.images
        ],
        "variants": [
            {
                "id": v.id,
                "sku": v.sku,
                "variant_name": v.variant_name,
                "size": v.size,
                "color": v.color,
                "price": _money(v.price),
                "stock": v.stock,
            }
            for v in p.variants
        ],
    }


# ═══════════════════════════════════════════
# Catalog (seller-side CRUD feeding the QA flow)
# ═══════════════════════════════════════════

class CatalogRepository:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_category(self, name: str, slug: str | None = None) -> str:
        slug = slug or "-".join(name.lower().split())
        with get_db(self._session_factory) as db:
            cat = Category(name=name, slug=slug)
            db.add(cat)
            db.flush()
            return cat.id

    def create_seller(self, store_name: str, owner_name: str | None = None) -> str:
        with get_db(self._session_factory) as db:
            seller = Seller(store_name=store_name, owner_name=owner_name)
            db.add(seller)
            db.flush()
            return seller.id

    def set_seller_tier(
        self,
        seller_id: str,
        tier_level: str,
        bypasses_assessment: bool = False,
    ) -> dict:
        """Upsert the seller's tier row."""
        tier_level = TierLevel(_token(tier_level)).value
        with get_db(self._session_factory) as db:
            if db.get(Seller, seller_id) is None:
                raise NotFound("Seller", seller_id)
            tier = db.query(SellerTier).filter_by(seller_id=seller_id).first()
            if tier is None:
                tier = SellerTier(seller_id=seller_id)
                db.add(tier)
            tier.tier_level = tier_level
            tier.bypasses_assessment = bypasses_assessment
            db.flush()
            return {
                "seller_id": tier.seller_id,
                "tier_level": tier.tier_level,
                "bypasses_assessment": tier.bypasses_assessment,
            }

    def seller_bypasses_assessment(
        self,
        seller_id: str,
        bypass_tiers: tuple[str, ...],
        session: Optional[Session] = None,
    ) -> bool:
        with session_scope(self._session_factory, session) as db:
            tier = (
                db.query(SellerTier)
                .filter(
                    SellerTier.seller_id == seller_id,
                    SellerTier.tier_level.in_(bypass_tiers),
                    SellerTier.bypasses_assessment.is_(True),
                )
                .first()
            )
            return tier is not None

    def create_product(
        self,
        seller_id: str,
        name: str,
        price: float,
        category_id: str | None = None,
        description: str | None = None,
        variant_label_1: str | None = None,
        variant_label_2: str | None = None,
        images: list[dict] | None = None,
        variants: list[dict] | None = None,
    ) -> str:
        """Persist a product with its images and variants. Returns product id."""
        with get_db(self._session_factory) as db:
            product = Product(
                seller_id=seller_id,
                name=name,
                price=price,
                category_id=category_id,
                description=description,
                variant_label_1=variant_label_1,
                variant_label_2=variant_label_2,
            )
            db.add(product)
            db.flush()

            for idx, img in enumerate(images or []):
                db.add(
                    ProductImage(
                        product_id=product.id,
                        image_url=img["image_url"],
                        is_primary=img.get("is_primary", idx == 0),
                        sort_order=img.get("sort_order", idx),
                    )
                )
            for v in variants or []:
                db.add(
                    ProductVariant(
                        product_id=product.id,
                        sku=v["sku"],
                        variant_name=v["variant_name"],
                        size=v.get("size"),
                        color=v.get("color"),
                        price=v.get("price", price),
                        stock=v.get("stock", 0),
                    )
                )
            db.flush()
            return product.id

    def get_product(self, product_id: str) -> Optional[dict]:
        with get_db(self._session_factory) as db:
            p = db.get(Product, product_id)
            if not p:
                return None
            return product_to_dict(p)

    def soft_delete_product(self, product_id: str) -> None:
        with get_db(self._session_factory) as db:
            p = db.get(Product, product_id)
            if not p:
                raise NotFound("Product", product_id)
            p.deleted_at = utc_now()


# ═══════════════════════════════════════════
# Assessment store
# ═══════════════════════════════════════════

# Columns a transition may write alongside ``status``.
_TRANSITION_FIELDS = frozenset({
    "submitted_at",
    "approved_at",
    "verified_at",
    "rejected_at",
    "revision_requested_at",
    "rejection_stage",
    "assigned_to",
})


def _is_duplicate_product(e: IntegrityError) -> bool:
    """True when ``e`` is the ``product_assessments.product_id`` unique violation.

    SQLite: ``UNIQUE constraint failed: product_assessments.product_id``.
    Postgres: ``duplicate key value violates unique constraint
    "product_assessments_product_id_key"``. The Postgres FK message also names
    ``product_id``, hence the foreign-key guard.
    """
    msg = str(e.orig).lower()
    if "foreign key" in msg:
        return False
    return "product_id" in msg and ("unique" in msg or "duplicate" in msg)


class AssessmentStore:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_assessment(
        self,
        product_id: str,
        created_by: str | None = None,
        session: Optional[Session] = None,
    ) -> dict:
        """Open the assessment for ``product_id`` at ``pending_digital_review``.

        Uniqueness is left to the ``product_id`` unique constraint, so two
        concurrent submissions cannot both succeed.
        """
        with session_scope(self._session_factory, session) as db:
            product = db.get(Product, product_id)
            if product is None or product.deleted_at is not None:
                raise NotFound("Product", product_id)

            assessment = ProductAssessment(
                product_id=product_id,
                status=AssessmentStatus.PENDING_DIGITAL_REVIEW.value,
                submitted_at=utc_now(),
                created_by=created_by,
            )
            db.add(assessment)
            try:
                db.flush()
            except IntegrityError as e:
                if not _is_duplicate_product(e):
                    raise
                logger.warning("Duplicate assessment for product %s", product_id)
                raise DuplicateAssessment(product_id) from e
            return assessment_to_dict(assessment)

    def get(self, assessment_id: str, session: Optional[Session] = None) -> dict:
        with session_scope(self._session_factory, session) as db:
            a = db.get(ProductAssessment, assessment_id, populate_existing=True)
            if a is None:
                raise NotFound("Assessment", assessment_id)
            return assessment_to_dict(a)

    def get_by_product(
        self, product_id: str, session: Optional[Session] = None
    ) -> Optional[dict]:
        with session_scope(self._session_factory, session) as db:
            a = (
                db.query(ProductAssessment)
                .filter_by(product_id=product_id)
                .first()
            )
            if not a:
                return None
            return assessment_to_dict(a)

    def set_status(
        self,
        assessment_id: str,
        new_status,
        expected_status=None,
        session: Optional[Session] = None,
        **extra_fields,
    ) -> Optional[dict]:
        """Write ``status`` (plus transition timestamps) on one assessment.

        With ``expected_status`` the write is a compare-and-swap: it only
        lands if the row still holds that status, and returns ``None`` when
        another writer got there first.
        """
        unknown = set(extra_fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported assessment fields: {sorted(unknown)}")

        values = {k: _token(v) for k, v in extra_fields.items()}
        values["status"] = AssessmentStatus(_token(new_status)).value
        values["updated_at"] = utc_now()

        with session_scope(self._session_factory, session) as db:
            q = db.query(ProductAssessment).filter(
                ProductAssessment.id == assessment_id
            )
            if expected_status is not None:
                q = q.filter(ProductAssessment.status == _token(expected_status))
            rowcount = q.update(values, synchronize_session=False)

            if rowcount == 0:
                if expected_status is None:
                    raise NotFound("Assessment", assessment_id)
                return None

            a = db.get(ProductAssessment, assessment_id, populate_existing=True)
            return assessment_to_dict(a)


# ═══════════════════════════════════════════
# Audit ledger
# ═══════════════════════════════════════════

_KIND_RANK = {kind: rank for rank, kind in enumerate(AuditKind)}


class AuditLedger:
    """Append-only approval / rejection / revision / logistics records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(
        self,
        kind,
        assessment_id: str,
        *,
        description: str | None = None,
        created_by: str | None = None,
        vendor_submitted_category: str | None = None,
        admin_reclassified_category: str | None = None,
        session: Optional[Session] = None,
    ) -> dict:
        kind = AuditKind(_token(kind))
        model = AUDIT_MODELS[kind]

        with session_scope(self._session_factory, session) as db:
            if db.get(ProductAssessment, assessment_id) is None:
                raise NotFound("Assessment", assessment_id)

            if kind is AuditKind.LOGISTICS:
                rec = model(
                    assessment_id=assessment_id,
                    details=description,
                    created_by=created_by,
                )
            elif kind is AuditKind.REJECTION:
                rec = model(
                    assessment_id=assessment_id,
                    description=description,
                    vendor_submitted_category=vendor_submitted_category,
                    admin_reclassified_category=admin_reclassified_category,
                    created_by=created_by,
                )
            else:
                rec = model(
                    assessment_id=assessment_id,
                    description=description,
                    created_by=created_by,
                )
            db.add(rec)
            db.flush()
            return audit_to_dict(kind, rec)

    def list_kind(self, kind, assessment_id: str) -> list[dict]:
        kind = AuditKind(_token(kind))
        model = AUDIT_MODELS[kind]
        with get_db(self._session_factory) as db:
            rows = (
                db.query(model)
                .filter(model.assessment_id == assessment_id)
                .order_by(model.id)
                .all()
            )
            return [audit_to_dict(kind, r) for r in rows]

    def list_for_assessment(self, assessment_id: str) -> list[dict]:
        """Every record for the assessment, oldest first.

        Ids are per table, so records of different kinds are ordered by
        ``created_at``. Records sharing a ``created_at`` fall back to kind
        order (approval, rejection, revision, logistics) and then id. Within
        one kind, id order is insertion order.
        """
        records: list[dict] = []
        with get_db(self._session_factory) as db:
            for kind, model in AUDIT_MODELS.items():
                rows = (
                    db.query(model)
                    .filter(model.assessment_id == assessment_id)
                    .all()
                )
                records.extend(audit_to_dict(kind, r) for r in rows)
        records.sort(
            key=lambda r: (r["created_at"], _KIND_RANK[AuditKind(r["kind"])], r["id"])
        )
        return records


# ═══════════════════════════════════════════
# Teardown (maintenance scripts and tests only)
# ═══════════════════════════════════════════

def teardown_assessment(session_factory: sessionmaker, assessment_id: str) -> int:
    """Delete an assessment and its audit records. Returns records removed."""
    with get_db(session_factory) as db:
        removed = 0
        for model in AUDIT_MODELS.values():
            removed += (
                db.query(model)
                .filter(model.assessment_id == assessment_id)
                .delete(synchronize_session=False)
            )
        db.query(ProductAssessment).filter_by(id=assessment_id).delete(
            synchronize_session=False
        )
        logger.info(
            "Tore down assessment %s (%d audit records)", assessment_id, removed
        )
        return removed


def teardown_product(session_factory: sessionmaker, product_id: str) -> None:
    """Delete a product, its assessment, images and variants."""
    with get_db(session_factory) as db:
        assessment = (
            db.query(ProductAssessment).filter_by(product_id=product_id).first()
        )
        assessment_id = assessment.id if assessment else None

    if assessment_id:
        teardown_assessment(session_factory, assessment_id)

    with get_db(session_factory) as db:
        db.query(ProductImage).filter_by(product_id=product_id).delete(
            synchronize_session=False
        )
        db.query(ProductVariant).filter_by(product_id=product_id).delete(
            synchronize_session=False
        )
        db.query(Product).filter_by(id=product_id).delete(
            synchronize_session=False
        )
