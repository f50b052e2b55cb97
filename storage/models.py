"""
SQLAlchemy ORM models — product QA assessment.

Entities:
    Category, Seller, SellerTier,
    Product, ProductImage, ProductVariant,
    ProductAssessment,
    ProductApproval, ProductRejection, ProductRevision,
    ProductAssessmentLogistics
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean, CheckConstraint, Column, String, Integer, Numeric, Text,
    DateTime, ForeignKey,
)
from sqlalchemy.orm import relationship, DeclarativeBase


# ───────────────────────────────────────────
# Base
# ───────────────────────────────────────────

class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ───────────────────────────────────────────
# Enums
# ───────────────────────────────────────────

class AssessmentStatus(str, PyEnum):
    PENDING_DIGITAL_REVIEW = "pending_digital_review"
    WAITING_FOR_SAMPLE = "waiting_for_sample"
    PENDING_PHYSICAL_REVIEW = "pending_physical_review"
    VERIFIED = "verified"
    FOR_REVISION = "for_revision"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset(
    {AssessmentStatus.VERIFIED, AssessmentStatus.REJECTED}
)


class ApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RECLASSIFIED = "reclassified"


class RejectionStage(str, PyEnum):
    DIGITAL = "digital"
    PHYSICAL = "physical"


class TierLevel(str, PyEnum):
    STANDARD = "standard"
    PREMIUM_OUTLET = "premium_outlet"
    TRUSTED_BRAND = "trusted_brand"


class AuditKind(str, PyEnum):
    APPROVAL = "approval"
    REJECTION = "rejection"
    REVISION = "revision"
    LOGISTICS = "logistics"


def _in_check(column: str, enum_cls: type[PyEnum], name: str) -> CheckConstraint:
    tokens = ", ".join(f"'{m.value}'" for m in enum_cls)
    return CheckConstraint(f"{column} IN ({tokens})", name=name)


# ───────────────────────────────────────────
# Catalog
# ───────────────────────────────────────────

class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    slug = Column(String, nullable=False)


class Seller(Base):
    __tablename__ = "sellers"

    id = Column(String, primary_key=True, default=_uuid)
    store_name = Column(String, nullable=False)
    owner_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    tier = relationship(
        "SellerTier", back_populates="seller", uselist=False,
        cascade="all, delete-orphan",
    )


class SellerTier(Base):
    __tablename__ = "seller_tiers"
    __table_args__ = (
        _in_check("tier_level", TierLevel, "ck_seller_tiers_tier_level"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    seller_id = Column(
        String, ForeignKey("sellers.id"), nullable=False, unique=True
    )
    tier_level = Column(
        String, nullable=False, default=TierLevel.STANDARD.value
    )
    bypasses_assessment = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    seller = relationship("Seller", back_populates="tier")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        _in_check(
            "approval_status", ApprovalStatus, "ck_products_approval_status"
        ),
    )

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    seller_id = Column(String, ForeignKey("sellers.id"), nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    variant_label_1 = Column(String, nullable=True)   # e.g. "Size"
    variant_label_2 = Column(String, nullable=True)   # e.g. "Color"
    # Written only by ProductStatusProjector.
    approval_status = Column(
        String, nullable=False, default=ApprovalStatus.PENDING.value
    )
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    seller = relationship("Seller")
    category = relationship("Category")
    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.sort_order",
    )
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.variant_name",
    )


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(String, primary_key=True, default=_uuid)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    image_url = Column(String, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="images")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String, primary_key=True, default=_uuid)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    sku = Column(String, nullable=False, unique=True)
    variant_name = Column(String, nullable=False)
    size = Column(String, nullable=True)
    color = Column(String, nullable=True)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="variants")


# ───────────────────────────────────────────
# Assessment
# ───────────────────────────────────────────

class ProductAssessment(Base):
    """The QA case for exactly one product."""

    __tablename__ = "product_assessments"
    __table_args__ = (
        _in_check("status", AssessmentStatus, "ck_product_assessments_status"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    product_id = Column(
        String,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    status = Column(
        String,
        nullable=False,
        default=AssessmentStatus.PENDING_DIGITAL_REVIEW.value,
    )
    submitted_at = Column(DateTime, nullable=False, default=utc_now)
    approved_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    revision_requested_at = Column(DateTime, nullable=True)
    rejection_stage = Column(String, nullable=True)   # digital | physical
    created_by = Column(String, nullable=True)
    assigned_to = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    product = relationship("Product")
    approvals = relationship(
        "ProductApproval",
        back_populates="assessment",
        order_by="ProductApproval.id",
    )
    rejections = relationship(
        "ProductRejection",
        back_populates="assessment",
        order_by="ProductRejection.id",
    )
    revisions = relationship(
        "ProductRevision",
        back_populates="assessment",
        order_by="ProductRevision.id",
    )
    logistics = relationship(
        "ProductAssessmentLogistics",
        back_populates="assessment",
        order_by="ProductAssessmentLogistics.id",
    )


# ───────────────────────────────────────────
# Audit ledger (append-only)
# ───────────────────────────────────────────

class ProductApproval(Base):
    __tablename__ = "product_approvals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(
        String, ForeignKey("product_assessments.id"), nullable=False,
        index=True,
    )
    description = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    assessment = relationship("ProductAssessment", back_populates="approvals")


class ProductRejection(Base):
    __tablename__ = "product_rejections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(
        String, ForeignKey("product_assessments.id"), nullable=False,
        index=True,
    )
    description = Column(Text, nullable=True)
    vendor_submitted_category = Column(String, nullable=True)
    admin_reclassified_category = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    assessment = relationship("ProductAssessment", back_populates="rejections")


class ProductRevision(Base):
    __tablename__ = "product_revisions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(
        String, ForeignKey("product_assessments.id"), nullable=False,
        index=True,
    )
    description = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    assessment = relationship("ProductAssessment", back_populates="revisions")


class ProductAssessmentLogistics(Base):
    """Sample hand-off event, e.g. 'Drop-off by Courier'."""

    __tablename__ = "product_assessment_logistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(
        String, ForeignKey("product_assessments.id"), nullable=False,
        index=True,
    )
    details = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    assessment = relationship("ProductAssessment", back_populates="logistics")


AUDIT_MODELS: dict[AuditKind, type[Base]] = {
    AuditKind.APPROVAL: ProductApproval,
    AuditKind.REJECTION: ProductRejection,
    AuditKind.REVISION: ProductRevision,
    AuditKind.LOGISTICS: ProductAssessmentLogistics,
}
