"""SQLAlchemy async database models for TenderCalc.

Cost structure reference tables: categories, detail categories, locations
and the detail/location mapping that carries quantities and prices.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CostCategoryModel(Base):
    """Top-level cost category (e.g. "Organizational works")."""

    __tablename__ = "cost_categories"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_cost_categories_sort", "sort_order", "name"),)


class DetailCostCategoryModel(Base):
    """Cost line under a category, priced per unit."""

    __tablename__ = "detail_cost_categories"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    category_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cost_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_detail_category_name"),
        CheckConstraint("base_price >= 0", name="check_base_price_non_negative"),
    )


class LocationModel(Base):
    """Location node (street, building, apartment...). Self-referential tree."""

    __tablename__ = "location"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("location.id", ondelete="SET NULL"), index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CategoryLocationMappingModel(Base):
    """Many-to-many link between a detail category and a location."""

    __tablename__ = "category_location_mapping"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    detail_category_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("detail_cost_categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("location.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("detail_category_id", "location_id", name="uq_mapping_detail_location"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="check_discount_range",
        ),
    )


class CostImportRunModel(Base):
    """Audit log of spreadsheet import runs."""

    __tablename__ = "cost_import_runs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    source_file: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    categories_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    categories_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    detail_categories_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    detail_categories_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locations_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locations_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mappings_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mappings_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    errors: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    warnings: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (Index("idx_import_runs_started", "started_at"),)


# Table name -> model, used by the generic data store
TABLE_MODELS: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (
        CostCategoryModel,
        DetailCostCategoryModel,
        LocationModel,
        CategoryLocationMappingModel,
        CostImportRunModel,
    )
}
