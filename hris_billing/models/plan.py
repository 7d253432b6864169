from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from hris_billing.models.base import Base, EntityBase


class Feature(EntityBase):
    __tablename__ = "features"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Plan(EntityBase):
    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    price_per_seat: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    tier_level: Mapped[int] = mapped_column(nullable=False, index=True)
    max_seats: Mapped[int | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PlanFeature(Base):
    __tablename__ = "plan_features"

    plan_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="CASCADE"),
        primary_key=True,
    )
    feature_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("features.id", ondelete="CASCADE"),
        primary_key=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
