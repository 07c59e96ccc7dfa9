"""SQLAlchemy tables for affiliate links, click/conversion events, tiers and progression."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class ProfileRow(Base):
    """Public profile mirrored from the auth service, used for leaderboard names."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # same id as the auth user
    email = Column(String(320), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now)


class AffiliateLinkRow(Base):
    """One shareable code per user, created when registration completes."""
    __tablename__ = "affiliate_links"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    clicks = relationship("ClickRow", back_populates="link")
    conversions = relationship("ConversionRow", back_populates="link")


class ClickRow(Base):
    """Append-only: one row per visit through an affiliate link."""
    __tablename__ = "clicks"

    id = Column(String(36), primary_key=True, default=_uuid)
    affiliate_link_id = Column(String(36), ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    referrer = Column(String(1000), nullable=True)
    user_agent = Column(String(500), nullable=True)
    device_type = Column(String(10), nullable=True)  # mobile | desktop | unknown
    path = Column(String(1000), nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 support

    link = relationship("AffiliateLinkRow", back_populates="clicks")

    __table_args__ = (
        Index("ix_clicks_link_created", "affiliate_link_id", "created_at"),
    )


class ConversionRow(Base):
    """A sale attributed to a link. status moves pending -> completed outside this service."""
    __tablename__ = "conversions"

    id = Column(String(36), primary_key=True, default=_uuid)
    affiliate_link_id = Column(String(36), ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    product = Column(String(200), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(20), nullable=True)  # pending | completed
    updated_at = Column(DateTime(timezone=True), nullable=True)

    link = relationship("AffiliateLinkRow", back_populates="conversions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_conversions_amount_positive"),
        Index("ix_conversions_link_created", "affiliate_link_id", "created_at"),
        Index("ix_conversions_status", "status"),
    )


class CommissionTierRow(Base):
    """Tier ladder configuration. Managed outside the app, read-only here."""
    __tablename__ = "commission_tiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    min_revenue = Column(Float, nullable=False)
    max_revenue = Column(Float, nullable=True)  # NULL = highest tier
    commission_rate = Column(Float, nullable=False)  # percent
    color = Column(String(20), nullable=False, default="#CD7F32")
    created_at = Column(DateTime(timezone=True), default=_now)


class UserProgressionRow(Base):
    """One row per user. Totals and current tier are maintained by the backend job."""
    __tablename__ = "user_progression"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    current_tier_id = Column(Integer, ForeignKey("commission_tiers.id"), nullable=True)
    total_revenue = Column(Float, nullable=False, default=0.0)
    total_commission = Column(Float, nullable=False, default=0.0)
    manual_override = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now)

    tier = relationship("CommissionTierRow")
