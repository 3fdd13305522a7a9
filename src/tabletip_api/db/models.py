from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tabletip_api.time import utcnow


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(200), nullable=True, unique=True)
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    locations: Mapped[list[Location]] = relationship(back_populates="organization")


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (Index("ix_locations_org_id", "org_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    organization: Mapped[Organization] = relationship(back_populates="locations")


class ServerAssignment(Base):
    """Binds a server (staff member) to an organization and location, with their payout details."""

    __tablename__ = "server_assignments"
    __table_args__ = (
        Index("ix_server_assignments_org_id", "org_id"),
        Index("ix_server_assignments_server_id", "server_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("organizations.id"), nullable=False)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    server_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    display_name_override: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payout_wallet_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    stripe_connect_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    started_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    organization: Mapped[Organization] = relationship()
    location: Mapped[Location | None] = relationship()


class QrCode(Base):
    __tablename__ = "qr_codes"
    __table_args__ = (
        UniqueConstraint("code", name="uq_qr_codes_code"),
        Index("ix_qr_codes_server_assignment_id", "server_assignment_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    short_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    server_assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("server_assignments.id"), nullable=False
    )
    table_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    assignment: Mapped[ServerAssignment] = relationship()


class Tip(Base):
    __tablename__ = "tips"
    __table_args__ = (
        CheckConstraint("source in ('stripe', 'cash', 'crypto')", name="ck_tips_source"),
        CheckConstraint(
            "status in ('pending', 'succeeded', 'failed', 'refunded')",
            name="ck_tips_status",
        ),
        CheckConstraint("amount_cents >= 0", name="ck_tips_amount_cents_non_negative"),
        UniqueConstraint("tx_hash", name="uq_tips_tx_hash"),
        UniqueConstraint("stripe_payment_intent_id", name="uq_tips_stripe_payment_intent_id"),
        Index("ix_tips_server_assignment_id", "server_assignment_id"),
        Index("ix_tips_org_id", "org_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("organizations.id"), nullable=False)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    server_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    server_assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("server_assignments.id"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    blockchain_network: Mapped[str | None] = mapped_column(String(64), nullable=True)
    chain_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    from_wallet_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_wallet_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    token_symbol: Mapped[str | None] = mapped_column(String(16), nullable=True)
    amount_native_units: Mapped[str | None] = mapped_column(String(80), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_paid_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    received_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint(
            "sentiment in ('positive', 'neutral', 'negative')",
            name="ck_reviews_sentiment",
        ),
        Index("ix_reviews_location_id_created_at", "location_id", "created_at"),
        Index("ix_reviews_server_assignment_id", "server_assignment_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("organizations.id"), nullable=False)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id"), nullable=True
    )
    server_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    server_assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("server_assignments.id"), nullable=False
    )
    sentiment: Mapped[str] = mapped_column(String(16), nullable=False)
    rating_emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    linked_tip_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tips.id"), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
