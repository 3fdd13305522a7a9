from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, Field, field_validator

TipSourceLiteral = Literal["stripe", "cash", "crypto"]
TipStatusLiteral = Literal["pending", "succeeded", "failed", "refunded"]
ReviewSentiment = Literal["positive", "neutral", "negative"]


class HealthResponse(BaseModel):
    status: str = "ok"


class CryptoTipRequest(BaseModel):
    qr_code: str = Field(min_length=1, max_length=64)
    tx_hash: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    from_address: str = Field(pattern=r"^0x[0-9a-fA-F]{40}$")
    chain_id: int = Field(gt=0)
    amount_in_smallest_unit: str = Field(pattern=r"^[0-9]{1,78}$")

    @field_validator("tx_hash")
    @classmethod
    def _normalize_tx_hash(cls, value: str) -> str:
        # Hashes are case-insensitive hex; one canonical form keeps the unique key honest.
        return value.lower()

    @field_validator("amount_in_smallest_unit")
    @classmethod
    def _positive_amount(cls, value: str) -> str:
        if int(value) <= 0:
            raise ValueError("amount_in_smallest_unit must be positive")
        return value


class CryptoTipResponse(BaseModel):
    success: Literal[True] = True
    tip_id: uuid.UUID


class CardTipRequest(BaseModel):
    qr_code: str = Field(min_length=1, max_length=64)
    amount_cents: int
    currency: str = Field(default="USD", pattern=r"^[A-Za-z]{3}$")
    customer_email: str = Field(max_length=320)
    cardholder_name: str | None = Field(default=None, max_length=200)


class CardTipResponse(BaseModel):
    tip_id: uuid.UUID
    payment_intent_id: str
    client_secret: str


class CardTipStatusRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1, max_length=128)
    status: Literal["succeeded", "failed", "refunded"] = "succeeded"


class TipPublic(BaseModel):
    id: uuid.UUID
    source: TipSourceLiteral
    status: TipStatusLiteral
    amount_cents: int
    currency: str
    blockchain_network: str | None = None
    tx_hash: str | None = None
    token_symbol: str | None = None
    gas_paid_cents: int | None = None
    received_at: dt.datetime | None = None
    created_at: dt.datetime


class CardTipStatusResponse(BaseModel):
    success: Literal[True] = True
    tip: TipPublic


class StripeConfigResponse(BaseModel):
    publishable_key: str


class AssignmentTipsResponse(BaseModel):
    server_assignment_id: uuid.UUID
    total_amount_cents: int
    tip_count: int
    recent_tips: list[TipPublic]


class QrContextResponse(BaseModel):
    qr_code: str
    server_assignment_id: uuid.UUID
    server_id: uuid.UUID
    server_display_name: str | None = None
    org_id: uuid.UUID
    organization_name: str
    location_id: uuid.UUID | None = None
    location_name: str | None = None
    table_label: str | None = None
    accepts_crypto: bool
    payout_wallet_address: str | None = None
    supported_chain_ids: list[int]


class CreateReviewRequest(BaseModel):
    qr_code: str = Field(min_length=1, max_length=64)
    sentiment: ReviewSentiment
    rating_emoji: str | None = Field(default=None, max_length=16)
    comment: str | None = Field(default=None, max_length=2000)
    is_anonymous: bool = True
    contact_email: str | None = Field(default=None, max_length=320)
    linked_tip_id: uuid.UUID | None = None


class CreateReviewResponse(BaseModel):
    review_id: uuid.UUID


class PublicReview(BaseModel):
    id: uuid.UUID
    created_at: dt.datetime
    rating_emoji: str | None = None
    sentiment: ReviewSentiment
    comment: str | None = None
    tip_amount_cents: int | None = None
    tip_currency: str | None = None


class PublicReviewsResponse(BaseModel):
    location_id: uuid.UUID
    reviews: list[PublicReview]
