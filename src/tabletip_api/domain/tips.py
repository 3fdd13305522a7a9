from __future__ import annotations

from enum import StrEnum


class TipSource(StrEnum):
    STRIPE = "stripe"
    CASH = "cash"
    CRYPTO = "crypto"


class TipStatus(StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


# Crypto tips are written as succeeded and never move; only card tips transition.
ALLOWED_CARD_TIP_TRANSITIONS: dict[TipStatus, set[TipStatus]] = {
    TipStatus.PENDING: {TipStatus.SUCCEEDED, TipStatus.FAILED},
    TipStatus.SUCCEEDED: {TipStatus.REFUNDED},
    TipStatus.FAILED: set(),
    TipStatus.REFUNDED: set(),
}


def is_valid_card_tip_transition(current: TipStatus, target: TipStatus) -> bool:
    return target in ALLOWED_CARD_TIP_TRANSITIONS.get(current, set())
