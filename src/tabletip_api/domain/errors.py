from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


@dataclass(frozen=True)
class AppError(Exception):
    code: str
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


class SettlementErrorCode(StrEnum):
    duplicate_submission = "duplicate_submission"
    unsupported_chain = "unsupported_chain"
    qr_code_not_found = "qr_code_not_found"
    payout_wallet_missing = "payout_wallet_missing"
    receipt_timeout = "receipt_timeout"
    transaction_failed_on_chain = "transaction_failed_on_chain"
    recipient_mismatch = "recipient_mismatch"
    amount_mismatch = "amount_mismatch"
    price_unavailable = "price_unavailable"
    recording_failed = "recording_failed"


SETTLEMENT_ERROR_STATUS: dict[SettlementErrorCode, int] = {
    SettlementErrorCode.duplicate_submission: 409,
    SettlementErrorCode.unsupported_chain: 400,
    SettlementErrorCode.qr_code_not_found: 404,
    SettlementErrorCode.payout_wallet_missing: 400,
    SettlementErrorCode.receipt_timeout: 504,
    SettlementErrorCode.transaction_failed_on_chain: 422,
    SettlementErrorCode.recipient_mismatch: 422,
    SettlementErrorCode.amount_mismatch: 422,
    SettlementErrorCode.price_unavailable: 503,
    SettlementErrorCode.recording_failed: 503,
}

# Failures where resubmitting the same payload later is safe and may succeed.
RETRYABLE_SETTLEMENT_ERRORS = frozenset(
    {
        SettlementErrorCode.receipt_timeout,
        SettlementErrorCode.price_unavailable,
        SettlementErrorCode.recording_failed,
    }
)


def settlement_error(
    code: SettlementErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> AppError:
    return AppError(
        code=code.value,
        message=message,
        status_code=SETTLEMENT_ERROR_STATUS[code],
        details={**(details or {}), "retryable": code in RETRYABLE_SETTLEMENT_ERRORS},
    )
