"""Crypto tip settlement.

A submission is only a pointer to a transaction: the recipient, value and success of the
transfer are re-derived from the chain before anything is persisted. Stages run in order
and stop at the first failure, which leaves no persisted state:

    guard -> chain lookup -> assignment lookup -> chain read -> validation -> conversion -> record

Exactly-once recording per ``tx_hash`` is enforced by the ``uq_tips_tx_hash`` constraint;
the guard query only avoids external calls for the common resubmission case. No database
transaction is held open while the chain is polled.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tabletip_api.db.models import Tip
from tabletip_api.domain.assignments import find_active_assignment
from tabletip_api.domain.chain_reader import EvmChainReader, OnChainTransaction
from tabletip_api.domain.chains import WEI_PER_NATIVE_TOKEN, ChainConfig, resolve_chain
from tabletip_api.domain.errors import AppError, SettlementErrorCode, settlement_error
from tabletip_api.domain.price_quotes import PriceQuoteProvider
from tabletip_api.domain.tips import TipSource, TipStatus
from tabletip_api.observability import metrics
from tabletip_api.observability.logging import fraud_log
from tabletip_api.observability.ops import observe_operation

logger = logging.getLogger(__name__)

_FRAUD_SIGNALS = frozenset(
    {SettlementErrorCode.recipient_mismatch.value, SettlementErrorCode.amount_mismatch.value}
)


@dataclass(frozen=True)
class TipSubmission:
    qr_code: str
    tx_hash: str
    from_address: str
    chain_id: int
    amount_in_smallest_unit: str


@dataclass(frozen=True)
class ConvertedValue:
    token_symbol: str
    price_usd: Decimal
    amount_cents: int
    gas_paid_cents: int


@dataclass(frozen=True)
class PayoutTarget:
    """The server assignment fields a crypto tip is checked against and recorded under."""

    assignment_id: uuid.UUID
    org_id: uuid.UUID
    location_id: uuid.UUID | None
    server_id: uuid.UUID
    wallet_address: str


def native_units_to_cents(native_units: int, price_usd: Decimal) -> int:
    """Convert a wei-denominated amount to whole US cents, rounding half up."""
    with localcontext() as ctx:
        ctx.prec = 80
        cents = Decimal(native_units) * price_usd * 100 / WEI_PER_NATIVE_TOKEN
        return int(cents.quantize(Decimal(1), rounding=ROUND_HALF_UP))


async def ensure_not_recorded(db: AsyncSession, tx_hash: str) -> None:
    existing = await db.scalar(select(Tip.id).where(Tip.tx_hash == tx_hash))
    if existing is not None:
        raise settlement_error(
            SettlementErrorCode.duplicate_submission,
            "Transaction already recorded",
            {"tx_hash": tx_hash, "tip_id": str(existing)},
        )


async def resolve_payout_target(db: AsyncSession, qr_code: str) -> PayoutTarget:
    assignment = await find_active_assignment(db, qr_code)
    if assignment is None:
        raise settlement_error(
            SettlementErrorCode.qr_code_not_found,
            "Invalid or inactive QR code",
            {"qr_code": qr_code},
        )
    if not assignment.payout_wallet_address:
        raise settlement_error(
            SettlementErrorCode.payout_wallet_missing,
            "Server has no payout wallet configured",
            {"server_assignment_id": str(assignment.id)},
        )
    return PayoutTarget(
        assignment_id=assignment.id,
        org_id=assignment.org_id,
        location_id=assignment.location_id,
        server_id=assignment.server_id,
        wallet_address=assignment.payout_wallet_address.lower(),
    )


def validate_transaction(
    transaction: OnChainTransaction,
    target: PayoutTarget,
    submission: TipSubmission,
) -> None:
    actual_wallet = (transaction.to or "").lower()
    if not target.wallet_address or actual_wallet != target.wallet_address.lower():
        raise settlement_error(
            SettlementErrorCode.recipient_mismatch,
            "Transaction recipient does not match server wallet",
            {"tx_hash": transaction.tx_hash},
        )

    if transaction.value != int(submission.amount_in_smallest_unit):
        raise settlement_error(
            SettlementErrorCode.amount_mismatch,
            "Transaction amount mismatch",
            {
                "tx_hash": transaction.tx_hash,
                "claimed_amount": submission.amount_in_smallest_unit,
                "onchain_amount": str(transaction.value),
            },
        )


async def convert_value(
    chain: ChainConfig,
    transaction: OnChainTransaction,
    price_provider: PriceQuoteProvider,
) -> ConvertedValue:
    # The symbol comes from the chain, never from the client.
    price = await price_provider.get_usd_price(chain.native_symbol)
    return ConvertedValue(
        token_symbol=chain.native_symbol,
        price_usd=price,
        amount_cents=native_units_to_cents(transaction.value, price),
        gas_paid_cents=native_units_to_cents(
            transaction.gas_used * transaction.effective_gas_price, price
        ),
    )


def _recording_failed(tx_hash: str) -> AppError:
    return settlement_error(
        SettlementErrorCode.recording_failed,
        "Failed to record tip",
        {"tx_hash": tx_hash},
    )


async def record_tip(
    db: AsyncSession,
    *,
    target: PayoutTarget,
    chain: ChainConfig,
    submission: TipSubmission,
    transaction: OnChainTransaction,
    converted: ConvertedValue,
    received_at: dt.datetime,
) -> Tip:
    tip = Tip(
        org_id=target.org_id,
        location_id=target.location_id,
        server_id=target.server_id,
        server_assignment_id=target.assignment_id,
        source=TipSource.CRYPTO.value,
        amount_cents=converted.amount_cents,
        currency="USD",
        status=TipStatus.SUCCEEDED.value,
        blockchain_network=chain.network,
        chain_id=chain.chain_id,
        tx_hash=submission.tx_hash,
        from_wallet_address=transaction.from_address or submission.from_address.lower(),
        to_wallet_address=target.wallet_address,
        token_symbol=converted.token_symbol,
        amount_native_units=str(transaction.value),
        block_number=transaction.block_number,
        gas_paid_cents=converted.gas_paid_cents,
        received_at=received_at,
    )
    db.add(tip)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        # Only a row that now exists for this hash makes it a duplicate; any other
        # constraint failure means nothing was stored.
        try:
            existing = await db.scalar(select(Tip.id).where(Tip.tx_hash == submission.tx_hash))
        except SQLAlchemyError:
            existing = None
        if existing is None:
            logger.exception("crypto_tip_insert_failed", extra={"tx_hash": submission.tx_hash})
            raise _recording_failed(submission.tx_hash) from exc
        raise settlement_error(
            SettlementErrorCode.duplicate_submission,
            "Transaction already recorded",
            {"tx_hash": submission.tx_hash, "tip_id": str(existing)},
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("crypto_tip_insert_failed", extra={"tx_hash": submission.tx_hash})
        raise _recording_failed(submission.tx_hash) from exc
    return tip


async def settle_crypto_tip(
    db: AsyncSession,
    submission: TipSubmission,
    *,
    chain_reader: EvmChainReader,
    price_provider: PriceQuoteProvider,
    now: dt.datetime,
    rpc_overrides: Mapping[int, object] | None = None,
) -> Tip:
    network = str(submission.chain_id)
    async with observe_operation(
        "crypto_tip.settle",
        attributes={"tip.chain_id": submission.chain_id, "tip.tx_hash": submission.tx_hash},
    ):
        try:
            await ensure_not_recorded(db, submission.tx_hash)
            chain = resolve_chain(submission.chain_id, rpc_overrides)
            network = chain.network
            target = await resolve_payout_target(db, submission.qr_code)
            # Release the connection while the chain is polled; the insert opens a new transaction.
            await db.rollback()

            logger.info(
                "crypto_tip_verifying",
                extra={"tx_hash": submission.tx_hash, "network": network},
            )
            transaction = await chain_reader.read_transaction(chain, submission.tx_hash)
            validate_transaction(transaction, target, submission)
            converted = await convert_value(chain, transaction, price_provider)
            tip = await record_tip(
                db,
                target=target,
                chain=chain,
                submission=submission,
                transaction=transaction,
                converted=converted,
                received_at=now,
            )
        except AppError as exc:
            metrics.crypto_tip_rejections_total.labels(network=network, error_code=exc.code).inc()
            if exc.code in _FRAUD_SIGNALS:
                fraud_log(
                    exc.code,
                    tx_hash=submission.tx_hash,
                    network=network,
                    qr_code=submission.qr_code,
                    claimed_from=submission.from_address,
                )
            else:
                logger.info(
                    "crypto_tip_rejected",
                    extra={"tx_hash": submission.tx_hash, "network": network, "code": exc.code},
                )
            raise

    logger.info(
        "crypto_tip_recorded",
        extra={
            "tip_id": str(tip.id),
            "tx_hash": tip.tx_hash,
            "network": network,
            "amount_cents": tip.amount_cents,
        },
    )
    return tip
