from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError

from tabletip_api.api.schemas import (
    AssignmentTipsResponse,
    CardTipRequest,
    CardTipResponse,
    CardTipStatusRequest,
    CardTipStatusResponse,
    CryptoTipRequest,
    CryptoTipResponse,
    StripeConfigResponse,
    TipPublic,
)
from tabletip_api.db.models import ServerAssignment, Tip
from tabletip_api.db.session import DbSessionDep
from tabletip_api.domain.assignments import find_active_assignment
from tabletip_api.domain.card_payments import CardPaymentProviderDep
from tabletip_api.domain.chain_reader import ChainReaderDep
from tabletip_api.domain.errors import AppError
from tabletip_api.domain.price_quotes import PriceQuoteProviderDep
from tabletip_api.domain.tip_settlement import TipSubmission, settle_crypto_tip
from tabletip_api.domain.tips import TipSource, TipStatus, is_valid_card_tip_transition
from tabletip_api.observability.ops import observe_operation, observe_tip_transition
from tabletip_api.settings import Settings, get_settings
from tabletip_api.time import UtcNowDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["tips"])

_RECENT_TIPS_LIMIT = 10


def _tip_public(tip: Tip) -> TipPublic:
    return TipPublic(
        id=tip.id,
        source=tip.source,
        status=tip.status,
        amount_cents=tip.amount_cents,
        currency=tip.currency,
        blockchain_network=tip.blockchain_network,
        tx_hash=tip.tx_hash,
        token_symbol=tip.token_symbol,
        gas_paid_cents=tip.gas_paid_cents,
        received_at=tip.received_at,
        created_at=tip.created_at,
    )


@router.post("/tips/crypto", response_model=CryptoTipResponse)
async def record_crypto_tip(
    payload: CryptoTipRequest,
    db: DbSessionDep,
    chain_reader: ChainReaderDep,
    price_provider: PriceQuoteProviderDep,
    now: UtcNowDep,
    settings: Settings = Depends(get_settings),
) -> CryptoTipResponse:
    """Verify a client-submitted on-chain transfer and record it as a tip exactly once.

    This call may take up to the receipt polling window while a fresh transaction is mined.
    """
    submission = TipSubmission(
        qr_code=payload.qr_code,
        tx_hash=payload.tx_hash,
        from_address=payload.from_address,
        chain_id=payload.chain_id,
        amount_in_smallest_unit=payload.amount_in_smallest_unit,
    )
    tip = await settle_crypto_tip(
        db,
        submission,
        chain_reader=chain_reader,
        price_provider=price_provider,
        now=now(),
        rpc_overrides=settings.chain_rpc_urls,
    )
    return CryptoTipResponse(tip_id=tip.id)


@router.post("/tips/card", response_model=CardTipResponse)
async def create_card_tip(
    payload: CardTipRequest,
    db: DbSessionDep,
    provider: CardPaymentProviderDep,
    settings: Settings = Depends(get_settings),
) -> CardTipResponse:
    if payload.amount_cents < settings.stripe_min_tip_cents:
        raise AppError(
            code="invalid_tip_amount",
            message=f"Minimum tip amount is {settings.stripe_min_tip_cents} cents",
            status_code=400,
            details={"amount_cents": payload.amount_cents},
        )
    if "@" not in payload.customer_email:
        raise AppError(
            code="invalid_customer_email",
            message="Valid email address is required",
            status_code=400,
        )

    assignment = await find_active_assignment(db, payload.qr_code)
    if assignment is None:
        raise AppError(
            code="qr_code_not_found",
            message="Invalid or inactive QR code",
            status_code=404,
        )

    currency = payload.currency.upper()
    async with observe_operation(
        "card_tip.create", attributes={"tip.server_assignment_id": str(assignment.id)}
    ):
        intent = await provider.create_payment_intent(
            amount_cents=payload.amount_cents,
            currency=currency,
            customer_email=payload.customer_email,
            cardholder_name=payload.cardholder_name,
            metadata={
                "server_id": str(assignment.server_id),
                "server_assignment_id": str(assignment.id),
                "org_id": str(assignment.org_id),
            },
        )
        tip = Tip(
            org_id=assignment.org_id,
            location_id=assignment.location_id,
            server_id=assignment.server_id,
            server_assignment_id=assignment.id,
            source=TipSource.STRIPE.value,
            amount_cents=payload.amount_cents,
            currency=currency,
            status=TipStatus.PENDING.value,
            stripe_payment_intent_id=intent.payment_intent_id,
        )
        db.add(tip)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise AppError(
                code="payment_intent_already_recorded",
                message="Payment intent already recorded",
                status_code=409,
            ) from exc

    logger.info(
        "card_tip_created",
        extra={"tip_id": str(tip.id), "payment_intent_id": intent.payment_intent_id},
    )
    return CardTipResponse(
        tip_id=tip.id,
        payment_intent_id=intent.payment_intent_id,
        client_secret=intent.client_secret,
    )


@router.post("/tips/card/status", response_model=CardTipStatusResponse)
async def update_card_tip_status(
    payload: CardTipStatusRequest,
    db: DbSessionDep,
    now: UtcNowDep,
) -> CardTipStatusResponse:
    """Apply a card payment outcome reported by a trusted caller.

    The status is taken as given, webhook style; the payment intent is not re-checked
    with Stripe. Only the transition table is enforced.
    """
    tip = await db.scalar(
        select(Tip).where(
            Tip.stripe_payment_intent_id == payload.payment_intent_id,
            Tip.source == TipSource.STRIPE.value,
        )
    )
    if tip is None:
        raise AppError(code="tip_not_found", message="Tip not found", status_code=404)

    current = TipStatus(tip.status)
    target = TipStatus(payload.status)
    if current == target:
        return CardTipStatusResponse(tip=_tip_public(tip))
    if not is_valid_card_tip_transition(current, target):
        raise AppError(
            code="invalid_tip_transition",
            message="Invalid tip status transition",
            status_code=409,
            details={"from_status": current.value, "to_status": target.value},
        )

    with observe_tip_transition(
        from_status=current.value,
        to_status=target.value,
        attributes={"tip.id": str(tip.id)},
    ):
        tip.status = target.value
        if target == TipStatus.SUCCEEDED:
            tip.received_at = now()
        await db.commit()

    return CardTipStatusResponse(tip=_tip_public(tip))


@router.get("/stripe/config", response_model=StripeConfigResponse)
async def get_stripe_config(settings: Settings = Depends(get_settings)) -> StripeConfigResponse:
    if not settings.stripe_publishable_key:
        raise AppError(
            code="stripe_not_configured",
            message="Missing STRIPE_PUBLISHABLE_KEY",
            status_code=400,
        )
    return StripeConfigResponse(publishable_key=settings.stripe_publishable_key)


@router.get("/assignments/{assignment_id}/tips", response_model=AssignmentTipsResponse)
async def get_assignment_tips(assignment_id: uuid.UUID, db: DbSessionDep) -> AssignmentTipsResponse:
    """Return succeeded tip totals and the most recent succeeded tips for a server assignment."""
    assignment = await db.get(ServerAssignment, assignment_id)
    if assignment is None:
        raise AppError(
            code="assignment_not_found",
            message="Server assignment not found",
            status_code=404,
        )

    succeeded = (
        Tip.server_assignment_id == assignment_id,
        Tip.status == TipStatus.SUCCEEDED.value,
    )
    totals = (
        await db.execute(
            select(func.coalesce(func.sum(Tip.amount_cents), 0), func.count(Tip.id)).where(*succeeded)
        )
    ).one()
    tips = (
        await db.scalars(
            select(Tip).where(*succeeded).order_by(desc(Tip.created_at)).limit(_RECENT_TIPS_LIMIT)
        )
    ).all()

    return AssignmentTipsResponse(
        server_assignment_id=assignment_id,
        total_amount_cents=int(totals[0] or 0),
        tip_count=int(totals[1] or 0),
        recent_tips=[_tip_public(tip) for tip in tips],
    )
