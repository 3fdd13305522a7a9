from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Protocol

import stripe
from fastapi import Depends
from starlette.concurrency import run_in_threadpool

from tabletip_api.domain.errors import AppError
from tabletip_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardPaymentIntent:
    payment_intent_id: str
    client_secret: str


class CardPaymentProvider(Protocol):
    async def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        customer_email: str,
        cardholder_name: str | None,
        metadata: dict[str, str],
    ) -> CardPaymentIntent:
        ...


class StripeCardPaymentProvider:
    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key

    def _find_or_create_customer(
        self, customer_email: str, cardholder_name: str | None, metadata: dict[str, str]
    ) -> str:
        customers = stripe.Customer.list(email=customer_email, limit=1, api_key=self._secret_key)
        if customers.data:
            return customers.data[0].id
        customer = stripe.Customer.create(
            email=customer_email,
            name=cardholder_name,
            metadata=metadata,
            api_key=self._secret_key,
        )
        return customer.id

    def _create_payment_intent_sync(
        self,
        amount_cents: int,
        currency: str,
        customer_email: str,
        cardholder_name: str | None,
        metadata: dict[str, str],
    ) -> CardPaymentIntent:
        customer_id = self._find_or_create_customer(
            customer_email,
            cardholder_name,
            {key: metadata[key] for key in ("server_id", "org_id") if key in metadata},
        )
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency.lower(),
            customer=customer_id,
            receipt_email=customer_email,
            metadata={**metadata, "tip_amount_cents": str(amount_cents)},
            automatic_payment_methods={"enabled": True},
            api_key=self._secret_key,
        )
        return CardPaymentIntent(payment_intent_id=intent.id, client_secret=intent.client_secret)

    async def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        customer_email: str,
        cardholder_name: str | None,
        metadata: dict[str, str],
    ) -> CardPaymentIntent:
        try:
            return await run_in_threadpool(
                self._create_payment_intent_sync,
                amount_cents,
                currency,
                customer_email,
                cardholder_name,
                metadata,
            )
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_payment_intent_failed",
                extra={"error": str(exc), "stripe_code": getattr(exc, "code", None)},
            )
            raise AppError(
                code="payment_provider_error",
                message="Card payment could not be started",
                status_code=502,
            ) from exc


def get_card_payment_provider(
    settings: Settings = Depends(get_settings),
) -> CardPaymentProvider:
    if not settings.stripe_secret_key:
        raise AppError(
            code="stripe_not_configured",
            message="Card payments are not configured",
            status_code=503,
        )
    return StripeCardPaymentProvider(settings.stripe_secret_key)


CardPaymentProviderDep = Annotated[CardPaymentProvider, Depends(get_card_payment_provider)]
