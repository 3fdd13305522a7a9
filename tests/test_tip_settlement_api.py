from __future__ import annotations

from typing import Any

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from tabletip_api.db.models import Tip
from tabletip_api.domain import chain_reader, price_quotes

PAYOUT_WALLET = "0x" + "b" * 40
OTHER_WALLET = "0x" + "c" * 40
CUSTOMER_WALLET = "0x" + "a" * 40
TX_HASH = "0x" + "1f" * 32
ONE_FINNEY = 1_000_000_000_000_000


class FakeChain:
    """Scripted JSON-RPC responses for a single transaction."""

    def __init__(
        self,
        *,
        to: str = PAYOUT_WALLET,
        value: int = ONE_FINNEY,
        status: str = "0x1",
        receipt_available: bool = True,
    ) -> None:
        self.to = to
        self.value = value
        self.status = status
        self.receipt_available = receipt_available
        self.receipt_calls: list[str] = []
        self.transaction_calls: list[str] = []

    async def fetch_receipt(self, rpc_url: str, tx_hash: str, *, timeout: float) -> dict[str, Any]:
        self.receipt_calls.append(rpc_url)
        if not self.receipt_available:
            return {"jsonrpc": "2.0", "id": 1, "result": None}
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "transactionHash": tx_hash,
                "status": self.status,
                "blockNumber": hex(18_000_000),
                "gasUsed": hex(21_000),
                "effectiveGasPrice": hex(1_000_000_000),
            },
        }

    async def fetch_transaction(self, rpc_url: str, tx_hash: str, *, timeout: float) -> dict[str, Any]:
        self.transaction_calls.append(rpc_url)
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "hash": tx_hash,
                "from": CUSTOMER_WALLET,
                "to": self.to,
                "value": hex(self.value),
                "gasPrice": hex(1_000_000_000),
            },
        }

    def install(self, monkeypatch) -> FakeChain:
        monkeypatch.setattr(chain_reader, "fetch_transaction_receipt", self.fetch_receipt)
        monkeypatch.setattr(chain_reader, "fetch_transaction", self.fetch_transaction)
        return self


def _install_price(monkeypatch, usd: object = 3000) -> list[str]:
    calls: list[str] = []

    async def _fake_price(price_api_url: str, coin_id: str, *, timeout: float) -> dict[str, Any]:
        calls.append(coin_id)
        return {coin_id: {"usd": usd}}

    monkeypatch.setattr(price_quotes, "fetch_coingecko_price", _fake_price)
    return calls


def _payload(qr_code: str, **overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "qr_code": qr_code,
        "tx_hash": TX_HASH,
        "from_address": CUSTOMER_WALLET,
        "chain_id": 8453,
        "amount_in_smallest_unit": str(ONE_FINNEY),
    }
    payload.update(overrides)
    return payload


async def _tip_count(db_sessionmaker) -> int:
    async with db_sessionmaker() as session:
        return await session.scalar(select(func.count(Tip.id)))


@pytest.mark.asyncio
async def test_crypto_tip_is_verified_converted_and_recorded(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    chain = FakeChain().install(monkeypatch)
    price_calls = _install_price(monkeypatch, 3000)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert chain.receipt_calls == ["https://mainnet.base.org"]
    assert price_calls == ["ethereum"]

    async with db_sessionmaker() as session:
        tip = await session.scalar(select(Tip).where(Tip.tx_hash == TX_HASH))
    assert tip is not None
    assert str(tip.id) == body["tip_id"]
    assert tip.source == "crypto"
    assert tip.status == "succeeded"
    assert tip.currency == "USD"
    assert tip.amount_cents == 300
    assert tip.gas_paid_cents == 6
    assert tip.blockchain_network == "base"
    assert tip.chain_id == 8453
    assert tip.token_symbol == "ETH"
    assert tip.amount_native_units == str(ONE_FINNEY)
    assert tip.block_number == 18_000_000
    assert tip.from_wallet_address == CUSTOMER_WALLET
    assert tip.to_wallet_address == PAYOUT_WALLET
    assert tip.server_assignment_id == venue.assignment_id
    assert tip.received_at is not None


@pytest.mark.asyncio
async def test_crypto_tip_recipient_match_ignores_case(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    FakeChain(to="0x" + "B" * 40).install(monkeypatch)
    _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 200
    assert await _tip_count(db_sessionmaker) == 1


@pytest.mark.asyncio
async def test_crypto_tip_to_another_wallet_is_rejected(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    FakeChain(to=OTHER_WALLET).install(monkeypatch)
    price_calls = _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "recipient_mismatch"
    assert body["details"]["retryable"] is False
    assert price_calls == []
    assert await _tip_count(db_sessionmaker) == 0


@pytest.mark.asyncio
async def test_crypto_tip_amount_off_by_one_wei_is_rejected(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    FakeChain(value=ONE_FINNEY - 1).install(monkeypatch)
    _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "amount_mismatch"
    assert body["details"]["claimed_amount"] == str(ONE_FINNEY)
    assert body["details"]["onchain_amount"] == str(ONE_FINNEY - 1)
    assert await _tip_count(db_sessionmaker) == 0


@pytest.mark.asyncio
async def test_crypto_tip_duplicate_submission_is_rejected_without_chain_calls(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    chain = FakeChain().install(monkeypatch)
    _install_price(monkeypatch)

    first = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))
    assert first.status_code == 200
    calls_after_first = len(chain.receipt_calls)

    # Same hash in upper case still resolves to the recorded tip.
    second = await client.post(
        "/v1/tips/crypto", json=_payload(venue.qr_code, tx_hash="0x" + "1F" * 32)
    )

    assert second.status_code == 409
    body = second.json()
    assert body["code"] == "duplicate_submission"
    assert body["details"]["tip_id"] == first.json()["tip_id"]
    assert len(chain.receipt_calls) == calls_after_first
    assert await _tip_count(db_sessionmaker) == 1


@pytest.mark.asyncio
async def test_crypto_tip_unsupported_chain_makes_no_external_calls(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    chain = FakeChain().install(monkeypatch)
    price_calls = _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code, chain_id=999999))

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "unsupported_chain"
    assert 8453 in body["details"]["supported_chain_ids"]
    assert chain.receipt_calls == []
    assert chain.transaction_calls == []
    assert price_calls == []


@pytest.mark.asyncio
async def test_crypto_tip_failed_transaction_is_rejected(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    chain = FakeChain(status="0x0").install(monkeypatch)
    _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 422
    assert response.json()["code"] == "transaction_failed_on_chain"
    assert chain.transaction_calls == []
    assert await _tip_count(db_sessionmaker) == 0


@pytest.mark.asyncio
async def test_crypto_tip_receipt_timeout_is_retryable(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    chain = FakeChain(receipt_available=False).install(monkeypatch)
    _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 504
    body = response.json()
    assert body["code"] == "receipt_timeout"
    assert body["details"]["retryable"] is True
    assert len(chain.receipt_calls) == 3
    assert await _tip_count(db_sessionmaker) == 0


@pytest.mark.asyncio
async def test_crypto_tip_price_unavailable_records_nothing(
    client: AsyncClient, db_sessionmaker, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue()
    FakeChain().install(monkeypatch)

    async def _failing_price(price_api_url: str, coin_id: str, *, timeout: float) -> dict[str, Any]:
        raise httpx.ConnectError("price feed down")

    monkeypatch.setattr(price_quotes, "fetch_coingecko_price", _failing_price)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "price_unavailable"
    assert body["details"]["retryable"] is True
    assert await _tip_count(db_sessionmaker) == 0

    # Once the feed recovers the same submission goes through.
    _install_price(monkeypatch)
    retry = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))
    assert retry.status_code == 200
    assert await _tip_count(db_sessionmaker) == 1


@pytest.mark.asyncio
async def test_crypto_tip_unknown_qr_code(client: AsyncClient, monkeypatch) -> None:
    chain = FakeChain().install(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload("NO-SUCH-TABLE"))

    assert response.status_code == 404
    assert response.json()["code"] == "qr_code_not_found"
    assert chain.receipt_calls == []


@pytest.mark.asyncio
async def test_crypto_tip_inactive_assignment_is_not_found(
    client: AsyncClient, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue(assignment_active=False)
    FakeChain().install(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 404
    assert response.json()["code"] == "qr_code_not_found"


@pytest.mark.asyncio
async def test_crypto_tip_requires_payout_wallet(
    client: AsyncClient, seed_venue, monkeypatch
) -> None:
    venue = await seed_venue(payout_wallet_address=None)
    chain = FakeChain().install(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 400
    assert response.json()["code"] == "payout_wallet_missing"
    assert chain.receipt_calls == []


@pytest.mark.asyncio
async def test_crypto_tip_uses_configured_rpc_endpoint(
    client: AsyncClient, seed_venue, monkeypatch
) -> None:
    from tabletip_api.settings import get_settings

    monkeypatch.setenv("CHAIN_RPC_URLS", "8453=https://base.rpc.example.test")
    get_settings.cache_clear()
    venue = await seed_venue()
    chain = FakeChain().install(monkeypatch)
    _install_price(monkeypatch)

    response = await client.post("/v1/tips/crypto", json=_payload(venue.qr_code))

    assert response.status_code == 200
    assert chain.receipt_calls == ["https://base.rpc.example.test/"]


@pytest.mark.asyncio
async def test_crypto_tip_malformed_payload_is_a_validation_error(client: AsyncClient) -> None:
    response = await client.post(
        "/v1/tips/crypto",
        json={
            "qr_code": "TABLE-7",
            "tx_hash": "0x1234",
            "from_address": CUSTOMER_WALLET,
            "chain_id": 8453,
            "amount_in_smallest_unit": "0",
        },
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert "body.tx_hash" in body["details"]["fields"]
    assert "body.amount_in_smallest_unit" in body["details"]["fields"]
