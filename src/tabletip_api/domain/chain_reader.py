from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any, Awaitable, Callable

import httpx
from fastapi import Depends

from tabletip_api.domain.chains import ChainConfig
from tabletip_api.domain.errors import SettlementErrorCode, settlement_error
from tabletip_api.observability import metrics
from tabletip_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ReceiptStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class TransactionReceipt:
    status: ReceiptStatus
    block_number: int
    gas_used: int
    effective_gas_price: int | None


@dataclass(frozen=True)
class OnChainTransaction:
    tx_hash: str
    from_address: str | None
    to: str | None
    value: int
    status: ReceiptStatus
    block_number: int
    gas_used: int
    effective_gas_price: int


async def call_json_rpc(
    rpc_url: str, method: str, params: list[Any], *, timeout: float = 10.0
) -> dict[str, Any]:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(rpc_url, json=payload)
    response.raise_for_status()
    return response.json()


async def fetch_transaction_receipt(
    rpc_url: str, tx_hash: str, *, timeout: float = 10.0
) -> dict[str, Any]:
    return await call_json_rpc(rpc_url, "eth_getTransactionReceipt", [tx_hash], timeout=timeout)


async def fetch_transaction(rpc_url: str, tx_hash: str, *, timeout: float = 10.0) -> dict[str, Any]:
    return await call_json_rpc(rpc_url, "eth_getTransactionByHash", [tx_hash], timeout=timeout)


def parse_quantity(value: Any) -> int | None:
    """Decode a JSON-RPC hex quantity (``"0x1a"``); plain ints are accepted as-is."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith(("0x", "0X")):
        return None
    try:
        return int(value, 16)
    except ValueError:
        return None


def parse_receipt(result: Any) -> TransactionReceipt | None:
    if not isinstance(result, dict):
        return None
    block_number = parse_quantity(result.get("blockNumber"))
    gas_used = parse_quantity(result.get("gasUsed"))
    if block_number is None or gas_used is None:
        return None
    status = ReceiptStatus.SUCCESS if parse_quantity(result.get("status")) == 1 else ReceiptStatus.FAILURE
    return TransactionReceipt(
        status=status,
        block_number=block_number,
        gas_used=gas_used,
        effective_gas_price=parse_quantity(result.get("effectiveGasPrice")),
    )


def _lower_address(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value.lower()
    return None


def _rpc_result(response: dict[str, Any]) -> Any:
    if response.get("error") is not None:
        return None
    return response.get("result")


class EvmChainReader:
    """Reads a transaction and its receipt, polling while the receipt is not yet indexed."""

    def __init__(
        self,
        *,
        max_attempts: int = 12,
        poll_interval_seconds: float = 5.0,
        rpc_timeout_seconds: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._poll_interval_seconds = poll_interval_seconds
        self._rpc_timeout_seconds = rpc_timeout_seconds
        self._sleep = sleep

    async def _lookup_receipt(self, chain: ChainConfig, tx_hash: str) -> TransactionReceipt | None:
        try:
            response = await fetch_transaction_receipt(
                chain.rpc_url, tx_hash, timeout=self._rpc_timeout_seconds
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.info(
                "receipt_lookup_failed",
                extra={"network": chain.network, "tx_hash": tx_hash, "error": str(exc)},
            )
            return None
        return parse_receipt(_rpc_result(response))

    async def wait_for_receipt(self, chain: ChainConfig, tx_hash: str) -> TransactionReceipt:
        for attempt in range(1, self._max_attempts + 1):
            receipt = await self._lookup_receipt(chain, tx_hash)
            if receipt is not None:
                metrics.receipt_poll_attempts.labels(network=chain.network, outcome="found").observe(
                    attempt
                )
                return receipt
            if attempt < self._max_attempts:
                logger.info(
                    "receipt_not_found_retrying",
                    extra={
                        "network": chain.network,
                        "tx_hash": tx_hash,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                    },
                )
                await self._sleep(self._poll_interval_seconds)

        metrics.receipt_poll_attempts.labels(network=chain.network, outcome="timeout").observe(
            self._max_attempts
        )
        raise settlement_error(
            SettlementErrorCode.receipt_timeout,
            "Transaction receipt not found after maximum retries. Transaction may still be pending.",
            {"tx_hash": tx_hash, "attempts": self._max_attempts},
        )

    async def read_transaction(self, chain: ChainConfig, tx_hash: str) -> OnChainTransaction:
        receipt = await self.wait_for_receipt(chain, tx_hash)
        if receipt.status != ReceiptStatus.SUCCESS:
            raise settlement_error(
                SettlementErrorCode.transaction_failed_on_chain,
                "Transaction failed on-chain",
                {"tx_hash": tx_hash, "block_number": receipt.block_number},
            )

        try:
            response = await fetch_transaction(
                chain.rpc_url, tx_hash, timeout=self._rpc_timeout_seconds
            )
        except (httpx.HTTPError, ValueError):
            response = {}
        result = _rpc_result(response)
        value = parse_quantity(result.get("value")) if isinstance(result, dict) else None
        if value is None:
            raise settlement_error(
                SettlementErrorCode.receipt_timeout,
                "Transaction details are not available yet",
                {"tx_hash": tx_hash},
            )

        effective_gas_price = receipt.effective_gas_price
        if effective_gas_price is None:
            effective_gas_price = parse_quantity(result.get("gasPrice")) or 0

        return OnChainTransaction(
            tx_hash=tx_hash,
            from_address=_lower_address(result.get("from")),
            to=_lower_address(result.get("to")),
            value=value,
            status=receipt.status,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
            effective_gas_price=effective_gas_price,
        )


def get_chain_reader(settings: Settings = Depends(get_settings)) -> EvmChainReader:
    return EvmChainReader(
        max_attempts=settings.receipt_poll_attempts,
        poll_interval_seconds=settings.receipt_poll_interval_seconds,
        rpc_timeout_seconds=settings.rpc_timeout_seconds,
    )


ChainReaderDep = Annotated[EvmChainReader, Depends(get_chain_reader)]
