from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from tabletip_api.domain.errors import SettlementErrorCode, settlement_error

WEI_PER_NATIVE_TOKEN = 10**18


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int
    name: str
    rpc_url: str
    native_symbol: str = "ETH"

    @property
    def network(self) -> str:
        return self.name.lower()


SUPPORTED_CHAINS: dict[int, ChainConfig] = {
    1: ChainConfig(1, "Ethereum", "https://eth.merkle.io"),
    8453: ChainConfig(8453, "Base", "https://mainnet.base.org"),
    84532: ChainConfig(84532, "Base Sepolia", "https://sepolia.base.org"),
    137: ChainConfig(137, "Polygon", "https://polygon-rpc.com", native_symbol="MATIC"),
    42161: ChainConfig(42161, "Arbitrum One", "https://arb1.arbitrum.io/rpc"),
}


def resolve_chain(chain_id: int, rpc_overrides: Mapping[int, object] | None = None) -> ChainConfig:
    """Look up an allow-listed chain, applying any configured RPC endpoint override."""
    chain = SUPPORTED_CHAINS.get(chain_id)
    if chain is None:
        raise settlement_error(
            SettlementErrorCode.unsupported_chain,
            f"Unsupported chain: {chain_id}",
            {"chain_id": chain_id, "supported_chain_ids": sorted(SUPPORTED_CHAINS)},
        )
    override = (rpc_overrides or {}).get(chain_id)
    if override:
        return ChainConfig(chain.chain_id, chain.name, str(override), chain.native_symbol)
    return chain
