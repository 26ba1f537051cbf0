"""
Chain reader: wallet identity resolution and balance reads.

PLUGIN (ChainReaderProvider implementations):
- resolve_identity(): ENS-style name or raw 0x address -> WLIdentity
- read_balances(): native ETH plus every token of TOKEN_ALLOWLIST,
  zero balances included, in allow-list order
- translate transport failures into UpstreamUnavailableError

CORE (ChainService):
- rejects malformed identifiers before any upstream call
- skips resolution for raw addresses
- applies the upstream timeout

Providers auto-register via @register_provider(ChainProviderRegistry).
"""
from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, List, TypeVar

from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.wallets import WLIdentity, WLTokenBalance, WLWalletAssets
from moonfolio.app.services.errors import InvalidArgumentError, UpstreamUnavailableError

logger = get_logger(__name__)

T = TypeVar("T")

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
# Dotted labels, last one the ENS TLD; e.g. "vitalik.eth", "pay.alice.eth"
ENS_NAME_RE = re.compile(r"^(?:[a-z0-9-]+\.)+eth$", re.IGNORECASE)

NATIVE_ASSET_KEY = "native"


@dataclass(frozen=True)
class TokenSpec:
    """One fungible token tracked for every wallet."""
    address: str
    symbol: str
    name: str
    decimals: int
    price_id: str
    image_url: str


NATIVE_TOKEN = TokenSpec(
    address=NATIVE_ASSET_KEY,
    symbol="ETH",
    name="Ethereum",
    decimals=18,
    price_id="ethereum",
    image_url="https://cryptologos.cc/logos/ethereum-eth-logo.png",
    )

TOKEN_ALLOWLIST: tuple[TokenSpec, ...] = (
    TokenSpec("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", "Wrapped Ether", 18, "ethereum",
              "https://cryptologos.cc/logos/ethereum-eth-logo.png"),
    TokenSpec("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", "USD Coin", 6, "usd-coin",
              "https://cryptologos.cc/logos/usd-coin-usdc-logo.png"),
    TokenSpec("0xdAC17F958D2ee523a2206206994597C13D831ec7", "USDT", "Tether USD", 6, "tether",
              "https://cryptologos.cc/logos/tether-usdt-logo.png"),
    TokenSpec("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "WBTC", "Wrapped BTC", 8, "bitcoin",
              "https://cryptologos.cc/logos/wrapped-bitcoin-wbtc-logo.png"),
    TokenSpec("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", "Dai Stablecoin", 18, "dai",
              "https://cryptologos.cc/logos/multi-collateral-dai-dai-logo.png"),
    TokenSpec("0x514910771AF9Ca656af840dff83E8264EcF986CA", "LINK", "ChainLink Token", 18, "chainlink",
              "https://cryptologos.cc/logos/chainlink-link-logo.png"),
    TokenSpec("0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", "UNI", "Uniswap", 18, "uniswap",
              "https://cryptologos.cc/logos/uniswap-uni-logo.png"),
    TokenSpec("0x7D1AfA7B718fb893dB30A3aBc0Cfc608AaCfeBB0", "MATIC", "Matic Token", 18, "matic-network",
              "https://cryptologos.cc/logos/polygon-matic-logo.png"),
    )


def is_address(value: str) -> bool:
    return bool(ADDRESS_RE.match(value))


def is_ens_name(value: str) -> bool:
    return bool(ENS_NAME_RE.match(value))


def short_address(address: str) -> str:
    """0x1234...abcd form used to name wallets without a display name."""
    return f"{address[:6]}...{address[-4:]}"


def token_balance(token: TokenSpec, balance) -> WLTokenBalance:
    return WLTokenBalance(
        asset_key=token.address if token.address == NATIVE_ASSET_KEY else token.address.lower(),
        symbol=token.symbol,
        name=token.name,
        price_id=token.price_id,
        balance=balance,
        image_url=token.image_url,
        )


# ============================================================================
# ABSTRACT BASE CLASS
# ============================================================================

class ChainReaderProvider(ABC):
    """Abstract base class for chain access plugins."""

    @property
    @abstractmethod
    def provider_code(self) -> str:
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def resolve_name(self, name: str) -> WLIdentity:
        """
        Resolve an ENS name.

        Raises:
            NotFoundError: the name has no address record
            UpstreamUnavailableError: resolver unreachable
        """
        pass

    @abstractmethod
    async def read_balances(self, address: str) -> List[WLTokenBalance]:
        """
        Native + allow-listed balances, zero entries included.

        Raises:
            UpstreamUnavailableError: node unreachable or invalid answer
        """
        pass


# ============================================================================
# SERVICE
# ============================================================================

class ChainService:
    """Validation and timeout policy in front of one ChainReaderProvider."""

    def __init__(self, provider: ChainReaderProvider, timeout_seconds: float = 10.0):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Chain reader timed out during {operation}",
                error_code="TIMEOUT",
                details={"provider": self.provider.provider_code, "timeout_seconds": self.timeout_seconds},
                ) from e

    async def resolve_identity(self, identifier: str) -> WLIdentity:
        """
        Resolve a raw address or an ENS name to a lower-cased address.

        Raises:
            InvalidArgumentError: neither a 0x address nor an ENS name
            NotFoundError: the name does not resolve
            UpstreamUnavailableError: resolver failure or timeout
        """
        value = identifier.strip()
        if is_address(value):
            return WLIdentity(address=value.lower())
        name = value.lower()
        if not is_ens_name(name):
            raise InvalidArgumentError(
                "Expected a 0x address or an ENS name ending in .eth",
                details={"identifier": identifier},
                )

        identity = await self._call(self.provider.resolve_name(name), "resolve_name")
        logger.info("ENS name resolved", name=name, address=identity.address)
        return WLIdentity(address=identity.address.lower(), display_name=identity.display_name or name)

    async def read_balances(self, address: str) -> List[WLTokenBalance]:
        if not is_address(address):
            raise InvalidArgumentError("Invalid wallet address", details={"address": address})
        return await self._call(self.provider.read_balances(address.lower()), "read_balances")

    async def get_wallet_assets(self, identifier: str) -> WLWalletAssets:
        """Preview of a wallet (identity + balances) without touching the ledger."""
        identity = await self.resolve_identity(identifier)
        balances = await self.read_balances(identity.address)
        return WLWalletAssets(address=identity.address, display_name=identity.display_name, balances=balances)
