"""
Ethereum mainnet reader over JSON-RPC (Infura or any node) with httpx.

- Native balance: eth_getBalance(address, "latest")
- Token balance: eth_call to the token contract with balanceOf(address)
  (selector 0x70a08231 + left-padded address), scaled by the token decimals
- ENS names: resolved by the HTTP resolution service at ENS_RESOLVER_URL
  (GET {url}/{name} -> {"address": ..., "name": ...}), cached for
  ENS_CACHE_TTL_SECONDS
"""
import asyncio
from decimal import Decimal
from itertools import count
from typing import List, Optional

import httpx

from moonfolio.app.config import get_settings
from moonfolio.app.logging_config import get_logger
from moonfolio.app.schemas.wallets import WLIdentity, WLTokenBalance
from moonfolio.app.services.chain_reader import (
    NATIVE_TOKEN,
    TOKEN_ALLOWLIST,
    ChainReaderProvider,
    TokenSpec,
    is_address,
    token_balance,
    )
from moonfolio.app.services.errors import NotFoundError, UpstreamUnavailableError
from moonfolio.app.services.provider_registry import ChainProviderRegistry, register_provider
from moonfolio.app.utils.cache_utils import get_ttl_cache

logger = get_logger(__name__)

BALANCE_OF_SELECTOR = "0x70a08231"


def encode_balance_of(address: str) -> str:
    """Calldata for ERC-20 balanceOf(address)."""
    return BALANCE_OF_SELECTOR + address.lower().removeprefix("0x").rjust(64, "0")


def scale_units(raw_hex: str, decimals: int) -> Decimal:
    """Convert a hex integer quantity (wei, token base units) to a decimal amount."""
    if raw_hex in ("0x", "0x0", ""):
        return Decimal("0")
    return Decimal(int(raw_hex, 16)).scaleb(-decimals)


@register_provider(ChainProviderRegistry)
class EthereumRpcProvider(ChainReaderProvider):
    """Mainnet balances via JSON-RPC, names via an HTTP ENS resolver."""

    def __init__(self, rpc_url: Optional[str] = None, resolver_url: Optional[str] = None,
                 timeout_seconds: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.rpc_url = rpc_url or settings.eth_rpc_endpoint
        self.resolver_url = (resolver_url or settings.ENS_RESOLVER_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.UPSTREAM_TIMEOUT_SECONDS
        self._transport = transport
        self._ids = count(1)
        self._name_cache = get_ttl_cache("ens_resolution", maxsize=512, ttl=settings.ENS_CACHE_TTL_SECONDS)

    @property
    def provider_code(self) -> str:
        return "ethereum_rpc"

    @property
    def provider_name(self) -> str:
        return "Ethereum JSON-RPC"

    # ===== NAME RESOLUTION =====

    async def resolve_name(self, name: str) -> WLIdentity:
        cached = self._name_cache.get(name)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(f"{self.resolver_url}/{name}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"ENS resolver unreachable: {e}", error_code="FETCH_ERROR",
                                           details={"name": name}) from e

        if response.status_code == 404:
            raise NotFoundError(f"ENS name {name} does not resolve", details={"name": name})
        if response.status_code >= 400:
            raise UpstreamUnavailableError(f"ENS resolver returned HTTP {response.status_code}",
                                           error_code="FETCH_ERROR", details={"name": name})
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Invalid ENS resolver response", error_code="INVALID_RESPONSE") from e

        address = payload.get("address") if isinstance(payload, dict) else None
        if not address or not is_address(address):
            raise NotFoundError(f"ENS name {name} does not resolve", details={"name": name})

        identity = WLIdentity(address=address.lower(), display_name=payload.get("name") or name)
        self._name_cache[name] = identity
        return identity

    # ===== BALANCES =====

    async def _rpc(self, client: httpx.AsyncClient, method: str, params: list) -> str:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await client.post(self.rpc_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Ethereum node request failed: {e}", error_code="FETCH_ERROR",
                                           details={"method": method}) from e
        except ValueError as e:
            raise UpstreamUnavailableError("Invalid Ethereum node response", error_code="INVALID_RESPONSE",
                                           details={"method": method}) from e

        if "error" in payload:
            raise UpstreamUnavailableError(f"Ethereum node error: {payload['error']}", error_code="RPC_ERROR",
                                           details={"method": method})
        return payload.get("result") or "0x0"

    async def _token_balance(self, client: httpx.AsyncClient, address: str, token: TokenSpec) -> WLTokenBalance:
        if token is NATIVE_TOKEN:
            raw = await self._rpc(client, "eth_getBalance", [address, "latest"])
        else:
            call = {"to": token.address, "data": encode_balance_of(address)}
            raw = await self._rpc(client, "eth_call", [call, "latest"])
        try:
            return token_balance(token, scale_units(raw, token.decimals))
        except ValueError as e:
            raise UpstreamUnavailableError(f"Unreadable {token.symbol} balance", error_code="INVALID_RESPONSE",
                                           details={"raw": raw}) from e

    async def read_balances(self, address: str) -> List[WLTokenBalance]:
        tokens = (NATIVE_TOKEN, *TOKEN_ALLOWLIST)
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            balances = await asyncio.gather(*(self._token_balance(client, address, t) for t in tokens))
        logger.info("Wallet balances read", address=address,
                    non_zero=sum(1 for b in balances if b.balance > 0))
        return list(balances)
