"""
Mock chain provider for testing purposes only.

Known names and balances live in memory; every token of the allow-list is
reported, with zero for anything not configured.

WARNING: This provider is for TESTING ONLY. Do not use in production code.
"""
from decimal import Decimal
from typing import Dict, List, Optional

from moonfolio.app.schemas.wallets import WLIdentity, WLTokenBalance
from moonfolio.app.services.chain_reader import NATIVE_TOKEN, TOKEN_ALLOWLIST, ChainReaderProvider, token_balance
from moonfolio.app.services.errors import NotFoundError, UpstreamUnavailableError
from moonfolio.app.services.provider_registry import ChainProviderRegistry, register_provider

VITALIK_ADDRESS = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"

DEFAULT_NAMES: Dict[str, str] = {"vitalik.eth": VITALIK_ADDRESS}
DEFAULT_BALANCES: Dict[str, Decimal] = {"ETH": Decimal("1.5"), "USDC": Decimal("100")}


@register_provider(ChainProviderRegistry)
class MockChainProvider(ChainReaderProvider):
    """
    Mock chain reader - fixed names and balances.

    WARNING: FOR TESTING ONLY - DO NOT USE IN PRODUCTION
    """

    def __init__(self, names: Optional[Dict[str, str]] = None,
                 balances: Optional[Dict[str, Decimal]] = None, fail: bool = False, **_):
        self.names = dict(DEFAULT_NAMES if names is None else names)
        self.balances = dict(DEFAULT_BALANCES if balances is None else balances)
        self.fail = fail
        self.balance_reads: List[str] = []

    @property
    def provider_code(self) -> str:
        return "mockchain"

    @property
    def provider_name(self) -> str:
        return "Mock Chain Reader (TESTING ONLY)"

    async def resolve_name(self, name: str) -> WLIdentity:
        if self.fail:
            raise UpstreamUnavailableError("Mock chain is switched to failure mode", error_code="FETCH_ERROR")
        address = self.names.get(name)
        if address is None:
            raise NotFoundError(f"ENS name {name} does not resolve", details={"name": name})
        return WLIdentity(address=address, display_name=name)

    async def read_balances(self, address: str) -> List[WLTokenBalance]:
        self.balance_reads.append(address)
        if self.fail:
            raise UpstreamUnavailableError("Mock chain is switched to failure mode", error_code="FETCH_ERROR")
        return [
            token_balance(token, self.balances.get(token.symbol, Decimal("0")))
            for token in (NATIVE_TOKEN, *TOKEN_ALLOWLIST)
            ]
