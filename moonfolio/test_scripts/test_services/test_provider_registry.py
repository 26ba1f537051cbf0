"""
Provider Registry Tests

Tests provider auto-discovery for price and chain providers.
"""
import pytest

from moonfolio.app.services.provider_registry import ChainProviderRegistry, PriceProviderRegistry


def _codes(registry) -> list:
    return [p["code"] for p in registry.list_providers()]


def test_price_provider_discovery():
    """Both price providers live in price_source_providers/ and register on import."""
    provider_codes = _codes(PriceProviderRegistry)

    assert {"coingecko", "mockprov"}.issubset(provider_codes), f"Got: {provider_codes}"


def test_chain_provider_discovery():
    provider_codes = _codes(ChainProviderRegistry)

    assert {"ethereum_rpc", "mockchain"}.issubset(provider_codes), f"Got: {provider_codes}"


def test_registries_do_not_share_providers():
    assert "mockchain" not in _codes(PriceProviderRegistry)
    assert "mockprov" not in _codes(ChainProviderRegistry)


def test_instance_gets_constructor_kwargs():
    provider = PriceProviderRegistry.get_provider_instance("mockprov", fail=True)

    assert provider.provider_code == "mockprov"
    assert provider.fail is True


def test_unknown_provider():
    assert PriceProviderRegistry.get_provider("nope") is None
    assert ChainProviderRegistry.get_provider_instance("nope") is None


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
