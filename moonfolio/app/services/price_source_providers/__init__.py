"""Price source providers package. Modules placed here are auto-discovered by
`provider_registry.PriceProviderRegistry.auto_discover()`.
"""
__all__ = []
