"""Chain reader providers package. Modules placed here are auto-discovered by
`provider_registry.ChainProviderRegistry.auto_discover()`.
"""
__all__ = []
