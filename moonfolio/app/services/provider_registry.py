from __future__ import annotations

import importlib
from pathlib import Path
from typing import Dict, List, Type

from moonfolio.app.logging_config import get_logger

logger = get_logger(__name__)


class AbstractProviderRegistry:
    """Abstract base class for provider registries.

    Each subclass automatically gets its own _providers dictionary.
    """

    def __init_subclass__(cls, **kwargs):
        """Ensure each subclass has its own _providers dict and discovery tracking."""
        super().__init_subclass__(**kwargs)
        cls._providers = {}
        cls._discovery_done = False

    @classmethod
    def register(cls, provider_class: Type) -> None:
        """Register a provider class under its provider_code.

        Providers must be constructible without arguments (every constructor
        argument has a default) so the code can be read from the property.
        """
        code = getattr(provider_class(), cls._get_provider_code_attr(), None)
        if not code:
            raise ValueError(f"{provider_class.__name__} must define a provider_code")
        if code in cls._providers and cls._providers[code] is not provider_class:
            logger.warning("Provider code registered twice, keeping the latest", code=code,
                           previous=cls._providers[code].__name__, current=provider_class.__name__)
        cls._providers[code] = provider_class

    @classmethod
    def get_provider(cls, code: str):
        """Get provider class by code. Triggers auto-discovery if not done yet."""
        cls.auto_discover()
        return cls._providers.get(code)

    @classmethod
    def get_provider_instance(cls, code: str, **kwargs):
        """Return an instantiated provider for ``code`` (kwargs go to the constructor).

        Returns None if provider not found.
        """
        prov_cls = cls.get_provider(code)
        if not prov_cls:
            return None
        return prov_cls(**kwargs)

    @classmethod
    def list_providers(cls) -> List[Dict[str, str]]:
        """List registered providers as dicts with 'code' and 'name' keys."""
        cls.auto_discover()
        providers = []
        for code, provider_class in sorted(cls._providers.items()):
            instance = provider_class()
            providers.append({'code': code, 'name': getattr(instance, 'provider_name', code)})
        return providers

    @classmethod
    def auto_discover(cls) -> None:
        """Import every module of the provider folder so their decorators run."""
        if cls._discovery_done:
            return
        folder = cls._get_provider_folder()
        target_dir = Path(__file__).parent / folder
        if not target_dir.exists():
            return

        for py in sorted(target_dir.glob('*.py')):
            if py.name == '__init__.py':
                continue
            module_name = f"moonfolio.app.services.{folder}.{py.stem}"
            try:
                importlib.import_module(module_name)
            except ImportError as e:
                # One broken plugin must not hide the others
                logger.error("Error importing provider module", module_name=module_name, error=str(e))
        cls._discovery_done = True

    # --- methods to specialize in subclasses ---
    @classmethod
    def _get_provider_folder(cls) -> str:
        raise NotImplementedError

    @classmethod
    def _get_provider_code_attr(cls) -> str:
        return "provider_code"


# Specializations
class PriceProviderRegistry(AbstractProviderRegistry):
    @classmethod
    def _get_provider_folder(cls) -> str:
        return "price_source_providers"


class ChainProviderRegistry(AbstractProviderRegistry):
    @classmethod
    def _get_provider_folder(cls) -> str:
        return "chain_reader_providers"


# Decorator factory
def register_provider(registry_class: Type[AbstractProviderRegistry]):
    """
    Decorator to register a provider class with the given registry.

    Example usage:
        @register_provider(PriceProviderRegistry)
        class MyPriceProvider(PriceSourceProvider):
            ...
    """

    def decorator(provider_class: Type):
        registry_class.register(provider_class)
        return provider_class

    return decorator
