from __future__ import annotations

import importlib
from typing import Any, Dict, Mapping, Optional, Tuple

from ..models import ProviderType
from ..utils.errors import ConfigValidationError
from .base import ClientFactory, KMSProvider

# Provider modules import their backend SDKs; load them only when selected.
BUILTIN_PROVIDERS: Dict[ProviderType, Tuple[str, str]] = {
    ProviderType.AWS: ("certmaker.kms.aws", "AWSKMSProvider"),
    ProviderType.GCP: ("certmaker.kms.gcp", "GCPKMSProvider"),
    ProviderType.AZURE: ("certmaker.kms.azure", "AzureKMSProvider"),
    ProviderType.HASHIVAULT: ("certmaker.kms.hashivault", "HashiVaultProvider"),
}


def load_plugin(path: str, class_name: str) -> Any:
    """Dynamically load a plugin class given module path and class name.

    Example: load_plugin('certmaker.kms.aws', 'AWSKMSProvider')
    """
    mod = importlib.import_module(path)
    return getattr(mod, class_name)


class ProviderRegistry:
    """Maps a :class:`ProviderType` to the provider variant that serves it"""

    def __init__(
        self,
        providers: Optional[Mapping[ProviderType, KMSProvider]] = None,
        client_factories: Optional[Mapping[ProviderType, ClientFactory]] = None,
    ) -> None:
        self._providers: Dict[ProviderType, KMSProvider] = dict(providers or {})
        self._client_factories = dict(client_factories or {})

    def register(self, provider: KMSProvider) -> None:
        self._providers[provider.type] = provider

    def get(self, provider_type: ProviderType | str) -> KMSProvider:
        provider_type = ProviderType.parse(provider_type)
        provider = self._providers.get(provider_type)
        if provider is not None:
            return provider
        try:
            module_path, class_name = BUILTIN_PROVIDERS[provider_type]
        except KeyError:
            raise ConfigValidationError(f"unsupported KMS type: {provider_type.value}") from None
        provider_cls = load_plugin(module_path, class_name)
        provider = provider_cls(client_factory=self._client_factories.get(provider_type))
        self._providers[provider_type] = provider
        return provider


__all__ = ["BUILTIN_PROVIDERS", "ProviderRegistry", "load_plugin"]
