"""KMS providers, key id validation and signer resolution."""
from __future__ import annotations

from .base import CredentialContext, KMSProvider, Signer
from .registry import ProviderRegistry
from .resolver import ProviderResolver
from .validation import validate_key_id, validate_key_request, validate_kms_config

__all__ = [
    "CredentialContext",
    "KMSProvider",
    "ProviderRegistry",
    "ProviderResolver",
    "Signer",
    "validate_key_id",
    "validate_key_request",
    "validate_kms_config",
]
