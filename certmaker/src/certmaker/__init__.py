"""Build X.509 certificate chains whose private keys stay inside a KMS."""
from __future__ import annotations

from .models import CertificateLevel, KMSConfig, KeyRequest, KeySlot, ProviderType

__version__ = "0.1.0"

__all__ = [
    "CertificateLevel",
    "KMSConfig",
    "KeyRequest",
    "KeySlot",
    "ProviderType",
    "__version__",
]
