from __future__ import annotations

from .errors import (
    BackendResolutionError,
    CertMakerError,
    CertificateWriteError,
    ConfigValidationError,
    CryptoError,
    TemplateError,
)

__all__ = [
    "BackendResolutionError",
    "CertMakerError",
    "CertificateWriteError",
    "ConfigValidationError",
    "CryptoError",
    "TemplateError",
]
