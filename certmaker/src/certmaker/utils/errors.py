"""Central exception hierarchy"""
from __future__ import annotations


class CertMakerError(Exception):
    """Base exception for all certmaker failures"""


class ConfigValidationError(CertMakerError):
    """Raised when KMS or run configuration is missing or malformed"""


class BackendResolutionError(CertMakerError):
    """Raised when a KMS backend cannot produce a usable signer"""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class TemplateError(CertMakerError):
    """Raised when a certificate template is unreadable or invalid"""


class CertificateWriteError(CertMakerError):
    """Raised when a certificate cannot be persisted"""


class CryptoError(CertMakerError):
    """Raised for misuse of KMS-backed key material"""


__all__ = [
    "BackendResolutionError",
    "CertMakerError",
    "CertificateWriteError",
    "ConfigValidationError",
    "CryptoError",
    "TemplateError",
]
