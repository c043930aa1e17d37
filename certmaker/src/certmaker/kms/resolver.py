"""Turn a validated key request into a usable :class:`Signer`."""
from __future__ import annotations

from typing import Optional

import structlog

from ..models import KMSConfig, KeyRequest, KeySlot
from ..utils.errors import BackendResolutionError, CertMakerError, ConfigValidationError
from .base import Signer
from .registry import ProviderRegistry
from .validation import validate_key_request, validate_kms_config

logger = structlog.get_logger("certmaker.kms")


class ProviderResolver:
    """Resolves one key per call; no retries and no shared credential state."""

    def __init__(self, registry: Optional[ProviderRegistry] = None) -> None:
        self.registry = registry or ProviderRegistry()

    def resolve(self, request: KeyRequest) -> Signer:
        try:
            validate_key_request(request)
        except ConfigValidationError as exc:
            raise ConfigValidationError(f"invalid KMS configuration: {exc}") from exc

        provider = self.registry.get(request.provider)
        reference = provider.key_reference(request)
        credentials = provider.credentials(request)
        log = logger.bind(provider=request.provider.value, slot=request.slot.value, reference=reference)

        try:
            signer = provider.open_signer(reference, credentials)
            public_key = signer.public_key() if signer is not None else None
        except CertMakerError:
            raise
        except Exception as exc:
            log.error("kms_resolution_failed", error=str(exc))
            raise BackendResolutionError(
                f"failed to initialize {provider.display_name}: {exc}",
                provider=request.provider.value,
            ) from exc

        if signer is None:
            raise BackendResolutionError("KMS returned nil signer", provider=request.provider.value)
        if not public_key:
            raise BackendResolutionError(
                f"KMS returned an unusable signer for {reference}: empty public key",
                provider=request.provider.value,
            )
        log.info("kms_signer_resolved")
        return signer

    def resolve_config(self, config: KMSConfig, slot: KeySlot = KeySlot.ROOT) -> Signer:
        """Validate every slot of ``config`` and resolve the key in ``slot``."""
        try:
            validate_kms_config(config)
        except ConfigValidationError as exc:
            raise ConfigValidationError(f"invalid KMS configuration: {exc}") from exc
        return self.resolve(config.request_for(slot))


__all__ = ["ProviderResolver"]
