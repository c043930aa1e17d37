"""Key identifier validation for the supported KMS providers.

Every check here is pure: no network access, no environment access. The
rules run before any backend client is constructed so that configuration
mistakes surface as :class:`ConfigValidationError` instead of opaque
backend failures.

Empty key ids are always accepted; a chain may leave a slot unused.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, Mapping

from ..models import (
    KMSConfig,
    KeyRequest,
    KeySlot,
    OPTION_TENANT_ID,
    OPTION_VAULT_ADDRESS,
    OPTION_VAULT_TOKEN,
    ProviderType,
)
from ..utils.errors import ConfigValidationError

AWS_ARN_PREFIX = "arn:aws:kms:"
AWS_ALIAS_PREFIX = "alias/"

GCP_REQUIRED_COMPONENTS = (
    ("projects/", "must start with 'projects/'"),
    ("/locations/", "must contain '/locations/'"),
    ("/keyRings/", "must contain '/keyRings/'"),
    ("/cryptoKeys/", "must contain '/cryptoKeys/'"),
    ("/cryptoKeyVersions/", "must contain '/cryptoKeyVersions/'"),
)

AZURE_KEY_PREFIX = "azurekms:name="
AZURE_VAULT_MARKER = ";vault="

VAULT_TRANSIT_MOUNT = "transit"
VAULT_KEYS_SEGMENT = "keys"


def validate_aws_key_id(key_id: str, slot: KeySlot, region: str) -> None:
    if not key_id:
        return
    if key_id.startswith(AWS_ARN_PREFIX):
        parts = key_id.split(":")
        if len(parts) < 6:
            raise ConfigValidationError(f"invalid AWS KMS ARN format for {slot.label}")
        if parts[3] != region:
            raise ConfigValidationError(
                f"region in ARN ({parts[3]}) does not match configured region ({region})"
            )
    elif key_id.startswith(AWS_ALIAS_PREFIX):
        if not key_id[len(AWS_ALIAS_PREFIX):]:
            raise ConfigValidationError(f"alias name cannot be empty for {slot.label}")
    else:
        raise ConfigValidationError(
            f"awskms {slot.label} must start with '{AWS_ARN_PREFIX}' or '{AWS_ALIAS_PREFIX}'"
        )


def validate_gcp_key_id(key_id: str, slot: KeySlot) -> None:
    if not key_id:
        return
    for component, message in GCP_REQUIRED_COMPONENTS:
        if component not in key_id:
            raise ConfigValidationError(f"gcpkms {slot.label} {message}")


def split_azure_key_id(key_id: str) -> tuple[str, str] | None:
    """Split ``azurekms:name=<key>;vault=<vault>`` into trimmed (key, vault).

    Returns ``None`` when the short form is not used.
    """
    if not key_id.startswith(AZURE_KEY_PREFIX):
        return None
    vault_index = key_id.find(AZURE_VAULT_MARKER)
    if vault_index == -1:
        return None
    key_name = key_id[len(AZURE_KEY_PREFIX):vault_index].strip()
    vault_name = key_id[vault_index + len(AZURE_VAULT_MARKER):].strip()
    return key_name, vault_name


def validate_azure_key_id(key_id: str, slot: KeySlot) -> None:
    if not key_id:
        return
    if not key_id.startswith(AZURE_KEY_PREFIX):
        raise ConfigValidationError(f"azurekms {slot.label} must start with '{AZURE_KEY_PREFIX}'")
    parts = split_azure_key_id(key_id)
    if parts is None:
        raise ConfigValidationError(f"azurekms {slot.label} must contain '{AZURE_VAULT_MARKER}' parameter")
    key_name, vault_name = parts
    if not key_name:
        raise ConfigValidationError(f"key name cannot be empty for {slot.label}")
    if not vault_name:
        raise ConfigValidationError(f"vault name cannot be empty for {slot.label}")


def validate_hashivault_key_id(key_id: str, slot: KeySlot) -> None:
    if not key_id:
        return
    parts = key_id.split("/")
    if len(parts) != 3:
        raise ConfigValidationError(f"hashivault {slot.label} must be in format: transit/keys/keyname")
    if parts[0] != VAULT_TRANSIT_MOUNT or parts[1] != VAULT_KEYS_SEGMENT:
        raise ConfigValidationError(f"hashivault {slot.label} must start with 'transit/keys/'")
    if not parts[2]:
        raise ConfigValidationError(f"key name cannot be empty for {slot.label}")


def _require_option(options: Mapping[str, str], name: str, provider: str) -> None:
    if not (options.get(name) or "").strip():
        raise ConfigValidationError(f"{name} is required for {provider}")


def _check_aws_fields(region: str, options: Mapping[str, str]) -> None:
    if not region:
        raise ConfigValidationError("region is required for AWS KMS")


def _check_gcp_fields(region: str, options: Mapping[str, str]) -> None:
    return None


def _check_azure_fields(region: str, options: Mapping[str, str]) -> None:
    _require_option(options, OPTION_TENANT_ID, "Azure KMS")


def _check_hashivault_fields(region: str, options: Mapping[str, str]) -> None:
    _require_option(options, OPTION_VAULT_ADDRESS, "HashiVault KMS")
    _require_option(options, OPTION_VAULT_TOKEN, "HashiVault KMS")


_FIELD_CHECKS: Dict[ProviderType, Callable[[str, Mapping[str, str]], None]] = {
    ProviderType.AWS: _check_aws_fields,
    ProviderType.GCP: _check_gcp_fields,
    ProviderType.AZURE: _check_azure_fields,
    ProviderType.HASHIVAULT: _check_hashivault_fields,
}


def validate_key_id(provider: ProviderType, key_id: str, slot: KeySlot, *, region: str = "") -> None:
    """Check a single key id against the shape ``provider`` expects."""
    if provider is ProviderType.AWS:
        validate_aws_key_id(key_id, slot, region)
    elif provider is ProviderType.GCP:
        validate_gcp_key_id(key_id, slot)
    elif provider is ProviderType.AZURE:
        validate_azure_key_id(key_id, slot)
    elif provider is ProviderType.HASHIVAULT:
        validate_hashivault_key_id(key_id, slot)
    else:
        raise ConfigValidationError(f"unsupported KMS type: {provider}")


def _validate_provider(
    provider: ProviderType | str,
    region: str,
    options: Mapping[str, str],
    keys: Iterable[tuple[KeySlot, str]],
) -> None:
    provider = ProviderType.parse(provider)
    _FIELD_CHECKS[provider](region, options)
    for slot, key_id in keys:
        validate_key_id(provider, key_id, slot, region=region)


def validate_kms_config(config: KMSConfig) -> None:
    """Ensure all required KMS configuration parameters are present.

    Root, intermediate and leaf key ids are validated independently, so an
    invalid intermediate id fails even when root and leaf are valid.
    """
    if not config.root_key_id and not config.leaf_key_id:
        raise ConfigValidationError("at least one of root key id or leaf key id must be specified")
    _validate_provider(
        config.type,
        config.region,
        config.options,
        ((slot, config.key_id(slot)) for slot in KeySlot),
    )


def validate_key_request(request: KeyRequest) -> None:
    if not request.key_id:
        raise ConfigValidationError(f"{request.slot.label} must be specified")
    _validate_provider(request.provider, request.region, request.options, [(request.slot, request.key_id)])


__all__ = [
    "split_azure_key_id",
    "validate_aws_key_id",
    "validate_azure_key_id",
    "validate_gcp_key_id",
    "validate_hashivault_key_id",
    "validate_key_id",
    "validate_key_request",
    "validate_kms_config",
]
