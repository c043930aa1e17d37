# Typed models shared by the KMS and certificate layers.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .utils.errors import ConfigValidationError

OPTION_TENANT_ID = "tenant-id"
OPTION_VAULT_ADDRESS = "address"
OPTION_VAULT_TOKEN = "token"
OPTION_CLIENT_ID = "client-id"
OPTION_CLIENT_SECRET = "client-secret"
OPTION_CLIENT_CERTIFICATE_PATH = "client-certificate-path"


class ProviderType(str, Enum):
    AWS = "awskms"
    GCP = "gcpkms"
    AZURE = "azurekms"
    HASHIVAULT = "hashivault"

    @classmethod
    def parse(cls, value: "ProviderType | str") -> "ProviderType":
        if isinstance(value, ProviderType):
            return value
        if not value:
            raise ConfigValidationError("KMS type cannot be empty")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ConfigValidationError(f"unsupported KMS type: {value}") from None


class KeySlot(str, Enum):
    ROOT = "root"
    INTERMEDIATE = "intermediate"
    LEAF = "leaf"

    @property
    def label(self) -> str:
        return f"{self.value} key id"


class CertificateLevel(str, Enum):
    ROOT = "root"
    INTERMEDIATE = "intermediate"
    LEAF = "leaf"


def _frozen_options(options: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(options or {}))


@dataclass(frozen=True)
class KeyRequest:
    """One key to resolve for one chain level"""

    provider: ProviderType
    key_id: str
    slot: KeySlot = KeySlot.ROOT
    region: str = ""
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", ProviderType.parse(self.provider))
        object.__setattr__(self, "options", _frozen_options(self.options))

    def option(self, name: str) -> str:
        return (self.options.get(name) or "").strip()


@dataclass(frozen=True)
class KMSConfig:
    """KMS settings for a whole chain: provider, region, per-slot key ids and options"""

    type: ProviderType
    region: str = ""
    root_key_id: str = ""
    intermediate_key_id: str = ""
    leaf_key_id: str = ""
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ProviderType.parse(self.type))
        object.__setattr__(self, "options", _frozen_options(self.options))

    def key_id(self, slot: KeySlot) -> str:
        return {
            KeySlot.ROOT: self.root_key_id,
            KeySlot.INTERMEDIATE: self.intermediate_key_id,
            KeySlot.LEAF: self.leaf_key_id,
        }[slot]

    def option(self, name: str) -> str:
        return (self.options.get(name) or "").strip()

    @property
    def has_intermediate(self) -> bool:
        return bool(self.intermediate_key_id)

    def request_for(self, slot: KeySlot) -> KeyRequest:
        return KeyRequest(
            provider=self.type,
            key_id=self.key_id(slot),
            slot=slot,
            region=self.region,
            options=self.options,
        )

    def with_options(self, options: Mapping[str, str | None]) -> KMSConfig:
        """Return a copy with the non-empty ``options`` layered over the current ones"""
        merged = dict(self.options)
        merged.update({k: v for k, v in options.items() if v})
        return replace(self, options=merged)


__all__ = [
    "CertificateLevel",
    "KMSConfig",
    "KeyRequest",
    "KeySlot",
    "OPTION_CLIENT_CERTIFICATE_PATH",
    "OPTION_CLIENT_ID",
    "OPTION_CLIENT_SECRET",
    "OPTION_TENANT_ID",
    "OPTION_VAULT_ADDRESS",
    "OPTION_VAULT_TOKEN",
    "ProviderType",
]
