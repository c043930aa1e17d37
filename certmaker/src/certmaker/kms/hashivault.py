from __future__ import annotations

import base64
from typing import Any, Optional

import hvac
import structlog

from ..models import KeyRequest, OPTION_VAULT_ADDRESS, OPTION_VAULT_TOKEN, ProviderType
from .base import CredentialContext, KMSProvider, Signer, pem_to_der

logger = structlog.get_logger("certmaker.kms.hashivault")


def strip_vault_prefix(signature: str) -> bytes:
    """Decode a ``vault:v<N>:<base64>`` signature"""
    parts = signature.split(":")
    encoded = parts[2] if len(parts) >= 3 else signature
    return base64.b64decode(encoded)


class HashiVaultSigner(Signer):
    """Signer backed by a key in a Vault transit secrets engine"""

    def __init__(self, reference: str, client: Any, key_name: str, mount_point: str) -> None:
        super().__init__(reference)
        self._client = client
        self._key_name = key_name
        self._mount_point = mount_point
        self._public_key: Optional[bytes] = None
        self._key_type = ""

    def public_key(self) -> bytes:
        if self._public_key is None:
            response = self._client.secrets.transit.read_key(
                name=self._key_name, mount_point=self._mount_point
            )
            data = response["data"]
            self._key_type = data.get("type", "")
            keys = data["keys"]
            latest = str(data.get("latest_version") or max(int(version) for version in keys))
            self._public_key = pem_to_der(keys[latest]["public_key"])
        return self._public_key

    def sign_digest(self, digest: bytes) -> bytes:
        self.public_key()
        kwargs: dict[str, Any] = {
            "name": self._key_name,
            "hash_input": base64.b64encode(digest).decode("ascii"),
            "hash_algorithm": "sha2-256",
            "prehashed": True,
            "marshaling_algorithm": "asn1",
            "mount_point": self._mount_point,
        }
        if self._key_type.startswith("rsa"):
            kwargs["signature_algorithm"] = "pkcs1v15"
        response = self._client.secrets.transit.sign_data(**kwargs)
        return strip_vault_prefix(response["data"]["signature"])


class HashiVaultProvider(KMSProvider):
    type = ProviderType.HASHIVAULT
    display_name = "HashiVault KMS"
    scheme = "hashivault://"

    def key_reference(self, request: KeyRequest) -> str:
        return f"{self.scheme}{request.key_id}"

    def credentials(self, request: KeyRequest) -> CredentialContext:
        return CredentialContext(
            vault_address=request.option(OPTION_VAULT_ADDRESS),
            vault_token=request.option(OPTION_VAULT_TOKEN),
        )

    def default_client(self, credentials: CredentialContext, *args: Any) -> Any:
        return hvac.Client(url=credentials.vault_address or None, token=credentials.vault_token or None)

    def open_signer(self, reference: str, credentials: CredentialContext) -> Signer:
        path = self.strip_scheme(reference)
        mount_point, _, key_name = path.rpartition("/keys/")
        if not mount_point or not key_name:
            raise ValueError(f"invalid HashiVault key reference: {reference}")
        client = self._client_factory(credentials)
        logger.debug("kms_client_ready", provider=self.type.value, address=credentials.vault_address)
        return HashiVaultSigner(reference, client, key_name, mount_point)


__all__ = ["HashiVaultProvider", "HashiVaultSigner", "strip_vault_prefix"]
