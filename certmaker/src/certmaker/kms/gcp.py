from __future__ import annotations

from typing import Any, Optional

import structlog
from google.cloud import kms

from ..models import KeyRequest, ProviderType
from .base import CredentialContext, KMSProvider, Signer, pem_to_der

logger = structlog.get_logger("certmaker.kms.gcp")


class GCPKMSSigner(Signer):
    """Signer over a Cloud KMS ``cryptoKeyVersions`` resource"""

    def __init__(self, reference: str, name: str, client: Any) -> None:
        super().__init__(reference)
        self._name = name
        self._client = client
        self._public_key: Optional[bytes] = None

    def public_key(self) -> bytes:
        if self._public_key is None:
            response = self._client.get_public_key(request={"name": self._name})
            self._public_key = pem_to_der(response.pem)
        return self._public_key

    def sign_digest(self, digest: bytes) -> bytes:
        response = self._client.asymmetric_sign(
            request={"name": self._name, "digest": {"sha256": digest}}
        )
        return response.signature


class GCPKMSProvider(KMSProvider):
    type = ProviderType.GCP
    display_name = "GCP KMS"
    scheme = "gcpkms://"

    def key_reference(self, request: KeyRequest) -> str:
        return f"{self.scheme}{request.key_id}"

    def default_client(self, credentials: CredentialContext, *args: Any) -> Any:
        return kms.KeyManagementServiceClient()

    def open_signer(self, reference: str, credentials: CredentialContext) -> Signer:
        name = self.strip_scheme(reference)
        client = self._client_factory(credentials)
        logger.debug("kms_client_ready", provider=self.type.value)
        return GCPKMSSigner(reference, name, client)


__all__ = ["GCPKMSProvider", "GCPKMSSigner"]
