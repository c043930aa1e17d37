from __future__ import annotations

from typing import Any, Optional

import boto3
import structlog

from ..models import KeyRequest, ProviderType
from .base import CredentialContext, KMSProvider, Signer

logger = structlog.get_logger("certmaker.kms.aws")

_ECDSA_ALGORITHM = "ECDSA_SHA_256"
_RSA_ALGORITHM = "RSASSA_PKCS1_V1_5_SHA_256"


class AWSKMSSigner(Signer):
    def __init__(self, reference: str, key_id: str, client: Any) -> None:
        super().__init__(reference)
        self._key_id = key_id
        self._client = client
        self._public_key: Optional[bytes] = None
        self._key_spec = ""

    def _describe(self) -> None:
        response = self._client.get_public_key(KeyId=self._key_id)
        self._public_key = response["PublicKey"]
        self._key_spec = response.get("KeySpec") or response.get("CustomerMasterKeySpec", "")

    def public_key(self) -> bytes:
        if self._public_key is None:
            self._describe()
        return self._public_key  # type: ignore[return-value]

    @property
    def signing_algorithm(self) -> str:
        if self._public_key is None:
            self._describe()
        if self._key_spec.startswith("RSA_"):
            return _RSA_ALGORITHM
        return _ECDSA_ALGORITHM

    def sign_digest(self, digest: bytes) -> bytes:
        response = self._client.sign(
            KeyId=self._key_id,
            Message=digest,
            MessageType="DIGEST",
            SigningAlgorithm=self.signing_algorithm,
        )
        return response["Signature"]


class AWSKMSProvider(KMSProvider):
    type = ProviderType.AWS
    display_name = "AWS KMS"
    scheme = "awskms:///"

    def key_reference(self, request: KeyRequest) -> str:
        return f"{self.scheme}{request.key_id}"

    def credentials(self, request: KeyRequest) -> CredentialContext:
        return CredentialContext(region=request.region)

    def default_client(self, credentials: CredentialContext, *args: Any) -> Any:
        session = boto3.session.Session(region_name=credentials.region or None)
        return session.client("kms")

    def open_signer(self, reference: str, credentials: CredentialContext) -> Signer:
        key_id = self.strip_scheme(reference)
        client = self._client_factory(credentials)
        logger.debug("kms_client_ready", provider=self.type.value, region=credentials.region)
        return AWSKMSSigner(reference, key_id, client)


__all__ = ["AWSKMSProvider", "AWSKMSSigner"]
