from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from ..models import KeyRequest, ProviderType

DIGEST_ALGORITHM = hashes.SHA256()


@dataclass(frozen=True)
class CredentialContext:
    """Credentials for one resolution, handed to the backend client constructor.

    Nothing here is exported to the process environment, so resolutions for
    different accounts or tenants can run side by side.
    """

    region: str = ""
    tenant_id: str = ""
    additionally_allowed_tenants: Tuple[str, ...] = ()
    authority_host: str = ""
    vault_address: str = ""
    vault_token: str = field(default="", repr=False)
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    client_certificate_path: str = ""


ClientFactory = Callable[..., Any]


class Signer(ABC):
    """Signing capability backed by a key that never leaves the KMS.

    Signatures are DER encoded and always computed over a SHA-256 digest.
    """

    hash_algorithm = DIGEST_ALGORITHM

    def __init__(self, reference: str) -> None:
        self.reference = reference

    @abstractmethod
    def public_key(self) -> bytes:
        """Return the DER encoded SubjectPublicKeyInfo of the KMS key"""

    @abstractmethod
    def sign_digest(self, digest: bytes) -> bytes:
        """Sign a precomputed SHA-256 digest"""

    def sign(self, message: bytes) -> bytes:
        return self.sign_digest(hashlib.sha256(message).digest())

    def load_public_key(self) -> PublicKeyTypes:
        return serialization.load_der_public_key(self.public_key())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.reference!r})"


def pem_to_der(public_pem: bytes | str) -> bytes:
    if isinstance(public_pem, str):
        public_pem = public_pem.encode("utf-8")
    key = serialization.load_pem_public_key(public_pem)
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class KMSProvider(ABC):
    """One KMS backend: how its key references look and how to open a signer.

    ``client_factory`` builds the backend SDK client from a
    :class:`CredentialContext`; tests substitute fakes through it.
    """

    type: ProviderType
    display_name: str
    scheme: str

    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        self._client_factory = client_factory or self.default_client

    @abstractmethod
    def key_reference(self, request: KeyRequest) -> str:
        """Return the backend connection string for ``request``"""

    def credentials(self, request: KeyRequest) -> CredentialContext:
        return CredentialContext()

    @abstractmethod
    def default_client(self, credentials: CredentialContext, *args: Any) -> Any:
        """Construct the real SDK client"""

    @abstractmethod
    def open_signer(self, reference: str, credentials: CredentialContext) -> Signer:
        """Obtain a signer for ``reference``"""

    def strip_scheme(self, reference: str) -> str:
        if reference.startswith(self.scheme):
            return reference[len(self.scheme):]
        return reference


__all__ = [
    "ClientFactory",
    "CredentialContext",
    "DIGEST_ALGORITHM",
    "KMSProvider",
    "Signer",
    "pem_to_der",
]
