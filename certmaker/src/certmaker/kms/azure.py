from __future__ import annotations

import os
from typing import Any, Optional, Tuple
from urllib.parse import urlsplit

import structlog
from azure.identity import (
    ChainedTokenCredential,
    CertificateCredential as ClientCertificateCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
)
from azure.keyvault.keys import KeyClient
from azure.keyvault.keys.crypto import SignatureAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from ..models import (
    KeyRequest,
    OPTION_CLIENT_CERTIFICATE_PATH,
    OPTION_CLIENT_ID,
    OPTION_CLIENT_SECRET,
    OPTION_TENANT_ID,
    ProviderType,
)
from .base import CredentialContext, KMSProvider, Signer
from .validation import split_azure_key_id

logger = structlog.get_logger("certmaker.kms.azure")

AZURE_AUTHORITY_HOST = "https://login.microsoftonline.com/"
AZURE_VAULT_DOMAIN = "vault.azure.net"

_CURVES = {
    "P-256": ec.SECP256R1(),
    "P-384": ec.SECP384R1(),
    "P-521": ec.SECP521R1(),
}


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value) or "")


def _as_int(value: bytes) -> int:
    return int.from_bytes(value, "big")


def jwk_to_der(jwk: Any) -> bytes:
    """Convert an Azure ``JsonWebKey`` public key into DER SubjectPublicKeyInfo"""
    kty = _enum_value(jwk.kty)
    if kty.startswith("EC"):
        curve = _CURVES.get(_enum_value(jwk.crv))
        if curve is None:
            raise ValueError(f"unsupported Azure key curve: {jwk.crv}")
        public_key = ec.EllipticCurvePublicNumbers(_as_int(jwk.x), _as_int(jwk.y), curve).public_key()
    elif kty.startswith("RSA"):
        public_key = rsa.RSAPublicNumbers(_as_int(jwk.e), _as_int(jwk.n)).public_key()
    else:
        raise ValueError(f"unsupported Azure key type: {kty}")
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def split_key_reference(reference: str) -> Tuple[str, str, Optional[str]]:
    """Return (vault_url, key_name, key_version) for ``azurekms://<host>/<name>[/<version>]``"""
    parsed = urlsplit(reference)
    if parsed.scheme != "azurekms" or not parsed.netloc:
        raise ValueError(f"invalid Azure key reference: {reference}")
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments or len(segments) > 2:
        raise ValueError(f"invalid Azure key reference: {reference}")
    version = segments[1] if len(segments) == 2 else None
    return f"https://{parsed.netloc}", segments[0], version


class AzureKMSSigner(Signer):
    def __init__(self, reference: str, key_client: Any, key_name: str, key_version: Optional[str] = None) -> None:
        super().__init__(reference)
        self._key_client = key_client
        self._key_name = key_name
        self._key_version = key_version
        self._public_key: Optional[bytes] = None
        self._is_ec = True
        self._crypto_client: Any = None

    def public_key(self) -> bytes:
        if self._public_key is None:
            key = self._key_client.get_key(self._key_name, version=self._key_version)
            self._is_ec = _enum_value(key.key.kty).startswith("EC")
            self._public_key = jwk_to_der(key.key)
        return self._public_key

    def sign_digest(self, digest: bytes) -> bytes:
        self.public_key()
        if self._crypto_client is None:
            self._crypto_client = self._key_client.get_cryptography_client(
                self._key_name, key_version=self._key_version
            )
        algorithm = SignatureAlgorithm.es256 if self._is_ec else SignatureAlgorithm.rs256
        signature = self._crypto_client.sign(algorithm, digest).signature
        if not self._is_ec:
            return signature
        # Key Vault returns ECDSA signatures as raw r || s
        half = len(signature) // 2
        return encode_dss_signature(_as_int(signature[:half]), _as_int(signature[half:]))


def azure_credential(credentials: CredentialContext) -> Any:
    """Build the Azure credential for one resolution.

    With a tenant and a service principal (secret or certificate) in the
    context, that principal is tried first; ``DefaultAzureCredential`` with
    the same tenant settings covers managed identity and developer logins.
    """
    common: dict[str, Any] = {"authority": credentials.authority_host}
    if credentials.tenant_id:
        common["additionally_allowed_tenants"] = list(credentials.additionally_allowed_tenants)

    chain: list[Any] = []
    if credentials.tenant_id and credentials.client_id:
        if credentials.client_secret:
            chain.append(
                ClientSecretCredential(
                    credentials.tenant_id, credentials.client_id, credentials.client_secret, **common
                )
            )
        elif credentials.client_certificate_path:
            chain.append(
                ClientCertificateCredential(
                    credentials.tenant_id,
                    credentials.client_id,
                    certificate_path=credentials.client_certificate_path,
                    **common,
                )
            )

    default_kwargs = dict(common)
    if credentials.tenant_id:
        default_kwargs.update(
            workload_identity_tenant_id=credentials.tenant_id,
            shared_cache_tenant_id=credentials.tenant_id,
            interactive_browser_tenant_id=credentials.tenant_id,
        )
    default = DefaultAzureCredential(**default_kwargs)
    if not chain:
        return default
    return ChainedTokenCredential(*chain, default)


class AzureKMSProvider(KMSProvider):
    type = ProviderType.AZURE
    display_name = "Azure KMS"
    scheme = "azurekms://"

    def key_reference(self, request: KeyRequest) -> str:
        parts = split_azure_key_id(request.key_id)
        if parts is None:
            return request.key_id
        key_name, vault_name = parts
        return f"{self.scheme}{vault_name}.{AZURE_VAULT_DOMAIN}/{key_name}"

    def credentials(self, request: KeyRequest) -> CredentialContext:
        tenant_id = request.option(OPTION_TENANT_ID)
        return CredentialContext(
            tenant_id=tenant_id,
            additionally_allowed_tenants=("*",) if tenant_id else (),
            authority_host=AZURE_AUTHORITY_HOST,
            client_id=request.option(OPTION_CLIENT_ID) or os.environ.get("AZURE_CLIENT_ID", ""),
            client_secret=request.option(OPTION_CLIENT_SECRET) or os.environ.get("AZURE_CLIENT_SECRET", ""),
            client_certificate_path=(
                request.option(OPTION_CLIENT_CERTIFICATE_PATH) or os.environ.get("AZURE_CLIENT_CERTIFICATE_PATH", "")
            ),
        )

    def default_client(self, credentials: CredentialContext, *args: Any) -> Any:
        (vault_url,) = args
        return KeyClient(vault_url=vault_url, credential=azure_credential(credentials))

    def open_signer(self, reference: str, credentials: CredentialContext) -> Signer:
        vault_url, key_name, key_version = split_key_reference(reference)
        key_client = self._client_factory(credentials, vault_url)
        logger.debug("kms_client_ready", provider=self.type.value, vault_url=vault_url)
        return AzureKMSSigner(reference, key_client, key_name, key_version)


__all__ = [
    "AzureKMSProvider",
    "AzureKMSSigner",
    "azure_credential",
    "jwk_to_der",
    "split_key_reference",
]
