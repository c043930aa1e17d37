"""Private-key adapters that route ``cryptography`` signing calls to a KMS signer.

``x509.CertificateBuilder.sign`` only accepts private key objects. These
adapters satisfy the private key interfaces while holding no private
material: ``sign`` is forwarded to :meth:`Signer.sign`, everything that
would expose or use the private key directly raises :class:`CryptoError`.
"""
from __future__ import annotations

from typing import Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.padding import AsymmetricPadding, PKCS1v15

from ..kms.base import Signer
from ..utils.errors import CryptoError

KMSPrivateKey = Union["KMSEllipticCurvePrivateKey", "KMSRSAPrivateKey"]


def _require_sha256(algorithm: object) -> None:
    if not isinstance(algorithm, hashes.SHA256):
        raise CryptoError(f"KMS keys only sign SHA-256 digests, got {getattr(algorithm, 'name', algorithm)}")


class KMSEllipticCurvePrivateKey(ec.EllipticCurvePrivateKey):
    def __init__(self, signer: Signer, public_key: ec.EllipticCurvePublicKey) -> None:
        self._signer = signer
        self._public_key = public_key

    @property
    def signer(self) -> Signer:
        return self._signer

    def exchange(self, algorithm: ec.ECDH, peer_public_key: ec.EllipticCurvePublicKey) -> bytes:
        raise CryptoError("Key exchange is not available for KMS keys")

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._public_key

    @property
    def curve(self) -> ec.EllipticCurve:
        return self._public_key.curve

    @property
    def key_size(self) -> int:
        return self._public_key.curve.key_size

    def sign(self, data: bytes, signature_algorithm: ec.EllipticCurveSignatureAlgorithm) -> bytes:
        if not isinstance(signature_algorithm, ec.ECDSA):
            raise CryptoError("KMS elliptic curve keys only support ECDSA")
        _require_sha256(signature_algorithm.algorithm)
        return self._signer.sign(data)

    def private_numbers(self) -> ec.EllipticCurvePrivateNumbers:
        raise CryptoError("Private numbers never leave the KMS")

    def private_bytes(
        self,
        encoding: serialization.Encoding,
        format: serialization.PrivateFormat,
        encryption_algorithm: serialization.KeySerializationEncryption,
    ) -> bytes:
        raise CryptoError("Private key material never leaves the KMS")

    def __copy__(self) -> "KMSEllipticCurvePrivateKey":
        return self

    def __deepcopy__(self, memo: dict) -> "KMSEllipticCurvePrivateKey":
        return self


class KMSRSAPrivateKey(rsa.RSAPrivateKey):
    def __init__(self, signer: Signer, public_key: rsa.RSAPublicKey) -> None:
        self._signer = signer
        self._public_key = public_key

    @property
    def signer(self) -> Signer:
        return self._signer

    def decrypt(self, ciphertext: bytes, padding: AsymmetricPadding) -> bytes:
        raise CryptoError("Decryption is not available for KMS signing keys")

    @property
    def key_size(self) -> int:
        return self._public_key.key_size

    def public_key(self) -> rsa.RSAPublicKey:
        return self._public_key

    def sign(self, data: bytes, padding: AsymmetricPadding, algorithm: object) -> bytes:
        if not isinstance(padding, PKCS1v15):
            raise CryptoError("KMS RSA keys only support PKCS#1 v1.5 signatures")
        _require_sha256(algorithm)
        return self._signer.sign(data)

    def private_numbers(self) -> rsa.RSAPrivateNumbers:
        raise CryptoError("Private numbers never leave the KMS")

    def private_bytes(
        self,
        encoding: serialization.Encoding,
        format: serialization.PrivateFormat,
        encryption_algorithm: serialization.KeySerializationEncryption,
    ) -> bytes:
        raise CryptoError("Private key material never leaves the KMS")

    def __copy__(self) -> "KMSRSAPrivateKey":
        return self

    def __deepcopy__(self, memo: dict) -> "KMSRSAPrivateKey":
        return self


def private_key_for(signer: Signer) -> KMSPrivateKey:
    """Wrap ``signer`` in the private key adapter matching its public key type"""
    public_key = signer.load_public_key()
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return KMSEllipticCurvePrivateKey(signer, public_key)
    if isinstance(public_key, rsa.RSAPublicKey):
        return KMSRSAPrivateKey(signer, public_key)
    raise CryptoError(f"Unsupported KMS key type: {type(public_key).__name__}")


__all__ = ["KMSEllipticCurvePrivateKey", "KMSPrivateKey", "KMSRSAPrivateKey", "private_key_for"]
