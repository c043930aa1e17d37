from __future__ import annotations

import base64
import json
import shutil
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

from certmaker.kms.base import Signer
from certmaker.models import KeyRequest
from certmaker.paths import default_template


class LocalSigner(Signer):
    """In-memory stand-in for a KMS key"""

    def __init__(self, reference: str, key: ec.EllipticCurvePrivateKey | rsa.RSAPrivateKey | None = None) -> None:
        super().__init__(reference)
        self.key = key or ec.generate_private_key(ec.SECP256R1())
        self.signed: List[bytes] = []

    def public_key(self) -> bytes:
        return self.key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def sign_digest(self, digest: bytes) -> bytes:
        self.signed.append(digest)
        if isinstance(self.key, rsa.RSAPrivateKey):
            return self.key.sign(digest, padding.PKCS1v15(), Prehashed(hashes.SHA256()))
        return self.key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))


class FakeResolver:
    """Hands out one LocalSigner per key id and records every request"""

    def __init__(self) -> None:
        self.signers: Dict[str, LocalSigner] = {}
        self.requests: List[KeyRequest] = []

    def signer_for(self, key_id: str) -> LocalSigner:
        if key_id not in self.signers:
            self.signers[key_id] = LocalSigner(f"local://{key_id}")
        return self.signers[key_id]

    def resolve(self, request: KeyRequest) -> LocalSigner:
        self.requests.append(request)
        return self.signer_for(request.key_id)


def _prehashed_ecdsa(key: ec.EllipticCurvePrivateKey, digest: bytes) -> bytes:
    return key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))


def _public_pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


class FakeAWSClient:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.key = key
        self.calls: List[Dict[str, object]] = []

    def get_public_key(self, KeyId: str) -> Dict[str, object]:
        self.calls.append({"op": "get_public_key", "KeyId": KeyId})
        der = self.key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return {"KeyId": KeyId, "PublicKey": der, "KeySpec": "ECC_NIST_P256"}

    def sign(self, KeyId: str, Message: bytes, MessageType: str, SigningAlgorithm: str) -> Dict[str, object]:
        self.calls.append(
            {"op": "sign", "KeyId": KeyId, "MessageType": MessageType, "SigningAlgorithm": SigningAlgorithm}
        )
        return {"Signature": _prehashed_ecdsa(self.key, Message)}


class FakeGCPClient:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.key = key
        self.names: List[str] = []

    def get_public_key(self, request: Dict[str, object]) -> SimpleNamespace:
        self.names.append(str(request["name"]))
        return SimpleNamespace(pem=_public_pem(self.key))

    def asymmetric_sign(self, request: Dict[str, object]) -> SimpleNamespace:
        self.names.append(str(request["name"]))
        digest = request["digest"]["sha256"]  # type: ignore[index]
        return SimpleNamespace(signature=_prehashed_ecdsa(self.key, digest))


class FakeAzureCryptoClient:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.key = key
        self.algorithms: List[str] = []

    def sign(self, algorithm: str, digest: bytes) -> SimpleNamespace:
        self.algorithms.append(getattr(algorithm, "value", algorithm))
        r, s = decode_dss_signature(_prehashed_ecdsa(self.key, digest))
        return SimpleNamespace(signature=r.to_bytes(32, "big") + s.to_bytes(32, "big"))


class FakeAzureKeyClient:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.key = key
        self.crypto = FakeAzureCryptoClient(key)
        self.requested: List[tuple] = []

    def get_key(self, name: str, version: str | None = None) -> SimpleNamespace:
        self.requested.append((name, version))
        numbers = self.key.public_key().public_numbers()
        jwk = SimpleNamespace(
            kty="EC-HSM",
            crv="P-256",
            x=numbers.x.to_bytes(32, "big"),
            y=numbers.y.to_bytes(32, "big"),
        )
        return SimpleNamespace(name=name, key=jwk)

    def get_cryptography_client(self, name: str, key_version: str | None = None) -> FakeAzureCryptoClient:
        return self.crypto


class FakeTransit:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.key = key
        self.sign_requests: List[Dict[str, object]] = []

    def read_key(self, name: str, mount_point: str = "transit") -> Dict[str, object]:
        return {
            "data": {
                "name": name,
                "type": "ecdsa-p256",
                "latest_version": 1,
                "keys": {"1": {"public_key": _public_pem(self.key)}},
            }
        }

    def sign_data(self, **kwargs: object) -> Dict[str, object]:
        self.sign_requests.append(kwargs)
        digest = base64.b64decode(str(kwargs["hash_input"]))
        signature = base64.b64encode(_prehashed_ecdsa(self.key, digest)).decode("ascii")
        return {"data": {"signature": f"vault:v1:{signature}"}}


class FakeVaultClient:
    def __init__(self, key: ec.EllipticCurvePrivateKey) -> None:
        self.secrets = SimpleNamespace(transit=FakeTransit(key))


@pytest.fixture
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Copies of the bundled templates that tests may edit"""
    target = tmp_path / "templates"
    target.mkdir()
    for name in ("root", "intermediate", "leaf"):
        shutil.copy(default_template(name), target / f"{name}-template.json")
    return target


def edit_template(path: Path, **changes: object) -> Path:
    data = json.loads(path.read_text(encoding="utf-8"))
    for key, value in changes.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
