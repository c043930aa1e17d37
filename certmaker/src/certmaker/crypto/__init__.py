from __future__ import annotations

from .key_adapter import KMSEllipticCurvePrivateKey, KMSRSAPrivateKey, private_key_for

__all__ = ["KMSEllipticCurvePrivateKey", "KMSRSAPrivateKey", "private_key_for"]
