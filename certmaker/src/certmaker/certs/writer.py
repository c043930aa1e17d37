from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..models import CertificateLevel
from ..utils.errors import CertificateWriteError

logger = structlog.get_logger("certmaker.certs")


def certificate_level(is_ca: bool, max_path_len: Optional[int]) -> CertificateLevel:
    """Guess the chain level from basic constraints.

    A ``None`` path length means unlimited. An intermediate with a non-zero
    path length reads as a root here, so callers that know the level should
    pass it explicitly to :func:`write_certificate`.
    """
    if not is_ca:
        return CertificateLevel.LEAF
    if max_path_len == 0:
        return CertificateLevel.INTERMEDIATE
    return CertificateLevel.ROOT


def classify_certificate(cert: x509.Certificate) -> CertificateLevel:
    try:
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return CertificateLevel.LEAF
    return certificate_level(constraints.ca, constraints.path_length)


def write_certificate(
    cert: x509.Certificate,
    path: Path | str,
    level: Optional[CertificateLevel] = None,
) -> CertificateLevel:
    """Write ``cert`` as a PEM ``CERTIFICATE`` block, replacing any existing file."""
    path = Path(path)
    level = level or classify_certificate(cert)
    try:
        path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    except OSError as exc:
        raise CertificateWriteError(f"failed to write certificate to file {path}: {exc}") from exc
    logger.info("certificate_written", cert_level=level.value, path=str(path))
    return level


__all__ = ["certificate_level", "classify_certificate", "write_certificate"]
