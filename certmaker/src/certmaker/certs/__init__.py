"""Certificate templates, chain construction and PEM output."""
from __future__ import annotations

from .builder import CertificateChainBuilder, ChainOutputs, ChainTemplates, IssuedCertificate, IssuedChain
from .template import CertificateTemplate, TemplateResult, parse_template, validate_template_path
from .writer import certificate_level, classify_certificate, write_certificate

__all__ = [
    "CertificateChainBuilder",
    "CertificateTemplate",
    "ChainOutputs",
    "ChainTemplates",
    "IssuedCertificate",
    "IssuedChain",
    "TemplateResult",
    "certificate_level",
    "classify_certificate",
    "parse_template",
    "validate_template_path",
    "write_certificate",
]
