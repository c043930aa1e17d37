"""JSON certificate templates.

A template describes the fields of one certificate level::

    {
      "subject": {"commonName": "Example Root CA", "organization": ["Example"]},
      "serialNumber": 1,
      "notBefore": "2024-01-01T00:00:00Z",
      "notAfter": "2034-01-01T00:00:00Z",
      "basicConstraints": {"isCA": true, "maxPathLen": 1},
      "keyUsage": ["certSign", "crlSign"]
    }

Templates are parsed against an optional issuer certificate. Without one the
template is self-issued (root level): its ``subject`` is also its issuer.
An ``issuer`` block is accepted only when it names the same subject.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificatePublicKeyTypes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..utils.errors import TemplateError

KEY_USAGES = (
    "digitalSignature",
    "contentCommitment",
    "keyEncipherment",
    "dataEncipherment",
    "keyAgreement",
    "certSign",
    "crlSign",
    "encipherOnly",
    "decipherOnly",
)

EXT_KEY_USAGES: Dict[str, x509.ObjectIdentifier] = {
    "any": ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE,
    "serverauth": ExtendedKeyUsageOID.SERVER_AUTH,
    "clientauth": ExtendedKeyUsageOID.CLIENT_AUTH,
    "codesigning": ExtendedKeyUsageOID.CODE_SIGNING,
    "emailprotection": ExtendedKeyUsageOID.EMAIL_PROTECTION,
    "timestamping": ExtendedKeyUsageOID.TIME_STAMPING,
    "ocspsigning": ExtendedKeyUsageOID.OCSP_SIGNING,
}


class _TemplateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NameTemplate(_TemplateModel):
    common_name: str = Field(default="", alias="commonName")
    country: List[str] = Field(default_factory=list)
    organization: List[str] = Field(default_factory=list)
    organizational_unit: List[str] = Field(default_factory=list, alias="organizationalUnit")
    locality: List[str] = Field(default_factory=list)
    province: List[str] = Field(default_factory=list)
    street_address: List[str] = Field(default_factory=list, alias="streetAddress")
    postal_code: List[str] = Field(default_factory=list, alias="postalCode")

    @field_validator(
        "country",
        "organization",
        "organizational_unit",
        "locality",
        "province",
        "street_address",
        "postal_code",
        mode="before",
    )
    @classmethod
    def _listify(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return value

    def to_name(self) -> x509.Name:
        attributes: List[x509.NameAttribute] = []
        for oid, values in (
            (NameOID.COUNTRY_NAME, self.country),
            (NameOID.STATE_OR_PROVINCE_NAME, self.province),
            (NameOID.LOCALITY_NAME, self.locality),
            (NameOID.STREET_ADDRESS, self.street_address),
            (NameOID.POSTAL_CODE, self.postal_code),
            (NameOID.ORGANIZATION_NAME, self.organization),
            (NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit),
        ):
            attributes.extend(x509.NameAttribute(oid, value) for value in values if value)
        if self.common_name:
            attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, self.common_name))
        return x509.Name(attributes)


class BasicConstraintsTemplate(_TemplateModel):
    is_ca: bool = Field(default=False, alias="isCA")
    max_path_len: Optional[int] = Field(default=None, alias="maxPathLen")

    @field_validator("max_path_len")
    @classmethod
    def _unlimited_when_negative(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            return None
        return value


class CertificateTemplate(_TemplateModel):
    subject: NameTemplate = Field(default_factory=NameTemplate)
    issuer: Optional[NameTemplate] = None
    serial_number: Optional[int] = Field(default=None, alias="serialNumber", gt=0)
    not_before: Optional[datetime] = Field(default=None, alias="notBefore")
    not_after: Optional[datetime] = Field(default=None, alias="notAfter")
    basic_constraints: Optional[BasicConstraintsTemplate] = Field(default=None, alias="basicConstraints")
    key_usage: List[str] = Field(default_factory=list, alias="keyUsage")
    ext_key_usage: List[str] = Field(default_factory=list, alias="extKeyUsage")

    @field_validator("not_before", "not_after")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("key_usage")
    @classmethod
    def _known_key_usages(cls, value: List[str]) -> List[str]:
        unknown = [usage for usage in value if usage not in KEY_USAGES]
        if unknown:
            raise ValueError(f"unknown key usage: {', '.join(unknown)}")
        return value

    @field_validator("ext_key_usage")
    @classmethod
    def _known_ext_key_usages(cls, value: List[str]) -> List[str]:
        unknown = [usage for usage in value if usage.lower() not in EXT_KEY_USAGES]
        if unknown:
            raise ValueError(f"unknown extended key usage: {', '.join(unknown)}")
        return value

    @property
    def is_ca(self) -> bool:
        return bool(self.basic_constraints and self.basic_constraints.is_ca)

    def ext_key_usage_oids(self) -> List[x509.ObjectIdentifier]:
        return [EXT_KEY_USAGES[usage.lower()] for usage in self.ext_key_usage]


@dataclass
class TemplateResult:
    """A validated template together with the certificate that will issue it"""

    template: CertificateTemplate
    issuer: Optional[x509.Certificate]
    path: Path

    @property
    def issuer_name(self) -> x509.Name:
        if self.issuer is not None:
            return self.issuer.subject
        return self.template.subject.to_name()

    def builder(self, public_key: CertificatePublicKeyTypes) -> x509.CertificateBuilder:
        template = self.template
        if template.not_before is None or template.not_after is None:
            raise TemplateError("notBefore and notAfter times must be specified")
        builder = (
            x509.CertificateBuilder()
            .subject_name(template.subject.to_name())
            .issuer_name(self.issuer_name)
            .public_key(public_key)
            .serial_number(template.serial_number or x509.random_serial_number())
            .not_valid_before(template.not_before)
            .not_valid_after(template.not_after)
        )
        if template.basic_constraints is not None:
            constraints = template.basic_constraints
            builder = builder.add_extension(
                x509.BasicConstraints(
                    ca=constraints.is_ca,
                    path_length=constraints.max_path_len if constraints.is_ca else None,
                ),
                critical=True,
            )
        if template.key_usage:
            usages = set(template.key_usage)
            builder = builder.add_extension(
                x509.KeyUsage(
                    digital_signature="digitalSignature" in usages,
                    content_commitment="contentCommitment" in usages,
                    key_encipherment="keyEncipherment" in usages,
                    data_encipherment="dataEncipherment" in usages,
                    key_agreement="keyAgreement" in usages,
                    key_cert_sign="certSign" in usages,
                    crl_sign="crlSign" in usages,
                    encipher_only="keyAgreement" in usages and "encipherOnly" in usages,
                    decipher_only="keyAgreement" in usages and "decipherOnly" in usages,
                ),
                critical=True,
            )
        if template.ext_key_usage:
            builder = builder.add_extension(x509.ExtendedKeyUsage(template.ext_key_usage_oids()), critical=False)
        builder = builder.add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        if self.issuer is not None:
            builder = builder.add_extension(_authority_key_identifier(self.issuer), critical=False)
        return builder


def _authority_key_identifier(issuer: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    try:
        ski = issuer.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer.public_key())  # type: ignore[arg-type]
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski)


def validate_template_path(path: Path | str) -> None:
    """Check that the template exists, has a ``.json`` extension and holds valid JSON."""
    path = Path(path)
    if not path.exists():
        raise TemplateError(f"template not found at {path}")
    if path.suffix != ".json":
        raise TemplateError(f"template file must have .json extension: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"error reading template file: {exc}") from exc
    try:
        json.loads(content)
    except json.JSONDecodeError as exc:
        raise TemplateError(f"invalid JSON in template file {path}: {exc}") from exc


def _check_semantics(template: CertificateTemplate, issuer: Optional[x509.Certificate]) -> None:
    if template.not_before is None or template.not_after is None:
        raise TemplateError("notBefore and notAfter times must be specified")
    if template.not_before >= template.not_after:
        raise TemplateError("notBefore time must be before notAfter time")
    if not template.subject.common_name:
        raise TemplateError("subject.commonName cannot be empty")

    if template.is_ca:
        if not template.key_usage:
            raise TemplateError("CA certificate must specify at least one key usage")
        if "certSign" not in template.key_usage:
            raise TemplateError("CA certificate must have certSign key usage")
    elif ExtendedKeyUsageOID.CODE_SIGNING not in template.ext_key_usage_oids():
        raise TemplateError("leaf certificate must have CodeSigning extended key usage")

    if issuer is None:
        if template.issuer is not None and template.issuer.to_name() != template.subject.to_name():
            raise TemplateError("self-issued certificate issuer must match its subject")
    else:
        if template.not_before < issuer.not_valid_before_utc or template.not_after > issuer.not_valid_after_utc:
            raise TemplateError("certificate validity period must lie within the issuer's validity period")


def parse_template(path: Path | str, issuer: Optional[x509.Certificate] = None) -> TemplateResult:
    path = Path(path)
    validate_template_path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise TemplateError(f"template {path} must contain a JSON object")
    try:
        template = CertificateTemplate.model_validate(data)
    except ValidationError as exc:
        raise TemplateError(f"invalid template {path}: {exc}") from exc
    _check_semantics(template, issuer)
    return TemplateResult(template=template, issuer=issuer, path=path)


__all__ = [
    "BasicConstraintsTemplate",
    "CertificateTemplate",
    "NameTemplate",
    "TemplateResult",
    "parse_template",
    "validate_template_path",
]
