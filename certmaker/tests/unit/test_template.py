import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from certmaker.certs.template import TemplateResult, parse_template, validate_template_path
from certmaker.utils.errors import TemplateError

from conftest import edit_template


def _self_signed(template_path: Path) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    parsed = parse_template(template_path)
    return parsed.builder(key.public_key()).sign(key, hashes.SHA256()), key


def test_validate_template_path_rejects_missing_file(tmp_path: Path) -> None:
    with pytest.raises(TemplateError, match="template not found"):
        validate_template_path(tmp_path / "absent.json")


def test_validate_template_path_requires_json_suffix(tmp_path: Path) -> None:
    path = tmp_path / "root.txt"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(TemplateError, match=r"\.json extension"):
        validate_template_path(path)


def test_validate_template_path_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "root.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(TemplateError, match="invalid JSON"):
        validate_template_path(path)


def test_validate_template_path_ignores_semantics(tmp_path: Path) -> None:
    path = tmp_path / "empty.json"
    path.write_text("[]", encoding="utf-8")
    validate_template_path(path)


def test_root_template_is_self_issued(template_dir: Path) -> None:
    parsed = parse_template(template_dir / "root-template.json")
    assert parsed.issuer is None
    assert parsed.template.is_ca
    assert parsed.issuer_name == parsed.template.subject.to_name()

    cert, _key = _self_signed(template_dir / "root-template.json")
    assert cert.issuer == cert.subject
    cert.verify_directly_issued_by(cert)


def test_matching_issuer_block_is_accepted(template_dir: Path) -> None:
    root = template_dir / "root-template.json"
    subject = json.loads(root.read_text(encoding="utf-8"))["subject"]
    parsed = parse_template(edit_template(root, issuer=subject))
    assert parsed.issuer_name == parsed.template.subject.to_name()


def test_self_issued_template_rejects_foreign_issuer(template_dir: Path) -> None:
    path = edit_template(template_dir / "root-template.json", issuer={"commonName": "Example Root CA"})
    with pytest.raises(TemplateError, match="issuer must match its subject"):
        parse_template(path)


def test_builder_requires_validity(template_dir: Path) -> None:
    parsed = parse_template(template_dir / "root-template.json")
    undated = TemplateResult(parsed.template.model_copy(update={"not_after": None}), None, parsed.path)
    with pytest.raises(TemplateError, match="notBefore and notAfter"):
        undated.builder(ec.generate_private_key(ec.SECP256R1()).public_key())


def test_root_without_issuer_block_uses_subject(template_dir: Path) -> None:
    path = edit_template(template_dir / "root-template.json", issuer=None)
    parsed = parse_template(path)
    assert parsed.issuer_name == parsed.template.subject.to_name()


def test_builder_emits_template_fields(template_dir: Path) -> None:
    cert, _key = _self_signed(template_dir / "root-template.json")
    constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    assert constraints.ca is True
    assert constraints.path_length == 1
    usage = cert.extensions.get_extension_for_class(x509.KeyUsage).value
    assert usage.key_cert_sign and usage.crl_sign and not usage.digital_signature
    assert cert.serial_number == 1
    assert cert.not_valid_before_utc == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert cert.subject.get_attributes_for_oid(x509.NameOID.ORGANIZATION_NAME)[0].value == "Example Org"


def test_child_template_takes_issuer_from_certificate(template_dir: Path) -> None:
    root, _key = _self_signed(template_dir / "root-template.json")
    parsed = parse_template(template_dir / "intermediate-template.json", root)
    assert parsed.issuer_name == root.subject

    key = ec.generate_private_key(ec.SECP256R1())
    builder = parsed.builder(key.public_key())
    cert = builder.sign(key, hashes.SHA256())
    aki = cert.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier).value
    ski = root.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
    assert aki.key_identifier == ski.digest


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"notBefore": None}, "notBefore and notAfter"),
        ({"notAfter": "2024-01-01T00:00:00Z"}, "before notAfter"),
        ({"subject": {"organization": ["x"]}}, "commonName cannot be empty"),
        ({"keyUsage": []}, "at least one key usage"),
        ({"keyUsage": ["crlSign"]}, "certSign"),
        ({"keyUsage": ["signEverything"]}, "unknown key usage"),
    ],
)
def test_invalid_ca_templates(template_dir: Path, changes: dict, message: str) -> None:
    path = edit_template(template_dir / "root-template.json", **changes)
    with pytest.raises(TemplateError, match=message):
        parse_template(path)


def test_leaf_requires_code_signing(template_dir: Path) -> None:
    root, _key = _self_signed(template_dir / "root-template.json")
    path = edit_template(template_dir / "leaf-template.json", extKeyUsage=["ServerAuth"])
    with pytest.raises(TemplateError, match="CodeSigning"):
        parse_template(path, root)


def test_child_validity_must_fit_inside_issuer(template_dir: Path) -> None:
    root, _key = _self_signed(template_dir / "root-template.json")
    path = edit_template(template_dir / "leaf-template.json", notAfter="2040-01-01T00:00:00Z")
    with pytest.raises(TemplateError, match="within the issuer's validity"):
        parse_template(path, root)


def test_parse_template_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(TemplateError, match="JSON object"):
        parse_template(path)
