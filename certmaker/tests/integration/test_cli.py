from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest
from cryptography import x509

pytest.importorskip("typer")

from typer.testing import CliRunner

from certmaker import __version__, cli
from certmaker.models import KMSConfig, KeySlot

from conftest import FakeResolver

_KMS_ENV = (
    "KMS_TYPE",
    "AWS_REGION",
    "ROOT_KEY_ID",
    "INTERMEDIATE_KEY_ID",
    "LEAF_KEY_ID",
    "AZURE_TENANT_ID",
    "VAULT_ADDR",
    "VAULT_TOKEN",
)


def _run_cli(*args: str) -> subprocess.CompletedProcess[bytes]:
    command = [sys.executable, "-m", "certmaker.cli", *args]
    env = os.environ.copy()
    module_root = Path(__file__).resolve().parents[2] / "src"
    env["PYTHONPATH"] = (
        f"{module_root}{os.pathsep}{env['PYTHONPATH']}"
        if env.get("PYTHONPATH")
        else str(module_root)
    )
    return subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=env)


class _ChainResolver(FakeResolver):
    def resolve_config(self, config: KMSConfig, slot: KeySlot = KeySlot.ROOT):
        return self.resolve(config.request_for(slot))


@pytest.fixture
def isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in _KMS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("certmaker.config.runtime_config_dir", lambda: tmp_path / "user")
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)
    return tmp_path


def test_cli_reports_version() -> None:
    result = _run_cli("--version")
    assert result.stdout.decode("utf-8").strip() == f"kms-certmaker {__version__}"


def test_create_writes_a_two_level_chain(isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    resolver = _ChainResolver()
    monkeypatch.setattr(cli, "ProviderResolver", lambda: resolver)

    result = CliRunner().invoke(
        cli.app,
        [
            "create",
            "--kms-type", "awskms",
            "--aws-region", "us-east-1",
            "--root-key-id", "alias/root",
            "--leaf-key-id", "alias/leaf",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Your root certificate has been saved in root.pem." in result.output
    assert "Your leaf certificate has been saved in leaf.pem." in result.output
    root = x509.load_pem_x509_certificate((isolated / "root.pem").read_bytes())
    leaf = x509.load_pem_x509_certificate((isolated / "leaf.pem").read_bytes())
    leaf.verify_directly_issued_by(root)
    assert [request.slot for request in resolver.requests] == [KeySlot.ROOT, KeySlot.LEAF]


def test_create_reads_keys_from_environment(isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    resolver = _ChainResolver()
    monkeypatch.setattr(cli, "ProviderResolver", lambda: resolver)
    env = {
        "KMS_TYPE": "hashivault",
        "ROOT_KEY_ID": "transit/keys/root",
        "INTERMEDIATE_KEY_ID": "transit/keys/intermediate",
        "LEAF_KEY_ID": "transit/keys/leaf",
        "VAULT_ADDR": "http://vault:8200",
        "VAULT_TOKEN": "s.token",
    }

    result = CliRunner().invoke(cli.app, ["create"], env=env)

    assert result.exit_code == 0, result.output
    assert (isolated / "intermediate.pem").is_file()
    assert [request.key_id for request in resolver.requests] == [
        "transit/keys/root",
        "transit/keys/intermediate",
        "transit/keys/leaf",
    ]
    assert resolver.requests[0].option("address") == "http://vault:8200"


def test_create_rejects_invalid_config_before_resolving(isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    resolver = _ChainResolver()
    monkeypatch.setattr(cli, "ProviderResolver", lambda: resolver)

    result = CliRunner().invoke(
        cli.app,
        ["create", "--kms-type", "awskms", "--root-key-id", "alias/root", "--leaf-key-id", "alias/leaf"],
    )

    assert result.exit_code == 1
    assert "Error: region is required for AWS KMS" in result.output
    assert resolver.requests == []
    assert not (isolated / "root.pem").exists()


def test_validate_reports_chain_shape(isolated: Path) -> None:
    result = CliRunner().invoke(
        cli.app,
        [
            "validate",
            "--kms-type", "gcpkms",
            "--root-key-id", "projects/p/locations/l/keyRings/r/cryptoKeys/k/cryptoKeyVersions/1",
            "--intermediate-key-id", "projects/p/locations/l/keyRings/r/cryptoKeys/i/cryptoKeyVersions/1",
            "--leaf-key-id", "projects/p/locations/l/keyRings/r/cryptoKeys/l/cryptoKeyVersions/1",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Configuration OK: gcpkms, 3-level chain" in result.output


def test_validate_rejects_missing_template(isolated: Path) -> None:
    result = CliRunner().invoke(
        cli.app,
        [
            "validate",
            "--kms-type", "gcpkms",
            "--root-key-id", "projects/p/locations/l/keyRings/r/cryptoKeys/k/cryptoKeyVersions/1",
            "--leaf-key-id", "projects/p/locations/l/keyRings/r/cryptoKeys/l/cryptoKeyVersions/1",
            "--leaf-template", str(isolated / "missing.json"),
        ],
    )
    assert result.exit_code == 1
    assert "template not found" in result.output


def test_init_config_then_validate(isolated: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(cli.app, ["init-config"])
    assert result.exit_code == 0, result.output
    assert (isolated / ".certmaker" / "config.yaml").is_file()

    # the default file names no KMS type yet
    result = runner.invoke(cli.app, ["validate"])
    assert result.exit_code == 1
    assert "KMS type cannot be empty" in result.output
