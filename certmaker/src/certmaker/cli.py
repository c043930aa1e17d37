# CLI implementation using Typer: create a KMS-backed certificate chain, validate inputs, write a config.
from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from . import __version__
from .certs.builder import CertificateChainBuilder, ChainOutputs, ChainTemplates
from .certs.template import validate_template_path
from .config import RunConfig, dump_default_config, load_config
from .kms.resolver import ProviderResolver
from .kms.validation import validate_kms_config
from .logging import configure_logging
from .models import (
    KMSConfig,
    KeySlot,
    OPTION_TENANT_ID,
    OPTION_VAULT_ADDRESS,
    OPTION_VAULT_TOKEN,
)
from .utils.errors import CertMakerError, ConfigValidationError

app = typer.Typer(help="Create X.509 certificate chains with keys held in a KMS")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kms-certmaker {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    """KMS certificate maker"""


def _merge_kms(
    run: RunConfig,
    *,
    kms_type: Optional[str],
    region: Optional[str],
    root_key_id: Optional[str],
    intermediate_key_id: Optional[str],
    leaf_key_id: Optional[str],
    tenant_id: Optional[str],
    vault_address: Optional[str],
    vault_token: Optional[str],
) -> KMSConfig:
    section = run.kms.model_copy(
        update={
            key: value
            for key, value in {
                "type": kms_type,
                "region": region,
                "root_key_id": root_key_id,
                "intermediate_key_id": intermediate_key_id,
                "leaf_key_id": leaf_key_id,
            }.items()
            if value is not None
        }
    )
    config = run.model_copy(update={"kms": section}).kms_config()
    return config.with_options(
        {
            OPTION_TENANT_ID: tenant_id,
            OPTION_VAULT_ADDRESS: vault_address,
            OPTION_VAULT_TOKEN: vault_token,
        }
    )


def _chain_paths(
    run: RunConfig,
    config: KMSConfig,
    *,
    root_template: Optional[Path],
    intermediate_template: Optional[Path],
    leaf_template: Optional[Path],
    root_cert: Optional[Path],
    intermediate_cert: Optional[Path],
    leaf_cert: Optional[Path],
) -> tuple[ChainTemplates, ChainOutputs]:
    with_intermediate = config.has_intermediate
    templates = ChainTemplates(
        root=root_template or run.templates.root,
        leaf=leaf_template or run.templates.leaf,
        intermediate=(intermediate_template or run.templates.intermediate) if with_intermediate else None,
    )
    outputs = ChainOutputs(
        root=root_cert or run.outputs.root,
        leaf=leaf_cert or run.outputs.leaf,
        intermediate=(intermediate_cert or run.outputs.intermediate) if with_intermediate else None,
    )
    return templates, outputs


def _check_inputs(config: KMSConfig, templates: ChainTemplates) -> None:
    validate_kms_config(config)
    if not config.root_key_id:
        raise ConfigValidationError("root key id must be specified")
    if not config.leaf_key_id:
        raise ConfigValidationError("leaf key id must be specified")
    for path in (templates.root, templates.intermediate, templates.leaf):
        if path is not None:
            validate_template_path(path)


def _fail(exc: CertMakerError) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


_CONFIG_OPT = typer.Option(None, "--config", metavar="PATH", help="YAML configuration file")
_KMS_TYPE_OPT = typer.Option(None, "--kms-type", envvar="KMS_TYPE", help="awskms|gcpkms|azurekms|hashivault")
_REGION_OPT = typer.Option(None, "--aws-region", envvar="AWS_REGION", help="AWS region (awskms)")
_ROOT_KEY_OPT = typer.Option(None, "--root-key-id", envvar="ROOT_KEY_ID", help="KMS key for the root certificate")
_INTERMEDIATE_KEY_OPT = typer.Option(
    None, "--intermediate-key-id", envvar="INTERMEDIATE_KEY_ID", help="KMS key for the optional intermediate"
)
_LEAF_KEY_OPT = typer.Option(None, "--leaf-key-id", envvar="LEAF_KEY_ID", help="KMS key for the leaf certificate")
_TENANT_OPT = typer.Option(None, "--azure-tenant-id", envvar="AZURE_TENANT_ID", help="Azure tenant (azurekms)")
_VAULT_ADDR_OPT = typer.Option(None, "--vault-address", envvar="VAULT_ADDR", help="Vault address (hashivault)")
_VAULT_TOKEN_OPT = typer.Option(None, "--vault-token", envvar="VAULT_TOKEN", help="Vault token (hashivault)")
_ROOT_TMPL_OPT = typer.Option(None, "--root-template", help="Root certificate template (.json)")
_INTERMEDIATE_TMPL_OPT = typer.Option(None, "--intermediate-template", help="Intermediate template (.json)")
_LEAF_TMPL_OPT = typer.Option(None, "--leaf-template", help="Leaf certificate template (.json)")


@app.command()
def create(
    config: Optional[Path] = _CONFIG_OPT,
    kms_type: Optional[str] = _KMS_TYPE_OPT,
    aws_region: Optional[str] = _REGION_OPT,
    root_key_id: Optional[str] = _ROOT_KEY_OPT,
    intermediate_key_id: Optional[str] = _INTERMEDIATE_KEY_OPT,
    leaf_key_id: Optional[str] = _LEAF_KEY_OPT,
    azure_tenant_id: Optional[str] = _TENANT_OPT,
    vault_address: Optional[str] = _VAULT_ADDR_OPT,
    vault_token: Optional[str] = _VAULT_TOKEN_OPT,
    root_template: Optional[Path] = _ROOT_TMPL_OPT,
    intermediate_template: Optional[Path] = _INTERMEDIATE_TMPL_OPT,
    leaf_template: Optional[Path] = _LEAF_TMPL_OPT,
    root_cert: Optional[Path] = typer.Option(None, "--root-cert", help="Output path (default: root.pem)"),
    intermediate_cert: Optional[Path] = typer.Option(
        None, "--intermediate-cert", help="Output path (default: intermediate.pem)"
    ),
    leaf_cert: Optional[Path] = typer.Option(None, "--leaf-cert", help="Output path (default: leaf.pem)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="debug|info|warning|error"),
) -> None:
    """Create a root, optional intermediate and leaf certificate signed by KMS keys"""
    try:
        run = load_config(config)
        configure_logging(log_level or run.logging.normalized_level())
        kms_config = _merge_kms(
            run,
            kms_type=kms_type,
            region=aws_region,
            root_key_id=root_key_id,
            intermediate_key_id=intermediate_key_id,
            leaf_key_id=leaf_key_id,
            tenant_id=azure_tenant_id,
            vault_address=vault_address,
            vault_token=vault_token,
        )
        templates, outputs = _chain_paths(
            run,
            kms_config,
            root_template=root_template,
            intermediate_template=intermediate_template,
            leaf_template=leaf_template,
            root_cert=root_cert,
            intermediate_cert=intermediate_cert,
            leaf_cert=leaf_cert,
        )
        _check_inputs(kms_config, templates)

        resolver = ProviderResolver()
        root_signer = resolver.resolve_config(kms_config, KeySlot.ROOT)
        chain = CertificateChainBuilder(resolver).build(root_signer, kms_config, templates, outputs)
    except CertMakerError as exc:
        _fail(exc)

    for issued in chain.certificates:
        typer.echo(f"Your {issued.level.value} certificate has been saved in {issued.path}.")


@app.command()
def validate(
    config: Optional[Path] = _CONFIG_OPT,
    kms_type: Optional[str] = _KMS_TYPE_OPT,
    aws_region: Optional[str] = _REGION_OPT,
    root_key_id: Optional[str] = _ROOT_KEY_OPT,
    intermediate_key_id: Optional[str] = _INTERMEDIATE_KEY_OPT,
    leaf_key_id: Optional[str] = _LEAF_KEY_OPT,
    azure_tenant_id: Optional[str] = _TENANT_OPT,
    vault_address: Optional[str] = _VAULT_ADDR_OPT,
    vault_token: Optional[str] = _VAULT_TOKEN_OPT,
    root_template: Optional[Path] = _ROOT_TMPL_OPT,
    intermediate_template: Optional[Path] = _INTERMEDIATE_TMPL_OPT,
    leaf_template: Optional[Path] = _LEAF_TMPL_OPT,
) -> None:
    """Check KMS settings and templates without contacting a KMS"""
    try:
        run = load_config(config)
        kms_config = _merge_kms(
            run,
            kms_type=kms_type,
            region=aws_region,
            root_key_id=root_key_id,
            intermediate_key_id=intermediate_key_id,
            leaf_key_id=leaf_key_id,
            tenant_id=azure_tenant_id,
            vault_address=vault_address,
            vault_token=vault_token,
        )
        templates, _outputs = _chain_paths(
            run,
            kms_config,
            root_template=root_template,
            intermediate_template=intermediate_template,
            leaf_template=leaf_template,
            root_cert=None,
            intermediate_cert=None,
            leaf_cert=None,
        )
        _check_inputs(kms_config, templates)
    except CertMakerError as exc:
        _fail(exc)
    levels = 3 if kms_config.has_intermediate else 2
    typer.echo(f"Configuration OK: {kms_config.type.value}, {levels}-level chain")


@app.command("init-config")
def init_config(target: Path = typer.Argument(Path(".certmaker") / "config.yaml")) -> None:
    """Write the default configuration file"""
    dump_default_config(target)
    typer.echo(f"Wrote default configuration to {target}")


if __name__ == "__main__":
    app()
