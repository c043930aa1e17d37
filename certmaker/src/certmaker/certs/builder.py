"""Root, optional intermediate and leaf issuance on top of KMS signers.

Signing authority always belongs to the issuer level. The intermediate key,
when configured, is resolved so that it can certify the leaf; the
intermediate certificate itself is signed by the root key.
"""
from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Protocol, Tuple, Type

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes

from ..crypto.key_adapter import KMSPrivateKey, private_key_for
from ..kms.base import Signer
from ..kms.validation import validate_kms_config
from ..models import CertificateLevel, KMSConfig, KeyRequest, KeySlot
from ..utils.errors import (
    BackendResolutionError,
    CertMakerError,
    CertificateWriteError,
    ConfigValidationError,
    TemplateError,
)
from .template import TemplateResult, parse_template, validate_template_path
from .writer import write_certificate

logger = structlog.get_logger("certmaker.chain")

TemplateParser = Callable[[Path, Optional[x509.Certificate]], TemplateResult]
CertificateWriter = Callable[[x509.Certificate, Path, Optional[CertificateLevel]], CertificateLevel]


class SignerResolver(Protocol):
    def resolve(self, request: KeyRequest) -> Signer: ...


@dataclass(frozen=True)
class ChainTemplates:
    root: Path
    leaf: Path
    intermediate: Optional[Path] = None


@dataclass(frozen=True)
class ChainOutputs:
    root: Path
    leaf: Path
    intermediate: Optional[Path] = None


@dataclass
class IssuedCertificate:
    level: CertificateLevel
    certificate: x509.Certificate
    path: Path
    signer: Signer


@dataclass
class IssuedChain:
    certificates: List[IssuedCertificate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.certificates)

    def get(self, level: CertificateLevel) -> Optional[IssuedCertificate]:
        for issued in self.certificates:
            if issued.level is level:
                return issued
        return None

    @property
    def root(self) -> IssuedCertificate:
        return self.certificates[0]

    @property
    def leaf(self) -> IssuedCertificate:
        return self.certificates[-1]

    @property
    def intermediate(self) -> Optional[IssuedCertificate]:
        return self.get(CertificateLevel.INTERMEDIATE)


@contextlib.contextmanager
def _stage(action: str, fallback: Type[CertMakerError]) -> Iterator[None]:
    """Prefix failures with ``action``; foreign exceptions become ``fallback``."""
    try:
        yield
    except CertMakerError as exc:
        wrapped = type(exc)(f"{action}: {exc}")
        if isinstance(exc, BackendResolutionError) and isinstance(wrapped, BackendResolutionError):
            wrapped.provider = exc.provider
        raise wrapped from exc
    except Exception as exc:
        raise fallback(f"{action}: {exc}") from exc


class CertificateChainBuilder:
    def __init__(
        self,
        resolver: SignerResolver,
        *,
        template_parser: TemplateParser = parse_template,
        writer: CertificateWriter = write_certificate,
    ) -> None:
        self.resolver = resolver
        self.template_parser = template_parser
        self.writer = writer

    def _preflight(
        self, config: KMSConfig, templates: ChainTemplates, outputs: ChainOutputs
    ) -> Optional[Tuple[Path, Path]]:
        """Reject bad key ids and template files before any KMS call.

        Returns the intermediate (template, output) pair for a 3-level chain.
        """
        if not config.leaf_key_id:
            raise ConfigValidationError("leaf key id must be specified")
        try:
            validate_kms_config(config)
        except ConfigValidationError as exc:
            raise ConfigValidationError(f"invalid KMS configuration: {exc}") from exc
        paths = [templates.root, templates.leaf]
        intermediate: Optional[Tuple[Path, Path]] = None
        if config.has_intermediate:
            if templates.intermediate is None:
                raise ConfigValidationError("intermediate template is required when an intermediate key id is set")
            if outputs.intermediate is None:
                raise ConfigValidationError("intermediate certificate path is required when an intermediate key id is set")
            intermediate = (templates.intermediate, outputs.intermediate)
            paths.append(templates.intermediate)
        for path in paths:
            validate_template_path(path)
        return intermediate

    def _issue(
        self,
        level: CertificateLevel,
        parsed: TemplateResult,
        subject_signer: Signer,
        issuer_key: KMSPrivateKey,
        output: Path,
    ) -> x509.Certificate:
        with _stage(f"error getting {level.value} public key", BackendResolutionError):
            public_key = subject_signer.load_public_key()
        with _stage(f"error creating {level.value} certificate", BackendResolutionError):
            certificate = parsed.builder(public_key).sign(issuer_key, hashes.SHA256())  # type: ignore[arg-type]
        with _stage(f"error writing {level.value} certificate", CertificateWriteError):
            self.writer(certificate, output, level)
        return certificate

    def _resolve(self, config: KMSConfig, slot: KeySlot) -> Signer:
        with _stage(f"error initializing {slot.value} KMS", BackendResolutionError):
            return self.resolver.resolve(config.request_for(slot))

    def build(
        self,
        root_signer: Signer,
        config: KMSConfig,
        templates: ChainTemplates,
        outputs: ChainOutputs,
    ) -> IssuedChain:
        """Create a 2-level (root, leaf) or 3-level (root, intermediate, leaf) chain.

        Stages run in order and the first failure aborts the build. Files
        written by earlier stages are left in place.
        """
        intermediate = self._preflight(config, templates, outputs)
        chain = IssuedChain()
        log = logger.bind(provider=config.type.value, levels=3 if config.has_intermediate else 2)
        log.info("chain_build_started")

        with _stage("error parsing root template", TemplateError):
            root_tmpl = self.template_parser(templates.root, None)
        with _stage("error preparing root signer", BackendResolutionError):
            root_key = private_key_for(root_signer)
        root_cert = self._issue(CertificateLevel.ROOT, root_tmpl, root_signer, root_key, outputs.root)
        chain.certificates.append(IssuedCertificate(CertificateLevel.ROOT, root_cert, outputs.root, root_signer))

        signing_cert = root_cert
        signing_signer = root_signer
        signing_key = root_key

        if intermediate is not None:
            intermediate_template, intermediate_output = intermediate
            with _stage("error parsing intermediate template", TemplateError):
                intermediate_tmpl = self.template_parser(intermediate_template, root_cert)
            intermediate_signer = self._resolve(config, KeySlot.INTERMEDIATE)
            intermediate_cert = self._issue(
                CertificateLevel.INTERMEDIATE,
                intermediate_tmpl,
                intermediate_signer,
                root_key,
                intermediate_output,
            )
            chain.certificates.append(
                IssuedCertificate(
                    CertificateLevel.INTERMEDIATE, intermediate_cert, intermediate_output, intermediate_signer
                )
            )
            with _stage("error preparing intermediate signer", BackendResolutionError):
                signing_key = private_key_for(intermediate_signer)
            signing_cert = intermediate_cert
            signing_signer = intermediate_signer

        leaf_signer = self._resolve(config, KeySlot.LEAF)
        with _stage("error parsing leaf template", TemplateError):
            leaf_tmpl = self.template_parser(templates.leaf, signing_cert)
        leaf_cert = self._issue(CertificateLevel.LEAF, leaf_tmpl, leaf_signer, signing_key, outputs.leaf)
        chain.certificates.append(IssuedCertificate(CertificateLevel.LEAF, leaf_cert, outputs.leaf, leaf_signer))

        log.info("chain_build_finished", issuer=signing_signer.reference)
        return chain


__all__ = [
    "CertificateChainBuilder",
    "ChainOutputs",
    "ChainTemplates",
    "IssuedCertificate",
    "IssuedChain",
]
