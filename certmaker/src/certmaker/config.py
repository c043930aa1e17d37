"""Configuration loading utilities for certmaker."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import KMSConfig, ProviderType
from .paths import default_template, runtime_config_dir
from .utils.errors import ConfigValidationError


class KMSSection(BaseModel):
    type: str = Field(default="", description="awskms|gcpkms|azurekms|hashivault")
    region: str = Field(default="")
    root_key_id: str = Field(default="")
    intermediate_key_id: str = Field(default="")
    leaf_key_id: str = Field(default="")
    options: Dict[str, str] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _normalise_type(cls, value: str) -> str:
        return value.strip().lower()


class TemplatesSection(BaseModel):
    root: Path = Field(default_factory=lambda: default_template("root"))
    intermediate: Path = Field(default_factory=lambda: default_template("intermediate"))
    leaf: Path = Field(default_factory=lambda: default_template("leaf"))


class OutputsSection(BaseModel):
    root: Path = Field(default=Path("root.pem"))
    intermediate: Path = Field(default=Path("intermediate.pem"))
    leaf: Path = Field(default=Path("leaf.pem"))


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Logging verbosity level")

    def normalized_level(self) -> str:
        return self.level.upper()


class RunConfig(BaseModel):
    kms: KMSSection = Field(default_factory=KMSSection)
    templates: TemplatesSection = Field(default_factory=TemplatesSection)
    outputs: OutputsSection = Field(default_factory=OutputsSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def kms_config(self) -> KMSConfig:
        section = self.kms
        return KMSConfig(
            type=ProviderType.parse(section.type),
            region=section.region,
            root_key_id=section.root_key_id,
            intermediate_key_id=section.intermediate_key_id,
            leaf_key_id=section.leaf_key_id,
            options=section.options,
        )


DEFAULT_CONFIG = RunConfig()


def config_search_paths(explicit: Optional[Path] = None) -> Iterable[Path]:
    if explicit:
        yield explicit
        return
    yield Path.cwd() / ".certmaker" / "config.yaml"
    yield runtime_config_dir() / "config.yaml"


def load_config(path: Optional[Path] = None) -> RunConfig:
    if path is not None and not path.is_file():
        raise ConfigValidationError(f"Configuration file not found: {path}")
    for candidate in config_search_paths(path):
        if candidate.is_file():
            try:
                with candidate.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle) or {}
                return RunConfig.model_validate(data)
            except (yaml.YAMLError, ValidationError) as exc:
                raise ConfigValidationError(f"Invalid configuration in {candidate}: {exc}") from exc
    return DEFAULT_CONFIG.model_copy(deep=True)


def dump_default_config(target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG.model_dump(mode="json"), handle, sort_keys=False)


__all__ = [
    "DEFAULT_CONFIG",
    "KMSSection",
    "LoggingConfig",
    "OutputsSection",
    "RunConfig",
    "TemplatesSection",
    "config_search_paths",
    "dump_default_config",
    "load_config",
]
