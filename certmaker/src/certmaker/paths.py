"""Shared filesystem path helpers for certmaker."""
from __future__ import annotations

import sys
from pathlib import Path

from platformdirs import PlatformDirs

_APP_NAME = "KMS Certmaker"
_LINUX_APP_NAME = "kms-certmaker"

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def runtime_config_dir() -> Path:
    """Return the per-user configuration directory."""
    if sys.platform in ("win32", "darwin"):
        dirs = PlatformDirs(appname=_APP_NAME, appauthor=None, roaming=True)
    else:
        dirs = PlatformDirs(appname=_LINUX_APP_NAME, appauthor=None, roaming=False)
    return Path(dirs.user_config_path)


def default_template(name: str) -> Path:
    """Return the bundled ``<name>-template.json``."""
    return TEMPLATES_DIR / f"{name}-template.json"
