"""
Configuration and request schemas for the NAM installer.

``configuration.json`` ships next to the installer and describes the release:

{
    "title": "Network Addon Mod",
    "nam_version": "42.1",
    "required_folder": "Plugins",
    "install_extensions": [".dat"]
}

Every key is optional; missing keys fall back to the defaults below.

``cleanup.txt`` is the legacy-file manifest: one file name per line. Files in
the destination with one of those names are moved to the backup folder before
anything is copied.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

_log = logging.getLogger(__name__)

CONFIG_FILENAME = "configuration.json"
CLEANUP_FILENAME = "cleanup.txt"


class InstallerConfig(BaseModel):
    """Release settings read from configuration.json."""

    title: str = "Network Addon Mod"
    nam_version: str = "0.0"
    installer_version: str = "1.0.0"
    required_folder: str = "Plugins"
    backup_suffix: str = "_bak"
    build_root_name: str = "installation"
    root_key: str = "top"
    install_extensions: list[str] = Field(default_factory=list)
    default_image: str = "Network Addon Mod.png"
    main_document: str = "Main.txt"

    @field_validator("required_folder", "build_root_name")
    @classmethod
    def _single_segment(cls, v: str) -> str:
        v = v.replace("\\", "/").strip("/")
        if not v or "/" in v:
            raise ValueError(f"Expected a single folder name, got {v!r}")
        return v

    @field_validator("backup_suffix")
    @classmethod
    def _non_empty_suffix(cls, v: str) -> str:
        if not v:
            raise ValueError("backup_suffix must not be empty")
        return v

    @field_validator("install_extensions")
    @classmethod
    def _normalize_extensions(cls, v: list[str]) -> list[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            normalized.append(ext)
        return normalized

    @property
    def window_title(self) -> str:
        return f"{self.title} Installer v{self.nam_version}"


class InstallRequest(BaseModel):
    """An install submitted by the GUI or the command line."""

    files_to_install: list[str] = Field(default_factory=list)
    location: str

    @field_validator("location")
    @classmethod
    def _normalize_location(cls, v: str) -> str:
        v = v.strip().replace("\\", "/")
        if len(v) > 1:
            v = v.rstrip("/")
        if not v:
            raise ValueError("Install location must not be empty")
        return v


def load_config(path: str | Path | None = None) -> InstallerConfig:
    """Load configuration.json, or return the defaults when ``path`` is None.

    Raises ``json.JSONDecodeError`` or ``pydantic.ValidationError`` on a bad
    file.
    """
    if path is None:
        return InstallerConfig()
    path = Path(path)
    config = InstallerConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    _log.info("Loaded %s: %s v%s", path.name, config.title, config.nam_version)
    return config


def parse_legacy_manifest(text: str) -> list[str]:
    """Return the file names listed in a cleanup manifest, in file order."""
    names: list[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        name = line.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


def load_legacy_manifest(path: str | Path | None) -> list[str]:
    if path is None:
        return []
    return parse_legacy_manifest(Path(path).read_text(encoding="utf-8-sig"))
