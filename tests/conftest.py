"""
Shared fixtures and helpers for the NAM installer test suite.
"""

import threading
from pathlib import Path

import pytest

# installation/ layout used by most tests:
#   Roads~        locked folder with two options
#   Styles#       radio group (Euro is the default, US the alternative)
#   Extras!       unchecked leaf
SAMPLE_FILES = {
    "Roads~/Highways/hw.dat": b"highways",
    "Roads~/Tunnels!/tunnel.dat": b"tunnels",
    "Roads~/Tunnels!/readme.txt": "Tunnel docs",
    "Roads~/Tunnels!/preview.png": b"\x89PNG tunnels",
    "Styles#/$1Euro=/euro.dat": b"euro",
    "Styles#/$2US+/us.dat": b"us",
    "Extras!/extra.dat": b"extra",
    "Main.txt": "Welcome to the Network Addon Mod",
    "Network Addon Mod.png": b"\x89PNG default",
}


def write_files(root: Path, files: dict) -> Path:
    """Create ``files`` ({relative_path: str | bytes}) under root."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_bytes(content)
    return root


class MemoryAssetStore:
    """In-memory asset store; keys ending in ``/`` are folder entries and paths
    listed in ``broken`` raise OSError.
    """

    def __init__(self, files: dict, broken: set[str] | None = None):
        self.files = {
            k: (v.encode("utf-8") if isinstance(v, str) else v) for k, v in files.items()
        }
        self.broken = broken or set()

    def list_paths(self) -> list[str]:
        return sorted(k for k in self.files if not k.endswith("/"))

    def list_folders(self) -> list[str]:
        return sorted(k for k in self.files if k.endswith("/"))

    def read(self, path: str) -> bytes:
        if path in self.broken:
            raise OSError(f"locked by another process: {path}")
        return self.files[path]


class BlockingAssetStore(MemoryAssetStore):
    """Blocks every read until ``release`` is set."""

    def __init__(self, files: dict):
        super().__init__(files)
        self.entered = threading.Event()
        self.release = threading.Event()

    def read(self, path: str) -> bytes:
        self.entered.set()
        self.release.wait(10)
        return super().read(path)


@pytest.fixture
def source_dir(tmp_path):
    """An unpacked installation/ folder with SAMPLE_FILES."""
    return write_files(tmp_path / "installation", SAMPLE_FILES)


@pytest.fixture
def plugins_dir(tmp_path):
    """An empty SimCity 4 Plugins folder."""
    plugins = tmp_path / "SimCity 4" / "Plugins"
    plugins.mkdir(parents=True)
    return plugins
