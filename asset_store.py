"""
Byte stores for the files being installed.

The installer never cares where asset bytes live. A store lists relative,
``/``-separated paths (sentinels intact, e.g. ``"Roads~/Tunnels!/tunnel.dat"``)
and returns the bytes for one of them.

Two stores exist:

* ``DirectoryAssetStore``: an unpacked ``installation`` folder on disk.
* ``ArchiveAssetStore``: a packed bundle (.zip / .7z / .rar). A single
  top-level build folder inside the archive is hidden from the keys.

The module also holds the per-option documentation and preview-image lookup
used by the GUI info panel.
"""

from __future__ import annotations

import logging
import tempfile
import zipfile
from pathlib import Path
from typing import Protocol, runtime_checkable

import py7zr
import rarfile

_log = logging.getLogger(__name__)

SUPPORTED_ARCHIVE_EXTENSIONS = {".zip", ".7z", ".rar"}
DOC_EXTENSIONS = (".txt",)
IMAGE_EXTENSIONS = (".png", ".jpg")


@runtime_checkable
class AssetStore(Protocol):
    def list_paths(self) -> list[str]:
        ...

    def list_folders(self) -> list[str]:
        """Folder entries, each ending in ``/``, including empty folders."""
        ...

    def read(self, path: str) -> bytes:
        """Return the bytes of ``path``.

        Raises ``KeyError`` for an unknown path and ``OSError`` when the bytes
        cannot be read.
        """
        ...


def normalize_key(path: str) -> str:
    """Comparison form of a relative path: forward slashes, case-folded."""
    return path.replace("\\", "/").strip("/").casefold()


class DirectoryAssetStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._paths = []
        self._folders = []
        for p in self.root.rglob("*"):
            rel = p.relative_to(self.root).as_posix()
            if p.is_dir():
                self._folders.append(rel + "/")
            elif p.is_file():
                self._paths.append(rel)
        self._paths.sort()
        self._folders.sort()
        self._known = set(self._paths)

    def list_paths(self) -> list[str]:
        return list(self._paths)

    def list_folders(self) -> list[str]:
        return list(self._folders)

    def read(self, path: str) -> bytes:
        if path not in self._known:
            raise KeyError(path)
        return (self.root / path).read_bytes()


class ArchiveAssetStore:
    def __init__(self, archive_path: str | Path, build_root_name: str | None = None):
        self.archive_path = Path(archive_path)
        ext = self.archive_path.suffix.lower()
        if ext not in SUPPORTED_ARCHIVE_EXTENSIONS:
            raise ValueError(f"Unsupported archive format: {ext}")
        entries = self._list_archive_entries(self.archive_path)
        names = [name for name, is_dir in entries if not is_dir]
        folders = [name.rstrip("/") + "/" for name, is_dir in entries if is_dir]

        prefix = ""
        if build_root_name and names and all(
            n.startswith(build_root_name + "/") for n in names
        ):
            prefix = build_root_name + "/"
        # key -> archive member
        self._members = {n[len(prefix):]: n for n in names}
        self._folders = sorted(
            f[len(prefix):] for f in folders if f.startswith(prefix) and f != prefix
        )
        _log.info("Opened %s: %d file(s)", self.archive_path.name, len(self._members))

    @staticmethod
    def _list_archive_entries(filepath: Path) -> list[tuple[str, bool]]:
        """(name, is_folder) for every archive member, with ``/`` separators."""
        ext = filepath.suffix.lower()
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                entries = [(info.filename, info.is_dir()) for info in zf.infolist()]
        elif ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                entries = [(info.filename, info.is_directory) for info in sz.list()]
        elif ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                entries = [(info.filename, info.is_dir()) for info in rf.infolist()]
        else:
            entries = []
        return [(name.replace("\\", "/"), is_dir) for name, is_dir in entries]

    @staticmethod
    def _read_archive_member(filepath: Path, member: str) -> bytes:
        ext = filepath.suffix.lower()
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                return zf.read(member)
        if ext == ".7z":
            with tempfile.TemporaryDirectory() as tmpdir, py7zr.SevenZipFile(filepath, "r") as sz:
                sz.extract(tmpdir, targets=[member])
                return (Path(tmpdir) / member).read_bytes()
        if ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                return rf.read(member)
        raise ValueError(f"Unsupported archive format: {ext}")

    def list_paths(self) -> list[str]:
        return sorted(self._members)

    def list_folders(self) -> list[str]:
        return list(self._folders)

    def read(self, path: str) -> bytes:
        member = self._members[path]
        try:
            return self._read_archive_member(self.archive_path, member)
        except (zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error) as exc:
            raise OSError(f"Could not read {member} from {self.archive_path.name}: {exc}") from exc


def open_asset_store(path: str | Path, build_root_name: str | None = None) -> AssetStore:
    """Open ``path`` as a folder store or, by suffix, an archive store."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Installation files not found: {path}")
    if path.is_dir():
        return DirectoryAssetStore(path)
    return ArchiveAssetStore(path, build_root_name=build_root_name)


# ── Option docs & preview images ──────────────────────────────────────


def _files_in_folder(store: AssetStore, folder: str, extensions: tuple[str, ...]) -> list[str]:
    """Paths directly inside ``folder`` (not in sub-folders) with a given suffix."""
    wanted = normalize_key(folder)
    matches = []
    for path in store.list_paths():
        key = normalize_key(path)
        parent, _, name = key.rpartition("/")
        if parent == wanted and name.endswith(extensions):
            matches.append(path)
    return matches


def find_option_documents(store: AssetStore, folder: str, main_document: str) -> str:
    """Return the text documentation for the option stored in ``folder``.

    ``folder`` is the option's source path relative to the build root; the
    tree root (``""``) gets the main document.
    """
    paths = [main_document] if not normalize_key(folder) else _files_in_folder(
        store, folder, DOC_EXTENSIONS
    )
    texts = []
    for path in paths:
        try:
            texts.append(store.read(path).decode("utf-8", errors="replace"))
        except (KeyError, OSError) as exc:
            _log.warning("Could not read documentation %s: %s", path, exc)
    return "\n".join(texts)


def find_option_image(store: AssetStore, folder: str, default_image: str) -> bytes | None:
    """Return the preview image for ``folder``, falling back to ``default_image``."""
    candidates = []
    if normalize_key(folder):
        candidates = _files_in_folder(store, folder, IMAGE_EXTENSIONS)
    candidates.append(default_image)
    for path in candidates:
        try:
            return store.read(path)
        except (KeyError, OSError):
            continue
    return None
