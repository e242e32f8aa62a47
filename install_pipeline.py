"""
NAM install engine.

Workflow:
    1. ``Installer(...)`` builds the option tree from the asset store
    2. ``option_tree()`` / ``tree_as_dict()`` feed the selection UI
    3. ``start_install(request)`` validates the request, then runs the
       pipeline on a background thread:
         a. cleanup: legacy files in the destination move to ``<dest>_bak``
         b. copy: assets of every selected leaf option are written to the
            destination with sentinel characters stripped from the path
    4. ``progress()`` is polled until the phase returns to idle

Only one pipeline runs at a time. File-level failures are logged and skipped;
they never stop the pipeline.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional

from asset_store import (
    AssetStore,
    DirectoryAssetStore,
    find_option_documents,
    find_option_image,
    normalize_key,
    open_asset_store,
)
from installer_config import InstallerConfig, InstallRequest
from name_codec import sanitize_path
from option_tree import (
    InstallerOption,
    build_option_tree,
    build_option_tree_from_listing,
    flatten_options,
    resolve_selection,
)
from progress import ProgressSnapshot, ProgressTracker

_log = logging.getLogger(__name__)


class InstallError(Exception):
    pass


class InvalidInstallLocation(InstallError, ValueError):
    """The destination is not a folder the pack may be installed into."""


class InstallInProgressError(InstallError):
    """Another install is still cleaning or copying."""


# ── Cleanup stage ─────────────────────────────────────────────────────


def backup_dir_for(destination: str | Path, suffix: str = "_bak") -> Path:
    """Sibling folder receiving legacy files, e.g. ``Plugins`` -> ``Plugins_bak``."""
    destination = Path(destination)
    return destination.with_name(destination.name + suffix)


def _walk_entries(root: Path) -> list[Path]:
    """Top-down, name-sorted listing of every folder and file under ``root``."""

    def _on_error(exc: OSError):
        _log.warning("Could not read %s: %s", exc.filename, exc)

    entries: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        base = Path(dirpath)
        entries.extend(base / name for name in dirnames)
        entries.extend(base / name for name in sorted(filenames))
    return entries


def cleanup_legacy_files(
    destination: str | Path,
    legacy_names: Iterable[str],
    tracker: ProgressTracker,
    *,
    backup_suffix: str = "_bak",
) -> list[str]:
    """Move files named in the legacy manifest into the backup mirror.

    Every entry of the destination is reported to ``tracker`` whether it
    moves or not. Returns the relative paths that were moved.
    """
    destination = Path(destination)
    backup_root = backup_dir_for(destination, backup_suffix)
    try:
        backup_root.mkdir()
    except FileExistsError:
        _log.info("Backup folder %s already exists", backup_root)
    except OSError as exc:
        _log.warning("Unable to create backup folder %s: %s", backup_root, exc)

    legacy = set(legacy_names)
    entries = _walk_entries(destination)
    tracker.begin_cleaning(len(entries))

    moved: list[str] = []
    for entry in entries:
        tracker.record_cleaned(entry.name)
        if entry.name not in legacy or not entry.is_file():
            continue

        relative = entry.relative_to(destination)
        target = backup_root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _log.warning("Unable to create %s in backup folder: %s", target.parent, exc)
            continue
        try:
            shutil.move(str(entry), str(target))
        except OSError as exc:
            _log.warning("Unable to move %s to backup folder: %s", relative, exc)
            continue
        _log.info("Moved legacy file %s to %s", relative.as_posix(), backup_root.name)
        moved.append(relative.as_posix())
    return moved


# ── Copy stage ────────────────────────────────────────────────────────


def _relative_key(source_path: str, build_root_name: str) -> str:
    prefix = build_root_name + "/"
    if source_path.startswith(prefix):
        return source_path[len(prefix):]
    return source_path.lstrip("/")


def _folder_in_store(wanted: str, store_keys: set[str]) -> bool:
    prefix = wanted + "/"
    return wanted in store_keys or any(norm.startswith(prefix) for norm in store_keys)


def _match_assets(
    key: str, candidates: list[tuple[str, str]], store_keys: set[str]
) -> list[str]:
    """Store paths belonging to the option folder ``key``.

    ``candidates`` are the installable (path, normalized path) pairs and
    ``store_keys`` every normalized file and folder path in the store.
    Substring containment is only a fallback for a folder that is absent
    from the bundle, e.g. one whose name drifted from the folder tree.
    """
    wanted = normalize_key(key)
    if _folder_in_store(wanted, store_keys):
        return [path for path, norm in candidates if norm.startswith(wanted + "/")]
    matches = [path for path, norm in candidates if wanted and wanted in norm]
    if matches:
        _log.warning(
            "No assets under %s; matched %d file(s) by substring instead", key, len(matches)
        )
    return matches


def _install_target(destination: Path, asset_path: str) -> Path | None:
    segments = [s for s in sanitize_path(asset_path).split("/") if s]
    if not segments:
        return None
    return destination.joinpath(*segments)


def copy_selected_assets(
    source_paths: list[str],
    destination: str | Path,
    store: AssetStore,
    tracker: ProgressTracker,
    *,
    build_root_name: str = "installation",
    extensions: Optional[Iterable[str]] = None,
) -> list[Path]:
    """Write the assets of each selected leaf into ``destination``.

    Progress advances once per source path. A source path counts as copied
    when every matching asset was written, or when its folder holds nothing
    installable. Returns the written files.
    """
    destination = Path(destination)
    suffixes = tuple(ext.lower() for ext in extensions) if extensions else ()
    all_paths = store.list_paths()
    candidates = [
        (path, normalize_key(path))
        for path in all_paths
        if not suffixes or path.lower().endswith(suffixes)
    ]
    store_keys = {normalize_key(path) for path in all_paths + store.list_folders()}
    tracker.begin_installing(len(source_paths))

    written: list[Path] = []
    for source_path in source_paths:
        key = _relative_key(source_path, build_root_name)
        matches = _match_assets(key, candidates, store_keys)
        if matches:
            completed = True
        elif _folder_in_store(normalize_key(key), store_keys):
            _log.info("Nothing to install for option %s", key)
            completed = True
        else:
            _log.warning("No files found for option %s", key)
            completed = False

        for asset_path in matches:
            try:
                data = store.read(asset_path)
            except (KeyError, OSError) as exc:
                _log.warning("Couldn't retrieve file %s: %s", asset_path, exc)
                completed = False
                continue

            target = _install_target(destination, asset_path)
            if target is None:
                _log.warning("Skipping %s: nothing left of its name after sanitizing", asset_path)
                completed = False
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            except OSError as exc:
                _log.warning("Couldn't write file %s: %s", target, exc)
                completed = False
                continue
            _log.debug("Wrote %s", target)
            written.append(target)

        tracker.record_installed(sanitize_path(key), completed)
    return written


# ── Engine ────────────────────────────────────────────────────────────


class Installer:
    """Owns the option tree, the progress tracker and the install worker."""

    def __init__(
        self,
        store: AssetStore,
        config: InstallerConfig | None = None,
        legacy_names: Iterable[str] = (),
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.config = config or InstallerConfig()
        self.legacy_names = list(legacy_names)
        self.tracker = ProgressTracker()
        self._log_cb = log_callback
        self._worker: Optional[threading.Thread] = None

        tree_args = dict(
            root_name=self.config.title,
            build_root_name=self.config.build_root_name,
            root_key=self.config.root_key,
        )
        if isinstance(store, DirectoryAssetStore):
            self.tree = build_option_tree(store.root, **tree_args)
        else:
            self.tree = build_option_tree_from_listing(
                store.list_paths() + store.list_folders(), **tree_args
            )

    @classmethod
    def from_path(
        cls,
        source: str | Path,
        config: InstallerConfig | None = None,
        legacy_names: Iterable[str] = (),
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> Installer:
        config = config or InstallerConfig()
        store = open_asset_store(source, build_root_name=config.build_root_name)
        return cls(store, config, legacy_names, log_callback)

    def log(self, msg: str):
        _log.info(msg)
        if self._log_cb:
            self._log_cb(msg)

    # ── Queries ───────────────────────────────────────────────────────

    def option_tree(self) -> InstallerOption:
        return self.tree

    def tree_as_dict(self) -> dict:
        return self.tree.to_dict()

    def progress(self) -> ProgressSnapshot:
        return self.tracker.snapshot()

    def find_option(self, selection_key: str) -> InstallerOption | None:
        for option in flatten_options(self.tree):
            if option.selection_key == selection_key:
                return option
        return None

    def _option_folder(self, selection_key: str) -> str | None:
        option = self.find_option(selection_key)
        if option is None:
            return None
        if option.depth == 0:
            return ""
        return _relative_key(option.source_path, self.config.build_root_name)

    def option_docs(self, selection_key: str) -> str:
        folder = self._option_folder(selection_key)
        if folder is None:
            return ""
        return find_option_documents(self.store, folder, self.config.main_document)

    def option_image(self, selection_key: str) -> bytes | None:
        folder = self._option_folder(selection_key)
        return find_option_image(self.store, folder or "", self.config.default_image)

    # ── Install ───────────────────────────────────────────────────────

    def validate_request(self, request: InstallRequest):
        folder = PurePosixPath(request.location).name
        if folder.casefold() != self.config.required_folder.casefold():
            raise InvalidInstallLocation(
                f"Install location must end in a folder called "
                f"`{self.config.required_folder}`: {request.location}"
            )

    def _prepare(self, request: InstallRequest | dict) -> InstallRequest:
        if not isinstance(request, InstallRequest):
            request = InstallRequest.model_validate(request)
        self.validate_request(request)
        if not self.tracker.try_begin():
            raise InstallInProgressError("An installation is already in progress")
        return request

    def start_install(self, request: InstallRequest | dict) -> ProgressSnapshot:
        """Validate ``request`` and start the pipeline in the background.

        Raises ``InvalidInstallLocation`` (or ``pydantic.ValidationError``)
        for a bad request and ``InstallInProgressError`` while another
        install runs. Returns the freshly reset progress snapshot.
        """
        request = self._prepare(request)
        snapshot = self.tracker.snapshot()
        self._worker = threading.Thread(
            target=self._run_pipeline, args=(request,), name="nam-install", daemon=True
        )
        self._worker.start()
        return snapshot

    def run_install(self, request: InstallRequest | dict) -> ProgressSnapshot:
        """Same as ``start_install`` but runs on the calling thread."""
        request = self._prepare(request)
        self._run_pipeline(request)
        return self.tracker.snapshot()

    def wait(self, timeout: float | None = None) -> bool:
        """Join the background worker. Returns True once it has finished."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _run_pipeline(self, request: InstallRequest):
        destination = Path(request.location)
        try:
            self.log(f"Cleaning legacy files in {destination}...")
            moved = cleanup_legacy_files(
                destination,
                self.legacy_names,
                self.tracker,
                backup_suffix=self.config.backup_suffix,
            )
            backup_name = backup_dir_for(destination, self.config.backup_suffix).name
            self.log(f"  Moved {len(moved)} legacy file(s) to {backup_name}")

            source_paths = resolve_selection(
                request.files_to_install, flatten_options(self.tree)
            )
            self.log(f"Installing {len(source_paths)} option(s)...")
            written = copy_selected_assets(
                source_paths,
                destination,
                self.store,
                self.tracker,
                build_root_name=self.config.build_root_name,
                extensions=self.config.install_extensions,
            )
            snapshot = self.tracker.snapshot()
            self.log(
                f"  Installed {len(snapshot.files_copied)} of {snapshot.installed_max} "
                f"option(s), {len(written)} file(s) written"
            )
            if snapshot.files_skipped:
                self.log(f"  WARNING: {snapshot.files_skipped} option(s) were not fully copied")
        except Exception:
            _log.exception("Install pipeline stopped unexpectedly")
            raise
        finally:
            self.tracker.finish()
