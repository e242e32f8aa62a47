"""
Selection tree for the installer.

The tree is built once from a snapshot of the source folders (on disk or from
an archive listing), flattened per install request, and then thrown away.
Only folders become options; the deepest folders are the installable leaves.

Keys
----
Every node carries two slash-joined ancestor chains:

``parent_key``
    sanitized ancestor names; ``parent_key/display_name`` is the selection key
    a client sends back.
``source_root``
    raw ancestor names; ``source_root/original_name`` is the real source path
    of the folder, used to find its assets.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

from name_codec import SelectionKind, decode_selection_kind, sanitize_name

_log = logging.getLogger(__name__)

DEFAULT_ROOT_NAME = "Network Addon Mod"
DEFAULT_BUILD_ROOT = "installation"
DEFAULT_ROOT_KEY = "top"


class OptionTreeError(Exception):
    """The source folder could not be read at all."""


@dataclass(frozen=True)
class InstallerOption:
    """One selectable folder."""

    original_name: str
    display_name: str
    selection_kind: SelectionKind
    children: tuple[InstallerOption, ...] = ()
    depth: int = 0
    parent_key: str = ""
    source_root: str = ""
    leaf: bool = True  # kept when the node is detached from its children

    @property
    def selection_key(self) -> str:
        return f"{self.parent_key}/{self.display_name}"

    @property
    def source_path(self) -> str:
        return f"{self.source_root}/{self.original_name}"

    def detached(self) -> InstallerOption:
        return replace(self, children=())

    def walk(self) -> Iterable[InstallerOption]:
        """Yield this node and its descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            "name": self.display_name,
            "original_name": self.original_name,
            "radio_check": self.selection_kind.value,
            "depth": self.depth,
            "parent": self.parent_key,
            "key": self.selection_key,
            "children": [child.to_dict() for child in self.children],
        }


def _make_option(
    raw_name: str,
    parent_depth: int,
    parent_key: str,
    source_root: str,
    children: tuple[InstallerOption, ...],
) -> InstallerOption:
    return InstallerOption(
        original_name=raw_name,
        display_name=sanitize_name(raw_name),
        selection_kind=decode_selection_kind(raw_name),
        children=children,
        depth=parent_depth + 1,
        parent_key=parent_key,
        source_root=source_root,
        leaf=not children,
    )


def _make_root(root_name: str, children: tuple[InstallerOption, ...]) -> InstallerOption:
    return InstallerOption(
        original_name=root_name,
        display_name=sanitize_name(root_name),
        selection_kind=SelectionKind.LOCKED,
        children=children,
        depth=0,
        leaf=False,
    )


# ── Building from disk ────────────────────────────────────────────────


def _list_subfolders(folder: Path) -> list[os.DirEntry]:
    """Return the readable sub-directories of ``folder`` sorted by name.

    Raises ``OSError`` when ``folder`` itself cannot be listed.
    """
    subfolders = []
    with os.scandir(folder) as entries:
        for entry in entries:
            try:
                if entry.is_dir():
                    subfolders.append(entry)
            except OSError as exc:
                _log.warning("Skipping unreadable entry %s: %s", entry.path, exc)
    subfolders.sort(key=lambda e: e.name)
    return subfolders


def _parse_folder(
    folder: Path,
    depth: int,
    parent_key: str,
    source_root: str,
) -> tuple[InstallerOption, ...]:
    options: list[InstallerOption] = []
    for entry in _list_subfolders(folder):
        display_name = sanitize_name(entry.name)
        try:
            children = _parse_folder(
                Path(entry.path),
                depth + 1,
                f"{parent_key}/{display_name}",
                f"{source_root}/{entry.name}",
            )
        except OSError as exc:
            _log.warning("Could not read folder %s, skipping it: %s", entry.path, exc)
            continue
        options.append(_make_option(entry.name, depth, parent_key, source_root, children))
    return tuple(options)


def build_option_tree(
    source_dir: str | Path,
    *,
    root_name: str = DEFAULT_ROOT_NAME,
    build_root_name: str = DEFAULT_BUILD_ROOT,
    root_key: str = DEFAULT_ROOT_KEY,
) -> InstallerOption:
    """Walk ``source_dir`` and return the root of the option tree.

    Raises ``OptionTreeError`` if ``source_dir`` cannot be read. Unreadable
    sub-folders are logged and left out.
    """
    source_dir = Path(source_dir)
    try:
        children = _parse_folder(source_dir, 0, root_key, build_root_name)
    except OSError as exc:
        raise OptionTreeError(f"Cannot read installation folder {source_dir}: {exc}") from exc
    root = _make_root(root_name, children)
    _log.info(
        "Built option tree from %s: %d option(s)", source_dir, sum(1 for _ in root.walk()) - 1
    )
    return root


# ── Building from an archive listing ──────────────────────────────────


def _folder_map(paths: Iterable[str]) -> dict:
    """Nest the folder part of each path into a dict of dicts."""
    tree: dict = {}
    for path in paths:
        parts = [p for p in path.replace("\\", "/").split("/") if p]
        if not path.endswith(("/", "\\")):
            parts = parts[:-1]  # drop the file name
        node = tree
        for part in parts:
            node = node.setdefault(part, {})
    return tree


def _options_from_map(
    folders: dict, depth: int, parent_key: str, source_root: str
) -> tuple[InstallerOption, ...]:
    options = []
    for raw_name in sorted(folders):
        display_name = sanitize_name(raw_name)
        children = _options_from_map(
            folders[raw_name],
            depth + 1,
            f"{parent_key}/{display_name}",
            f"{source_root}/{raw_name}",
        )
        options.append(_make_option(raw_name, depth, parent_key, source_root, children))
    return tuple(options)


def build_option_tree_from_listing(
    paths: Iterable[str],
    *,
    root_name: str = DEFAULT_ROOT_NAME,
    build_root_name: str = DEFAULT_BUILD_ROOT,
    root_key: str = DEFAULT_ROOT_KEY,
) -> InstallerOption:
    """Build the same tree as ``build_option_tree`` from relative file paths.

    Folder entries (paths ending in ``/``) are honoured so empty folders still
    show up as options.
    """
    folders = _folder_map(paths)
    children = _options_from_map(folders, 0, root_key, build_root_name)
    return _make_root(root_name, children)


# ── Flattening & selection ────────────────────────────────────────────


def _sort_key(option: InstallerOption):
    return (
        option.selection_kind,
        option.display_name,
        option.parent_key,
        option.original_name,
        option.source_root,
        option.depth,
    )


def flatten_options(tree: InstallerOption) -> list[InstallerOption]:
    """Return every node of ``tree`` without children, one per selection key.

    Nodes are sorted by kind then display name; when two nodes share a
    selection key only the first in that order is kept.
    """
    detached = sorted((node.detached() for node in tree.walk()), key=_sort_key)
    seen: set[str] = set()
    flat: list[InstallerOption] = []
    for option in detached:
        if option.selection_key in seen:
            _log.debug("Dropping duplicate option %s", option.selection_key)
            continue
        seen.add(option.selection_key)
        flat.append(option)
    return flat


def resolve_selection(
    selected_keys: Iterable[str], flat_options: list[InstallerOption]
) -> list[str]:
    """Map selection keys to the source paths of the chosen leaf options.

    Keys that match nothing (stale client state) and keys naming a folder
    with sub-options are ignored.
    """
    by_key: dict[str, InstallerOption] = {}
    for option in flat_options:
        by_key.setdefault(option.selection_key, option)

    source_paths: list[str] = []
    seen: set[str] = set()
    for key in selected_keys:
        if key in seen:
            continue
        seen.add(key)
        option = by_key.get(key)
        if option is None:
            _log.debug("Ignoring unknown selection %s", key)
            continue
        if not option.leaf or option.children:
            continue
        source_paths.append(option.source_path)
    return source_paths
