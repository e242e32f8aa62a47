"""
Sentinel naming convention for NAM installer folders.

The option tree is not described by metadata. Each folder name carries its
selection semantics in sentinel characters:

    ~   locked, always installed
    ^   locked because the parent requires it
    =   radio button, selected by default
    - + radio button
    #   (trailing) folder acting as a radio group
    !   unchecked by default
    $1..$9, *   ordering hints, stripped from the display name

Public API
----------
decode_selection_kind(raw_name) -> SelectionKind
sanitize_name(raw_name) -> str
sanitize_path(relative_path) -> str
"""

from __future__ import annotations

import enum
import re

SENTINEL_CHARS = ("^", "+", "=", "#", "!", "~", "*")
_SENTINEL_RE = re.compile(r"\$[1-9]|[\^+=#!~*]")


class SelectionKind(enum.Enum):
    """How an option is presented and whether the user can toggle it.

    Members are ordered by declaration, which is the order used when the
    flattened option list is sorted.
    """

    RADIO = "Radio"
    RADIO_CHECKED = "RadioChecked"
    RADIO_FOLDER = "RadioFolder"
    CHECKED = "Checked"
    UNCHECKED = "Unchecked"
    LOCKED = "Locked"
    PARENT_LOCKED = "ParentLocked"

    def __lt__(self, other: SelectionKind) -> bool:
        if not isinstance(other, SelectionKind):
            return NotImplemented
        return _ORDER[self] < _ORDER[other]

    @property
    def is_locked(self) -> bool:
        return self in (SelectionKind.LOCKED, SelectionKind.PARENT_LOCKED)

    @property
    def is_radio(self) -> bool:
        return self in (SelectionKind.RADIO, SelectionKind.RADIO_CHECKED)

    @property
    def default_checked(self) -> bool:
        return self in (
            SelectionKind.CHECKED,
            SelectionKind.RADIO_CHECKED,
            SelectionKind.LOCKED,
            SelectionKind.PARENT_LOCKED,
        )


_ORDER = {kind: index for index, kind in enumerate(SelectionKind)}


def decode_selection_kind(raw_name: str) -> SelectionKind:
    """Return the selection kind encoded in a raw folder name.

    The checks run in a fixed priority order and the first hit wins, so
    ``"Roads~#"`` is LOCKED rather than RADIO_FOLDER.
    """
    if "~" in raw_name:
        return SelectionKind.LOCKED
    if "^" in raw_name:
        return SelectionKind.PARENT_LOCKED
    if "=" in raw_name:
        return SelectionKind.RADIO_CHECKED
    if "-" in raw_name or "+" in raw_name:
        return SelectionKind.RADIO
    if raw_name.endswith("#"):
        return SelectionKind.RADIO_FOLDER
    if "!" in raw_name:
        return SelectionKind.UNCHECKED
    return SelectionKind.CHECKED


def sanitize_name(raw_name: str) -> str:
    """Strip every sentinel token from a name.

    Removal repeats until nothing changes: stripping ``^`` from ``"$^1"``
    leaves ``"$1"``, which must go as well.
    """
    name = raw_name
    while True:
        stripped = _SENTINEL_RE.sub("", name)
        if stripped == name:
            return stripped
        name = stripped


def sanitize_path(relative_path: str) -> str:
    """Sanitize each segment of a ``/`` or ``\\`` separated path."""
    segments = relative_path.replace("\\", "/").split("/")
    return "/".join(sanitize_name(segment) for segment in segments)
