"""
Install progress shared between the install worker and the poller.

One ``ProgressTracker`` is owned by the ``Installer``. The worker thread writes
to it, the GUI or CLI reads ``snapshot()``; every access goes through the same
lock, which also guards the single-install slot.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass


class InstallPhase(enum.Enum):
    IDLE = "idle"
    CLEANING = "cleaning"
    INSTALLING = "installing"


@dataclass(frozen=True)
class ProgressSnapshot:
    cleaning_count: int = 0
    cleaning_max: int = 0
    installed_count: int = 0
    installed_max: int = 0
    files_cleaned: tuple[str, ...] = ()
    files_copied: tuple[str, ...] = ()
    phase: InstallPhase = InstallPhase.IDLE

    @property
    def files_skipped(self) -> int:
        """Leaves counted as processed but not fully copied."""
        return max(0, self.installed_count - len(self.files_copied))

    def to_dict(self) -> dict:
        return {
            "cleaning_count": self.cleaning_count,
            "cleaning_max": self.cleaning_max,
            "installed_count": self.installed_count,
            "installed_max": self.installed_max,
            "files_cleaned": list(self.files_cleaned),
            "files_copied": list(self.files_copied),
            "phase": self.phase.value,
        }


class ProgressTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self):
        self._phase = InstallPhase.IDLE
        self._cleaning_count = 0
        self._cleaning_max = 0
        self._installed_count = 0
        self._installed_max = 0
        self._files_cleaned: list[str] = []
        self._files_copied: list[str] = []

    # ── Pipeline lifecycle ────────────────────────────────────────────

    def try_begin(self) -> bool:
        """Claim the install slot and zero every counter.

        Returns False, leaving the current run untouched, when a pipeline is
        already cleaning or installing.
        """
        with self._lock:
            if self._phase is not InstallPhase.IDLE:
                return False
            self._reset_locked()
            self._phase = InstallPhase.CLEANING
            return True

    def finish(self):
        """Release the install slot, keeping the final counters for polling."""
        with self._lock:
            self._phase = InstallPhase.IDLE

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._phase is not InstallPhase.IDLE

    # ── Cleaning ──────────────────────────────────────────────────────

    def begin_cleaning(self, total: int):
        with self._lock:
            self._phase = InstallPhase.CLEANING
            self._cleaning_max = total

    def record_cleaned(self, name: str):
        with self._lock:
            self._cleaning_count += 1
            self._files_cleaned.append(name)

    # ── Installing ────────────────────────────────────────────────────

    def begin_installing(self, total: int):
        with self._lock:
            self._phase = InstallPhase.INSTALLING
            self._installed_max = total

    def record_installed(self, name: str, completed: bool = True):
        with self._lock:
            self._installed_count += 1
            if completed:
                self._files_copied.append(name)

    # ── Polling ───────────────────────────────────────────────────────

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                cleaning_count=self._cleaning_count,
                cleaning_max=self._cleaning_max,
                installed_count=self._installed_count,
                installed_max=self._installed_max,
                files_cleaned=tuple(self._files_cleaned),
                files_copied=tuple(self._files_copied),
                phase=self._phase,
            )
