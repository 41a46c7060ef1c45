"""Durable store for batches that could not be delivered yet.

One JSON file per pending batch, named by a decimal nanosecond timestamp
(``<time_ns>.json``). Files are written through a temporary ``.tmp`` name
and renamed into place, so a crash never leaves a half-written record with
the recognized extension.

Ordering is by numeric file stem, oldest first. The store assumes a single
writer process at a time.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir

from .exceptions import BatchStoreError
from .models import Batch


RECORD_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"

APP_NAME = "ruuvitag-upload"
APP_AUTHOR = "otimperi"

logger = logging.getLogger(__name__)


def default_data_dir() -> Path:
    """Per-user data directory for pending batches (not created here)."""
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


@dataclass(frozen=True)
class PendingEntry:
    """Handle of one persisted batch."""

    identifier: int
    path: Path


class BatchStore:
    """Ordered, append-only set of pending batches in one directory."""

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def list_pending(self) -> list[PendingEntry]:
        """List pending entries, oldest first.

        Only regular files named ``<decimal>.json`` are recognized; anything
        else in the directory is ignored.

        Returns:
            Entries sorted by identifier, then file name. Empty if the
            directory does not exist.

        Raises:
            BatchStoreError: On any other error accessing the directory.
        """
        try:
            children = list(self._directory.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise BatchStoreError(
                f"Failed to list pending batches in {self._directory}: {e}"
            ) from e

        entries = []
        for path in children:
            stem = path.stem
            if path.suffix != RECORD_SUFFIX or not (stem.isascii() and stem.isdecimal()):
                continue
            try:
                if not path.is_file():
                    continue
            except OSError as e:
                raise BatchStoreError(f"Failed to inspect {path}: {e}") from e
            entries.append(PendingEntry(identifier=int(stem), path=path))

        entries.sort(key=lambda entry: (entry.identifier, entry.path.name))
        return entries

    def persist(self, batch: Batch) -> PendingEntry:
        """Durably write ``batch`` as a new pending entry.

        The directory is created on first use. The identifier is the current
        time in nanoseconds, bumped past any existing entry so that a new
        record never replaces or sorts before an older one.

        Raises:
            BatchStoreError: If the record cannot be written.
        """
        try:
            self._directory.mkdir(parents=True, exist_ok=True)

            identifier = time.time_ns()
            existing = self.list_pending()
            if existing and existing[-1].identifier >= identifier:
                identifier = existing[-1].identifier + 1

            path = self._directory / f"{identifier}{RECORD_SUFFIX}"
            while path.exists():
                identifier += 1
                path = self._directory / f"{identifier}{RECORD_SUFFIX}"

            temp_path = path.with_suffix(TEMP_SUFFIX)
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(batch.to_json())
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, path)
            except OSError:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
                raise
        except OSError as e:
            raise BatchStoreError(
                f"Failed to cache batch in {self._directory}: {e}"
            ) from e

        logger.warning("Cached batch to %s", path)
        return PendingEntry(identifier=identifier, path=path)

    def load(self, entry: PendingEntry) -> Batch:
        """Read a pending entry back.

        Raises:
            BatchStoreError: If the file cannot be read or is not a batch.
        """
        try:
            with open(entry.path, "r", encoding="utf-8") as f:
                return Batch.from_wire(json.load(f))
        except OSError as e:
            raise BatchStoreError(f"Failed to read {entry.path}: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise BatchStoreError(f"Corrupt pending batch {entry.path}: {e}") from e

    def remove(self, entry: PendingEntry) -> None:
        """Delete a pending entry. Already-removed entries are ignored.

        Raises:
            BatchStoreError: If the file exists but cannot be deleted.
        """
        try:
            entry.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise BatchStoreError(f"Failed to remove {entry.path}: {e}") from e
        logger.info("Removed delivered batch %s", entry.path)
