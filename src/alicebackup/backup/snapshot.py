"""
Snapshot marker storage.

tar's --listed-incremental files ("markers") live next to the archives in the
local backup directory. There is one full marker per machine and a numbered
differential marker per differential run. Every differential marker is a copy
of the full marker taken at creation time, so each differential archive holds
the changes since the last full backup.
"""

import os
import re
import shutil

from pathlib import Path
from typing import List

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.errors import StoreError
from alicebackup.context import full_marker_name, differential_marker_name


class SnapshotStore:

    def __init__(self, local_dir):
        self.local_dir = Path(local_dir)

    def full_marker_path(self, machine: str) -> Path:
        """Path of the full marker; the file only exists after a successful full run."""
        return self.local_dir / full_marker_name(machine)

    def differential_marker_path(self, machine: str, index: int) -> Path:
        return self.local_dir / differential_marker_name(machine, index)

    def _differential_pattern(self, machine: str):
        return re.compile(rf"^backup-diff-{re.escape(machine)}-(\d+){re.escape(Globals.SNAPSHOT_ENDING)}$")

    def differential_indices(self, machine: str) -> List[int]:
        if not self.local_dir.is_dir():
            return []
        pattern = self._differential_pattern(machine)
        indices = []
        for entry in self.local_dir.iterdir():
            match = pattern.match(entry.name)
            if match:
                indices.append(int(match.group(1)))
        return sorted(indices)

    def differential_markers(self, machine: str) -> List[Path]:
        return [self.differential_marker_path(machine, i) for i in self.differential_indices(machine)]

    def next_differential_index(self, machine: str) -> int:
        """
        Index for the next differential marker.

        Equal to the number of existing markers plus one as long as none was removed
        by hand; taking the highest index guarantees an index is never reused.
        """
        indices = self.differential_indices(machine)
        return (indices[-1] if indices else 0) + 1

    def require_full_marker(self, machine: str) -> Path:
        """
        Raises:
            StoreError: If no usable full marker exists (no full backup has completed yet).
        """
        full_marker = self.full_marker_path(machine)
        if not full_marker.is_file():
            raise StoreError(
                f"No full snapshot marker for \"{machine}\": a full backup must complete before a differential one.",
                str(full_marker))
        if full_marker.stat().st_size == 0:
            raise StoreError(f"Full snapshot marker for \"{machine}\" is empty.", str(full_marker))
        return full_marker

    def fork_differential(self, machine: str, index: int) -> Path:
        """
        Copy the full marker to the differential marker with the given index.

        Returns:
            Path: The new differential marker.

        Raises:
            StoreError: If the full marker is missing or empty, the target marker already
                exists, or the copy fails.
        """
        full_marker = self.require_full_marker(machine)
        diff_marker = self.differential_marker_path(machine, index)

        try:
            with open(full_marker, "rb") as src, open(diff_marker, "xb") as dst:
                shutil.copyfileobj(src, dst)
            shutil.copystat(full_marker, diff_marker)
        except FileExistsError:
            raise StoreError(f"Differential marker {diff_marker.name} already exists.")
        except OSError as e:
            diff_marker.unlink(missing_ok=True)
            raise StoreError(f"Failed to create differential marker {diff_marker.name}.", str(e))

        logger.info(f"Differential marker {diff_marker.name} forked from {full_marker.name}.")
        return diff_marker

    def staging_full_marker(self, machine: str) -> Path:
        """Scratch path tar writes the new full marker to before it is committed."""
        full_marker = self.full_marker_path(machine)
        return full_marker.with_name(full_marker.name + Globals.PARTIAL_ENDING)

    def commit_full_marker(self, staging: Path, machine: str) -> Path:
        """
        Atomically replace the full marker with a freshly written one.

        Raises:
            StoreError: If the staged marker is missing or cannot be moved into place.
        """
        full_marker = self.full_marker_path(machine)
        try:
            os.replace(staging, full_marker)
        except OSError as e:
            raise StoreError(f"Failed to commit full marker {full_marker.name}.", str(e))

        logger.info(f"Full marker {full_marker.name} updated.")
        return full_marker
