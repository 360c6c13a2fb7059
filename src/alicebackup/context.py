import re
import socket

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Tuple

from alicebackup.globals import Globals
from alicebackup.config import validate_input


class BackupMode(Enum):
    FULL = "full"
    DIFFERENTIAL = "diff"


def select_mode(run_date: date, full_backup_weekday: int = Globals.FULL_BACKUP_WEEKDAY) -> BackupMode:
    """
    Full backup on the configured ISO weekday (default Sunday = 7), differential otherwise.
    Depends only on the calendar day, never on the time of day.
    """
    if run_date.isoweekday() == full_backup_weekday:
        return BackupMode.FULL
    return BackupMode.DIFFERENTIAL


def machine_identity() -> str:
    """Short hostname, equivalent to `hostname -s`."""
    return socket.gethostname().split(".")[0]


def archive_name(mode: BackupMode, machine: str, timestamp: str) -> str:
    return f"backup-{mode.value}-{machine}-{timestamp}{Globals.ARCHIVE_ENDING}"


def archive_pattern(machine: str):
    """Matches plaintext archive names of this machine; group "mode", optional "gpg" suffix."""
    return re.compile(
        rf"^backup-(?P<mode>full|diff)-{re.escape(machine)}-\d{{8}}_\d{{6}}"
        rf"{re.escape(Globals.ARCHIVE_ENDING)}(?P<gpg>{re.escape(Globals.CIPHERTEXT_ENDING)})?$")


def encrypted_name(archive: str) -> str:
    return f"{archive}{Globals.CIPHERTEXT_ENDING}"


def full_marker_name(machine: str) -> str:
    return f"backup-full-{machine}{Globals.SNAPSHOT_ENDING}"


def differential_marker_name(machine: str, index: int) -> str:
    return f"backup-diff-{machine}-{index}{Globals.SNAPSHOT_ENDING}"


@dataclass(frozen=True)
class RunContext:
    """
    Per-invocation state, built once before the first stage and read-only afterwards.

    Attributes:
        sources (Tuple[str, ...]): Paths to back up.
        excludes (Tuple[str, ...]): Paths handed to tar as --exclude.
        mode (BackupMode): Full or differential.
        timestamp (str): Run timestamp used in archive names.
        machine (str): Machine identity used in all artifact names.
    """
    sources: Tuple[str, ...]
    excludes: Tuple[str, ...]
    mode: BackupMode
    timestamp: str
    machine: str

    @property
    def archive_name(self) -> str:
        return archive_name(self.mode, self.machine, self.timestamp)

    @property
    def encrypted_name(self) -> str:
        return encrypted_name(self.archive_name)

    @classmethod
    def create(cls, sources, excludes=(), now: datetime = None, machine: str = None,
               full_backup_weekday: int = Globals.FULL_BACKUP_WEEKDAY) -> "RunContext":
        """
        Resolve mode, timestamp and machine identity for a run.

        Raises:
            InvalidInput: If a source, exclude or the machine name contains unsafe characters.
        """
        now = now or datetime.now()
        machine = machine or machine_identity()

        for source in sources:
            validate_input(source, "source")
        for exclude in excludes:
            validate_input(exclude, "exclude")
        validate_input(machine, "machine")

        return cls(
            sources=tuple(sources),
            excludes=tuple(excludes),
            mode=select_mode(now.date(), full_backup_weekday),
            timestamp=now.strftime(Globals.TIMESTAMP_FORMAT),
            machine=machine,
        )
