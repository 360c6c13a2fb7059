"""
Backup orchestrator - runs one backup cycle as a state machine.

Workflow:
1. Acquire the per-machine run lock
2. Clean up after an interrupted earlier run
3. Select the backup mode (full on the configured weekday, differential otherwise)
4. Create the archive
5. Encrypt it, removing the plaintext
6. Transfer all pending encrypted artifacts

IDLE -> MODE_SELECTED -> ARCHIVED -> ENCRYPTED -> TRANSFERRED -> DONE, with
FAILED(stage, cause) reachable from every state. The first failure ends the run;
there is no automatic retry, the next scheduled run is the retry.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.config import Configuration
from alicebackup.context import RunContext
from alicebackup.errors import BackupError
from alicebackup.lock import RunLock
from alicebackup.recovery import recover_interrupted_run
from alicebackup.backup.snapshot import SnapshotStore
from alicebackup.backup.archive import ArchiveBuilder
from alicebackup.security.encryption import Encryptor
from alicebackup.sync.transport import Transporter


class BackupState(Enum):
    IDLE = "idle"
    MODE_SELECTED = "mode_selected"
    ARCHIVED = "archived"
    ENCRYPTED = "encrypted"
    TRANSFERRED = "transferred"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    state: BackupState
    failed_stage: Optional[str] = None
    cause: Optional[BaseException] = None
    archive: Optional[Path] = None
    encrypted_archive: Optional[Path] = None
    transferred: List[Path] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == BackupState.DONE


class BackupOrchestrator:
    """
    Runs ArchiveBuilder, Encryptor and Transporter in order for one RunContext.

    Components can be injected; by default they are built from the configuration.
    """

    def __init__(self, config: Configuration, context: RunContext,
                 store: SnapshotStore = None, builder: ArchiveBuilder = None,
                 encryptor: Encryptor = None, transporter: Transporter = None):
        self.config = config
        self.context = context
        self.store = store or SnapshotStore(config.local_dir)
        self.builder = builder or ArchiveBuilder(self.store)
        self.encryptor = encryptor or Encryptor(config.passphrase)
        self.transporter = transporter or Transporter(config)
        self.lock = RunLock(config.local_dir, context.machine)

        self.state = BackupState.IDLE
        self.stage = None
        self.result = RunResult(state=self.state)

    def run(self) -> RunResult:
        """
        Execute the backup cycle.

        Returns:
            RunResult: Final state; on failure it names the stage and carries the cause.
        """
        logger.info(
            f"Backup run started for {self.context.machine} "
            f"(sources: {', '.join(self.context.sources)}).")

        try:
            self.lock.acquire()
        except (BackupError, OSError) as e:
            self.stage = "lock"
            self._fail(e)
            self.result.state = self.state
            return self.result

        try:
            self._execute_workflow()
        except (BackupError, OSError) as e:
            self._fail(e)
        finally:
            self.lock.release()

        self.result.state = self.state
        return self.result

    def _execute_workflow(self):
        self.stage = "recovery"
        recover_interrupted_run(self.config.local_dir, self.context.machine, self.encryptor)

        self.stage = "mode selection"
        self._transition(BackupState.MODE_SELECTED)
        logger.info(f"Backup mode: {self.context.mode.name.lower()}.")

        self.stage = "archive"
        self.result.archive = self.builder.build(self.context)
        self._transition(BackupState.ARCHIVED)

        self.stage = "encryption"
        self.result.encrypted_archive = self.encryptor.encrypt(self.result.archive)
        self._transition(BackupState.ENCRYPTED)

        self.stage = "transfer"
        pending = self.transporter.pending_artifacts(self.context.machine)
        if self.result.encrypted_archive not in pending:
            pending.append(self.result.encrypted_archive)
        self.result.transferred = self.transporter.send(pending)
        self._transition(BackupState.TRANSFERRED)

        self.stage = None
        self._transition(BackupState.DONE)
        logger.info("Backup process completed successfully.")

    def _transition(self, new_state: BackupState):
        logger.debug(f"State {self.state.name} -> {new_state.name}")
        self.state = new_state

    def _fail(self, error):
        stage = self.stage or getattr(error, "stage", "run")
        detail = error.describe() if isinstance(error, BackupError) else str(error)
        logger.error(f"Backup failed during {stage} (state {self.state.name}): {detail}")

        if self.lock.locked:
            self._discard_partial_files()

        self.state = BackupState.FAILED
        self.result.failed_stage = stage
        self.result.cause = error

    def _discard_partial_files(self):
        """Remove unfinished output of this run so no truncated file survives the failure."""
        local_dir = Path(self.config.local_dir)
        candidates = [
            local_dir / (self.context.archive_name + Globals.PARTIAL_ENDING),
            local_dir / (self.context.encrypted_name + Globals.PARTIAL_ENDING),
            self.store.staging_full_marker(self.context.machine),
        ]
        for partial in candidates:
            if partial.exists():
                logger.warning(f"Removing unfinished file {partial.name}.")
                partial.unlink(missing_ok=True)
