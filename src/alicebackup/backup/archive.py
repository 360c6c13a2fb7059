import os
import subprocess

from pathlib import Path
from typing import List

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.errors import BuildError
from alicebackup.context import BackupMode, RunContext
from alicebackup.backup.snapshot import SnapshotStore


def assemble_tar_cmd(archive: Path, marker: Path, context: RunContext, level0: bool = False) -> List[str]:
    """
    Build the GNU tar command for a full (level 0) or differential archive.

    Parameters:
        archive (Path): File tar writes the compressed archive to.
        marker (Path): Snapshot file given to --listed-incremental.
        context (RunContext): Provides sources and excludes.
        level0 (bool): Force a level 0 dump, resetting the marker.
    """
    tar_cmd = [
        "tar", "--create", "--gzip",
        f"--file={archive}",
        f"--listed-incremental={marker}",
    ]
    if level0:
        tar_cmd.append("--level=0")
    tar_cmd += [f"--exclude={ex}" for ex in context.excludes]
    tar_cmd += list(context.sources)
    return tar_cmd


class ArchiveBuilder:
    """
    Creates one full or differential archive per run in the local backup directory.

    tar writes to "<archive>.partial"; the file only gets its final name once tar
    exits with status 0, so a stale or truncated archive is never mistaken for a
    complete one.
    """

    def __init__(self, store: SnapshotStore):
        self.store = store
        self.local_dir = store.local_dir

    def build(self, context: RunContext) -> Path:
        if context.mode == BackupMode.FULL:
            return self.build_full(context)
        return self.build_differential(context)

    def build_full(self, context: RunContext) -> Path:
        """
        Archive the sources and (re)initialize the full marker in the same tar invocation.

        Returns:
            Path: The completed archive.

        Raises:
            BuildError: If tar fails; neither the partial archive nor the new marker is kept.
            StoreError: If the new marker cannot be committed.
        """
        logger.info("Starting full backup.")
        staging = self.store.staging_full_marker(context.machine)
        staging.unlink(missing_ok=True)

        try:
            archive = self._run_tar(context, staging, level0=True)
        except BuildError:
            staging.unlink(missing_ok=True)
            raise

        self.store.commit_full_marker(staging, context.machine)
        logger.info(f"Full backup completed: {archive.name}")
        return archive

    def build_differential(self, context: RunContext) -> Path:
        """
        Fork the full marker to the next differential index and archive against the fork.

        Returns:
            Path: The completed archive.

        Raises:
            StoreError: If no full backup exists yet or the marker cannot be forked.
            BuildError: If tar fails.
        """
        logger.info("Starting differential backup.")
        self.store.require_full_marker(context.machine)

        index = self.store.next_differential_index(context.machine)
        marker = self.store.fork_differential(context.machine, index)

        archive = self._run_tar(context, marker)
        logger.info(f"Differential backup completed: {archive.name} (marker {marker.name})")
        return archive

    def _run_tar(self, context: RunContext, marker: Path, level0: bool = False) -> Path:
        if not context.sources:
            raise BuildError("No source paths provided.")

        self.local_dir.mkdir(parents=True, exist_ok=True)
        archive = self.local_dir / context.archive_name
        partial = archive.with_name(archive.name + Globals.PARTIAL_ENDING)

        tar_cmd = assemble_tar_cmd(partial, marker, context, level0)
        logger.debug(tar_cmd)

        try:
            result = subprocess.run(tar_cmd, capture_output=True, text=True)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise BuildError("Failed to start tar.", str(e))

        if result.returncode != 0:
            partial.unlink(missing_ok=True)
            logger.error(f"tar exited with status {result.returncode}.")
            raise BuildError(f"Failed to create archive {archive.name}.", result.stderr)

        os.replace(partial, archive)
        return archive
