"""
Unit tests for archive creation (alicebackup/backup/archive.py).

tar is mocked for the failure paths; the integration tests at the bottom run GNU tar
and check that a differential archive only holds changes since the full backup.
"""

import time
import tarfile
import subprocess
from unittest.mock import patch

import pytest

from alicebackup.backup.archive import ArchiveBuilder, assemble_tar_cmd
from alicebackup.backup.snapshot import SnapshotStore
from alicebackup.errors import BuildError, StoreError
from conftest import SUNDAY, MONDAY, TUESDAY, requires_gnu_tar


@pytest.fixture
def store(local_dir):
    return SnapshotStore(local_dir)


@pytest.fixture
def builder(store):
    return ArchiveBuilder(store)


def option_value(cmd, option):
    prefix = f"--{option}="
    return next(arg[len(prefix):] for arg in cmd if arg.startswith(prefix))


def fake_tar(returncode=0, stderr=""):
    """Writes the --file and --listed-incremental outputs like tar would."""
    def _run(tar_cmd, **kwargs):
        with open(option_value(tar_cmd, "file"), "wb") as f:
            f.write(b"partial-or-complete archive")
        with open(option_value(tar_cmd, "listed-incremental"), "ab") as f:
            f.write(b"snapshot")
        return subprocess.CompletedProcess(tar_cmd, returncode, "", stderr)
    return _run


class TestAssembleTarCmd:

    def test_full_command(self, make_context, tmp_path):
        context = make_context(SUNDAY, excludes=["/data/cache"])
        cmd = assemble_tar_cmd(tmp_path / "a.tar.gz.partial", tmp_path / "m.snar", context, level0=True)

        assert cmd[:3] == ["tar", "--create", "--gzip"]
        assert f"--file={tmp_path / 'a.tar.gz.partial'}" in cmd
        assert f"--listed-incremental={tmp_path / 'm.snar'}" in cmd
        assert "--level=0" in cmd
        assert "--exclude=/data/cache" in cmd
        assert cmd[-1] == context.sources[0]

    def test_excludes_precede_sources(self, make_context, tmp_path):
        context = make_context(MONDAY, excludes=["/x"])
        cmd = assemble_tar_cmd(tmp_path / "a", tmp_path / "m", context)
        assert "--level=0" not in cmd
        assert cmd.index("--exclude=/x") < cmd.index(context.sources[0])


class TestBuildFull:

    @patch("alicebackup.backup.archive.subprocess")
    def test_success(self, mock_subprocess, builder, store, make_context, local_dir):
        mock_subprocess.run.side_effect = fake_tar()
        context = make_context(SUNDAY)

        archive = builder.build(context)

        assert archive == local_dir / "backup-full-host1-20251012_031500.tar.gz"
        assert archive.is_file()
        assert store.full_marker_path("host1").read_bytes() == b"snapshot"
        assert not list(local_dir.glob("*.partial"))

    @patch("alicebackup.backup.archive.subprocess")
    def test_marker_written_by_same_tar_invocation(self, mock_subprocess, builder, make_context):
        mock_subprocess.run.side_effect = fake_tar()
        builder.build(make_context(SUNDAY))

        assert mock_subprocess.run.call_count == 1
        tar_cmd = mock_subprocess.run.call_args[0][0]
        assert option_value(tar_cmd, "listed-incremental").endswith("backup-full-host1.snar.partial")

    @patch("alicebackup.backup.archive.subprocess")
    def test_failure_removes_partial_and_keeps_old_marker(self, mock_subprocess, builder, store, make_context, local_dir):
        store.full_marker_path("host1").write_bytes(b"previous full")
        mock_subprocess.run.side_effect = fake_tar(returncode=2, stderr="tar: /data: Cannot open")

        with pytest.raises(BuildError) as exc_info:
            builder.build(make_context(SUNDAY))

        assert "Cannot open" in exc_info.value.diagnostic
        assert sorted(p.name for p in local_dir.iterdir()) == ["backup-full-host1.snar"]
        assert store.full_marker_path("host1").read_bytes() == b"previous full"


class TestBuildDifferential:

    @patch("alicebackup.backup.archive.subprocess")
    def test_requires_full_backup(self, mock_subprocess, builder, make_context, local_dir):
        with pytest.raises(StoreError):
            builder.build(make_context(MONDAY))

        mock_subprocess.run.assert_not_called()
        assert not list(local_dir.iterdir())

    @patch("alicebackup.backup.archive.subprocess")
    def test_archives_against_forked_marker(self, mock_subprocess, builder, store, make_context, local_dir):
        store.full_marker_path("host1").write_bytes(b"full")
        mock_subprocess.run.side_effect = fake_tar()

        archive = builder.build(make_context(MONDAY))

        assert archive.name == "backup-diff-host1-20251013_031500.tar.gz"
        tar_cmd = mock_subprocess.run.call_args[0][0]
        assert option_value(tar_cmd, "listed-incremental") == str(local_dir / "backup-diff-host1-1.snar")
        assert store.full_marker_path("host1").read_bytes() == b"full"

    @patch("alicebackup.backup.archive.subprocess")
    def test_failure_removes_partial_archive(self, mock_subprocess, builder, store, make_context, local_dir):
        store.full_marker_path("host1").write_bytes(b"full")
        mock_subprocess.run.side_effect = fake_tar(returncode=2)

        with pytest.raises(BuildError):
            builder.build(make_context(MONDAY))

        assert not list(local_dir.glob("*.tar.gz*"))
        # differential markers are never deleted automatically
        assert (local_dir / "backup-diff-host1-1.snar").exists()

    @patch("alicebackup.backup.archive.subprocess")
    def test_indices_increase(self, mock_subprocess, builder, store, make_context, local_dir):
        store.full_marker_path("host1").write_bytes(b"full")
        mock_subprocess.run.side_effect = fake_tar()

        builder.build(make_context(MONDAY))
        builder.build(make_context(TUESDAY))

        assert sorted(p.name for p in local_dir.glob("backup-diff-host1-*.snar")) == [
            "backup-diff-host1-1.snar", "backup-diff-host1-2.snar"]


def archived_files(archive):
    with tarfile.open(archive, "r:gz") as tar:
        return [m.name for m in tar.getmembers() if m.isfile()]


@requires_gnu_tar
class TestWithGnuTar:

    def test_full_then_differential(self, builder, store, make_context, source_tree, local_dir):
        full = builder.build(make_context(SUNDAY))
        full_names = archived_files(full)
        assert any(n.endswith("data/a.txt") for n in full_names)
        assert any(n.endswith("data/cache/big.bin") for n in full_names)
        assert store.full_marker_path("host1").stat().st_size > 0

        time.sleep(1)
        (source_tree / "new.txt").write_text("added on monday\n")

        diff = builder.build(make_context(MONDAY))
        diff_names = archived_files(diff)
        assert any(n.endswith("data/new.txt") for n in diff_names)
        assert not any(n.endswith("data/a.txt") for n in diff_names)
        assert (local_dir / "backup-diff-host1-1.snar").exists()

    def test_excludes_are_honoured(self, builder, make_context, source_tree):
        full = builder.build(make_context(SUNDAY, excludes=[str(source_tree / "cache")]))
        assert not any("big.bin" in n for n in archived_files(full))

    def test_missing_source_fails(self, builder, local_dir, make_context, tmp_path):
        context = make_context(SUNDAY)
        context = type(context)(
            sources=(str(tmp_path / "missing"),), excludes=(), mode=context.mode,
            timestamp=context.timestamp, machine=context.machine)

        with pytest.raises(BuildError):
            builder.build(context)

        assert not list(local_dir.glob("*.tar.gz*"))
        assert not list(local_dir.glob("*.snar*"))
