"""
Shared pytest fixtures for aliceBackup tests.

This module provides fixtures for:
- Local backup directory and configuration
- A small source tree to archive
- Run contexts for a given machine and day
- Fake gpg / rsync runners for tests that must not touch real tools
"""

import os
import shutil
import logging
import subprocess
import tempfile
from datetime import datetime

import pytest

from alicebackup.log import logger
from alicebackup.config import Configuration
from alicebackup.context import RunContext

SUNDAY = datetime(2025, 10, 12, 3, 15, 0)
MONDAY = datetime(2025, 10, 13, 3, 15, 0)
TUESDAY = datetime(2025, 10, 14, 3, 15, 0)


def _has_gnu_tar():
    if shutil.which("tar") is None:
        return False
    result = subprocess.run(["tar", "--version"], capture_output=True, text=True)
    return "GNU tar" in result.stdout


requires_gnu_tar = pytest.mark.skipif(not _has_gnu_tar(), reason="GNU tar not installed")
requires_gpg = pytest.mark.skipif(shutil.which("gpg") is None, reason="gpg not installed")


@pytest.fixture(autouse=True)
def reset_logger():
    """Detach handlers added by configure_logging so tests do not share log files."""
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.INFO)


@pytest.fixture
def local_dir(tmp_path):
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def config(local_dir, tmp_path):
    return Configuration(
        ssh_user="alice",
        ssh_host="backup.example.org",
        ssh_port=2222,
        identity_file="/root/.ssh/id_rsa",
        passphrase="correct horse battery staple",
        local_dir=str(local_dir),
        remote_dir="/backupServer",
        log_file=str(tmp_path / "alicebackup.log"),
    )


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a source directory:
        data/
        ├── a.txt
        ├── b.log
        └── cache/
            └── big.bin
    """
    data = tmp_path / "data"
    (data / "cache").mkdir(parents=True)
    (data / "a.txt").write_text("alpha\n")
    (data / "b.log").write_text("bravo\n")
    (data / "cache" / "big.bin").write_bytes(os.urandom(1024))
    return data


@pytest.fixture
def make_context(source_tree):
    def _make(now=SUNDAY, machine="host1", excludes=()):
        return RunContext.create([str(source_tree)], excludes, now=now, machine=machine)
    return _make


def fake_run_gpg(gpg_cmd, passphrase):
    """Stands in for gpg: copies the input file to --output."""
    output = gpg_cmd[gpg_cmd.index("--output") + 1]
    shutil.copyfile(gpg_cmd[-1], output)
    return subprocess.CompletedProcess(gpg_cmd, 0, "", "")


def failing_run_gpg(gpg_cmd, passphrase):
    """Stands in for a gpg crash that leaves a truncated output file."""
    output = gpg_cmd[gpg_cmd.index("--output") + 1]
    with open(output, "wb") as f:
        f.write(b"\x8c\x0d")
    return subprocess.CompletedProcess(gpg_cmd, 2, "", "gpg: encryption failed: broken pipe")


@pytest.fixture
def gnupg_home(monkeypatch):
    """Isolated GNUPGHOME; kept short because gpg-agent socket paths are length limited."""
    home = tempfile.mkdtemp(prefix="gpg")
    os.chmod(home, 0o700)
    monkeypatch.setenv("GNUPGHOME", home)
    yield home
    if shutil.which("gpgconf"):
        subprocess.run(["gpgconf", "--kill", "gpg-agent"], capture_output=True)
    shutil.rmtree(home, ignore_errors=True)
