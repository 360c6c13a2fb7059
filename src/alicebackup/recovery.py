"""
Cleanup of artifacts left behind by a run that was killed mid-stage.

Runs under the run lock before a new archive is built:
- "*.partial" files (unfinished tar, gpg or marker output) are deleted;
- a plaintext archive whose ciphertext already exists is deleted;
- a plaintext archive without ciphertext is encrypted, which puts it in the
  set of artifacts the transfer stage sends.
"""

from pathlib import Path
from typing import List

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.context import archive_pattern, full_marker_name


def find_partial_files(local_dir: Path, machine: str) -> List[Path]:
    pattern = archive_pattern(machine)
    staging_marker = full_marker_name(machine) + Globals.PARTIAL_ENDING
    partials = []
    for entry in Path(local_dir).iterdir():
        if not entry.name.endswith(Globals.PARTIAL_ENDING):
            continue
        final_name = entry.name[:-len(Globals.PARTIAL_ENDING)]
        if entry.name == staging_marker or pattern.match(final_name):
            partials.append(entry)
    return sorted(partials)


def find_plaintext_archives(local_dir: Path, machine: str) -> List[Path]:
    pattern = archive_pattern(machine)
    archives = []
    for entry in Path(local_dir).iterdir():
        match = pattern.match(entry.name)
        if match and not match.group("gpg") and entry.is_file():
            archives.append(entry)
    return sorted(archives)


def recover_interrupted_run(local_dir, machine: str, encryptor) -> List[Path]:
    """
    Bring the local directory back to a consistent state.

    Parameters:
        local_dir: Local backup directory.
        machine (str): Machine whose artifacts are inspected.
        encryptor (Encryptor): Used to encrypt leftover complete plaintext archives.

    Returns:
        list[Path]: Ciphertexts produced from leftover archives.

    Raises:
        EncryptionError: If a leftover archive cannot be encrypted.
    """
    local_dir = Path(local_dir)
    if not local_dir.is_dir():
        return []

    for partial in find_partial_files(local_dir, machine):
        logger.warning(f"Removing unfinished file {partial.name} from an interrupted run.")
        partial.unlink(missing_ok=True)

    recovered = []
    for archive in find_plaintext_archives(local_dir, machine):
        ciphertext = archive.with_name(archive.name + Globals.CIPHERTEXT_ENDING)
        if ciphertext.is_file():
            logger.warning(f"Removing plaintext {archive.name}; its ciphertext already exists.")
            archive.unlink()
        else:
            logger.warning(f"Encrypting leftover plaintext {archive.name} from an interrupted run.")
            recovered.append(encryptor.encrypt(archive))

    return recovered
