import subprocess

from pathlib import Path
from typing import List

from alicebackup.globals import Globals
from alicebackup.log import logger
from alicebackup.errors import EncryptionError


def gpg_base_cmd() -> List[str]:
    """gpg flags shared by encryption and decryption; the passphrase is read from stdin."""
    return [
        "gpg", "--batch", "--yes", "--quiet",
        "--pinentry-mode", "loopback", "--no-symkey-cache",
        "--passphrase-fd", "0",
    ]


def run_gpg(gpg_cmd: List[str], passphrase: str) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(gpg_cmd, input=passphrase + "\n", capture_output=True, text=True)
    except OSError as e:
        raise EncryptionError("Failed to start gpg.", str(e))


class Encryptor:
    """
    Symmetric AES256 encryption of a finished archive.

    The ciphertext is written to "<archive>.gpg.partial" and renamed once gpg
    succeeds; only then is the plaintext removed. On failure the plaintext stays
    and no ciphertext file is left behind.
    """

    def __init__(self, passphrase: str, cipher_algo: str = Globals.CIPHER_ALGO):
        self.passphrase = passphrase
        self.cipher_algo = cipher_algo

    def encrypt(self, archive: Path) -> Path:
        """
        Encrypt an archive and remove its plaintext.

        Parameters:
            archive (Path): The archive returned by the ArchiveBuilder.

        Returns:
            Path: The encrypted artifact (archive name + ".gpg").

        Raises:
            EncryptionError: If the passphrase is empty, the archive is missing or empty,
                or gpg fails.
        """
        archive = Path(archive)
        if not self.passphrase:
            raise EncryptionError("Encryption passphrase is empty.")
        if not archive.is_file():
            raise EncryptionError(f"Archive to encrypt does not exist: {archive.name}")
        if archive.stat().st_size == 0:
            raise EncryptionError(f"Archive to encrypt is empty: {archive.name}")

        ciphertext = archive.with_name(archive.name + Globals.CIPHERTEXT_ENDING)
        partial = ciphertext.with_name(ciphertext.name + Globals.PARTIAL_ENDING)
        partial.unlink(missing_ok=True)

        logger.info(f"Encrypting backup file: {archive.name}")
        gpg_cmd = gpg_base_cmd() + [
            "--symmetric", "--cipher-algo", self.cipher_algo,
            "--output", str(partial),
            str(archive),
        ]

        try:
            result = run_gpg(gpg_cmd, self.passphrase)
        except EncryptionError:
            partial.unlink(missing_ok=True)
            raise

        if result.returncode != 0 or not partial.is_file() or partial.stat().st_size == 0:
            partial.unlink(missing_ok=True)
            logger.error(f"gpg exited with status {result.returncode}.")
            raise EncryptionError(f"Failed to encrypt {archive.name}.", result.stderr)

        partial.replace(ciphertext)
        archive.unlink()

        logger.info(f"Backup file encrypted: {ciphertext.name}")
        return ciphertext
