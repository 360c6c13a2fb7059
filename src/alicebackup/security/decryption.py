from pathlib import Path

from alicebackup.globals import Globals
from alicebackup.log import logger
from alicebackup.errors import EncryptionError
from alicebackup.security.encryption import gpg_base_cmd, run_gpg


def decrypt_archive(ciphertext: Path, passphrase: str, output: Path = None) -> Path:
    """
    Decrypts a gpg-encrypted backup artifact.

    Parameters:
        ciphertext (Path): Path to the ".gpg" file.
        passphrase (str): Symmetric passphrase used at encryption time.
        output (Path): Destination of the plaintext; defaults to the ciphertext path
                       without its ".gpg" suffix.

    Returns:
        Path: The decrypted archive.

    Raises:
        EncryptionError: If the ciphertext is missing, the passphrase is wrong or gpg fails.
                         No output file is left behind in that case.

    The ciphertext is kept; decrypting is a read-only operation on the backup set.
    """
    ciphertext = Path(ciphertext)
    if not passphrase:
        raise EncryptionError("Decryption passphrase is empty.")
    if not ciphertext.is_file():
        raise EncryptionError(f"Ciphertext does not exist: {ciphertext}")

    if output is None:
        if ciphertext.suffix != Globals.CIPHERTEXT_ENDING:
            raise EncryptionError(f"Not a {Globals.CIPHERTEXT_ENDING} file: {ciphertext.name}")
        output = ciphertext.with_suffix("")
    output = Path(output)
    partial = output.with_name(output.name + Globals.PARTIAL_ENDING)
    partial.unlink(missing_ok=True)

    gpg_cmd = gpg_base_cmd() + ["--decrypt", "--output", str(partial), str(ciphertext)]
    try:
        result = run_gpg(gpg_cmd, passphrase)
    except EncryptionError:
        partial.unlink(missing_ok=True)
        raise

    if result.returncode != 0:
        partial.unlink(missing_ok=True)
        logger.error(f"Failed to decrypt \"{ciphertext.name}\" (gpg status {result.returncode}).")
        raise EncryptionError(f"Failed to decrypt {ciphertext.name}.", result.stderr)

    partial.replace(output)
    logger.info(f"Successfully decrypted: {ciphertext.name}")
    return output
