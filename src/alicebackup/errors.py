"""
Exception taxonomy for a backup run.

Every stage raises its own subclass of BackupError. The orchestrator catches
them once, logs the full diagnostic and reports only a generic message to the
operator.
"""


class BackupError(Exception):
    """Base class for all failures that abort a run."""
    stage = "run"

    def __init__(self, message, diagnostic=None):
        super().__init__(message)
        self.diagnostic = diagnostic

    def describe(self):
        if self.diagnostic:
            return f"{self} ({self.diagnostic.strip()})"
        return str(self)


class ConfigMissing(BackupError):
    """Raised when the configuration file is absent or incomplete."""
    stage = "config"


class PrivilegeError(BackupError):
    """Raised when the process does not run as root."""
    stage = "precondition"


class InvalidInput(BackupError):
    """Raised when a user-supplied field contains unsafe characters."""
    stage = "precondition"


class RunLockError(BackupError):
    """Raised when another run for the same machine holds the lock."""
    stage = "lock"


class StoreError(BackupError):
    """Raised when a snapshot marker is missing, corrupt or cannot be written."""
    stage = "snapshot"


class BuildError(BackupError):
    """Raised when archive creation fails."""
    stage = "archive"


class EncryptionError(BackupError):
    """Raised when encryption or decryption of an artifact fails."""
    stage = "encryption"


class TransferError(BackupError):
    """Raised when pushing artifacts to the remote host fails."""
    stage = "transfer"
