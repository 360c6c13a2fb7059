class Globals:
    CIPHERTEXT_ENDING = ".gpg"
    ARCHIVE_ENDING = ".tar.gz"
    SNAPSHOT_ENDING = ".snar"
    PARTIAL_ENDING = ".partial"
    TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
    DEFAULT_CONFIG_FILE = "/etc/alicebackup/alicebackup.yaml"
    DEFAULT_LOG_FILE = "/var/log/alicebackup.log"
    LOG_MAX_BYTES = 10485760  # 10MB
    DEFAULT_SSH_PORT = 22
    DEFAULT_BANDWIDTH_LIMIT = 10240  # KB/s
    DEFAULT_RSYNC_OPTIONS = ["--archive", "--verbose", "--human-readable", "--compress"]
    FULL_BACKUP_WEEKDAY = 7  # ISO weekday, Sunday
    CIPHER_ALGO = "AES256"
    UNSAFE_CHARACTERS = ";&|$`\n"
    REQUIRED_SYSTEM_BINS = ["tar", "gpg", "rsync", "ssh"]
    GENERIC_ERROR_MESSAGE = "Error: An issue occurred. Please check the logs for details."
