import os
import yaml

from dataclasses import dataclass, field
from typing import Tuple

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.errors import ConfigMissing, InvalidInput


@dataclass(frozen=True)
class Configuration:
    """
    Settings loaded once at process start and never modified during a run.

    Attributes:
        ssh_user (str): User on the backup server.
        ssh_host (str): IP or domain of the backup server.
        ssh_port (int): SSH port of the backup server.
        identity_file (str): Private key used for ssh/rsync.
        passphrase (str): Symmetric passphrase for gpg.
        local_dir (str): Directory holding archives and snapshot markers.
        remote_dir (str): Directory on the server receiving encrypted archives.
        rsync_options (Tuple[str, ...]): Extra rsync flags.
        bandwidth_limit (int): rsync --bwlimit in KB/s.
        delete_after_transfer (bool): Remove local ciphertext once pushed.
        full_backup_weekday (int): ISO weekday (1=Monday .. 7=Sunday) for full backups.
        log_file (str): Path of the run log.
    """
    ssh_user: str
    ssh_host: str
    identity_file: str
    passphrase: str = field(repr=False)
    local_dir: str = "/backup"
    remote_dir: str = "/backupServer"
    ssh_port: int = Globals.DEFAULT_SSH_PORT
    rsync_options: Tuple[str, ...] = tuple(Globals.DEFAULT_RSYNC_OPTIONS)
    bandwidth_limit: int = Globals.DEFAULT_BANDWIDTH_LIMIT
    delete_after_transfer: bool = False
    full_backup_weekday: int = Globals.FULL_BACKUP_WEEKDAY
    log_file: str = Globals.DEFAULT_LOG_FILE

    def __post_init__(self):
        object.__setattr__(self, "rsync_options", tuple(self.rsync_options))

    @property
    def destination(self) -> str:
        return f"{self.ssh_user}@{self.ssh_host}"

    def validate(self):
        """
        Reject values that could be abused once they reach a command line.

        The passphrase is exempt because it is only ever written to gpg's stdin.

        Raises:
            InvalidInput: If any field contains an unsafe character, or an ssh
                argument starts with "-".
        """
        for name in ("ssh_user", "ssh_host", "identity_file", "local_dir", "remote_dir", "log_file"):
            validate_input(getattr(self, name), name)
        # these end up as ssh/rsync arguments and must not parse as options
        for name in ("ssh_user", "ssh_host", "identity_file"):
            if getattr(self, name).startswith("-"):
                logger.error(f"Invalid input detected in field \"{name}\".")
                raise InvalidInput(f"Invalid input in \"{name}\": must not start with \"-\".")
        for option in self.rsync_options:
            validate_input(option, "rsync_options")

        if not 1 <= self.ssh_port <= 65535:
            raise InvalidInput(f"Invalid SSH port: {self.ssh_port}")
        if not 1 <= self.full_backup_weekday <= 7:
            raise InvalidInput(f"Invalid full backup weekday: {self.full_backup_weekday}")
        if self.bandwidth_limit <= 0:
            raise InvalidInput(f"Invalid bandwidth limit: {self.bandwidth_limit}")
        return self

    def to_dict(self) -> dict:
        return {
            "ssh": {
                "user": self.ssh_user,
                "host": self.ssh_host,
                "port": self.ssh_port,
                "identity_file": self.identity_file,
            },
            "encryption": {"passphrase": self.passphrase},
            "directories": {"local": self.local_dir, "remote": self.remote_dir},
            "transfer": {
                "rsync_options": list(self.rsync_options),
                "bandwidth_limit": self.bandwidth_limit,
                "delete_after_transfer": self.delete_after_transfer,
            },
            "schedule": {"full_backup_weekday": self.full_backup_weekday},
            "log_file": self.log_file,
        }


def validate_input(value, field_name="input"):
	"""
	Reject user-supplied values containing shell metacharacters.

	Raises:
		InvalidInput: If the value contains any of Globals.UNSAFE_CHARACTERS.
	"""
	if value is None:
		return value
	text = str(value)
	if any(c in text for c in Globals.UNSAFE_CHARACTERS):
		logger.error(f"Invalid input detected in field \"{field_name}\".")
		raise InvalidInput(f"Invalid input in \"{field_name}\": special characters are not allowed.")
	return value


def _require(section, key, section_name):
	value = section.get(key)
	if value is None or value == "":
		raise ConfigMissing(f"Missing required setting \"{section_name}.{key}\".")
	return value


def configuration_from_dict(data: dict) -> Configuration:
	"""
	Build a Configuration from the parsed YAML mapping.

	Raises:
		ConfigMissing: If a required setting is absent.
		InvalidInput: If a value is malformed or contains unsafe characters.
	"""
	if not isinstance(data, dict):
		raise ConfigMissing("Configuration file is empty or malformed.")

	ssh = data.get("ssh") or {}
	encryption = data.get("encryption") or {}
	directories = data.get("directories") or {}
	transfer = data.get("transfer") or {}
	schedule = data.get("schedule") or {}

	rsync_options = transfer.get("rsync_options", Globals.DEFAULT_RSYNC_OPTIONS)
	if isinstance(rsync_options, str):
		rsync_options = rsync_options.split()

	try:
		config = Configuration(
			ssh_user=str(_require(ssh, "user", "ssh")),
			ssh_host=str(_require(ssh, "host", "ssh")),
			ssh_port=int(ssh.get("port") or Globals.DEFAULT_SSH_PORT),
			identity_file=str(_require(ssh, "identity_file", "ssh")),
			passphrase=str(_require(encryption, "passphrase", "encryption")),
			local_dir=str(directories.get("local", "/backup")),
			remote_dir=str(directories.get("remote", "/backupServer")),
			rsync_options=tuple(str(o) for o in rsync_options),
			bandwidth_limit=int(transfer.get("bandwidth_limit", Globals.DEFAULT_BANDWIDTH_LIMIT)),
			delete_after_transfer=bool(transfer.get("delete_after_transfer", False)),
			full_backup_weekday=int(schedule.get("full_backup_weekday", Globals.FULL_BACKUP_WEEKDAY)),
			log_file=str(data.get("log_file", Globals.DEFAULT_LOG_FILE)),
		)
	except (TypeError, ValueError) as e:
		raise InvalidInput(f"Malformed configuration value: {e}")

	return config.validate()


def load_configuration(path_to_config=Globals.DEFAULT_CONFIG_FILE) -> Configuration:
	"""
	Parses the YAML configuration file.

	Returns:
		Configuration: The validated, immutable configuration.

	Raises:
		ConfigMissing: If the file does not exist or lacks required settings.
		InvalidInput: If a field contains unsafe characters.
	"""
	try:
		with open(path_to_config) as f:
			data = yaml.safe_load(f)
	except FileNotFoundError:
		raise ConfigMissing(f"Configuration file \"{path_to_config}\" not found. Please run --configure-me first.")
	except yaml.YAMLError as e:
		raise ConfigMissing(f"Configuration file \"{path_to_config}\" is not valid YAML.", str(e))

	config = configuration_from_dict(data)
	logger.debug(f"Configuration loaded from {path_to_config} (server {config.ssh_host}:{config.ssh_port}).")
	return config


def save_configuration(config: Configuration, path_to_config=Globals.DEFAULT_CONFIG_FILE):
	"""
	Write the configuration as YAML, readable by root only.
	"""
	config.validate()
	config_dir = os.path.dirname(path_to_config)
	if config_dir:
		os.makedirs(config_dir, mode=0o700, exist_ok=True)

	fd = os.open(path_to_config, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o600)
	with os.fdopen(fd, "w") as f:
		f.write("# aliceBackup configuration\n")
		yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
	os.chmod(path_to_config, 0o600)

	logger.info(f"Configuration saved to {path_to_config}.")
	return path_to_config
