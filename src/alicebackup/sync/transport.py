import shlex
import subprocess

from pathlib import Path
from typing import List

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.config import Configuration
from alicebackup.context import archive_pattern
from alicebackup.errors import TransferError
from alicebackup.utils import assemble_base_ssh_cmd


def is_snapshot_marker(path) -> bool:
	return Path(path).name.endswith(Globals.SNAPSHOT_ENDING)


def assemble_rsync_cmd(config: Configuration, files: List[Path]) -> List[str]:
	"""
	Assemble the rsync command pushing the given files to the backup server.

	rsync writes into a temporary file on the server and renames it when done, so an
	interrupted transfer never replaces a good remote copy; --partial-dir lets the
	next attempt resume from what was already sent.

	Parameters:
		config (Configuration): Server, key, tuning options and bandwidth limit.
		files (list[Path]): Encrypted artifacts to send.

	Returns:
		list[str]: A list of rsync command components ready to be executed via subprocess.
	"""
	ssh_transport = f"ssh -p {config.ssh_port} -i {shlex.quote(config.identity_file)} -o BatchMode=yes"

	rsync_command = ["rsync"] + list(config.rsync_options)
	rsync_command += [
		"--partial-dir=.rsync-partial",
		f"--exclude=*{Globals.SNAPSHOT_ENDING}",
		f"--bwlimit={config.bandwidth_limit}",
		"-e", ssh_transport,
	]
	rsync_command += [str(f) for f in files]

	remote_dir = config.remote_dir.rstrip("/") + "/"
	rsync_command.append(f"{config.destination}:{remote_dir}")

	return rsync_command


class Transporter:
	"""
	Pushes encrypted artifacts to the backup server. Snapshot markers are local
	state and never leave the machine.
	"""

	def __init__(self, config: Configuration):
		self.config = config
		self.local_dir = Path(config.local_dir)

	def pending_artifacts(self, machine: str) -> List[Path]:
		"""
		Complete encrypted artifacts for this machine still in the local directory.

		Includes artifacts kept from earlier runs, so a failed transfer is resent by
		the next run; rsync skips files the server already holds.
		"""
		if not self.local_dir.is_dir():
			return []
		pattern = archive_pattern(machine)
		artifacts = []
		for entry in self.local_dir.iterdir():
			match = pattern.match(entry.name)
			if match and match.group("gpg") and entry.is_file():
				artifacts.append(entry)
		return sorted(artifacts)

	def ensure_remote_dir(self):
		"""
		Create the remote directory (rsync only creates the last path element).

		Raises:
			TransferError: If the ssh command fails.
		"""
		create_cmd = assemble_base_ssh_cmd(self.config)
		create_cmd += [f"mkdir -p {shlex.quote(self.config.remote_dir)}"]
		logger.debug(create_cmd)

		try:
			result = subprocess.run(create_cmd, capture_output=True, text=True)
		except OSError as e:
			raise TransferError("Failed to start ssh.", str(e))

		if result.returncode != 0:
			raise TransferError("Failed to create remote directory.", result.stderr)

		logger.debug(f"Remote directory {self.config.remote_dir} is ready.")

	def send(self, encrypted_archives: List[Path]) -> List[Path]:
		"""
		Send encrypted artifacts with rsync over ssh.

		Parameters:
			encrypted_archives (list[Path]): Artifacts to push; snapshot markers are dropped.

		Returns:
			list[Path]: The files handed to rsync.

		Raises:
			TransferError: If the transfer fails. Local artifacts are left untouched.
		"""
		files = []
		for artifact in encrypted_archives:
			artifact = Path(artifact)
			if is_snapshot_marker(artifact):
				logger.warning(f"Snapshot marker {artifact.name} excluded from transfer.")
				continue
			if not artifact.name.endswith(Globals.CIPHERTEXT_ENDING):
				raise TransferError(f"Refusing to transfer unencrypted file {artifact.name}.")
			if not artifact.is_file():
				raise TransferError(f"Artifact to transfer does not exist: {artifact.name}")
			files.append(artifact)

		if not files:
			raise TransferError("Nothing to transfer.")

		logger.info(f"Starting rsync transfer of {len(files)} file(s) to {self.config.ssh_host}.")
		self.ensure_remote_dir()

		rsync_cmd = assemble_rsync_cmd(self.config, files)
		logger.debug(rsync_cmd)

		try:
			result = subprocess.run(rsync_cmd, capture_output=True, text=True)
		except OSError as e:
			raise TransferError("Failed to start rsync.", str(e))

		if result.returncode != 0:
			logger.error(f"rsync exited with status {result.returncode}.")
			raise TransferError("Failed to transfer backup.", result.stderr)

		logger.info("Rsync transfer completed.")

		if self.config.delete_after_transfer:
			for artifact in files:
				artifact.unlink(missing_ok=True)
				logger.info(f"Local copy {artifact.name} removed after transfer.")

		return files
