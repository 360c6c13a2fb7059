#!/usr/bin/env python3

"""
main.py

Runs one backup cycle: a full backup on the configured weekday and a differential
backup on every other day, encrypted with gpg and pushed to the backup server
with rsync. Meant to be started daily by cron or a systemd timer, as root.
"""

import os
import sys

from alicebackup.log import logger, configure_logging
from alicebackup.globals import Globals
from alicebackup.errors import BackupError, PrivilegeError
from alicebackup.config import load_configuration
from alicebackup.context import RunContext
from alicebackup.parser import get_backup_arguments
from alicebackup.utils import check_root_privileges, check_system_dependencies
from alicebackup.wizard import collect_and_persist_configuration
from alicebackup.security.decryption import decrypt_archive
from alicebackup.backup.orchestrator import BackupOrchestrator


def report_failure(error, log_file):
	"""Log the full diagnostic, show the operator only a generic message."""
	detail = error.describe() if isinstance(error, BackupError) else str(error)
	logger.error(detail)
	print(Globals.GENERIC_ERROR_MESSAGE, file=sys.stderr)
	print(f"Log file: {log_file}", file=sys.stderr)
	return 1


def run(args):
	# 1. Preconditions
	try:
		check_root_privileges()
	except PrivilegeError as e:
		print(f"Error: {e}", file=sys.stderr)
		return 1

	if args["configure_me"]:
		configure_logging(Globals.DEFAULT_LOG_FILE, args["verbose"])
		try:
			collect_and_persist_configuration(args["config_file"])
		except (BackupError, OSError) as e:
			return report_failure(e, Globals.DEFAULT_LOG_FILE)
		return 0

	# 2. Configuration
	try:
		config = load_configuration(args["config_file"])
	except BackupError as e:
		configure_logging(Globals.DEFAULT_LOG_FILE, args["verbose"])
		return report_failure(e, Globals.DEFAULT_LOG_FILE)

	configure_logging(config.log_file, args["verbose"])

	if args["decrypt"]:
		try:
			output = decrypt_archive(args["decrypt"], config.passphrase)
		except BackupError as e:
			return report_failure(e, config.log_file)
		print(f"Decrypted to {output}.")
		return 0

	if not check_system_dependencies():
		print(Globals.GENERIC_ERROR_MESSAGE, file=sys.stderr)
		return 1

	# 3. Backup cycle
	try:
		context = RunContext.create(
			args["sources"], args["excludes"],
			full_backup_weekday=config.full_backup_weekday)
	except BackupError as e:
		return report_failure(e, config.log_file)

	result = BackupOrchestrator(config, context).run()
	if not result.succeeded:
		print(Globals.GENERIC_ERROR_MESSAGE, file=sys.stderr)
		print(f"Log file: {config.log_file}", file=sys.stderr)
		return 1

	print("Backup completed successfully.")
	return 0


def main(argv=None):
	os.umask(0o077)

	args = get_backup_arguments(argv)
	if args is None:
		return 1

	return run(args)


if __name__ == "__main__":
	sys.exit(main())
