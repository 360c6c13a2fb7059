import os
import shutil
import getpass

from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.errors import PrivilegeError


def check_system_dependencies():
    """
    Checks whether all required system binaries are available in the system's PATH.

    Returns:
        bool: True if all required binaries are found, False otherwise.
    """
    for current_bin in Globals.REQUIRED_SYSTEM_BINS:
        path = shutil.which(current_bin)
        if path is None:
            logger.error(f"aliceBackup requires {current_bin}. Please install it on your system.")
            return False
    return True


def check_root_privileges():
    """
    Raises:
        PrivilegeError: If the effective user is not root.
    """
    if os.geteuid() != 0:
        raise PrivilegeError("This program must be run as root.")


def ask_yes_no(prompt):
	"""
    Prompt the user with a yes/no question and return their response as a boolean

    Parameters:
    prompt (str): The question to display to the user

    Returns:
        bool: True if the user answers 'y' or 'yes', False if the 'n' or 'no'

	The function will repeatedly prompt until a valid response is given.
    """
	while True:
		answer = input(prompt).strip().lower()
		if answer == "y" or answer == "yes":
			return True
		elif answer == "n" or answer == "no":
			return False
		else:
			print("Please answer 'y', 'yes', 'n', or 'no'.")


def ask_value(prompt, default=None, secret=False):
	"""
	Prompt until a non-empty value is entered; an empty answer selects the default if one exists.
	"""
	suffix = f" [{default}]" if default is not None else ""
	while True:
		if secret:
			answer = getpass.getpass(f"{prompt}{suffix}: ")
		else:
			answer = input(f"{prompt}{suffix}: ").strip()
		if answer:
			return answer
		if default is not None:
			return str(default)
		print("A value is required.")


def assemble_base_ssh_cmd(config):
	"""
	Assemble the base SSH command for the configured backup server.

	Args:
		config: Configuration with the SSH connection details.

	Returns:
		A list representing the SSH command
		(e.g., ['ssh', '-p', '22', '-i', '/root/.ssh/id_rsa', 'user@host']).
	"""
	ssh_cmd = ["ssh", "-p", str(config.ssh_port)]
	if config.identity_file:
		ssh_cmd += ["-i", config.identity_file]
	ssh_cmd += ["-o", "BatchMode=yes"]
	ssh_cmd.append(config.destination)

	return ssh_cmd
