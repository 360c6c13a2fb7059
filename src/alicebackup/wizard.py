from alicebackup.log import logger
from alicebackup.globals import Globals
from alicebackup.errors import InvalidInput
from alicebackup.config import Configuration, validate_input, save_configuration
from alicebackup.utils import ask_value, ask_yes_no


def _ask_validated(prompt, field_name, default=None, secret=False):
	while True:
		value = ask_value(prompt, default, secret)
		try:
			return validate_input(value, field_name)
		except InvalidInput:
			print("Invalid input. Special characters are not allowed.")


def collect_and_persist_configuration(path_to_config=Globals.DEFAULT_CONFIG_FILE) -> Configuration:
	"""
	Ask for the server and encryption settings, confirm them and write the configuration file.

	Returns:
		Configuration: The saved configuration.
	"""
	logger.info("Starting configuration wizard.")

	while True:
		ssh_user = _ask_validated("SSH user for remote backup", "ssh_user")
		ssh_host = _ask_validated("IP or domain of your SSH server", "ssh_host")
		while True:
			ssh_port = _ask_validated("SSH port", "ssh_port", default=Globals.DEFAULT_SSH_PORT)
			if ssh_port.isdigit() and 1 <= int(ssh_port) <= 65535:
				break
			print("Please enter a port between 1 and 65535.")
		identity_file = _ask_validated("Full path to your SSH private key", "identity_file", default="/root/.ssh/id_rsa")
		passphrase = ask_value("Passphrase for encryption", secret=True)
		local_dir = _ask_validated("Local backup directory", "local_dir", default="/backup")
		remote_dir = _ask_validated("Remote backup directory", "remote_dir", default="/backupServer")

		print(f"\n  • Server:            {ssh_user}@{ssh_host}:{ssh_port}")
		print(f"  • SSH key:           {identity_file}")
		print(f"  • Local directory:   {local_dir}")
		print(f"  • Remote directory:  {remote_dir}")

		if ask_yes_no("\nAre all details correct? (y/n): "):
			break

	config = Configuration(
		ssh_user=ssh_user,
		ssh_host=ssh_host,
		ssh_port=int(ssh_port),
		identity_file=identity_file,
		passphrase=passphrase,
		local_dir=local_dir,
		remote_dir=remote_dir,
	)
	save_configuration(config, path_to_config)
	print(f"Configuration saved to {path_to_config}.")
	return config
