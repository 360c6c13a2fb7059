import argparse

from alicebackup.globals import Globals


def _split_paths(values):
	"""Flatten repeated and comma-joined path options into one list."""
	paths = []
	for value in values or []:
		paths += [p.strip() for p in value.split(",") if p.strip()]
	return paths


def build_parser():
	parser = argparse.ArgumentParser(
		prog="alicebackup",
		description="Weekly full / daily differential backups, encrypted with gpg and pushed with rsync.")
	parser.add_argument("--source", action="append", metavar="PATH", help="Path to back up (repeatable or comma-separated)")
	parser.add_argument("--exclude-this", action="append", metavar="PATH", help="Path to exclude (repeatable or comma-separated)")
	parser.add_argument("--configure-me", action="store_true", help="Run the interactive configuration wizard.")
	parser.add_argument("--config", type=str, default=Globals.DEFAULT_CONFIG_FILE, help="Path to the configuration YAML file")
	parser.add_argument("--decrypt", type=str, metavar="FILE", help="Decrypt an encrypted backup artifact and exit.")
	parser.add_argument("--verbose", action="store_true", help="Also log to the console.")
	return parser


def get_backup_arguments(argv=None):
	"""
	Parses and validates command-line arguments for aliceBackup.

	Returns:
		dict: A dictionary of parsed arguments, or None if a required argument is missing
		      (usage has been printed in that case).
	"""
	parser = build_parser()
	args = parser.parse_args(argv)

	sources = _split_paths(args.source)
	excludes = _split_paths(args.exclude_this)

	if not args.configure_me and not args.decrypt and not sources:
		parser.print_usage()
		print(f"{parser.prog}: error: --source is required")
		return None

	return {
		"sources": sources,
		"excludes": excludes,
		"configure_me": args.configure_me,
		"decrypt": args.decrypt,
		"config_file": args.config,
		"verbose": args.verbose}
