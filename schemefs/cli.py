#!/usr/bin/env python3
"""Command-line interface for SchemeFS.

This module provides the CLI for mounting schemes and inspecting resolution:
- Argument parsing and validation
- Configuration file loading and merging with ``--scheme`` options
- Mount point validation
- One-shot identifier resolution (``--resolve``)

Example:
    >>> from schemefs.cli import parse_arguments
    >>> args = parse_arguments(['--scheme', 'res=/srv/res', '--mount', '/mnt/schemefs'])
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from schemefs.core.config import ConfigError, ConfigManager, ConfigSource
from schemefs.core.constants import SCHEMEFS_VERSION, AccessMode, ConfigKey
from schemefs.core.logging import Logger
from schemefs.core.validators import ValidationError, validate_scheme
from schemefs.locator.static import SchemeLocator
from schemefs.stream.resolver import PathResolver

# Version information
VERSION = SCHEMEFS_VERSION
DESCRIPTION = "SchemeFS - scheme:// identifiers over real filesystem roots"


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
        CLIError: If arguments parse but are inconsistent
    """
    parser = argparse.ArgumentParser(
        prog="schemefs",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Mount one scheme
  schemefs --scheme res=/srv/res --mount /mnt/schemefs

  # Mount with configuration file
  schemefs --config schemefs.yaml --mount /mnt/schemefs

  # Mount in foreground for debugging
  schemefs --config schemefs.yaml --mount /mnt/schemefs --foreground --debug

  # Search several roots for one scheme
  schemefs --scheme res=/srv/res,/opt/defaults --mount /mnt/schemefs

  # Show where an identifier would be written
  schemefs --config schemefs.yaml --resolve res://config/app.yaml --access write
        """,
    )

    # Version
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}",
    )

    # Configuration file
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=str,
        help="Configuration file path (YAML format)",
    )

    # Scheme mappings
    parser.add_argument(
        "-s",
        "--scheme",
        metavar="NAME=DIR[,DIR]",
        action="append",
        dest="schemes",
        help="Map a scheme to root directories (can be specified multiple times)",
    )

    # Mount point
    parser.add_argument(
        "-m",
        "--mount",
        metavar="DIR",
        type=str,
        help="Mount point directory (required unless --resolve is given)",
    )

    # Resolution
    resolve_group = parser.add_argument_group("resolution")

    resolve_group.add_argument(
        "--resolve",
        metavar="URI",
        type=str,
        help="Print the concrete path of an identifier and exit",
    )

    resolve_group.add_argument(
        "--access",
        choices=[mode.value for mode in AccessMode],
        default=AccessMode.READ.value,
        help="Access mode used with --resolve (default: read)",
    )

    # Filesystem options
    fs_group = parser.add_argument_group("filesystem options")

    fs_group.add_argument(
        "--read-only",
        action="store_true",
        help="Mount in read-only mode (default: read-write)",
    )

    fs_group.add_argument(
        "--allow-other",
        action="store_true",
        help="Allow other users to access the filesystem",
    )

    fs_group.add_argument(
        "--report-errors",
        action="store_true",
        help="Log a warning when an identifier cannot be resolved",
    )

    # Logging options
    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "--foreground",
        action="store_true",
        help="Run in foreground (don't daemonize)",
    )

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Log file path",
    )

    # FUSE options
    fuse_group = parser.add_argument_group("FUSE options")

    fuse_group.add_argument(
        "--fuse-opt",
        metavar="OPT",
        action="append",
        dest="fuse_options",
        help="Additional FUSE options (can be specified multiple times)",
    )

    parsed = parser.parse_args(args)

    _validate_arguments(parsed)

    return parsed


def parse_scheme_option(value: str) -> Tuple[str, List[str]]:
    """
    Split a ``NAME=DIR[,DIR]`` option.

    Raises:
        CLIError: If the option is malformed or a root is not a directory
    """
    name, sep, roots_text = value.partition("=")
    if not sep or not name:
        raise CLIError(f"Invalid --scheme value (expected NAME=DIR[,DIR]): {value}")

    try:
        validate_scheme(name)
    except ValidationError as e:
        raise CLIError(f"Invalid scheme name in --scheme {value}: {e}")

    roots = [root for root in roots_text.split(",") if root]
    if not roots:
        raise CLIError(f"No directories given for scheme: {name}")

    for root in roots:
        if not os.path.isdir(root):
            raise CLIError(f"Scheme root is not a directory: {root}")

    return name, [os.path.abspath(root) for root in roots]


def _validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        CLIError: If validation fails
    """
    # Either config or schemes must be specified
    if not args.config and not args.schemes:
        raise CLIError(
            "Either --config or --scheme must be specified\n" "Use --help for usage information"
        )

    if args.schemes:
        for value in args.schemes:
            parse_scheme_option(value)

    # Validate config file (if specified)
    if args.config:
        config_path = Path(args.config)

        if not config_path.exists():
            raise CLIError(f"Configuration file does not exist: {args.config}")

        if not config_path.is_file():
            raise CLIError(f"Configuration path is not a file: {args.config}")

    # Resolution needs no mount point
    if args.resolve:
        return

    if not args.mount:
        raise CLIError("--mount is required unless --resolve is given")

    mount_path = Path(args.mount)

    # Mount point must exist
    if not mount_path.exists():
        raise CLIError(f"Mount point does not exist: {args.mount}")

    # Mount point must be a directory
    if not mount_path.is_dir():
        raise CLIError(f"Mount point is not a directory: {args.mount}")

    # Mount point must be empty (safety check)
    if list(mount_path.iterdir()):
        raise CLIError(
            f"Mount point is not empty: {args.mount}\n"
            "For safety, SchemeFS requires an empty mount point"
        )


def load_config_from_file(config_path: str) -> Dict:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        CLIError: If file cannot be loaded or parsed
    """
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)

        if not config:
            raise CLIError(f"Configuration file is empty: {config_path}")

        if not isinstance(config, dict):
            raise CLIError(f"Configuration file must contain a YAML dictionary: {config_path}")

        return config

    except yaml.YAMLError as e:
        raise CLIError(f"Failed to parse configuration file: {config_path}\n{e}")

    except IOError as e:
        raise CLIError(f"Failed to read configuration file: {config_path}\n{e}")


def build_config_from_args(args: argparse.Namespace) -> Dict:
    """
    Build the ``schemefs`` configuration section from command-line arguments.

    Only options actually given are included, so file values survive the merge.

    Args:
        args: Parsed arguments namespace

    Returns:
        Configuration dictionary for ConfigManager
    """
    config: Dict = {}

    if args.schemes:
        schemes = {}
        for value in args.schemes:
            name, roots = parse_scheme_option(value)
            schemes.setdefault(name, {"": []})[""].extend(roots)
        config[ConfigKey.SCHEMES] = schemes

    if args.report_errors:
        config[ConfigKey.STREAM] = {ConfigKey.REPORT_ERRORS: True}

    logging_config = {}
    if args.debug:
        logging_config[ConfigKey.LOG_LEVEL] = "DEBUG"
    if args.log_file:
        logging_config[ConfigKey.LOG_FILE] = args.log_file
    if logging_config:
        config[ConfigKey.LOGGING] = logging_config

    return {ConfigKey.ROOT: config}


def build_config_manager(file_config: Optional[Dict], args_config: Dict) -> ConfigManager:
    """
    Layer file and argument configuration in a ConfigManager.

    Command-line arguments take precedence over environment variables,
    which take precedence over the file.

    Raises:
        CLIError: If either configuration is invalid
    """
    try:
        config = ConfigManager()
        if file_config:
            config.load_dict(file_config, ConfigSource.USER_CONFIG)
        config.load_dict(args_config, ConfigSource.CLI_ARGS)
    except ConfigError as e:
        raise CLIError(str(e))
    return config


def setup_logging(args: argparse.Namespace, config: ConfigManager) -> Logger:
    """
    Setup logging based on arguments and configuration.

    Args:
        args: Parsed arguments namespace
        config: Configuration manager

    Returns:
        Configured logger instance
    """
    logging_config = config.section(ConfigKey.LOGGING)
    log_level = "DEBUG" if args.debug else logging_config.get(ConfigKey.LOG_LEVEL, "INFO")
    log_file = args.log_file or logging_config.get(ConfigKey.LOG_FILE)

    logger = Logger("schemefs.cli", level=log_level)

    if log_file:
        logger.add_handler(logger.create_file_handler(log_file))
        logger.info(f"Logging to file: {log_file}")

    return logger


def resolve_identifier(args: argparse.Namespace, config: ConfigManager) -> int:
    """
    Print the concrete path of ``args.resolve``.

    Returns:
        0 when the identifier resolves, 1 otherwise
    """
    locator = SchemeLocator.from_config(
        config.section(ConfigKey.SCHEMES),
        config.section(ConfigKey.CACHE),
    )
    stream_config = config.section(ConfigKey.STREAM)
    resolver = PathResolver(
        locator,
        allow_root_synthesis=bool(stream_config.get(ConfigKey.ALLOW_ROOT_SYNTHESIS, False)),
        logger=Logger("schemefs.cli", level="DEBUG" if args.debug else "WARNING"),
    )

    path = resolver.resolve(args.resolve, AccessMode(args.access))
    if path is None:
        print(f"Not found: {args.resolve}", file=sys.stderr)
        return 1

    print(path)
    return 0


def validate_runtime_environment() -> None:
    """
    Validate runtime environment for SchemeFS mounts.

    Checks:
    - FUSE availability
    - Required permissions

    Raises:
        CLIError: If environment validation fails
    """
    # Check FUSE availability
    try:
        import fuse

        if not hasattr(fuse, "FUSE"):
            raise CLIError(
                "FUSE library is too old or incompatible\n" "Install fusepy: pip install fusepy"
            )

    except (ImportError, OSError):
        raise CLIError("FUSE library not found\n" "Install fusepy: pip install fusepy")

    # Check for /dev/fuse
    if not os.path.exists("/dev/fuse"):
        raise CLIError(
            "/dev/fuse not found\n"
            "FUSE kernel module may not be loaded\n"
            "Try: sudo modprobe fuse"
        )

    # Check permissions
    if not os.access("/dev/fuse", os.R_OK | os.W_OK):
        raise CLIError(
            "No permission to access /dev/fuse\n"
            "You may need to add your user to the 'fuse' group"
        )


def print_banner(logger: Logger) -> None:
    """
    Print startup banner with version information.

    Args:
        logger: Logger instance
    """
    logger.info("=" * 60)
    logger.info(f"SchemeFS v{VERSION}")
    logger.info(DESCRIPTION)
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Handles argument parsing and configuration, then either resolves a
    single identifier or passes control to schemefs.main for mounting.
    """
    try:
        args = parse_arguments(argv)

        file_config = load_config_from_file(args.config) if args.config else None
        config = build_config_manager(file_config, build_config_from_args(args))

        if args.resolve:
            return resolve_identifier(args, config)

        validate_runtime_environment()

        logger = setup_logging(args, config)

        if args.foreground:
            print_banner(logger)

        from schemefs.main import run_schemefs

        return run_schemefs(args, config, logger)

    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
