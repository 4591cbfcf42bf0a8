#!/usr/bin/env python3
"""Main entry point for SchemeFS mounts.

This module handles:
- Component initialization (locator, dispatcher, registry, FUSE operations)
- FUSE filesystem mounting
- Signal handling for graceful shutdown
- Cleanup on exit

Example:
    >>> from schemefs.main import run_schemefs
    >>> run_schemefs(args, config, logger)
"""

import argparse
import signal
import sys
import threading
from typing import Dict, Optional

from fuse import FUSE

from schemefs.core.config import ConfigManager
from schemefs.core.constants import ConfigKey
from schemefs.core.logging import Logger
from schemefs.fuse.operations import SchemeFSOperations
from schemefs.locator.static import SchemeLocator
from schemefs.registry import StreamRegistry
from schemefs.stream.dispatcher import StreamDispatcher


class SchemeFSMain:
    """
    Main class for SchemeFS mount management.

    Handles component lifecycle, FUSE mounting, and shutdown.
    """

    def __init__(self, args: argparse.Namespace, config: ConfigManager, logger: Logger):
        """
        Initialize SchemeFS main controller.

        Args:
            args: Parsed command-line arguments
            config: Layered configuration
            logger: Logger instance
        """
        self.args = args
        self.config = config
        self.logger = logger
        self.fuse = None
        self.shutdown_event = threading.Event()

        # Components
        self.locator: Optional[SchemeLocator] = None
        self.dispatcher: Optional[StreamDispatcher] = None
        self.registry: Optional[StreamRegistry] = None
        self.fuse_ops: Optional[SchemeFSOperations] = None

    def initialize_components(self) -> None:
        """
        Initialize all SchemeFS components.

        Creates and configures:
        - SchemeLocator from the ``schemes`` and ``cache`` sections
        - StreamDispatcher bound to the locator
        - StreamRegistry claiming every configured scheme
        - SchemeFSOperations

        Raises:
            RuntimeError: If no scheme is configured
        """
        self.logger.info("Initializing components...")

        # 1. Locator
        self.logger.debug("Creating SchemeLocator")
        self.locator = SchemeLocator.from_config(
            self.config.section(ConfigKey.SCHEMES),
            self.config.section(ConfigKey.CACHE),
        )
        if not self.locator.schemes():
            raise RuntimeError("No schemes configured")

        # 2. Dispatcher
        self.logger.debug("Creating StreamDispatcher")
        self.dispatcher = StreamDispatcher(locator=self.locator, config=self.config)

        # 3. Registry
        self.logger.debug("Creating StreamRegistry")
        self.registry = StreamRegistry()
        for scheme in self.registry.register_locator(self.locator, self.dispatcher):
            self.logger.debug(f"Registered scheme: {scheme}://")

        # 4. FUSE Operations
        self.logger.debug("Creating SchemeFSOperations")
        self.fuse_ops = SchemeFSOperations(
            self.registry,
            read_only=getattr(self.args, "read_only", False),
        )

        self.logger.info("All components initialized successfully")

    def setup_signal_handlers(self) -> None:
        """
        Setup signal handlers for graceful shutdown.

        Handles:
        - SIGTERM: Graceful shutdown
        - SIGINT: Graceful shutdown (Ctrl+C)
        """

        def signal_handler(signum, frame):
            """Handle shutdown signals."""
            sig_name = signal.Signals(signum).name
            self.logger.info(f"Received signal {sig_name}, shutting down...")
            self.shutdown_event.set()

            if self.fuse:
                self.logger.info("Unmounting filesystem...")

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self.logger.debug("Signal handlers registered")

    def mount_filesystem(self) -> int:
        """
        Mount the FUSE filesystem.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        mount_point = self.args.mount

        self.logger.info(f"Mounting SchemeFS at: {mount_point}")
        self.logger.info(f"Read-only mode: {self.fuse_ops.read_only}")
        self.logger.info(f"Schemes: {', '.join(self.registry.schemes())}")

        fuse_options = self._build_fuse_options()

        try:
            self.logger.info("Starting FUSE...")

            # Blocks until unmount
            self.fuse = FUSE(
                self.fuse_ops,
                mount_point,
                foreground=self.args.foreground,
                **fuse_options,
            )

            self.logger.info("FUSE unmounted successfully")
            return 0

        except RuntimeError as e:
            self.logger.error(f"FUSE mount failed: {e}")
            return 1

    def _build_fuse_options(self) -> Dict:
        """
        Build FUSE mount options dictionary.

        Returns:
            Dictionary of FUSE options
        """
        options = {}

        if getattr(self.args, "read_only", False):
            options["ro"] = True

        if getattr(self.args, "allow_other", False):
            options["allow_other"] = True

        # Additional FUSE options from command line
        if getattr(self.args, "fuse_options", None):
            for opt in self.args.fuse_options:
                if "=" in opt:
                    key, value = opt.split("=", 1)
                    options[key] = value
                else:
                    options[opt] = True

        return options

    def cleanup(self) -> None:
        """
        Cleanup resources on shutdown.

        Performs:
        - Closing handles left open by the mount
        - Locator cache clear
        - Final statistics log
        """
        self.logger.info("Cleaning up...")

        if self.fuse_ops:
            self.logger.info(f"Final statistics: {self.fuse_ops.get_stats()}")

        if self.registry:
            closed = self.registry.close_all()
            if closed:
                self.logger.debug(f"Closed {closed} open handles")

        if self.locator:
            self.locator.clear_cache()
            self.logger.debug("Locator cache cleared")

        self.logger.info("Cleanup complete")

    def run(self) -> int:
        """
        Run SchemeFS main loop.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.initialize_components()

            self.setup_signal_handlers()

            # Blocks until unmount
            return self.mount_filesystem()

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
            return 130

        except RuntimeError as e:
            self.logger.error(f"Fatal error: {e}")
            return 1

        finally:
            self.cleanup()


def run_schemefs(args: argparse.Namespace, config: ConfigManager, logger: Logger) -> int:
    """
    Main entry point for running SchemeFS.

    Args:
        args: Parsed command-line arguments
        config: Layered configuration
        logger: Logger instance

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    main = SchemeFSMain(args, config, logger)
    return main.run()


def main():
    """
    Entry point when run as standalone script.

    Typically called via cli.py.
    """
    from schemefs.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
