"""Tests for SchemeFS main entry point.

This module tests the main application lifecycle including:
- Component initialization
- Signal handling
- FUSE mounting
- Cleanup
"""

import argparse
import signal
from unittest.mock import MagicMock, patch

import pytest

try:
    import fuse  # noqa: F401
except (ImportError, OSError):
    pytest.skip("fusepy or libfuse not available", allow_module_level=True)

from schemefs.core.config import ConfigManager, ConfigSource
from schemefs.fuse.operations import SchemeFSOperations
from schemefs.locator.static import SchemeLocator
from schemefs.main import SchemeFSMain, run_schemefs
from schemefs.registry import StreamRegistry
from schemefs.stream.dispatcher import StreamDispatcher


@pytest.fixture
def mock_args(mount_dir):
    """Create mock arguments."""
    return argparse.Namespace(
        mount=str(mount_dir),
        foreground=True,
        read_only=False,
        allow_other=False,
        fuse_options=None,
    )


@pytest.fixture
def basic_config(clean_env, sample_config):
    config = ConfigManager()
    config.load_dict(sample_config, ConfigSource.USER_CONFIG)
    return config


@pytest.fixture
def empty_config(clean_env):
    return ConfigManager()


@pytest.fixture
def logger():
    return MagicMock()


class TestSchemeFSMainInit:
    """Test SchemeFSMain initialization."""

    def test_init_stores_arguments(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)

        assert main.args is mock_args
        assert main.config is basic_config
        assert main.logger is logger

    def test_init_sets_components_to_none(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)

        assert main.locator is None
        assert main.dispatcher is None
        assert main.registry is None
        assert main.fuse_ops is None
        assert main.fuse is None
        assert not main.shutdown_event.is_set()


class TestComponentInitialization:
    """Test component initialization."""

    def test_initialize_components(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert isinstance(main.locator, SchemeLocator)
        assert isinstance(main.dispatcher, StreamDispatcher)
        assert isinstance(main.registry, StreamRegistry)
        assert isinstance(main.fuse_ops, SchemeFSOperations)

    def test_registers_configured_schemes(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert main.registry.schemes() == ("res",)
        assert main.registry.dispatcher_for("res://readme.txt") is main.dispatcher

    def test_dispatcher_reads_stream_section(self, mock_args, basic_config, logger):
        basic_config.set("schemefs.stream.report_errors", True)
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert main.dispatcher.report_errors is True

    def test_read_only_passed_to_operations(self, mock_args, basic_config, logger):
        mock_args.read_only = True
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert main.fuse_ops.read_only is True

    def test_no_schemes(self, mock_args, empty_config, logger):
        main = SchemeFSMain(mock_args, empty_config, logger)

        with pytest.raises(RuntimeError, match="No schemes configured"):
            main.initialize_components()


class TestSignalHandling:
    """Test signal handler setup."""

    def test_setup_signal_handlers(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)

        with patch("schemefs.main.signal.signal") as mock_signal:
            main.setup_signal_handlers()

        registered = [call.args[0] for call in mock_signal.call_args_list]
        assert registered == [signal.SIGTERM, signal.SIGINT]

    def test_signal_handler_sets_shutdown_event(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)

        with patch("schemefs.main.signal.signal") as mock_signal:
            main.setup_signal_handlers()

        handler = mock_signal.call_args_list[0].args[1]
        handler(signal.SIGTERM, None)

        assert main.shutdown_event.is_set()


class TestFuseOptions:
    """Test FUSE option building."""

    def test_defaults(self, mock_args, basic_config, logger):
        assert SchemeFSMain(mock_args, basic_config, logger)._build_fuse_options() == {}

    def test_read_only_and_allow_other(self, mock_args, basic_config, logger):
        mock_args.read_only = True
        mock_args.allow_other = True

        options = SchemeFSMain(mock_args, basic_config, logger)._build_fuse_options()

        assert options == {"ro": True, "allow_other": True}

    def test_custom_fuse_options(self, mock_args, basic_config, logger):
        mock_args.fuse_options = ["max_read=4096", "noatime"]

        options = SchemeFSMain(mock_args, basic_config, logger)._build_fuse_options()

        assert options == {"max_read": "4096", "noatime": True}


class TestMountFilesystem:
    """Test FUSE mounting."""

    @patch("schemefs.main.FUSE")
    def test_mounts_filesystem(self, mock_fuse, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert main.mount_filesystem() == 0
        mock_fuse.assert_called_once_with(main.fuse_ops, mock_args.mount, foreground=True)

    @patch("schemefs.main.FUSE")
    def test_passes_fuse_options(self, mock_fuse, mock_args, basic_config, logger):
        mock_args.read_only = True
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        main.mount_filesystem()

        assert mock_fuse.call_args.kwargs["ro"] is True

    @patch("schemefs.main.FUSE", side_effect=RuntimeError("mount failed"))
    def test_handles_runtime_error(self, mock_fuse, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()

        assert main.mount_filesystem() == 1
        logger.error.assert_called_once()


class TestCleanup:
    """Test shutdown cleanup."""

    def test_cleanup_closes_handles(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()
        main.dispatcher.open("res://readme.txt", "rb")

        main.cleanup()

        assert main.dispatcher.get_stats()["open_files"] == 0

    def test_cleanup_clears_locator_cache(self, mock_args, basic_config, logger):
        main = SchemeFSMain(mock_args, basic_config, logger)
        main.initialize_components()
        main.locator = MagicMock(wraps=main.locator)

        main.cleanup()

        main.locator.clear_cache.assert_called_once_with()

    def test_cleanup_before_initialization(self, mock_args, basic_config, logger):
        SchemeFSMain(mock_args, basic_config, logger).cleanup()


class TestRunSchemeFS:
    """Test the run loop."""

    @patch("schemefs.main.signal.signal")
    @patch("schemefs.main.FUSE")
    def test_runs_successfully(self, mock_fuse, mock_signal, mock_args, basic_config, logger):
        assert run_schemefs(mock_args, basic_config, logger) == 0
        mock_fuse.assert_called_once()

    def test_no_schemes_returns_one(self, mock_args, empty_config, logger):
        assert run_schemefs(mock_args, empty_config, logger) == 1

    @patch("schemefs.main.signal.signal")
    @patch("schemefs.main.FUSE", side_effect=KeyboardInterrupt)
    def test_handles_keyboard_interrupt(self, mock_fuse, mock_signal, mock_args, basic_config, logger):
        assert run_schemefs(mock_args, basic_config, logger) == 130
