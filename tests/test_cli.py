"""Tests for CLI argument parsing and configuration.

This module tests the command-line interface including:
- Argument parsing
- --scheme option parsing
- Configuration file loading and layering
- Validation logic
- One-shot identifier resolution
"""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from schemefs.cli import (
    CLIError,
    build_config_from_args,
    build_config_manager,
    load_config_from_file,
    main,
    parse_arguments,
    parse_scheme_option,
    print_banner,
    setup_logging,
    validate_runtime_environment,
)
from schemefs.core.config import ConfigManager
from schemefs.core.logging import LogLevel


@pytest.fixture
def res_dir(resource_root):
    return str(resource_root / "res")


class TestParseArguments:
    """Test argument parsing."""

    def test_parse_basic_arguments(self, res_dir, mount_dir):
        """Parses a scheme and a mount point."""
        args = parse_arguments(["--scheme", f"res={res_dir}", "--mount", str(mount_dir)])

        assert args.schemes == [f"res={res_dir}"]
        assert args.mount == str(mount_dir)
        assert not args.foreground
        assert not args.debug
        assert not args.read_only
        assert args.access == "read"

    def test_parse_multiple_schemes(self, resource_root, mount_dir):
        args = parse_arguments(
            [
                "-s",
                f"res={resource_root / 'res'}",
                "-s",
                f"cfg={resource_root / 'cfg'}",
                "-m",
                str(mount_dir),
            ]
        )
        assert len(args.schemes) == 2

    def test_parse_with_config_file(self, config_file, mount_dir):
        args = parse_arguments(["--config", str(config_file), "--mount", str(mount_dir)])
        assert args.config == str(config_file)
        assert args.schemes is None

    def test_parse_all_flags(self, config_file, mount_dir, tmp_path):
        args = parse_arguments(
            [
                "--config",
                str(config_file),
                "--mount",
                str(mount_dir),
                "--read-only",
                "--allow-other",
                "--report-errors",
                "--foreground",
                "--debug",
                "--log-file",
                str(tmp_path / "schemefs.log"),
                "--fuse-opt",
                "max_read=4096",
                "--fuse-opt",
                "noatime",
            ]
        )
        assert args.read_only
        assert args.allow_other
        assert args.report_errors
        assert args.foreground
        assert args.debug
        assert args.fuse_options == ["max_read=4096", "noatime"]

    def test_resolve_needs_no_mount(self, config_file):
        args = parse_arguments(
            ["--config", str(config_file), "--resolve", "res://readme.txt", "--access", "write"]
        )
        assert args.resolve == "res://readme.txt"
        assert args.access == "write"
        assert args.mount is None

    def test_invalid_access_mode(self, config_file):
        with pytest.raises(SystemExit):
            parse_arguments(["--config", str(config_file), "--resolve", "res://a", "--access", "append"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_arguments(["--version"])
        assert exc_info.value.code == 0
        assert "schemefs" in capsys.readouterr().out


class TestParseSchemeOption:
    """Test NAME=DIR[,DIR] parsing."""

    def test_single_root(self, res_dir):
        assert parse_scheme_option(f"res={res_dir}") == ("res", [res_dir])

    def test_multiple_roots(self, resource_root):
        name, roots = parse_scheme_option(f"res={resource_root / 'res'},{resource_root / 'cfg'}")
        assert name == "res"
        assert roots == [str(resource_root / "res"), str(resource_root / "cfg")]

    def test_relative_root_made_absolute(self, resource_root, monkeypatch):
        monkeypatch.chdir(resource_root)
        assert parse_scheme_option("res=res") == ("res", [os.path.abspath("res")])

    @pytest.mark.parametrize("value", ["res", "=/tmp", "res="])
    def test_malformed(self, value):
        with pytest.raises(CLIError):
            parse_scheme_option(value)

    def test_invalid_scheme_name(self, res_dir):
        with pytest.raises(CLIError, match="Invalid scheme name"):
            parse_scheme_option(f"9res={res_dir}")

    def test_root_not_directory(self, resource_root):
        with pytest.raises(CLIError, match="not a directory"):
            parse_scheme_option(f"res={resource_root / 'res' / 'readme.txt'}")


class TestValidateArguments:
    """Test argument validation."""

    def test_requires_config_or_scheme(self, mount_dir):
        with pytest.raises(CLIError, match="--config or --scheme"):
            parse_arguments(["--mount", str(mount_dir)])

    def test_requires_mount(self, res_dir):
        with pytest.raises(CLIError, match="--mount is required"):
            parse_arguments(["--scheme", f"res={res_dir}"])

    def test_missing_config_file(self, tmp_path, mount_dir):
        with pytest.raises(CLIError, match="does not exist"):
            parse_arguments(["--config", str(tmp_path / "nope.yaml"), "--mount", str(mount_dir)])

    def test_config_is_directory(self, tmp_path, mount_dir):
        with pytest.raises(CLIError, match="not a file"):
            parse_arguments(["--config", str(tmp_path), "--mount", str(mount_dir)])

    def test_mount_missing(self, res_dir, tmp_path):
        with pytest.raises(CLIError, match="does not exist"):
            parse_arguments(["--scheme", f"res={res_dir}", "--mount", str(tmp_path / "nope")])

    def test_mount_not_directory(self, res_dir, resource_root):
        with pytest.raises(CLIError, match="not a directory"):
            parse_arguments(
                ["--scheme", f"res={res_dir}", "--mount", str(resource_root / "res" / "readme.txt")]
            )

    def test_mount_not_empty(self, res_dir, resource_root):
        with pytest.raises(CLIError, match="not empty"):
            parse_arguments(["--scheme", f"res={res_dir}", "--mount", str(resource_root / "res")])

    def test_bad_scheme_option(self, mount_dir):
        with pytest.raises(CLIError):
            parse_arguments(["--scheme", "res", "--mount", str(mount_dir)])


class TestLoadConfigFromFile:
    """Test YAML configuration loading."""

    def test_loads_dictionary(self, config_file, sample_config):
        assert load_config_from_file(str(config_file)) == sample_config

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(CLIError, match="empty"):
            load_config_from_file(str(path))

    def test_not_a_dictionary(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(CLIError, match="dictionary"):
            load_config_from_file(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("schemefs: [unclosed\n")
        with pytest.raises(CLIError, match="parse"):
            load_config_from_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(CLIError, match="read"):
            load_config_from_file(str(tmp_path / "missing.yaml"))


class TestBuildConfig:
    """Test configuration built from arguments and layered with the file."""

    def test_only_given_options(self, config_file):
        args = parse_arguments(["--config", str(config_file), "--resolve", "res://a"])
        assert build_config_from_args(args) == {"schemefs": {}}

    def test_schemes_and_flags(self, resource_root, tmp_path):
        log_file = str(tmp_path / "schemefs.log")
        args = parse_arguments(
            [
                "-s",
                f"res={resource_root / 'res'}",
                "-s",
                f"res={resource_root / 'cfg'}",
                "--resolve",
                "res://a",
                "--report-errors",
                "--debug",
                "--log-file",
                log_file,
            ]
        )
        config = build_config_from_args(args)["schemefs"]

        assert config["schemes"] == {
            "res": {"": [str(resource_root / "res"), str(resource_root / "cfg")]}
        }
        assert config["stream"] == {"report_errors": True}
        assert config["logging"] == {"level": "DEBUG", "file": log_file}

    def test_arguments_override_file(self, clean_env, sample_config, resource_root):
        args_config = {"schemefs": {"stream": {"report_errors": True}}}

        config = build_config_manager(sample_config, args_config)

        assert config.get("schemefs.stream.report_errors") is True
        assert config.get("schemefs.cache.max_entries") == 100
        assert "res" in config.section("schemes")

    def test_argument_schemes_merge_with_file(self, clean_env, sample_config, resource_root):
        args_config = {"schemefs": {"schemes": {"cfg": {"": [str(resource_root / "cfg")]}}}}

        config = build_config_manager(sample_config, args_config)

        assert set(config.section("schemes")) == {"res", "cfg"}

    def test_without_file(self, clean_env):
        config = build_config_manager(None, {"schemefs": {}})
        assert isinstance(config, ConfigManager)
        assert config.section("schemes") == {}

    def test_invalid_configuration(self, clean_env):
        with pytest.raises(CLIError):
            build_config_manager({"schemefs": {"schemes": {"9bad": {"": ["/tmp"]}}}}, {"schemefs": {}})


class TestSetupLogging:
    """Test logger construction."""

    def test_debug_flag(self, clean_env, config_file):
        args = parse_arguments(["--config", str(config_file), "--resolve", "res://a", "--debug"])
        logger = setup_logging(args, build_config_manager(None, build_config_from_args(args)))
        assert logger.get_level() == LogLevel.DEBUG

    def test_level_from_config(self, clean_env, config_file):
        args = parse_arguments(["--config", str(config_file), "--resolve", "res://a"])
        config = build_config_manager({"schemefs": {"logging": {"level": "ERROR"}}}, {"schemefs": {}})
        assert setup_logging(args, config).get_level() == LogLevel.ERROR

    def test_log_file(self, clean_env, config_file, tmp_path):
        log_file = tmp_path / "schemefs.log"
        args = parse_arguments(
            ["--config", str(config_file), "--resolve", "res://a", "--log-file", str(log_file)]
        )
        setup_logging(args, build_config_manager(None, build_config_from_args(args)))
        assert log_file.exists()

    def test_print_banner(self):
        logger = MagicMock()
        print_banner(logger)
        messages = [call.args[0] for call in logger.info.call_args_list]
        assert any("SchemeFS v" in message for message in messages)


class TestValidateRuntimeEnvironment:
    """Test FUSE environment checks."""

    def test_missing_fuse_library(self):
        with patch.dict(sys.modules, {"fuse": None}):
            with pytest.raises(CLIError, match="FUSE library not found"):
                validate_runtime_environment()

    def test_missing_device(self):
        with patch.dict(sys.modules, {"fuse": MagicMock()}):
            with patch("schemefs.cli.os.path.exists", return_value=False):
                with pytest.raises(CLIError, match="/dev/fuse not found"):
                    validate_runtime_environment()

    def test_no_device_permission(self):
        with patch.dict(sys.modules, {"fuse": MagicMock()}):
            with patch("schemefs.cli.os.path.exists", return_value=True):
                with patch("schemefs.cli.os.access", return_value=False):
                    with pytest.raises(CLIError, match="permission"):
                        validate_runtime_environment()


class TestResolve:
    """Test --resolve."""

    def test_resolves_existing(self, clean_env, config_file, resource_root, capsys):
        code = main(["--config", str(config_file), "--resolve", "res://readme.txt"])

        assert code == 0
        assert capsys.readouterr().out.strip() == str(resource_root / "res" / "readme.txt")

    def test_prefix_wins(self, clean_env, config_file, resource_root, capsys):
        assert main(["--config", str(config_file), "--resolve", "res://config/app.yaml"]) == 0
        assert capsys.readouterr().out.strip() == str(resource_root / "cfg" / "app.yaml")

    def test_missing_for_read(self, clean_env, config_file, capsys):
        code = main(["--config", str(config_file), "--resolve", "res://missing.txt"])

        assert code == 1
        assert "Not found: res://missing.txt" in capsys.readouterr().err

    def test_write_synthesizes(self, clean_env, config_file, resource_root, capsys):
        code = main(
            ["--config", str(config_file), "--resolve", "res://data/new.csv", "--access", "write"]
        )

        assert code == 0
        assert capsys.readouterr().out.strip() == str(resource_root / "res" / "data" / "new.csv")

    def test_scheme_option(self, clean_env, res_dir, capsys):
        assert main(["--scheme", f"res={res_dir}", "--resolve", "res://readme.txt"]) == 0
        assert Path(capsys.readouterr().out.strip()).name == "readme.txt"


class TestMain:
    """Test the main entry point."""

    def test_cli_error_returns_one(self, capsys):
        assert main([]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_bad_config_returns_one(self, clean_env, tmp_path, mount_dir, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("- not\n- a dict\n")

        assert main(["--config", str(path), "--mount", str(mount_dir)]) == 1

    def test_mount_delegates_to_main_module(self, clean_env, config_file, mount_dir):
        fake_main = MagicMock()
        fake_main.run_schemefs.return_value = 0

        with patch("schemefs.cli.validate_runtime_environment"):
            with patch.dict(sys.modules, {"schemefs.main": fake_main}):
                code = main(["--config", str(config_file), "--mount", str(mount_dir)])

        assert code == 0
        args, config, logger = fake_main.run_schemefs.call_args.args
        assert args.mount == str(mount_dir)
        assert "res" in config.section("schemes")

    def test_keyboard_interrupt(self, clean_env, config_file, mount_dir):
        with patch("schemefs.cli.validate_runtime_environment", side_effect=KeyboardInterrupt):
            assert main(["--config", str(config_file), "--mount", str(mount_dir)]) == 130

    def test_runtime_environment_error(self, clean_env, config_file, mount_dir):
        with patch("schemefs.cli.validate_runtime_environment", side_effect=CLIError("no fuse")):
            assert main(["--config", str(config_file), "--mount", str(mount_dir)]) == 1
