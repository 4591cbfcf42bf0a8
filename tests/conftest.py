"""Shared pytest fixtures for SchemeFS tests."""
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator
from unittest.mock import MagicMock

import pytest
import yaml

from schemefs.locator.static import SchemeLocator
from schemefs.stream.dispatcher import StreamDispatcher


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def resource_root(temp_dir: Path) -> Path:
    """Create a resource tree with test files.

    Layout:
        res/
          readme.txt
          data/
            items.csv
            empty/
        cfg/
          app.yaml
    """
    res = temp_dir / "res"
    res.mkdir()
    (res / "readme.txt").write_text("Hello World")
    (res / "data").mkdir()
    (res / "data" / "items.csv").write_text("id,name\n1,apple\n")
    (res / "data" / "empty").mkdir()

    cfg = temp_dir / "cfg"
    cfg.mkdir()
    (cfg / "app.yaml").write_text("debug: false\n")

    return temp_dir


@pytest.fixture
def locator(resource_root: Path) -> SchemeLocator:
    """Locator mapping ``res://`` to res/ and ``res://config`` to cfg/."""
    return SchemeLocator(
        {
            "res": {
                "": [str(resource_root / "res")],
                "config": [str(resource_root / "cfg")],
            }
        }
    )


@pytest.fixture
def dispatcher(locator: SchemeLocator) -> Generator[StreamDispatcher, None, None]:
    """Dispatcher bound to the test locator with a silent logger."""
    dispatcher = StreamDispatcher(locator=locator, logger=MagicMock())
    yield dispatcher
    dispatcher.close_all()


@pytest.fixture
def sample_config(resource_root: Path) -> Dict[str, Any]:
    """Provide a sample SchemeFS configuration."""
    return {
        "schemefs": {
            "schemes": {
                "res": {
                    "": [str(resource_root / "res")],
                    "config": [str(resource_root / "cfg")],
                },
            },
            "cache": {
                "enabled": True,
                "max_entries": 100,
                "ttl_seconds": 30,
            },
            "stream": {
                "report_errors": False,
                "allow_root_synthesis": False,
            },
            "logging": {
                "level": "DEBUG",
                "file": None,
            },
        }
    }


@pytest.fixture
def config_file(temp_dir: Path, sample_config: Dict[str, Any]) -> Path:
    """Write the sample configuration to a YAML file."""
    path = temp_dir / "schemefs.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(sample_config, f)
    return path


@pytest.fixture
def mount_dir(temp_dir: Path) -> Path:
    """Create an empty mount point directory."""
    mount = temp_dir / "mount"
    mount.mkdir()
    return mount


@pytest.fixture
def clean_env(monkeypatch):
    """Remove SCHEMEFS_* variables so tests see only their own config."""
    import os

    for key in list(os.environ):
        if key.startswith("SCHEMEFS_"):
            monkeypatch.delenv(key)
