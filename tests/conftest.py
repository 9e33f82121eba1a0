"""
Pytest configuration and shared fixtures for iotappdeploy tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from pathlib import Path
import shutil
from typing import Any

import pytest
import yaml

from iotappdeploy.auth import Credentials
from iotappdeploy.logging import SilentLogger, set_global_logger
from iotappdeploy.plugins.cpp_template import BUNDLED_TEMPLATE_DIR, TEMPLATE_FILES


@pytest.fixture(autouse=True)
def silent_global_logger():
    """Reset the global logger so CLI tests don't leak output settings."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def manifest_path() -> Path:
    """Provide path to the bundled C++ background application manifest."""
    return BUNDLED_TEMPLATE_DIR / "AppxManifest.xml"


@pytest.fixture
def staging_dir(tmp_test_dir: Path, manifest_path: Path) -> Path:
    """Provide a staging folder holding a pristine AppxManifest.xml."""
    stage = tmp_test_dir / "stage"
    stage.mkdir()
    shutil.copyfile(manifest_path, stage / "AppxManifest.xml")
    return stage


@pytest.fixture
def template_dir(tmp_test_dir: Path) -> Path:
    """
    Provide a resources.template_dir with placeholder binaries.

    Every file the C++ template expects exists with distinct content.
    """
    root = tmp_test_dir / "template"
    for relative in TEMPLATE_FILES:
        path = root.joinpath(*relative.split("\\"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(f"placeholder {relative}".encode())
    return root


@pytest.fixture
def sample_source(tmp_test_dir: Path) -> Path:
    """Provide a minimal Python app source file."""
    source = tmp_test_dir / "src" / "app.py"
    source.parent.mkdir(parents=True)
    source.write_text("print('hello from IoT Core')\n", encoding="utf-8")
    return source


@pytest.fixture
def credentials() -> Credentials:
    """Provide factory-default device credentials."""
    return Credentials("Administrator", "p@ssw0rd")


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("config.yaml", {"key": "value"})
    """
    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create
