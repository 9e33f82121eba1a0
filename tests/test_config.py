"""
Tests for iotappdeploy.config.loader module.

Tests configuration loading including:
- Builtin defaults
- Config file discovery above the source file
- Deep merging
- Relative path resolution
- Error handling
"""

from __future__ import annotations

from pathlib import Path

import pytest

from iotappdeploy.config.loader import (
    DEFAULT_CONFIG,
    _deep_merge_dicts,
    load_effective_config,
)
from iotappdeploy.exceptions import ConfigError

pytestmark = pytest.mark.unit


class TestDefaults:
    """Tests for builtin defaults."""

    def test_defaults_without_file(self, tmp_test_dir):
        """Test that defaults are returned when no config file exists."""
        source = tmp_test_dir / "app.py"
        source.write_text("")

        config = load_effective_config(source_path=source)

        assert config == DEFAULT_CONFIG
        assert config["deploy"]["poll_interval"] == 3.0
        assert config["build"]["architecture"] == "ARM"

    def test_defaults_not_mutated(self, tmp_test_dir):
        """Test that callers cannot change DEFAULT_CONFIG through the result."""
        config = load_effective_config()
        config["device"]["username"] = "changed"

        assert DEFAULT_CONFIG["device"]["username"] == "Administrator"


class TestConfigFile:
    """Tests for config file loading."""

    def test_found_above_source(self, tmp_test_dir, create_yaml_file):
        """Test that .iotappdeploy/config.yaml is found in a parent folder."""
        create_yaml_file(
            ".iotappdeploy/config.yaml", {"deploy": {"max_poll_attempts": 40}}
        )
        source = tmp_test_dir / "apps" / "blink" / "app.py"
        source.parent.mkdir(parents=True)
        source.write_text("")

        config = load_effective_config(source_path=source)

        assert config["deploy"]["max_poll_attempts"] == 40
        assert config["deploy"]["poll_interval"] == 3.0

    def test_explicit_config_path(self, create_yaml_file):
        """Test loading an explicit config file."""
        path = create_yaml_file(
            "ci/iot.yaml", {"device": {"username": "DefaultAccount", "port": 8443}}
        )

        config = load_effective_config(config_path=path)

        assert config["device"]["username"] == "DefaultAccount"
        assert config["device"]["port"] == 8443
        assert config["device"]["max_auth_attempts"] is None

    def test_lists_replaced(self, create_yaml_file):
        """Test that list values replace the defaults."""
        path = create_yaml_file(
            "config.yaml", {"plugins": {"modules": ["my_plugins.node"]}}
        )

        config = load_effective_config(config_path=path)

        assert config["plugins"]["modules"] == ["my_plugins.node"]

    def test_relative_paths_resolved(self, tmp_test_dir, create_yaml_file):
        """Test that tool and resource paths resolve against the config file."""
        path = create_yaml_file(
            "cfg/config.yaml",
            {
                "tools": {"makeappx": "../sdk/MakeAppx.exe"},
                "resources": {"template_dir": "templates/cpp"},
            },
        )

        config = load_effective_config(config_path=path)

        assert Path(config["tools"]["makeappx"]) == (
            tmp_test_dir / "sdk" / "MakeAppx.exe"
        ).resolve()
        assert Path(config["resources"]["template_dir"]) == (
            tmp_test_dir / "cfg" / "templates" / "cpp"
        ).resolve()
        assert config["tools"]["signtool"] is None

    def test_empty_file(self, tmp_test_dir):
        """Test that an empty config file yields the defaults."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("")

        assert load_effective_config(config_path=path) == DEFAULT_CONFIG

    def test_missing_explicit_file(self, tmp_test_dir):
        """Test that a missing explicit file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_effective_config(config_path=tmp_test_dir / "nope.yaml")

    def test_invalid_yaml(self, tmp_test_dir):
        """Test that malformed YAML raises ConfigError."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("device: [unclosed\n")

        with pytest.raises(ConfigError, match="Error parsing YAML"):
            load_effective_config(config_path=path)

    def test_non_mapping_top_level(self, tmp_test_dir):
        """Test that a list at the top level raises ConfigError."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_effective_config(config_path=path)

    def test_empty_sections_keep_defaults(self, tmp_test_dir):
        """Test that sections with nothing under them keep the builtin values."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("device:\ndeploy:\ntools:\n")

        config = load_effective_config(config_path=path)

        assert config["device"] == DEFAULT_CONFIG["device"]
        assert config["deploy"] == DEFAULT_CONFIG["deploy"]
        assert config["tools"] == DEFAULT_CONFIG["tools"]

    def test_non_mapping_section(self, tmp_test_dir):
        """Test that a scalar section raises ConfigError naming the section."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("deploy: fast\n")

        with pytest.raises(ConfigError, match="Section 'deploy' must be a mapping"):
            load_effective_config(config_path=path)

    def test_zero_value_kept(self, tmp_test_dir):
        """Test that an explicit zero is not replaced by the default."""
        path = tmp_test_dir / "config.yaml"
        path.write_text("deploy:\n  poll_interval: 0\n")

        config = load_effective_config(config_path=path)

        assert config["deploy"]["poll_interval"] == 0


class TestDeepMerge:
    """Tests for _deep_merge_dicts()."""

    def test_nested_merge(self):
        """Test that nested dicts merge key by key."""
        base = {"a": {"x": 1, "y": 2}, "b": [1, 2]}
        overlay = {"a": {"y": 3}, "b": [9]}

        assert _deep_merge_dicts(base, overlay) == {"a": {"x": 1, "y": 3}, "b": [9]}

    def test_inputs_not_mutated(self):
        """Test that neither input is modified."""
        base = {"a": {"x": 1}}
        overlay = {"a": {"x": 2}}

        _deep_merge_dicts(base, overlay)

        assert base == {"a": {"x": 1}}
        assert overlay == {"a": {"x": 2}}
