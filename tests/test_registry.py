"""
Tests for iotappdeploy.plugins.registry module.

Tests provider registration and lookup including:
- Builtin provider discovery
- Memoised project instances
- Template lookup by base project type
- Reporting of failing factories and plugin modules
"""

from __future__ import annotations

import pytest

from iotappdeploy.exceptions import ConfigError, PluginError
from iotappdeploy.extensibility import BaseProjectType
from iotappdeploy.plugins import SupportedProjects, discover_providers, register_provider
from iotappdeploy.plugins.registry import _PROVIDER_REGISTRY, registered_providers

pytestmark = pytest.mark.unit


@pytest.fixture
def broken_provider(monkeypatch):
    """Register a project provider whose factory always raises."""

    def factory(resources):
        raise RuntimeError("factory exploded")

    monkeypatch.setitem(_PROVIDER_REGISTRY["project"], "broken", factory)
    return "broken"


class TestRegisterProvider:
    """Tests for register_provider()."""

    def test_builtin_providers_registered(self):
        """Test that importing the plugins package registers the builtins."""
        assert "python" in registered_providers("project")
        assert "cpp_background_application" in registered_providers("template")
        assert "shared" in registered_providers("dependency")

    def test_unknown_kind_raises(self):
        """Test that an unknown provider kind raises ConfigError."""
        with pytest.raises(ConfigError, match="Unknown provider kind"):
            register_provider("widget", "x", lambda resources: None)

    def test_register_and_discover(self, monkeypatch):
        """Test that a registered factory receives the resources mapping."""
        seen = {}

        class Provider:
            def __init__(self, resources):
                seen.update(resources)

            def supported_projects(self):
                return []

        monkeypatch.setitem(_PROVIDER_REGISTRY["project"], "custom", Provider)
        report = discover_providers("project", {"python_runtime_dir": None, "k": "v"})

        assert any(isinstance(p, Provider) for p in report.providers)
        assert seen["k"] == "v"


class TestDiscoverProviders:
    """Tests for discover_providers()."""

    def test_factory_error_recorded(self, broken_provider):
        """Test that a raising factory is reported, not skipped silently."""
        report = discover_providers("project")

        names = [name for name, _ in report.errors]
        assert broken_provider in names
        assert len(report.providers) >= 1

    def test_unknown_kind_raises(self):
        """Test that discovering an unknown kind raises ConfigError."""
        with pytest.raises(ConfigError):
            discover_providers("widget")


class TestSupportedProjects:
    """Tests for the SupportedProjects view."""

    def test_find_project_for_python_source(self):
        """Test that a .py source maps to the Python project."""
        supported = SupportedProjects()

        project = supported.find_project("C:/apps/app.py")

        assert project is not None
        assert project.name == "Python Project"

    def test_find_project_is_memoised(self):
        """Test that the same instance is returned on every call."""
        supported = SupportedProjects()

        first = supported.find_project("one.py")
        second = supported.find_project("two.PY")

        assert first is second

    def test_find_project_unsupported_source(self):
        """Test that an unsupported source returns None."""
        supported = SupportedProjects()

        assert supported.find_project("notes.txt") is None
        assert supported.find_project(None) is None

    def test_find_template(self):
        """Test template lookup by base project type."""
        supported = SupportedProjects()

        template = supported.find_template(
            BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION
        )

        assert template is not None
        assert template.name == "C++ Background Application"
        assert supported.find_template(BaseProjectType.CSHARP) is None

    def test_require_project_raises(self):
        """Test that require_project() raises PluginError for unknown sources."""
        supported = SupportedProjects()

        with pytest.raises(PluginError, match="source is not supported. notes.txt"):
            supported.require_project("notes.txt")

    def test_require_template_other_never_supported(self):
        """Test that the Other base type never resolves to a template."""
        supported = SupportedProjects()

        with pytest.raises(PluginError, match="base project type is not supported. Other"):
            supported.require_template(BaseProjectType.OTHER)

    def test_resources_reach_providers(self, tmp_test_dir):
        """Test that the resources mapping configures builtin providers."""
        supported = SupportedProjects(resources={"template_dir": str(tmp_test_dir)})

        template = supported.require_template(
            BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION
        )

        assert template.template_dir == tmp_test_dir

    def test_dependency_providers(self):
        """Test that the shared VCLibs provider is available."""
        supported = SupportedProjects()

        providers = supported.dependency_providers

        assert any("CPlusPlusUwp" in p.supported_dependencies() for p in providers)

    def test_factory_error_in_errors(self, broken_provider):
        """Test that factory failures show up in errors."""
        supported = SupportedProjects()

        assert supported.find_project("app.py") is not None
        assert broken_provider in [name for name, _ in supported.errors]

    def test_plugin_module_import_error_recorded(self):
        """Test that an allow-listed module that cannot be imported is reported."""
        supported = SupportedProjects(plugin_modules=["not_a_real_plugin_module_xyz"])

        errors = dict(supported.errors)

        assert isinstance(errors["not_a_real_plugin_module_xyz"], ImportError)
