# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Plugin provider registry for iotappdeploy.

Providers are registered explicitly by kind and name. There is no implicit
type scanning: a plugin module registers its factories when it is imported,
and only modules named in the builtin set or in the `plugins.modules`
allow-list are ever imported.

Provider kinds:

- project: ProjectProvider factories (source file -> Project)
- template: TemplateProvider factories (base project type -> Template)
- dependency: DependencyProvider factories (runtime packages)

Design Philosophy:
    - Registration happens at module import time (providers self-register)
    - Registry is a simple dict keyed by kind, then by provider name
    - Factories take the `resources` config mapping and return a provider
    - A factory that raises is reported, never silently skipped

Example:
    Registering a provider from a plugin module:
        ```python
        # In my_plugins/node.py
        from iotappdeploy.plugins.registry import register_provider

        class NodeProjectProvider:
            def __init__(self, resources):
                self.resources = resources

            def supported_projects(self):
                return [NodeProject(self.resources)]

        register_provider("project", "node", NodeProjectProvider)
        ```

    Then allow-list the module in .iotappdeploy/config.yaml:
        ```yaml
        plugins:
          modules:
            - my_plugins.node
        ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import cached_property
import importlib
from typing import Any

from iotappdeploy.exceptions import ConfigError, PluginError
from iotappdeploy.extensibility.base import (
    BaseProjectType,
    DependencyProvider,
    Project,
    Template,
)
from iotappdeploy.logging import Logger, get_global_logger

PROVIDER_KINDS = ("project", "template", "dependency")

ProviderFactory = Callable[[dict[str, Any]], Any]

_PROVIDER_REGISTRY: dict[str, dict[str, ProviderFactory]] = {
    kind: {} for kind in PROVIDER_KINDS
}


def register_provider(kind: str, name: str, factory: ProviderFactory) -> None:
    """Register a provider factory under a kind and name.

    Registering the same name twice overwrites the previous registration
    (allows monkey-patching for tests).

    Args:
        kind: One of "project", "template" or "dependency".
        name: Provider name, unique within its kind.
        factory: Callable taking the `resources` config mapping and
            returning a provider instance.

    Raises:
        ConfigError: If kind is not a known provider kind.
    """
    if kind not in _PROVIDER_REGISTRY:
        raise ConfigError(
            f"Unknown provider kind: {kind!r}. Available: {', '.join(PROVIDER_KINDS)}"
        )
    _PROVIDER_REGISTRY[kind][name] = factory


def registered_providers(kind: str) -> list[str]:
    """Return the provider names registered for a kind, in registration order."""
    return list(_PROVIDER_REGISTRY.get(kind, {}))


@dataclass(frozen=True)
class DiscoveryReport:
    """Outcome of instantiating every registered provider of one kind.

    Attributes:
        providers: Provider instances, in registration order.
        errors: (name, error) pairs for factories or modules that failed.
    """

    providers: list[Any] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)


def load_plugin_modules(
    modules: Iterable[str],
) -> list[tuple[str, Exception]]:
    """Import allow-listed plugin modules so they can self-register.

    Returns:
        (module name, error) pairs for modules that failed to import.
    """
    errors: list[tuple[str, Exception]] = []
    for module_name in modules:
        try:
            importlib.import_module(module_name)
        except Exception as err:
            errors.append((module_name, err))
    return errors


def discover_providers(
    kind: str, resources: dict[str, Any] | None = None
) -> DiscoveryReport:
    """Instantiate every registered provider of one kind.

    Args:
        kind: One of "project", "template" or "dependency".
        resources: The `resources` config mapping handed to each factory.

    Returns:
        A DiscoveryReport with the providers that could be built and the
            (name, error) pairs for the ones that raised.

    Raises:
        ConfigError: If kind is not a known provider kind.
    """
    if kind not in _PROVIDER_REGISTRY:
        raise ConfigError(
            f"Unknown provider kind: {kind!r}. Available: {', '.join(PROVIDER_KINDS)}"
        )

    resources = resources or {}
    report = DiscoveryReport()
    for name, factory in _PROVIDER_REGISTRY[kind].items():
        try:
            report.providers.append(factory(resources))
        except Exception as err:
            report.errors.append((name, err))
    return report


class SupportedProjects:
    """Memoised view of the available projects, templates and dependencies.

    Providers are instantiated once per SupportedProjects instance, the
    first time a kind is needed, and never re-discovered. find_project()
    therefore returns the same Project instance for the same kind of source
    on every call.

    Args:
        resources: The `resources` config mapping passed to factories.
        plugin_modules: Extra allow-listed modules to import first.
        logger: Optional logger; defaults to the global logger.
    """

    def __init__(
        self,
        resources: dict[str, Any] | None = None,
        plugin_modules: Iterable[str] = (),
        logger: Logger | None = None,
    ) -> None:
        self._resources = dict(resources or {})
        self._logger = logger if logger is not None else get_global_logger()
        self._module_errors = load_plugin_modules(plugin_modules)
        for name, err in self._module_errors:
            self._logger.verbose("PLUGIN", f"Failed to import {name}: {err}")

    def _discover(self, kind: str) -> DiscoveryReport:
        report = discover_providers(kind, self._resources)
        self._logger.debug(
            "PLUGIN", f"Discovered {len(report.providers)} {kind} provider(s)"
        )
        for name, err in report.errors:
            self._logger.verbose("PLUGIN", f"{kind} provider {name!r} failed: {err}")
        return report

    @cached_property
    def _project_report(self) -> DiscoveryReport:
        return self._discover("project")

    @cached_property
    def _template_report(self) -> DiscoveryReport:
        return self._discover("template")

    @cached_property
    def _dependency_report(self) -> DiscoveryReport:
        return self._discover("dependency")

    @cached_property
    def projects(self) -> list[Project]:
        projects: list[Project] = []
        for provider in self._project_report.providers:
            projects.extend(provider.supported_projects())
        return projects

    @cached_property
    def templates(self) -> list[Template]:
        templates: list[Template] = []
        for provider in self._template_report.providers:
            templates.extend(provider.supported_templates())
        return templates

    @property
    def dependency_providers(self) -> list[DependencyProvider]:
        return list(self._dependency_report.providers)

    @property
    def errors(self) -> list[tuple[str, Exception]]:
        """Every (name, error) pair recorded so far, modules first."""
        return [
            *self._module_errors,
            *self._project_report.errors,
            *self._template_report.errors,
            *self._dependency_report.errors,
        ]

    def find_project(self, source: str | None) -> Project | None:
        """Return the first project that supports source, or None."""
        for project in self.projects:
            if project.is_source_supported(source):
                return project
        return None

    def find_template(self, base_type: BaseProjectType) -> Template | None:
        """Return the first template for base_type, or None."""
        for template in self.templates:
            if template.base_project_type() == base_type:
                return template
        return None

    def require_project(self, source: str) -> Project:
        """Like find_project() but raises PluginError when nothing matches."""
        project = self.find_project(source)
        if project is None:
            raise PluginError(f"source is not supported. {source}")
        return project

    def require_template(self, base_type: BaseProjectType) -> Template:
        """Like find_template() but raises PluginError when nothing matches.

        The Other base type never has a template.
        """
        template = None
        if base_type != BaseProjectType.OTHER:
            template = self.find_template(base_type)
        if template is None:
            raise PluginError(f"base project type is not supported. {base_type.value}")
        return template
