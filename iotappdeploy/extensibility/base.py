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

"""Plugin contracts for iotappdeploy.

This module defines the fixed contracts that project, template and
dependency plugins implement. They are Protocol classes (structural
subtyping), so a plugin never has to import or inherit from anything here;
it only has to expose the right attributes and methods.

Contracts:

- Project: one build/deploy target created from a user source file
- Template: base-platform content shared by all projects of a base type
- Dependency: platform/configuration/SDK keyed runtime packages
- ProjectProvider / TemplateProvider / DependencyProvider: factories the
  plugin registry instantiates

Design Philosophy:
    - Strategies are Protocol classes (structural subtyping, not inheritance)
    - The providers share no base type; they are looked up by kind
    - Enums parse user text case-insensitively and raise ConfigError otherwise

Example:
    A minimal template:
        ```python
        from iotappdeploy.extensibility import BaseProjectType, FileContent

        class MyTemplate:
            name = "My Template"

            def base_project_type(self):
                return BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION

            def template_contents(self):
                return [FileContent("AppxManifest.xml", Path("manifest.xml"))]

            def appx_map_contents(self, resource_metadata, files, root):
                return True
        ```
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PureWindowsPath
import shutil
from typing import TYPE_CHECKING, Protocol

from iotappdeploy.exceptions import ConfigError, PackagingError

if TYPE_CHECKING:
    from iotappdeploy.logging import Logger


class _ParsableEnum(Enum):
    """Enum that can be built from case-insensitive user input."""

    @classmethod
    def parse(cls, text: str):
        for member in cls:
            if member.value.lower() == text.strip().lower():
                return member
        supported = " | ".join(m.value for m in cls)
        raise ConfigError(
            f"Unsupported {cls._label()}: {text!r}. Supported: {supported}"
        )

    @classmethod
    def _label(cls) -> str:
        return cls.__name__

    def __str__(self) -> str:
        return self.value


class TargetPlatform(_ParsableEnum):
    """Processor architecture of the target device."""

    ARM = "ARM"
    X86 = "X86"

    @classmethod
    def _label(cls) -> str:
        return "target type"


class DependencyConfiguration(_ParsableEnum):
    """Build configuration used to pick runtime dependency flavors."""

    DEBUG = "Debug"
    RELEASE = "Release"

    @classmethod
    def _label(cls) -> str:
        return "dependency configuration"


class SdkVersion(_ParsableEnum):
    """Windows SDK version the package targets."""

    SDK_10_0_10586_0 = "10.0.10586.0"

    @classmethod
    def _label(cls) -> str:
        return "dependency SDK"


class BaseProjectType(Enum):
    """Base project type a plugin project builds on top of."""

    CPLUSPLUS_BACKGROUND_APPLICATION = "CPlusPlusBackgroundApplication"
    CSHARP = "CSharp"
    JAVASCRIPT = "JavaScript"
    VISUAL_BASIC = "VisualBasic"
    OTHER = "Other"


@dataclass(frozen=True)
class FileContent:
    """One file to place into a staging or artifacts folder.

    Attributes:
        appx_relative_path: Destination path inside the package. Backslash
            separated paths (as used in APPX map files) are accepted.
        source: Either a path to copy from or the raw bytes to write.
    """

    appx_relative_path: str
    source: Path | bytes

    @property
    def relative_path(self) -> Path:
        return Path(*PureWindowsPath(self.appx_relative_path).parts)

    def apply(self, root: Path) -> Path:
        """Write this file under root and return its destination path.

        Raises:
            PackagingError: If the source file does not exist or cannot be copied.
        """
        dest = root / self.relative_path
        dest.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(self.source, bytes):
            dest.write_bytes(self.source)
            return dest

        source = Path(self.source)
        if not source.is_file():
            raise PackagingError(
                f"Cannot copy {self.appx_relative_path}: source not found: {source}"
            )
        try:
            shutil.copyfile(source, dest)
        except OSError as err:
            raise PackagingError(
                f"Failed to copy {source} -> {dest}: {err}"
            ) from err
        return dest


class ContentChange(Protocol):
    """A declarative mutation applied to a staged file."""

    def apply_to_content(self, root: Path) -> None:
        """Apply the change to files under root.

        Raises:
            PackagingError: If the change cannot be applied.
        """
        ...


class Dependency(Protocol):
    """A named bundle of runtime packages shipped next to the app package."""

    name: str

    def dependency_files(
        self,
        platform: TargetPlatform,
        configuration: DependencyConfiguration,
        sdk_version: SdkVersion,
    ) -> list[FileContent]: ...


class DependencyProvider(Protocol):
    def supported_dependencies(self) -> dict[str, Dependency]: ...


class Template(Protocol):
    """Base-platform content shared by all projects of one base type."""

    name: str

    def base_project_type(self) -> BaseProjectType: ...

    def template_contents(self) -> list[FileContent]: ...

    def appx_map_contents(
        self, resource_metadata: list[str], files: list[str], root: Path
    ) -> bool: ...


class TemplateProvider(Protocol):
    def supported_templates(self) -> list[Template]: ...


class Project(Protocol):
    """One build/deploy target.

    The registry hands out a single instance per project type; the caller
    configures it (source, architecture, SDK, configuration) before use.
    """

    name: str
    source_input: str | None
    processor_architecture: TargetPlatform
    sdk_version: SdkVersion
    dependency_configuration: DependencyConfiguration

    @property
    def identity_name(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    def is_source_supported(self, source: str | None) -> bool: ...

    def base_project_type(self) -> BaseProjectType: ...

    def appx_contents(self) -> list[FileContent]: ...

    def appx_content_changes(self) -> list[ContentChange]: ...

    def capabilities(self) -> list[ContentChange]: ...

    def appx_map_contents(
        self, resource_metadata: list[str], files: list[str], root: Path
    ) -> bool: ...

    def dependencies(
        self, dependency_providers: list[DependencyProvider]
    ) -> list[FileContent]: ...

    def build(self, root: Path, logger: Logger) -> bool: ...


class ProjectProvider(Protocol):
    def supported_projects(self) -> list[Project]: ...


def map_line(source: Path | str, destination: str) -> str:
    """Format one quoted key/value line of an APPX map file."""
    return f'"{source}" "{destination}"'
