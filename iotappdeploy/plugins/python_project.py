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

"""Python background application project.

Turns a single `.py` file into a headless IoT Core app. The script is
staged as `StartupTask.py` next to the Python UWP runtime
(pyuwpbackgroundservice.dll, the interpreter DLL, lib.zip and friends),
and the C++ background application manifest is rewritten to point its
startup task at the Python background service.

The runtime files are taken from the folder configured as
`resources.python_runtime_dir`, from its `ARM` / `x86` subfolder when one
exists for the target architecture. Without that setting only the script
itself is packaged.

Example:
    ```python
    from iotappdeploy.extensibility import TargetPlatform
    from iotappdeploy.plugins.python_project import PythonProject

    project = PythonProject()
    project.source_input = "app.py"
    project.processor_architecture = TargetPlatform.X86
    changes = project.appx_content_changes()
    ```
"""

from __future__ import annotations

from pathlib import Path, PureWindowsPath
from typing import Any
import uuid

from iotappdeploy.extensibility.base import (
    BaseProjectType,
    ContentChange,
    DependencyConfiguration,
    DependencyProvider,
    FileContent,
    SdkVersion,
    TargetPlatform,
    map_line,
)
from iotappdeploy.extensibility.content import (
    MANIFEST_FILE,
    CapabilityAddition,
    XmlContentChange,
)
from iotappdeploy.logging import Logger, get_global_logger
from iotappdeploy.plugins.registry import register_provider
from iotappdeploy.plugins.vclibs import CPLUSPLUS_UWP, PLATFORM_FOLDERS

STARTUP_TASK_FILE = "StartupTask.py"

IDENTITY_PUBLISHER = "CN=MSFT"
PUBLISHER_DISPLAY_NAME = "MSFT"
PROPERTIES_DISPLAY_NAME = "PythonBackgroundApplication1"
VISUAL_DISPLAY_NAME = "pythonuwp"
VISUAL_DESCRIPTION = "pythonuwp"
EXTENSION_ENTRY_POINT = "pyuwpbackgroundservice.StartupTask"
IN_PROCESS_SERVER_PATH = "pyuwpbackgroundservice.dll"
ACTIVATABLE_CLASS_ID = "pyuwpbackgroundservice.StartupTask"


class PythonProject:
    """Project system for `.py` sources."""

    name = "Python Project"

    def __init__(self, runtime_dir: Path | None = None) -> None:
        self.runtime_dir = runtime_dir
        self.source_input: str | None = None
        self.processor_architecture = TargetPlatform.ARM
        self.sdk_version = SdkVersion.SDK_10_0_10586_0
        self.dependency_configuration = DependencyConfiguration.DEBUG
        self._phone_product_id = str(uuid.uuid4())

    @property
    def identity_name(self) -> str:
        return "python-uwp"

    @property
    def display_name(self) -> str:
        return VISUAL_DISPLAY_NAME

    def is_source_supported(self, source: str | None) -> bool:
        if source is None:
            return False
        return source.lower().endswith(".py")

    def base_project_type(self) -> BaseProjectType:
        return BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION

    def _platform_runtime_dir(self) -> Path | None:
        if self.runtime_dir is None:
            return None
        platform_dir = self.runtime_dir / PLATFORM_FOLDERS[self.processor_architecture]
        if platform_dir.is_dir():
            return platform_dir
        return self.runtime_dir

    def _runtime_files(self) -> list[str]:
        """Runtime files as backslash-separated package-relative paths."""
        runtime_dir = self._platform_runtime_dir()
        if runtime_dir is None:
            return []
        return sorted(
            str(PureWindowsPath(*path.relative_to(runtime_dir).parts))
            for path in runtime_dir.rglob("*")
            if path.is_file()
        )

    def appx_contents(self) -> list[FileContent]:
        contents: list[FileContent] = []
        runtime_dir = self._platform_runtime_dir()
        if runtime_dir is None:
            get_global_logger().verbose(
                "PLUGIN",
                "resources.python_runtime_dir not configured, "
                "packaging the script only",
            )
        else:
            for relative in self._runtime_files():
                contents.append(
                    FileContent(relative, runtime_dir.joinpath(*relative.split("\\")))
                )

        if self.source_input is not None:
            contents.append(FileContent(STARTUP_TASK_FILE, Path(self.source_input)))
        return contents

    def appx_content_changes(self) -> list[ContentChange]:
        sdk = self.sdk_version.value
        arch = self.processor_architecture.value.lower()

        def change(xpath: str, value: str) -> XmlContentChange:
            return XmlContentChange(MANIFEST_FILE, xpath, value)

        return [
            change("/std:Package/std:Identity/@Name", self.identity_name),
            change("/std:Package/std:Identity/@Publisher", IDENTITY_PUBLISHER),
            change("/std:Package/std:Identity/@ProcessorArchitecture", arch),
            change(
                "/std:Package/mp:PhoneIdentity/@PhoneProductId",
                self._phone_product_id,
            ),
            change(
                "/std:Package/std:Properties/std:DisplayName",
                PROPERTIES_DISPLAY_NAME,
            ),
            change(
                "/std:Package/std:Properties/std:PublisherDisplayName",
                PUBLISHER_DISPLAY_NAME,
            ),
            change(
                "/std:Package/std:Dependencies/std:TargetDeviceFamily/@MinVersion",
                sdk,
            ),
            change(
                "/std:Package/std:Dependencies/std:TargetDeviceFamily/@MaxVersionTested",
                sdk,
            ),
            change(
                "/std:Package/std:Applications/std:Application/uap:VisualElements/@DisplayName",
                VISUAL_DISPLAY_NAME,
            ),
            change(
                "/std:Package/std:Applications/std:Application/uap:VisualElements/@Description",
                VISUAL_DESCRIPTION,
            ),
            change(
                "/std:Package/std:Applications/std:Application/std:Extensions/std:Extension/@EntryPoint",
                EXTENSION_ENTRY_POINT,
            ),
            change(
                "/std:Package/std:Extensions/std:Extension/std:InProcessServer/std:Path",
                IN_PROCESS_SERVER_PATH,
            ),
            change(
                "/std:Package/std:Extensions/std:Extension/std:InProcessServer"
                "/std:ActivatableClass/@ActivatableClassId",
                ACTIVATABLE_CLASS_ID,
            ),
        ]

    def capabilities(self) -> list[ContentChange]:
        return [CapabilityAddition("internetClientServer")]

    def appx_map_contents(
        self, resource_metadata: list[str], files: list[str], root: Path
    ) -> bool:
        files.append(map_line(root / STARTUP_TASK_FILE, STARTUP_TASK_FILE))
        for relative in self._runtime_files():
            files.append(map_line(root.joinpath(*relative.split("\\")), relative))
        return True

    def dependencies(
        self, dependency_providers: list[DependencyProvider]
    ) -> list[FileContent]:
        for provider in dependency_providers:
            supported = provider.supported_dependencies()
            if CPLUSPLUS_UWP in supported:
                return supported[CPLUSPLUS_UWP].dependency_files(
                    self.processor_architecture,
                    self.dependency_configuration,
                    self.sdk_version,
                )
        return []

    def build(self, root: Path, logger: Logger) -> bool:
        # Python sources are packaged as-is
        logger.verbose("BUILD", f"{self.name}: no build step required")
        return True


class PythonProjectProvider:
    def __init__(self, resources: dict[str, Any]) -> None:
        runtime_dir = resources.get("python_runtime_dir")
        self.runtime_dir = Path(runtime_dir) if runtime_dir else None

    def supported_projects(self) -> list[PythonProject]:
        return [PythonProject(self.runtime_dir)]


register_provider("project", "python", PythonProjectProvider)
