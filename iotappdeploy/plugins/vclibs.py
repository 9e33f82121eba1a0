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

"""C++ UWP runtime (VCLibs) dependency provider.

Apps built on the C++ background application template need the matching
Microsoft.VCLibs framework package installed next to them. The packages are
looked up in the folder configured as `resources.vclibs_dir`, either
directly or in an `ARM` / `x86` subfolder:

    vclibs_dir/
      ARM/Microsoft.VCLibs.ARM.Debug.14.00.appx
      x86/Microsoft.VCLibs.x86.Release.14.00.appx
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from iotappdeploy.extensibility.base import (
    DependencyConfiguration,
    FileContent,
    SdkVersion,
    TargetPlatform,
)
from iotappdeploy.logging import get_global_logger
from iotappdeploy.plugins.registry import register_provider

CPLUSPLUS_UWP = "CPlusPlusUwp"

VCLIBS_VERSIONS = {
    SdkVersion.SDK_10_0_10586_0: "14.00",
}

PLATFORM_FOLDERS = {
    TargetPlatform.ARM: "ARM",
    TargetPlatform.X86: "x86",
}


def vclibs_file_name(
    platform: TargetPlatform,
    configuration: DependencyConfiguration,
    sdk_version: SdkVersion,
) -> str | None:
    """Return the VCLibs package file name, or None for an unknown SDK.

    Example:
        >>> vclibs_file_name(
        ...     TargetPlatform.ARM,
        ...     DependencyConfiguration.DEBUG,
        ...     SdkVersion.SDK_10_0_10586_0,
        ... )
        'Microsoft.VCLibs.ARM.Debug.14.00.appx'
    """
    version = VCLIBS_VERSIONS.get(sdk_version)
    if version is None:
        return None
    platform_name = PLATFORM_FOLDERS[platform]
    return f"Microsoft.VCLibs.{platform_name}.{configuration.value}.{version}.appx"


class CPlusPlusUwpDependency:
    name = CPLUSPLUS_UWP

    def __init__(self, vclibs_dir: Path | None = None) -> None:
        self.vclibs_dir = vclibs_dir

    def dependency_files(
        self,
        platform: TargetPlatform,
        configuration: DependencyConfiguration,
        sdk_version: SdkVersion,
    ) -> list[FileContent]:
        logger = get_global_logger()

        file_name = vclibs_file_name(platform, configuration, sdk_version)
        if file_name is None:
            logger.verbose("PLUGIN", f"No VCLibs package known for SDK {sdk_version}")
            return []
        if self.vclibs_dir is None:
            logger.verbose(
                "PLUGIN",
                f"resources.vclibs_dir not configured, skipping {file_name}",
            )
            return []

        source = self.vclibs_dir / PLATFORM_FOLDERS[platform] / file_name
        if not source.is_file():
            source = self.vclibs_dir / file_name
        return [FileContent(file_name, source)]


class SharedDependenciesProvider:
    def __init__(self, resources: dict[str, Any]) -> None:
        vclibs_dir = resources.get("vclibs_dir")
        self.vclibs_dir = Path(vclibs_dir) if vclibs_dir else None

    def supported_dependencies(self) -> dict[str, CPlusPlusUwpDependency]:
        return {CPLUSPLUS_UWP: CPlusPlusUwpDependency(self.vclibs_dir)}


register_provider("dependency", "shared", SharedDependenciesProvider)
