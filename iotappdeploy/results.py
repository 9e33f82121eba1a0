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

"""Public API return types for iotappdeploy.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Note:
    Only public API return types belong in this module. Wire-format types
    (like DeploymentState) stay co-located with the REST client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class PackageResult:
    """Result from building and signing an APPX package.

    Attributes:
        appx_path: Path to the signed .appx archive.
        certificate_path: Path to the exported .cer file.
        dependency_paths: Runtime dependency packages copied next to the APPX.
        staging_dir: Folder the package was staged in.
        map_file: Path to the generated file-mapping manifest.
    """

    appx_path: Path
    certificate_path: Path
    dependency_paths: list[Path]
    staging_dir: Path
    map_file: Path

    @property
    def upload_files(self) -> list[Path]:
        """Files to send to the device, in upload order (APPX first)."""
        return [self.appx_path, self.certificate_path, *self.dependency_paths]


@dataclass(frozen=True)
class DeployResult:
    """Result from a complete build-and-deploy run.

    Attributes:
        project_name: Name of the project system that handled the source.
        template_name: Name of the base template used.
        package_full_name: Package full name as installed on the device.
        target: Device name or IP address.
        appx_path: Path to the APPX (inside the temp folder unless kept/saved).
        saved_to: Folder the artifacts were copied to, if requested.
        status: Always "success" for a completed run.
        phases: Deployment phases visited, in order.
    """

    project_name: str
    template_name: str
    package_full_name: str
    target: str
    appx_path: Path
    saved_to: Path | None = None
    status: str = "success"
    phases: list[str] = field(default_factory=list)
