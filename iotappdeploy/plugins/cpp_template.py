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

"""C++ background application template.

Provides the base APPX content that Python (and any other non-native) IoT
Core projects are layered on: the manifest, the signing key, the resource
index and the logo assets.

The manifest and placeholder logo assets ship inside the package, and a
temporary CN=MSFT signing key is generated for each run. A folder configured
as `resources.template_dir` replaces all of that: it must hold resources.pri,
TemporaryKey.pfx, TemporaryKey.pfx.cer and Assets/*.png, and may hold its own
AppxManifest.xml.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from iotappdeploy.build.signing import generate_signing_key
from iotappdeploy.extensibility.base import (
    BaseProjectType,
    FileContent,
    map_line,
)
from iotappdeploy.extensibility.content import MANIFEST_FILE
from iotappdeploy.plugins.registry import register_provider

BUNDLED_TEMPLATE_DIR = (
    Path(__file__).parent / "resources" / "cpp_background_application"
)

SIGNING_KEY_FILE = "TemporaryKey.pfx"
SIGNING_CERT_FILE = "TemporaryKey.pfx.cer"

# Matches the Identity/@Publisher every bundled project writes
SIGNING_PUBLISHER = "CN=MSFT"

ASSET_FILES = [
    "Assets\\LockScreenLogo.scale-200.png",
    "Assets\\SplashScreen.scale-200.png",
    "Assets\\Square44x44Logo.scale-200.png",
    "Assets\\Square44x44Logo.targetsize-24_altform-unplated.png",
    "Assets\\Square150x150Logo.scale-200.png",
    "Assets\\StoreLogo.png",
    "Assets\\Wide310x150Logo.scale-200.png",
]

TEMPLATE_FILES = [
    "resources.pri",
    SIGNING_KEY_FILE,
    SIGNING_CERT_FILE,
    *ASSET_FILES,
]

RESOURCE_METADATA = [
    map_line("ResourceDimensions", "scale-200"),
    map_line("ResourceDimensions", "language-en-us"),
    map_line("ResourceDimensions", "language-en-US"),
]


class CppBackgroundApplicationTemplate:
    """Template for the CPlusPlusBackgroundApplication base project type."""

    name = "C++ Background Application"

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = template_dir

    def base_project_type(self) -> BaseProjectType:
        return BaseProjectType.CPLUSPLUS_BACKGROUND_APPLICATION

    def _manifest_source(self) -> Path:
        if self.template_dir is not None:
            override = self.template_dir / MANIFEST_FILE
            if override.is_file():
                return override
        return BUNDLED_TEMPLATE_DIR / MANIFEST_FILE

    def template_contents(self) -> list[FileContent]:
        contents = [FileContent(MANIFEST_FILE, self._manifest_source())]
        if self.template_dir is None:
            key = generate_signing_key(SIGNING_PUBLISHER)
            contents.append(FileContent(SIGNING_KEY_FILE, key.pfx))
            contents.append(FileContent(SIGNING_CERT_FILE, key.certificate))
            for relative in ASSET_FILES:
                source = BUNDLED_TEMPLATE_DIR.joinpath(*relative.split("\\"))
                contents.append(FileContent(relative, source))
            return contents
        for relative in TEMPLATE_FILES:
            source = self.template_dir.joinpath(*relative.split("\\"))
            contents.append(FileContent(relative, source))
        return contents

    def appx_map_contents(
        self, resource_metadata: list[str], files: list[str], root: Path
    ) -> bool:
        resource_metadata.extend(RESOURCE_METADATA)

        # Only files that were actually staged can be packed
        for relative in ["resources.pri", *ASSET_FILES]:
            staged = root.joinpath(*relative.split("\\"))
            if staged.is_file():
                files.append(map_line(staged, relative))
        return True


class CppTemplateProvider:
    def __init__(self, resources: dict[str, Any]) -> None:
        template_dir = resources.get("template_dir")
        self.template_dir = Path(template_dir) if template_dir else None

    def supported_templates(self) -> list[CppBackgroundApplicationTemplate]:
        return [CppBackgroundApplicationTemplate(self.template_dir)]


register_provider("template", "cpp_background_application", CppTemplateProvider)
