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

"""APPX package building for iotappdeploy.

Modules:
    manager: Staging, manifest tailoring, map file and MakeAppx packing
    packager: Signing, certificate export and dependency gathering
    signing: Temporary self-signed signing keys
    tools: Locating and running MakeAppx.exe, SignTool.exe and PowerShell.exe
"""

from .manager import create_package, write_map_file
from .packager import copy_dependencies, export_certificate, sign_package
from .signing import SigningKey, generate_signing_key
from .tools import ToolPaths, resolve_tools, run_external_tool

__all__ = [
    "SigningKey",
    "ToolPaths",
    "copy_dependencies",
    "create_package",
    "export_certificate",
    "generate_signing_key",
    "resolve_tools",
    "run_external_tool",
    "sign_package",
    "write_map_file",
]
