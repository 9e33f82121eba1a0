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

"""Builtin plugins and the provider registry for iotappdeploy.

Importing this package registers the builtin providers:

Available Providers:
    project/python : PythonProjectProvider
        `.py` sources packaged on the Python UWP runtime.
    template/cpp_background_application : CppTemplateProvider
        C++ background application base content (manifest, key, assets).
    dependency/shared : SharedDependenciesProvider
        Microsoft.VCLibs framework packages ("CPlusPlusUwp").

Extra providers are loaded from the `plugins.modules` allow-list; see
iotappdeploy.plugins.registry.
"""

# Import provider modules to trigger self-registration
from . import (
    cpp_template,  # noqa: F401
    python_project,  # noqa: F401
    vclibs,  # noqa: F401
)
from .registry import (
    DiscoveryReport,
    SupportedProjects,
    discover_providers,
    register_provider,
)

__all__ = [
    "DiscoveryReport",
    "SupportedProjects",
    "discover_providers",
    "register_provider",
]
