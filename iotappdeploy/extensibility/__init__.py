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

"""Plugin contracts and manifest content changes for iotappdeploy.

Plugins (projects, templates, dependency providers) implement the Protocol
classes exported here. Content changes describe how a project tailors the
template's AppxManifest.xml.
"""

from .base import (
    BaseProjectType,
    ContentChange,
    Dependency,
    DependencyConfiguration,
    DependencyProvider,
    FileContent,
    Project,
    ProjectProvider,
    SdkVersion,
    TargetPlatform,
    Template,
    TemplateProvider,
    map_line,
)
from .content import (
    MANIFEST_FILE,
    MANIFEST_NAMESPACES,
    CapabilityAddition,
    XmlContentChange,
    apply_content_changes,
)

__all__ = [
    "BaseProjectType",
    "CapabilityAddition",
    "ContentChange",
    "Dependency",
    "DependencyConfiguration",
    "DependencyProvider",
    "FileContent",
    "MANIFEST_FILE",
    "MANIFEST_NAMESPACES",
    "Project",
    "ProjectProvider",
    "SdkVersion",
    "TargetPlatform",
    "Template",
    "TemplateProvider",
    "XmlContentChange",
    "apply_content_changes",
    "map_line",
]
