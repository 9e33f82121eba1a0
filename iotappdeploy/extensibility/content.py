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

"""AppxManifest.xml patching for iotappdeploy.

This module implements the declarative content changes a project applies to
the staged package: XPath value changes and capability insertions. Changes
are applied in list order, and later changes may rely on earlier ones.

Namespace prefixes available in XPath expressions:

- std: http://schemas.microsoft.com/appx/manifest/foundation/windows10
- mp: http://schemas.microsoft.com/appx/2014/phone/manifest
- uap: http://schemas.microsoft.com/appx/manifest/uap/windows10
- iot: http://schemas.microsoft.com/appx/manifest/iot/windows10
- build: http://schemas.microsoft.com/developer/appx/2015/build

Example:
    Tailoring a staged manifest:
        ```python
        from pathlib import Path
        from iotappdeploy.extensibility import (
            CapabilityAddition,
            XmlContentChange,
            apply_content_changes,
        )

        changes = [
            XmlContentChange(
                "AppxManifest.xml", "/std:Package/std:Identity/@Name", "python-uwp"
            ),
            CapabilityAddition("lowLevelDevices", capability_namespace="iot"),
        ]
        apply_content_changes(changes, Path("staging"))
        ```

Note:
    Files are parsed with DTD loading, entity resolution and network access
    disabled. Applying an identical change list twice leaves the file
    byte-for-byte unchanged the second time.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from lxml import etree

from iotappdeploy.exceptions import PackagingError
from iotappdeploy.extensibility.base import ContentChange
from iotappdeploy.logging import Logger, get_global_logger

MANIFEST_FILE = "AppxManifest.xml"

MANIFEST_NAMESPACES = {
    "std": "http://schemas.microsoft.com/appx/manifest/foundation/windows10",
    "mp": "http://schemas.microsoft.com/appx/2014/phone/manifest",
    "uap": "http://schemas.microsoft.com/appx/manifest/uap/windows10",
    "iot": "http://schemas.microsoft.com/appx/manifest/iot/windows10",
    "build": "http://schemas.microsoft.com/developer/appx/2015/build",
}

CAPABILITIES_XPATH = "/std:Package/std:Capabilities"


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        load_dtd=False,
        no_network=True,
        resolve_entities=False,
    )


def load_manifest(path: Path) -> etree._ElementTree:
    """Parse an XML file for patching.

    Raises:
        PackagingError: If the file is missing or is not well-formed XML.
    """
    if not path.is_file():
        raise PackagingError(f"Cannot apply content change, file not found: {path}")
    try:
        return etree.parse(str(path), _parser())
    except etree.XMLSyntaxError as err:
        raise PackagingError(f"Invalid XML in {path}: {err}") from err


def save_manifest(tree: etree._ElementTree, path: Path) -> None:
    tree.write(str(path), xml_declaration=True, encoding="utf-8")


@dataclass(frozen=True)
class XmlContentChange:
    """Set the value of a single XML node selected by XPath.

    Attributes:
        appx_relative_path: File to patch, relative to the staging root.
        xpath: XPath expression using the manifest prefixes. It may select an
            element (its text is replaced) or an attribute (its value is
            replaced). When several nodes match, the first one is changed.
        value: New value.
    """

    appx_relative_path: str
    xpath: str
    value: str

    def apply_to_content(self, root: Path) -> None:
        path = root / self.appx_relative_path
        tree = load_manifest(path)

        try:
            result = tree.xpath(self.xpath, namespaces=MANIFEST_NAMESPACES)
        except etree.XPathError as err:
            raise PackagingError(f"Invalid XPath {self.xpath!r}: {err}") from err

        if not isinstance(result, list) or not result:
            raise PackagingError(
                f"XPath {self.xpath!r} matched no node in {self.appx_relative_path}"
            )

        node = result[0]
        if isinstance(node, etree._Element):
            node.text = self.value
        elif getattr(node, "is_attribute", False):
            node.getparent().set(node.attrname, self.value)
        elif getattr(node, "is_text", False):
            node.getparent().text = self.value
        else:
            raise PackagingError(
                f"XPath {self.xpath!r} does not select an element or attribute"
            )

        save_manifest(tree, path)


@dataclass(frozen=True)
class CapabilityAddition:
    """Append a capability declaration to AppxManifest.xml.

    Attributes:
        capability_name: Value of the Name attribute (e.g. "internetClient").
        capability: Element name. Defaults to "Capability"; use
            "DeviceCapability" for device capabilities.
        capability_namespace: Manifest prefix for the element (e.g. "iot").
            None uses the manifest's default namespace.
        device_id: When set, a <Device Id=...> child is nested inside.
        function_type: When set together with device_id, a
            <Function Type=...> child is nested inside <Device>.
    """

    capability_name: str
    capability: str | None = None
    capability_namespace: str | None = None
    device_id: str | None = None
    function_type: str | None = None

    def _namespace_uri(self, default_uri: str | None) -> str | None:
        if self.capability_namespace is None:
            return default_uri
        try:
            return MANIFEST_NAMESPACES[self.capability_namespace]
        except KeyError as err:
            raise PackagingError(
                f"Unknown capability namespace prefix: {self.capability_namespace!r}"
            ) from err

    def apply_to_content(self, root: Path) -> None:
        path = root / MANIFEST_FILE
        tree = load_manifest(path)
        document = tree.getroot()

        nodes = tree.xpath(CAPABILITIES_XPATH, namespaces=MANIFEST_NAMESPACES)
        if not nodes:
            raise PackagingError(f"No Capabilities node found in {path}")
        capabilities = nodes[0]

        default_uri = etree.QName(document).namespace
        uri = self._namespace_uri(default_uri)
        local_name = self.capability or "Capability"
        tag = etree.QName(uri, local_name).text if uri else local_name

        for existing in capabilities.iterchildren(tag):
            if existing.get("Name") == self.capability_name:
                return

        nsmap = None
        if (
            self.capability_namespace
            and uri not in (document.nsmap or {}).values()
        ):
            nsmap = {self.capability_namespace: uri}

        element = etree.SubElement(capabilities, tag, nsmap=nsmap)
        element.set("Name", self.capability_name)

        if self.device_id is not None:
            device_tag = (
                etree.QName(default_uri, "Device").text if default_uri else "Device"
            )
            device = etree.SubElement(element, device_tag)
            device.set("Id", self.device_id)
            if self.function_type is not None:
                function_tag = (
                    etree.QName(default_uri, "Function").text
                    if default_uri
                    else "Function"
                )
                function = etree.SubElement(device, function_tag)
                function.set("Type", self.function_type)

        save_manifest(tree, path)


def apply_content_changes(
    changes: Iterable[ContentChange],
    root: Path,
    logger: Logger | None = None,
) -> int:
    """Apply content changes to the staging root in list order.

    Args:
        changes: Changes to apply.
        root: Staging root folder.
        logger: Optional logger; defaults to the global logger.

    Returns:
        Number of changes applied.

    Raises:
        PackagingError: On the first change that cannot be applied. Changes
            after it are not attempted.
    """
    if logger is None:
        logger = get_global_logger()

    applied = 0
    for change in changes:
        logger.debug("BUILD", f"Applying {change!r}")
        change.apply_to_content(root)
        applied += 1
    return applied
