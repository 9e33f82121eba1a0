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

"""Exception hierarchy for iotappdeploy.

This module defines a custom exception hierarchy that lets callers tell
apart the different ways a build-and-deploy run can fail:

- ConfigError: Bad user input (missing argument, unknown enum value, bad YAML)
- PluginError: No project/template for the source, broken plugin module
- PackagingError: Staging, manifest patching or external tool failures
- ToolNotFoundError: MakeAppx/SignTool/PowerShell could not be located
- NetworkError: Transport failures and unexpected HTTP status codes
- AuthenticationError: The device rejected the supplied credentials
- RequestCancelledError: An in-flight device request was cancelled
- DeploymentError: The device reported an install failure (HRESULT)
- DeploymentTimeoutError: Install-state polling exceeded its bound

All exceptions inherit from IotAppDeployError, allowing users to catch every
pipeline error with a single except clause.

Example:
    Catching specific error types:
        ```python
        from iotappdeploy.core import deploy_app
        from iotappdeploy.exceptions import DeploymentError, ToolNotFoundError

        try:
            deploy_app(options)
        except ToolNotFoundError as e:
            print(e)
        except DeploymentError as e:
            print(f"Device error {e.hresult_hex}: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "IotAppDeployError",
    "ConfigError",
    "PluginError",
    "PackagingError",
    "ToolNotFoundError",
    "NetworkError",
    "AuthenticationError",
    "RequestCancelledError",
    "DeploymentError",
    "DeploymentTimeoutError",
]


class IotAppDeployError(Exception):
    """Base exception for all iotappdeploy errors."""

    pass


class ConfigError(IotAppDeployError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - Missing required command-line arguments
    - Unknown enum values (architecture, configuration, SDK version)
    - YAML parsing of the defaults file
    """

    pass


class PluginError(IotAppDeployError):
    """Raised when no plugin can handle the request.

    Typical causes are a source file with an unsupported extension, a
    project whose base type has no template, or an allow-listed plugin
    module that cannot be imported.
    """

    pass


class PackagingError(IotAppDeployError):
    """Raised for packaging/build-related errors.

    This exception is raised when there are problems with:

    - Copying template or project content into the staging folder
    - Applying manifest changes (missing file, XPath with no match)
    - Project build steps
    - External tools that did not produce their expected output
    """

    pass


class ToolNotFoundError(PackagingError):
    """Raised when a required external tool cannot be located or started."""

    pass


class NetworkError(IotAppDeployError):
    """Raised for device REST transport failures.

    Covers connection errors, timeouts and HTTP status codes that the
    deployment protocol does not expect (for example an upload that is not
    answered with 202 Accepted).
    """

    pass


class AuthenticationError(NetworkError):
    """Raised when the device rejects the supplied credentials."""

    pass


class RequestCancelledError(IotAppDeployError):
    """Raised when a device request is cancelled through its token."""

    pass


class DeploymentError(IotAppDeployError):
    """Raised when the device reports a failed installation.

    The device answers the install-state query with an HRESULT. This error
    keeps that code so callers can print the matching OS error text instead
    of a generic failure.

    Attributes:
        hresult: Unsigned 32-bit HRESULT reported by the device, or None if
            the device did not send one.
        code_text: Human readable text sent by the device.
        reason: Additional reason string sent by the device.
    """

    def __init__(
        self,
        message: str,
        hresult: int | None = None,
        code_text: str | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.hresult = hresult & 0xFFFFFFFF if hresult is not None else None
        self.code_text = code_text
        self.reason = reason

    @property
    def hresult_hex(self) -> str:
        """HRESULT formatted as 0xXXXXXXXX (empty string if unknown)."""
        if self.hresult is None:
            return ""
        return f"0x{self.hresult:08X}"


class DeploymentTimeoutError(DeploymentError):
    """Raised when install-state polling exceeds its attempt or time bound."""

    pass
