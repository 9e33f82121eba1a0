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

"""APPX signing, certificate export and dependency gathering.

Runs after create_package(): signs the archive with the template's
TemporaryKey.pfx, exports the matching public certificate with PowerShell
so the device can trust the signature, and copies the project's runtime
dependency packages next to the archive.

Example:
    ```python
    from iotappdeploy.build import export_certificate, sign_package

    sign_package(tools, staging / "TemporaryKey.pfx", appx)
    export_certificate(tools, staging / "TemporaryKey.pfx", cer)
    ```
"""

from __future__ import annotations

from pathlib import Path

from iotappdeploy.build.tools import ToolPaths, run_external_tool
from iotappdeploy.exceptions import PackagingError
from iotappdeploy.extensibility.base import FileContent

SIGNTOOL_LOG_NAME = "signtool.log"
POWERSHELL_LOG_NAME = "powershell.log"


def sign_package(
    tools: ToolPaths, pfx: Path, appx: Path, log_dir: Path | None = None
) -> Path:
    """Sign an APPX with SignTool.exe.

    Args:
        tools: Resolved external tools.
        pfx: Signing key (the template's TemporaryKey.pfx).
        appx: Archive to sign in place.
        log_dir: Folder for signtool.log. Default is the pfx folder.

    Returns:
        Path to the SignTool log file.

    Raises:
        PackagingError: If the key or archive is missing.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    if not pfx.is_file():
        raise PackagingError(
            f"Signing key not found: {pfx}. "
            "The template folder set as resources.template_dir must contain TemporaryKey.pfx"
        )
    if not appx.is_file():
        raise PackagingError(f"APPX to sign not found: {appx}")

    log_file = (log_dir or pfx.parent) / SIGNTOOL_LOG_NAME
    cmd = [str(tools.signtool), "sign", "/fd", "sha256", "/f", str(pfx), str(appx)]
    exit_code = run_external_tool(cmd, log_file)
    if exit_code != 0:
        logger.verbose("TOOL", f"SignTool.exe exited with {exit_code}, see {log_file}")

    logger.info("... APPX file signed with PFX")
    logger.info(f"        logfile: {log_file}")
    return log_file


def export_certificate(
    tools: ToolPaths, pfx: Path, cer: Path, log_dir: Path | None = None
) -> Path:
    """Export the public certificate of a PFX to a .cer file.

    Args:
        tools: Resolved external tools.
        pfx: Source key file.
        cer: Destination certificate file.
        log_dir: Folder for powershell.log. Default is the pfx folder.

    Returns:
        Path to the exported certificate.

    Raises:
        PackagingError: If the .cer file does not exist afterwards.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    log_file = (log_dir or pfx.parent) / POWERSHELL_LOG_NAME
    script = (
        f"Get-PfxCertificate -FilePath '{pfx}' | "
        f"Export-Certificate -FilePath '{cer}' -Type CERT"
    )
    cmd = [str(tools.powershell), "-NoProfile", "-NonInteractive", "-Command", script]
    cer.parent.mkdir(parents=True, exist_ok=True)
    run_external_tool(cmd, log_file)

    if not cer.is_file():
        raise PackagingError(
            f"Certificate export did not create {cer}. See logfile: {log_file}"
        )

    logger.info("... CER file generated from PFX")
    logger.info(f"        {cer}")
    logger.info(f"        logfile: {log_file}")
    return cer


def copy_dependencies(
    dependencies: list[FileContent], artifacts_dir: Path
) -> list[Path]:
    """Copy dependency packages into the artifacts folder.

    Returns:
        Destination paths, in the order given.

    Raises:
        PackagingError: If a dependency source is missing.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    copied = [dependency.apply(artifacts_dir) for dependency in dependencies]
    for path in copied:
        logger.verbose("BUILD", f"Dependency: {path.name}")
    logger.info("... dependencies copied into place")
    return copied
