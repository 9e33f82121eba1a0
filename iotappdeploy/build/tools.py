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

"""External tool discovery and execution for iotappdeploy.

Packaging relies on three Windows tools:

- MakeAppx.exe: packs the staged folder into an .appx archive
- SignTool.exe: signs the archive with the template's PFX
- PowerShell.exe: exports the PFX public certificate to a .cer file

Tool Resolution:
    Each tool is resolved in this order:

    1. Explicit path (CLI flag or `tools.*` config key)
    2. Windows registry (SDK `KitsRoot10`, or the PowerShell ShellIds key)
    3. PATH lookup

Design Principles:
    - Tools are launched with output redirected to files and a spin-wait on
      poll(), never a blocking wait on piped output
    - The exit code is logged but callers decide success by checking the
      file the tool was supposed to produce
    - Each run writes a log file: "Errors:" (when stderr is non-empty), then
      "Full Output:" followed by stdout

Example:
    ```python
    from pathlib import Path
    from iotappdeploy.build.tools import resolve_tools, run_external_tool

    tools = resolve_tools(makeappx=None, signtool=None, powershell=None)
    run_external_tool(
        [str(tools.signtool), "sign", "/fd", "sha256", "/f", "key.pfx", "app.appx"],
        Path("signtool.log"),
    )
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import platform
import shutil
import subprocess
import sys
import tempfile
import time

from iotappdeploy.exceptions import PackagingError, ToolNotFoundError

SDK_ROOT_KEY = r"Software\Microsoft\Windows Kits\Installed Roots"
SDK_ROOT_VALUE = "KitsRoot10"
POWERSHELL_KEY = r"Software\Microsoft\PowerShell\1\ShellIds\Microsoft.PowerShell"
POWERSHELL_VALUE = "Path"

SDK_TOOLS_NOT_FOUND = (
    "MakeAppx.exe and SignTool.exe must be installed.  These tools\n"
    "       are installed as part of the Windows Standalone SDK for Windows 10\n"
    "       (https://go.microsoft.com/fwlink/?LinkID=698771).  If they are\n"
    "       present on your machine, please provide the paths using -makeappx\n"
    "       and -signtool."
)

POWERSHELL_NOT_FOUND = (
    "PowerShell.exe cannot be found.  Please use -powershell to provide\n"
    "       the location."
)


@dataclass(frozen=True)
class ToolPaths:
    """Resolved locations of the external packaging tools."""

    makeappx: Path
    signtool: Path
    powershell: Path


def _read_registry_value(key_path: str, value_name: str) -> str | None:
    """Read a string value under HKEY_LOCAL_MACHINE (Windows only)."""
    if sys.platform != "win32":
        return None

    import winreg

    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path) as key:
            value, _ = winreg.QueryValueEx(key, value_name)
    except OSError:
        return None
    return str(value) if value else None


def _sdk_bin_dir() -> Path | None:
    sdk_root = _read_registry_value(SDK_ROOT_KEY, SDK_ROOT_VALUE)
    if sdk_root is None:
        return None
    host = "x64" if platform.machine().endswith("64") else "x86"
    return Path(sdk_root) / "bin" / host


def _resolve_one(
    explicit: str | Path | None,
    candidate: Path | None,
    exe_name: str,
) -> Path | None:
    if explicit:
        path = Path(explicit)
        return path if path.is_file() else None
    if candidate is not None and candidate.is_file():
        return candidate
    found = shutil.which(exe_name)
    return Path(found) if found else None


def resolve_tools(
    makeappx: str | Path | None = None,
    signtool: str | Path | None = None,
    powershell: str | Path | None = None,
) -> ToolPaths:
    """Locate MakeAppx.exe, SignTool.exe and PowerShell.exe.

    Args:
        makeappx: Explicit MakeAppx.exe path, or None to search.
        signtool: Explicit SignTool.exe path, or None to search.
        powershell: Explicit PowerShell.exe path, or None to search.

    Returns:
        The resolved tool paths.

    Raises:
        ToolNotFoundError: If any tool cannot be found. An explicit path
            that does not exist counts as not found.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    sdk_bin = _sdk_bin_dir()
    if sdk_bin is not None:
        logger.debug("TOOL", f"Windows SDK bin folder: {sdk_bin}")

    makeappx_path = _resolve_one(
        makeappx, sdk_bin / "MakeAppx.exe" if sdk_bin else None, "MakeAppx.exe"
    )
    signtool_path = _resolve_one(
        signtool, sdk_bin / "SignTool.exe" if sdk_bin else None, "SignTool.exe"
    )
    if makeappx_path is None or signtool_path is None:
        raise ToolNotFoundError(SDK_TOOLS_NOT_FOUND)

    registry_powershell = _read_registry_value(POWERSHELL_KEY, POWERSHELL_VALUE)
    powershell_path = _resolve_one(
        powershell,
        Path(registry_powershell) if registry_powershell else None,
        "powershell.exe",
    )
    if powershell_path is None:
        raise ToolNotFoundError(POWERSHELL_NOT_FOUND)

    logger.verbose("TOOL", f"MakeAppx: {makeappx_path}")
    logger.verbose("TOOL", f"SignTool: {signtool_path}")
    logger.verbose("TOOL", f"PowerShell: {powershell_path}")

    return ToolPaths(
        makeappx=makeappx_path,
        signtool=signtool_path,
        powershell=powershell_path,
    )


def format_tool_log(stdout: str, stderr: str) -> str:
    """Format captured tool output the way tool log files are written."""
    parts = []
    if stderr:
        parts.append("Errors:\n")
        parts.append(stderr)
    parts.append("\n\n\n\nFull Output:\n")
    parts.append(stdout)
    return "".join(parts)


def run_external_tool(
    cmd: list[str],
    log_file: Path,
    poll_interval: float = 0.1,
    timeout: float | None = None,
) -> int:
    """Run an external tool to completion and write its log file.

    Args:
        cmd: Command line (executable first).
        log_file: Where to write the "Errors:/Full Output:" log.
        poll_interval: Seconds to sleep between poll() checks.
        timeout: Optional limit in seconds; the process is killed when hit.

    Returns:
        The tool's exit code. It is informational only; check the expected
            output file to decide success.

    Raises:
        ToolNotFoundError: If the executable cannot be started.
        PackagingError: If the tool exceeds timeout.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()
    logger.verbose("TOOL", f"Running: {' '.join(cmd)}")

    creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0)

    with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=err,
                creationflags=creationflags,
            )
        except OSError as launch_err:
            raise ToolNotFoundError(
                f"Failed to start {cmd[0]}: {launch_err}"
            ) from launch_err

        started = time.monotonic()
        while process.poll() is None:
            if timeout is not None and time.monotonic() - started > timeout:
                process.kill()
                process.wait()
                raise PackagingError(
                    f"{Path(cmd[0]).name} timed out after {timeout}s"
                )
            time.sleep(poll_interval)

        out.seek(0)
        err.seek(0)
        stdout = out.read().decode("utf-8", errors="replace")
        stderr = err.read().decode("utf-8", errors="replace")

    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text(format_tool_log(stdout, stderr), encoding="utf-8")

    logger.debug("TOOL", f"{Path(cmd[0]).name} exited with code {process.returncode}")
    logger.debug("TOOL", f"Log file: {log_file}")
    return process.returncode
