"""
Tests for iotappdeploy.build.tools module.

Tests external tool handling including:
- Tool resolution from explicit paths, the registry and PATH
- Guidance messages when tools are missing
- Log file format
- Process launch failures
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from iotappdeploy.build.tools import (
    POWERSHELL_NOT_FOUND,
    SDK_TOOLS_NOT_FOUND,
    format_tool_log,
    resolve_tools,
    run_external_tool,
)
from iotappdeploy.exceptions import PackagingError, ToolNotFoundError

pytestmark = pytest.mark.unit


@pytest.fixture
def tool_files(tmp_test_dir):
    """Create placeholder executables."""
    paths = {}
    for name in ("MakeAppx.exe", "SignTool.exe", "powershell.exe"):
        path = tmp_test_dir / name
        path.write_bytes(b"MZ")
        paths[name] = path
    return paths


@pytest.fixture
def no_system_tools():
    """Hide registry entries and PATH lookups."""
    with (
        patch("iotappdeploy.build.tools._read_registry_value", return_value=None),
        patch("iotappdeploy.build.tools.shutil.which", return_value=None),
    ):
        yield


class TestResolveTools:
    """Tests for resolve_tools()."""

    def test_explicit_paths(self, tool_files, no_system_tools):
        """Test that explicit paths are used when they exist."""
        tools = resolve_tools(
            tool_files["MakeAppx.exe"],
            tool_files["SignTool.exe"],
            tool_files["powershell.exe"],
        )

        assert tools.makeappx == tool_files["MakeAppx.exe"]
        assert tools.signtool == tool_files["SignTool.exe"]
        assert tools.powershell == tool_files["powershell.exe"]

    def test_sdk_registry_root(self, tmp_test_dir, tool_files, no_system_tools):
        """Test that the SDK tools are found under KitsRoot10."""
        bin_dir = tmp_test_dir / "kits" / "bin"
        for host in ("x64", "x86"):
            (bin_dir / host).mkdir(parents=True)
            (bin_dir / host / "MakeAppx.exe").write_bytes(b"MZ")
            (bin_dir / host / "SignTool.exe").write_bytes(b"MZ")

        def registry(key, value):
            if value == "KitsRoot10":
                return str(tmp_test_dir / "kits")
            return None

        with patch("iotappdeploy.build.tools._read_registry_value", side_effect=registry):
            tools = resolve_tools(powershell=tool_files["powershell.exe"])

        assert tools.makeappx.parent.parent == bin_dir
        assert tools.makeappx.name == "MakeAppx.exe"
        assert tools.signtool.name == "SignTool.exe"

    def test_path_lookup(self, tool_files):
        """Test that PATH is used as the last resort."""

        def which(name):
            return str(tool_files[name]) if name in tool_files else None

        with (
            patch("iotappdeploy.build.tools._read_registry_value", return_value=None),
            patch("iotappdeploy.build.tools.shutil.which", side_effect=which),
        ):
            tools = resolve_tools()

        assert tools.powershell == tool_files["powershell.exe"]

    def test_missing_sdk_tools(self, tool_files, no_system_tools):
        """Test the guidance message when MakeAppx/SignTool are missing."""
        with pytest.raises(ToolNotFoundError) as exc_info:
            resolve_tools(signtool=tool_files["SignTool.exe"])

        assert str(exc_info.value) == SDK_TOOLS_NOT_FOUND
        assert "-makeappx" in str(exc_info.value)

    def test_missing_powershell(self, tool_files, no_system_tools):
        """Test the guidance message when PowerShell is missing."""
        with pytest.raises(ToolNotFoundError) as exc_info:
            resolve_tools(tool_files["MakeAppx.exe"], tool_files["SignTool.exe"])

        assert str(exc_info.value) == POWERSHELL_NOT_FOUND

    def test_explicit_path_that_does_not_exist(self, tmp_test_dir, tool_files):
        """Test that a bad explicit path is not silently replaced."""
        with patch(
            "iotappdeploy.build.tools.shutil.which",
            return_value=str(tool_files["MakeAppx.exe"]),
        ):
            with pytest.raises(ToolNotFoundError):
                resolve_tools(tmp_test_dir / "missing.exe", tool_files["SignTool.exe"])


class TestFormatToolLog:
    """Tests for format_tool_log()."""

    def test_with_errors(self):
        """Test that stderr is written before the full output."""
        assert format_tool_log("done", "bad") == "Errors:\nbad\n\n\n\nFull Output:\ndone"

    def test_without_errors(self):
        """Test that the Errors section is omitted for empty stderr."""
        assert format_tool_log("done", "") == "\n\n\n\nFull Output:\ndone"


class TestRunExternalTool:
    """Tests for run_external_tool()."""

    def test_writes_log_and_returns_exit_code(self, tmp_test_dir):
        """Test that captured output is written to the log file."""

        def fake_popen(cmd, stdin, stdout, stderr, creationflags):
            stdout.write(b"Package creation succeeded.")
            stderr.write(b"warning")
            process = MagicMock()
            process.poll.return_value = 3
            process.returncode = 3
            return process

        log_file = tmp_test_dir / "logs" / "tool.log"
        with patch("iotappdeploy.build.tools.subprocess.Popen", side_effect=fake_popen):
            code = run_external_tool(["MakeAppx.exe", "pack"], log_file)

        assert code == 3
        assert log_file.read_text(encoding="utf-8") == (
            "Errors:\nwarning\n\n\n\nFull Output:\nPackage creation succeeded."
        )

    def test_launch_failure(self, tmp_test_dir):
        """Test that a tool that cannot start raises ToolNotFoundError."""
        with patch(
            "iotappdeploy.build.tools.subprocess.Popen",
            side_effect=FileNotFoundError("no such file"),
        ):
            with pytest.raises(ToolNotFoundError, match="Failed to start"):
                run_external_tool(["missing.exe"], tmp_test_dir / "tool.log")

    def test_timeout_kills_process(self, tmp_test_dir):
        """Test that a hung tool is killed after the timeout."""
        process = MagicMock()
        process.poll.return_value = None

        with (
            patch("iotappdeploy.build.tools.subprocess.Popen", return_value=process),
            patch("iotappdeploy.build.tools.time.sleep"),
        ):
            with pytest.raises(PackagingError, match="timed out"):
                run_external_tool(
                    [str(Path("SignTool.exe")), "sign"],
                    tmp_test_dir / "tool.log",
                    timeout=0.0,
                )

        process.kill.assert_called_once()
