"""
Tests for iotappdeploy.logging module.
"""

from __future__ import annotations

import io

import pytest

from iotappdeploy.logging import (
    SilentLogger,
    get_global_logger,
    get_logger,
    set_global_logger,
)

pytestmark = pytest.mark.unit


class TestDefaultLogger:
    """Tests for the console logger."""

    def test_quiet_mode(self):
        """Test that only progress, steps and errors are shown by default."""
        stream = io.StringIO()
        logger = get_logger(stream=stream)

        logger.info("... project system found: Python Project")
        logger.step(1, 7, "Copying template files...")
        logger.error("boom")
        logger.verbose("TOOL", "hidden")
        logger.debug("HTTP", "hidden")

        assert stream.getvalue().splitlines() == [
            "... project system found: Python Project",
            "[1/7] Copying template files...",
            "Error: boom",
        ]

    def test_debug_implies_verbose(self):
        """Test that --debug shows verbose and debug lines."""
        stream = io.StringIO()
        logger = get_logger(debug=True, stream=stream)

        logger.verbose("DEPLOY", "Uploading app.appx")
        logger.debug("HTTP", "GET state -> 204")

        assert stream.getvalue().splitlines() == [
            "[DEPLOY] Uploading app.appx",
            "[HTTP] GET state -> 204",
        ]

    def test_writes_to_current_stdout(self, capsys):
        """Test that the default stream follows sys.stdout."""
        get_logger().info("hello")

        assert capsys.readouterr().out == "hello\n"


class TestGlobalLogger:
    """Tests for the global logger."""

    def test_default_is_silent(self):
        """Test that library code is silent unless configured."""
        assert isinstance(get_global_logger(), SilentLogger)

    def test_set_global_logger(self):
        """Test installing a console logger."""
        logger = get_logger(verbose=True)
        set_global_logger(logger)

        assert get_global_logger() is logger
