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

"""Output sink for iotappdeploy.

A deployment prints two kinds of output. Progress lines ("... project
system found: Python Project", "*** PackageFullName = ...") are always shown,
because they are the tool's report. Diagnostic lines (tool command lines,
HTTP requests, merged config) are tagged with a prefix and only shown in
verbose or debug mode.

Library modules never print directly. They ask for the global logger, which
is silent until the CLI installs a console logger:

    ```python
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()
    logger.step(7, 7, "Creating APPX file...")
    logger.info("... APPX file created")
    logger.verbose("TOOL", "Running: MakeAppx.exe pack /l /h sha256 ...")
    logger.debug("HTTP", "GET http://minwinpc:8080/api/appx/packagemanager/state -> 204")
    ```

Prefixes in use: CONFIG, PLUGIN, BUILD, TOOL, HTTP, DEPLOY.
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO


class Logger(Protocol):
    """What pipeline code may call on a logger."""

    def info(self, message: str) -> None:
        """Report progress (always shown)."""
        ...

    def error(self, message: str) -> None:
        """Report a failure (always shown)."""
        ...

    def step(self, step: int, total: int, message: str) -> None:
        """Announce a numbered packaging stage, e.g. [3/7]."""
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Diagnostic line shown with -v.

        Args:
            prefix: Area tag, e.g. "TOOL" or "DEPLOY".
            message: Log message.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Diagnostic line shown with --debug only."""
        ...


class DefaultLogger:
    """Console logger used by the CLI.

    Args:
        verbose: Show verbose lines.
        debug: Show debug lines too (implies verbose).
        stream: Text stream to write to. Defaults to whatever sys.stdout is
            at write time.
    """

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.show_verbose = verbose or debug
        self.show_debug = debug
        self._stream = stream

    def _write(self, line: str) -> None:
        out = self._stream if self._stream is not None else sys.stdout
        out.write(line + "\n")
        out.flush()

    def info(self, message: str) -> None:
        self._write(message)

    def error(self, message: str) -> None:
        self._write(f"Error: {message}")

    def step(self, step: int, total: int, message: str) -> None:
        self._write(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self.show_verbose:
            self._write(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self.show_debug:
            self._write(f"[{prefix}] {message}")


class SilentLogger:
    """Discards everything; the library default."""

    def info(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(
    verbose: bool = False, debug: bool = False, stream: TextIO | None = None
) -> Logger:
    """Build a console logger for the requested verbosity."""
    return DefaultLogger(verbose=verbose, debug=debug, stream=stream)


def get_global_logger() -> Logger:
    """Return the logger library code falls back to (silent by default)."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Install the logger that library code falls back to.

    Args:
        logger: Logger instance, usually from get_logger().
    """
    global _global_logger
    _global_logger = logger
