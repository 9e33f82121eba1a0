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

"""Wire-format types returned by the device portal."""

from __future__ import annotations

import ctypes
from dataclasses import dataclass
import sys

import requests


@dataclass(frozen=True)
class DeploymentState:
    """Body of GET /api/appx/packagemanager/state.

    Attributes:
        code: HRESULT of the last install, as an unsigned 32-bit value.
        code_text: Device-supplied description of code.
        reason: Device-supplied failure reason.
        success: Whether the last install succeeded.
    """

    code: int | None = None
    code_text: str = ""
    reason: str = ""
    success: bool = False


def parse_deployment_state(response: requests.Response) -> DeploymentState:
    """Parse an install-state response; an unreadable body gives a blank state."""
    try:
        data = response.json()
    except ValueError:
        return DeploymentState()
    if not isinstance(data, dict):
        return DeploymentState()

    code = data.get("Code")
    # bool is an int subclass; True is not an HRESULT
    if isinstance(code, int) and not isinstance(code, bool):
        code &= 0xFFFFFFFF
    else:
        code = None

    return DeploymentState(
        code=code,
        code_text=str(data.get("CodeText") or ""),
        reason=str(data.get("Reason") or ""),
        success=data.get("Success") is True,
    )


def format_hresult(hresult: int) -> str:
    """Format an HRESULT as 0xXXXXXXXX, with the OS message on Windows.

    Example:
        >>> format_hresult(-2147467259)[:10]
        '0x80004005'
    """
    unsigned = hresult & 0xFFFFFFFF
    text = f"0x{unsigned:08X}"
    if sys.platform == "win32":
        # FormatError takes a signed C int
        signed = unsigned - 0x100000000 if unsigned & 0x80000000 else unsigned
        message = ctypes.FormatError(signed).strip()
        if message:
            text = f"{text} {message}"
    return text
