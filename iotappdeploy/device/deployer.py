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

"""Deployment of a built package to an IoT Core device.

A deployment walks a fixed sequence of phases:

    Idle -> Uninstalling -> Uploading -> Polling -> Succeeded | Failed

- Uninstalling: DELETE the previous install. Best effort; a non-OK answer
  or a transport error only means the app was not installed before.
- Uploading: POST the APPX, its certificate and the dependency packages as
  one multipart body. Anything but 202 Accepted fails the deployment.
- Polling: GET the install state until the device answers 200 or 404,
  sleeping between the "not done yet" answers. A terminal state without
  Success fails the deployment with the device's HRESULT.

Polling has no bound unless max_poll_attempts or poll_timeout is given.

Example:
    ```python
    from iotappdeploy.device import DeviceDeployer, DeviceRestClient

    deployer = DeviceDeployer(DeviceRestClient("192.168.1.50", credentials))
    state = deployer.deploy(
        "python-uwp_1.0.0.0_arm__1w720vyc4ccym",
        [appx, cer, *dependencies],
    )
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
import time

from iotappdeploy.device.contracts import (
    DeploymentState,
    format_hresult,
    parse_deployment_state,
)
from iotappdeploy.device.rest import DeviceRestClient
from iotappdeploy.exceptions import (
    DeploymentError,
    DeploymentTimeoutError,
    IotAppDeployError,
    NetworkError,
)

APP_API_URL = "/api/app/packagemanager/"
APPX_API_URL = "/api/appx/packagemanager/"

DEFAULT_POLL_INTERVAL = 3.0

TERMINAL_STATUSES = (200, 404)


class DeploymentPhase(Enum):
    IDLE = "Idle"
    UNINSTALLING = "Uninstalling"
    UPLOADING = "Uploading"
    POLLING = "Polling"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class DeviceDeployer:
    """Runs the uninstall/upload/poll sequence against one device.

    Args:
        client: REST client bound to the target device.
        poll_interval: Seconds to wait between install-state queries.
        max_poll_attempts: Optional limit on install-state queries.
        poll_timeout: Optional limit in seconds on the polling phase.
        sleep: Sleep function (replaceable in tests).
    """

    def __init__(
        self,
        client: DeviceRestClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int | None = None,
        poll_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.poll_timeout = poll_timeout
        self._sleep = sleep
        self.phase = DeploymentPhase.IDLE
        self.phases: list[DeploymentPhase] = [DeploymentPhase.IDLE]

    def _enter(self, phase: DeploymentPhase) -> None:
        from iotappdeploy.logging import get_global_logger

        get_global_logger().debug("DEPLOY", f"{self.phase.value} -> {phase.value}")
        self.phase = phase
        self.phases.append(phase)

    def uninstall(self, package_full_name: str) -> int | None:
        """Remove a previous install of the package.

        Returns:
            The response status, or None if the request failed. Never raises
                for device or transport errors.
        """
        from iotappdeploy.logging import get_global_logger

        logger = get_global_logger()

        url = self.client.build_url(
            APP_API_URL + "package", {"package": package_full_name}
        )
        try:
            response = self.client.send_request(url, "DELETE")
        except NetworkError as err:
            logger.info("... previous app not uninstalled (not previously installed)")
            logger.verbose("DEPLOY", f"Uninstall request failed: {err}")
            return None

        status = response.status_code
        response.close()
        if status == 200:
            logger.info("... previous app uninstalled")
        else:
            logger.info("... previous app not uninstalled (not previously installed)")
            logger.verbose("DEPLOY", f"Uninstall answered {status}")
        return status

    def upload(self, files: Sequence[Path]) -> int:
        """POST the package files; the first file names the upload.

        Returns:
            The response status (202 when the device accepted the upload).

        Raises:
            NetworkError: On transport failures.
        """
        from iotappdeploy.logging import get_global_logger

        logger = get_global_logger()

        if not files:
            raise NetworkError("Nothing to upload")
        url = self.client.build_url(
            APPX_API_URL + "package", {"package": Path(files[0]).name}
        )
        for path in files:
            logger.verbose("DEPLOY", f"Uploading {Path(path).name}")

        response = self.client.send_request(url, "POST", files=files)
        status = response.status_code
        logger.debug("DEPLOY", f"Upload response: {status} {response.text[:200]}")
        response.close()
        return status

    def poll_install_state(self) -> DeploymentState:
        """Query the install state until the device reports a result.

        200 and 404 are terminal. Every other status (204 No Content while
        the install runs, but also 202 or a transient 5xx) is treated as
        "not done yet" and followed by a poll_interval sleep, so a device
        that keeps answering something unexpected is never queried in a
        tight loop.

        Returns:
            The successful terminal state.

        Raises:
            DeploymentError: If the terminal state is not successful.
            DeploymentTimeoutError: If max_poll_attempts or poll_timeout is
                exceeded.
            NetworkError: On transport failures.
        """
        from iotappdeploy.logging import get_global_logger

        logger = get_global_logger()

        url = self.client.build_url(APPX_API_URL + "state")
        started = time.monotonic()
        attempts = 0

        while True:
            attempts += 1
            response = self.client.send_request(url, "GET")
            status = response.status_code

            if status in TERMINAL_STATUSES:
                state = parse_deployment_state(response)
                response.close()
                if state.success:
                    return state
                if state.code is None:
                    raise DeploymentError(
                        f"app did not deploy: device reported no install result "
                        f"(HTTP {status})",
                        reason=state.reason or None,
                    )
                detail = state.code_text or state.reason
                raise DeploymentError(
                    f"app did not deploy: {format_hresult(state.code)}"
                    + (f" {detail}" if detail else ""),
                    hresult=state.code,
                    code_text=state.code_text or None,
                    reason=state.reason or None,
                )

            response.close()
            logger.debug("DEPLOY", f"Install state not ready (HTTP {status})")

            if self.max_poll_attempts is not None and attempts >= self.max_poll_attempts:
                raise DeploymentTimeoutError(
                    f"app did not deploy: no install result after {attempts} "
                    "state queries"
                )
            if (
                self.poll_timeout is not None
                and time.monotonic() - started >= self.poll_timeout
            ):
                raise DeploymentTimeoutError(
                    f"app did not deploy: no install result after "
                    f"{self.poll_timeout}s"
                )
            self._sleep(self.poll_interval)

    def deploy(
        self, package_full_name: str, files: Sequence[Path]
    ) -> DeploymentState:
        """Uninstall, upload and wait for the install to finish.

        Args:
            package_full_name: Identity of the previous install to remove.
            files: APPX first, then certificate and dependencies.

        Returns:
            The successful install state.

        Raises:
            NetworkError: If the upload is not accepted or transport fails.
            DeploymentError: If the device reports a failed install.
        """
        from iotappdeploy.logging import get_global_logger

        logger = get_global_logger()

        try:
            self._enter(DeploymentPhase.UNINSTALLING)
            self.uninstall(package_full_name)

            self._enter(DeploymentPhase.UPLOADING)
            logger.info("... Starting to deploy certificate, APPX, and dependencies")
            status = self.upload(files)
            if status != 202:
                raise NetworkError(
                    f"Deployment failed: upload answered HTTP {status} (expected 202)"
                )

            self._enter(DeploymentPhase.POLLING)
            state = self.poll_install_state()
        except IotAppDeployError:
            self._enter(DeploymentPhase.FAILED)
            logger.info("... Deployment failed.")
            raise

        self._enter(DeploymentPhase.SUCCEEDED)
        logger.info("... Deployment finished.")
        return state
