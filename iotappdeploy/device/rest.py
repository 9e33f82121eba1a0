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

"""
REST client for the Windows IoT Core device portal.

The device portal listens on http://<target>:8080 and authenticates every
request with HTTP Basic auth. This module wraps that protocol for the
deployment pipeline.

Key Features:

- **Basic auth with credential refresh** - A rejected stored credential is
  handed to an optional refresh hook and the request is retried. A rejected
  one-off password fails immediately.
- **Authorization sentinel** - The portal may answer a bad password with a
  redirect to /AUTHORIZATIONREQUIRED.HTM instead of a 401; both count as an
  authentication failure.
- **Single request slot** - At most one request is in flight per client.
  Starting a request cancels the previous one and waits for its teardown.
- **Manual multipart bodies** - Uploads are framed exactly the way the
  portal's package manager expects them.

Example:
Deploy-time usage:

    >>> from iotappdeploy.auth import Credentials
    >>> from iotappdeploy.device.rest import DeviceRestClient
    >>> client = DeviceRestClient("192.168.1.50", Credentials())
    >>> response = client.send_request("/api/appx/packagemanager/state", "GET")
    >>> response.status_code
    204

Notes:
- Transport errors are raised as NetworkError with the original chained
- Only GET requests are retried on 502/503/504
- Cancelling a token shuts down the socket of the request in flight
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
import socket
import threading
import time
from typing import Any
from urllib.parse import urlencode, urlparse

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.util.retry import Retry

from iotappdeploy import __version__
from iotappdeploy.auth.credential_manager import Credentials
from iotappdeploy.exceptions import (
    AuthenticationError,
    NetworkError,
    RequestCancelledError,
)

DEVICE_PORT = 8080
AUTHORIZATION_REQUIRED_PATH = "/AUTHORIZATIONREQUIRED.HTM"

FORM_URLENCODED = "application/x-www-form-urlencoded"
CERTIFICATE_CONTENT_TYPE = "application/x-x509-ca-cert"
PACKAGE_CONTENT_TYPE = "application/x-zip-compressed"

# (connect, read) seconds; uploads of runtime packages can be slow
DEFAULT_TIMEOUT = (10, 600)


def build_url(
    target: str,
    path: str,
    query: dict[str, str] | None = None,
    port: int = DEVICE_PORT,
) -> str:
    """
    Build a device portal URL: http://<target>:<port><path>[?query].

    >>> build_url("minwinpc", "/api/appx/packagemanager/package", {"package": "a.appx"})
    'http://minwinpc:8080/api/appx/packagemanager/package?package=a.appx'
    """
    url = f"http://{target}:{port}{path}"
    if query:
        url += "?" + urlencode(query)
    return url


class CancellableAdapter(HTTPAdapter):
    """
    HTTPAdapter that can abort the connections it has handed out.

    The pools it creates report every checked-out connection back to the
    adapter. abort() shuts down the sockets of those connections, which
    wakes a request blocked on send or receive, and refuses any retry until
    reset() is called for the next request.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._live: set[Any] = set()
        self._live_lock = threading.Lock()
        self._aborted = threading.Event()
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _tracking_pool(HTTPConnectionPool, self),
            "https": _tracking_pool(HTTPSConnectionPool, self),
        }

    def reset(self) -> None:
        with self._live_lock:
            self._live.clear()
        self._aborted.clear()

    def abort(self) -> None:
        self._aborted.set()
        with self._live_lock:
            live = list(self._live)
        for conn in live:
            sock = getattr(conn, "sock", None)
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Already closed by the peer or by urllib3
                continue

    def raise_if_aborted(self) -> None:
        if self._aborted.is_set():
            raise RequestCancelledError("Device request was cancelled")

    def track(self, conn: Any) -> None:
        with self._live_lock:
            self._live.add(conn)

    def untrack(self, conn: Any) -> None:
        with self._live_lock:
            self._live.discard(conn)


def _tracking_pool(base: type[HTTPConnectionPool], adapter: CancellableAdapter):
    """Subclass a urllib3 pool so it reports connections to adapter."""

    class TrackingPool(base):
        def urlopen(self, *args: Any, **kwargs: Any):
            # urllib3 re-enters urlopen for every retry
            adapter.raise_if_aborted()
            return super().urlopen(*args, **kwargs)

        def _get_conn(self, timeout: float | None = None):
            conn = super()._get_conn(timeout)
            adapter.track(conn)
            return conn

        def _put_conn(self, conn) -> None:
            adapter.untrack(conn)
            super()._put_conn(conn)

    TrackingPool.__name__ = f"Tracking{base.__name__}"
    return TrackingPool


def make_session() -> requests.Session:
    """
    Create a requests.Session for the device portal.

    - Retries GET on gateway-style failures with exponential backoff.
    - Never retries uploads or deletes.
    - Mounts CancellableAdapter so an in-flight request can be aborted.
    """
    s = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET",),
        raise_on_status=False,
    )
    s.headers.update({"User-Agent": f"iotappdeploy/{__version__}"})
    s.mount("http://", CancellableAdapter(max_retries=retries))
    s.mount("https://", CancellableAdapter(max_retries=retries))
    return s


# --------------------------------------------------------------------- #
# Cancellation
# --------------------------------------------------------------------- #
class CancellationToken:
    """
    Cooperative cancellation for one device request.

    Callbacks registered with add_callback() run once when cancel() is
    called (immediately, if the token is already cancelled). The request
    owner calls mark_done() when its resources are released.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError("Device request was cancelled")

    def mark_done(self) -> None:
        self._done.set()

    def wait_done(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)


class RequestSlot:
    """
    Single-slot request supervisor.

    enter() cancels the request currently holding the slot, waits until it
    has torn down, and hands out a fresh token. leave() releases the slot.
    """

    def __init__(self, teardown_timeout: float | None = 30.0) -> None:
        self._lock = threading.Lock()
        self._current: CancellationToken | None = None
        self._teardown_timeout = teardown_timeout

    def enter(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            previous, self._current = self._current, token
        if previous is not None:
            previous.cancel()
            previous.wait_done(self._teardown_timeout)
        return token

    def leave(self, token: CancellationToken) -> None:
        token.mark_done()
        with self._lock:
            if self._current is token:
                self._current = None


# --------------------------------------------------------------------- #
# Multipart bodies
# --------------------------------------------------------------------- #
def _content_type_for(path: Path) -> str:
    if path.suffix.lower() == ".cer":
        return CERTIFICATE_CONTENT_TYPE
    return PACKAGE_CONTENT_TYPE


def new_boundary() -> str:
    """Boundary derived from the current time in 100ns ticks."""
    return "-" * 23 + format(time.time_ns() // 100, "x")


def build_multipart_body(
    files: Sequence[Path], boundary: str | None = None
) -> tuple[bytes, str]:
    """
    Build a multipart/form-data body with one part per file.

    Each part is named after the file and carries its bytes verbatim. The
    body starts with a CRLF before the first boundary and ends with the
    closing boundary.

    Returns:
        (body, content_type) where content_type carries the boundary.

    Raises:
        ValueError: If files is empty.
    """
    if not files:
        raise ValueError("At least one file is required for a multipart upload")
    if boundary is None:
        boundary = new_boundary()

    delimiter = f"\r\n--{boundary}\r\n".encode("ascii")
    closing = f"\r\n--{boundary}--\r\n".encode("ascii")

    chunks = [delimiter]
    for index, path in enumerate(files):
        path = Path(path)
        header = (
            f'Content-Disposition: form-data; name="{path.name}"; '
            f'filename="{path.name}"\r\n'
            f"Content-Type: {_content_type_for(path)}\r\n\r\n"
        )
        chunks.append(header.encode("utf-8"))
        chunks.append(path.read_bytes())
        chunks.append(closing if index == len(files) - 1 else delimiter)

    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"


# --------------------------------------------------------------------- #
# Client
# --------------------------------------------------------------------- #
def is_authorization_failure(response: requests.Response) -> bool:
    """True for a 401 or a redirect to the portal's authorization page."""
    if response.status_code == 401:
        return True
    path = urlparse(response.url or "").path
    return path.upper() == AUTHORIZATION_REQUIRED_PATH


class DeviceRestClient:
    """
    Authenticated access to one device's portal.

    Args:
        target: Device name or IP address.
        credentials: Stored credentials, read on every attempt.
        credential_refresh: Called with the credentials after the device
            rejects them; expected to update the password. Without a hook
            the same credentials are retried.
        max_auth_attempts: Optional bound on rejected attempts with the
            stored credentials. None retries until the device accepts.
        port: Portal port.
        timeout: requests timeout (seconds or a (connect, read) tuple).
        session: Optional pre-built session (mainly for tests).
    """

    def __init__(
        self,
        target: str,
        credentials: Credentials,
        credential_refresh: Callable[[Credentials], None] | None = None,
        max_auth_attempts: int | None = None,
        port: int = DEVICE_PORT,
        timeout: float | tuple[float, float] = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.target = target
        self.credentials = credentials
        self.credential_refresh = credential_refresh
        self.max_auth_attempts = max_auth_attempts
        self.port = port
        self.timeout = timeout
        self._session = session or make_session()
        self._slot = RequestSlot()

    def build_url(self, path: str, query: dict[str, str] | None = None) -> str:
        return build_url(self.target, path, query, self.port)

    def close(self) -> None:
        self._session.close()

    def _cancellable_adapters(self) -> list[CancellableAdapter]:
        return [
            adapter
            for adapter in self._session.adapters.values()
            if isinstance(adapter, CancellableAdapter)
        ]

    def _send_once(
        self,
        method: str,
        url: str,
        password: str,
        files: Sequence[Path] | None,
    ) -> requests.Response:
        if files:
            body, content_type = build_multipart_body(files)
        else:
            body, content_type = b"", FORM_URLENCODED

        return self._session.request(
            method,
            url,
            data=body,
            headers={"Content-Type": content_type},
            auth=HTTPBasicAuth(self.credentials.username, password),
            timeout=self.timeout,
        )

    def send_request(
        self,
        path_or_url: str,
        method: str,
        one_off_password: str | None = None,
        files: Sequence[Path] | None = None,
        token: CancellationToken | None = None,
    ) -> requests.Response:
        """
        Send one request to the device, cancelling any request in flight.

        Args:
            path_or_url: Portal path ("/api/...") or a full URL.
            method: HTTP method.
            one_off_password: Password for this request only; takes
                precedence over the stored credentials and is never retried.
            files: Files to upload as a multipart body.
            token: Optional caller token; cancelling it aborts this request.

        Returns:
            The device's response (any status other than an auth failure).

        Raises:
            AuthenticationError: If the device rejects a one-off password,
                or max_auth_attempts rejections occur.
            RequestCancelledError: If the request is cancelled.
            NetworkError: On transport failures.
        """
        from iotappdeploy.logging import get_global_logger

        logger = get_global_logger()

        url = path_or_url
        if path_or_url.startswith("/"):
            url = self.build_url(path_or_url)

        slot_token = self._slot.enter()
        adapters = self._cancellable_adapters()
        for adapter in adapters:
            adapter.reset()
        for adapter in adapters:
            slot_token.add_callback(adapter.abort)
        if token is not None:
            token.add_callback(slot_token.cancel)

        try:
            rejected = 0
            while True:
                slot_token.raise_if_cancelled()
                password = (
                    one_off_password
                    if one_off_password is not None
                    else self.credentials.password
                )

                logger.verbose("HTTP", f"{method} {url}")
                try:
                    response = self._send_once(method, url, password, files)
                except requests.RequestException as err:
                    if slot_token.cancelled:
                        raise RequestCancelledError(
                            f"{method} {url} was cancelled"
                        ) from err
                    raise NetworkError(f"{method} {url} failed: {err}") from err

                slot_token.raise_if_cancelled()
                logger.debug("HTTP", f"{method} {url} -> {response.status_code}")

                if not is_authorization_failure(response):
                    return response

                response.close()
                if one_off_password is not None:
                    raise AuthenticationError(
                        f"Device {self.target} rejected the supplied password"
                    )

                rejected += 1
                logger.verbose(
                    "HTTP",
                    f"Device rejected credentials for {self.credentials.username!r} "
                    f"(attempt {rejected})",
                )
                if (
                    self.max_auth_attempts is not None
                    and rejected >= self.max_auth_attempts
                ):
                    raise AuthenticationError(
                        f"Device {self.target} rejected the credentials for "
                        f"{self.credentials.username!r} {rejected} time(s)"
                    )
                if self.credential_refresh is not None:
                    self.credential_refresh(self.credentials)
        finally:
            self._slot.leave(slot_token)
