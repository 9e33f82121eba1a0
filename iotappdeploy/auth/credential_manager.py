import getpass
import os
import sys
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv

from iotappdeploy.exceptions import AuthenticationError

DEFAULT_USERNAME = "Administrator"
DEFAULT_PASSWORD = "p@ssw0rd"


class SecretProvider(Protocol):
    """
    Turns a plaintext secret into an opaque blob and back. Implementations
    may be backed by an OS keystore; the default one is FernetSecretProvider.
    """

    def protect(self, plaintext: str) -> bytes: ...

    def unprotect(self, blob: bytes) -> str: ...


class FernetSecretProvider:
    """
    Symmetric encryption with a Fernet key. Without an explicit key a fresh
    one is generated, so blobs can only be read back by this process.
    """

    def __init__(self, key: Optional[bytes] = None) -> None:
        """
        :param key: urlsafe base64 Fernet key; generated when omitted.
        """
        self._fernet = Fernet(key or Fernet.generate_key())

    def protect(self, plaintext: str) -> bytes:
        return self._fernet.encrypt(plaintext.encode("utf-8"))

    def unprotect(self, blob: bytes) -> str:
        try:
            return self._fernet.decrypt(blob).decode("utf-8")
        except InvalidToken as err:
            raise AuthenticationError("Stored password cannot be decrypted") from err


class Credentials:
    """
    Device user name plus a password kept encrypted at rest. The plaintext
    is only produced when the `password` property is read.
    """

    def __init__(
        self,
        username: str = DEFAULT_USERNAME,
        password: str = DEFAULT_PASSWORD,
        provider: Optional[SecretProvider] = None,
    ) -> None:
        """
        :param username: Device account name.
        :param password: Plaintext password; encrypted immediately.
        :param provider: Secret provider; a per-process Fernet one by default.
        """
        self.username = username
        self._provider = provider or FernetSecretProvider()
        self._protected = self._provider.protect(password)

    # --------------------------------------------------------------------- #
    # Password access
    # --------------------------------------------------------------------- #
    @property
    def password(self) -> str:
        return self._provider.unprotect(self._protected)

    @password.setter
    def password(self, value: str) -> None:
        self._protected = self._provider.protect(value)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***)"


def credentials_from_env(
    env_prefix: str = "IOTAPPDEPLOY_",
    username: Optional[str] = None,
    provider: Optional[SecretProvider] = None,
) -> Credentials:
    """
    Build credentials from {prefix}USERNAME / {prefix}PASSWORD (optionally
    loaded from .env), falling back to the IoT Core factory defaults.

    :param env_prefix: Prefix used for environment variables.
    :param username: Default user name when the variable is not set.
    :param provider: Secret provider for the password.
    """
    load_dotenv()
    return Credentials(
        username=os.getenv(f"{env_prefix}USERNAME") or username or DEFAULT_USERNAME,
        password=os.getenv(f"{env_prefix}PASSWORD") or DEFAULT_PASSWORD,
        provider=provider,
    )


# --------------------------------------------------------------------- #
# Interactive refresh
# --------------------------------------------------------------------- #
def prompt_for_password(username: str) -> str:
    """
    Ask the user for the device password. Fails fast when nobody is at the
    terminal so the authentication loop cannot spin forever.
    """
    if not sys.stdin.isatty():
        raise AuthenticationError(
            f"Device rejected the credentials for {username!r} and no "
            "terminal is attached to ask for a new password"
        )
    return getpass.getpass(f"Password for {username} on the device: ")


def interactive_refresh(credentials: Credentials) -> None:
    """Credential-refresh hook for DeviceRestClient: re-prompts the password."""
    credentials.password = prompt_for_password(credentials.username)
