"""
Tests for iotappdeploy.auth.credential_manager module.

Tests device credentials including:
- Encrypted password storage
- Environment variable overrides
- Non-interactive refresh failure
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet

from iotappdeploy.auth import Credentials, credentials_from_env, interactive_refresh
from iotappdeploy.auth.credential_manager import FernetSecretProvider
from iotappdeploy.exceptions import AuthenticationError

pytestmark = pytest.mark.unit


class TestCredentials:
    """Tests for Credentials."""

    def test_defaults(self):
        """Test the IoT Core factory defaults."""
        creds = Credentials()

        assert creds.username == "Administrator"
        assert creds.password == "p@ssw0rd"

    def test_password_not_stored_in_plaintext(self):
        """Test that the stored blob does not contain the password."""
        creds = Credentials("Administrator", "s3cret-value")

        assert b"s3cret-value" not in creds._protected
        assert "s3cret-value" not in repr(creds)

    def test_password_setter(self):
        """Test that updating the password re-encrypts it."""
        creds = Credentials("Administrator", "old")
        creds.password = "new"

        assert creds.password == "new"

    def test_foreign_blob_rejected(self):
        """Test that a blob from another key raises AuthenticationError."""
        provider = FernetSecretProvider(Fernet.generate_key())
        blob = FernetSecretProvider().protect("x")

        with pytest.raises(AuthenticationError):
            provider.unprotect(blob)


class TestCredentialsFromEnv:
    """Tests for credentials_from_env()."""

    def test_env_overrides(self, monkeypatch):
        """Test that IOTAPPDEPLOY_USERNAME/PASSWORD are used."""
        monkeypatch.setenv("IOTAPPDEPLOY_USERNAME", "DefaultAccount")
        monkeypatch.setenv("IOTAPPDEPLOY_PASSWORD", "from-env")

        creds = credentials_from_env(username="Administrator")

        assert creds.username == "DefaultAccount"
        assert creds.password == "from-env"

    def test_fallbacks(self, monkeypatch):
        """Test the default user name argument and factory password."""
        monkeypatch.delenv("IOTAPPDEPLOY_USERNAME", raising=False)
        monkeypatch.delenv("IOTAPPDEPLOY_PASSWORD", raising=False)

        with patch("iotappdeploy.auth.credential_manager.load_dotenv"):
            creds = credentials_from_env(username="Pi")

        assert creds.username == "Pi"
        assert creds.password == "p@ssw0rd"


class TestInteractiveRefresh:
    """Tests for interactive_refresh()."""

    def test_prompts_for_password(self):
        """Test that the prompted password replaces the stored one."""
        creds = Credentials()

        with (
            patch("iotappdeploy.auth.credential_manager.sys.stdin") as stdin,
            patch(
                "iotappdeploy.auth.credential_manager.getpass.getpass",
                return_value="typed",
            ),
        ):
            stdin.isatty.return_value = True
            interactive_refresh(creds)

        assert creds.password == "typed"

    def test_no_terminal_raises(self):
        """Test that refresh fails fast without a terminal."""
        creds = Credentials()

        with patch("iotappdeploy.auth.credential_manager.sys.stdin") as stdin:
            stdin.isatty.return_value = False
            with pytest.raises(AuthenticationError, match="no terminal"):
                interactive_refresh(creds)
