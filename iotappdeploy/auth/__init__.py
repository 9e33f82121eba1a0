"""Device credentials for iotappdeploy."""

from .credential_manager import (
    Credentials,
    FernetSecretProvider,
    SecretProvider,
    credentials_from_env,
    interactive_refresh,
    prompt_for_password,
)

__all__ = [
    "Credentials",
    "FernetSecretProvider",
    "SecretProvider",
    "credentials_from_env",
    "interactive_refresh",
    "prompt_for_password",
]
