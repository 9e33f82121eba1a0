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

"""Temporary signing keys for sideloaded packages.

SignTool.exe only accepts an APPX signed by a certificate whose subject
matches the manifest's Identity/@Publisher. When no template folder
provides a TemporaryKey.pfx, a self-signed code-signing certificate is
generated for the run.

Example:
    ```python
    from iotappdeploy.build.signing import generate_signing_key

    key = generate_signing_key("CN=MSFT")
    (staging / "TemporaryKey.pfx").write_bytes(key.pfx)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
import datetime

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from iotappdeploy.exceptions import PackagingError

KEY_SIZE = 2048
VALIDITY_DAYS = 365
FRIENDLY_NAME = b"TemporaryKey"


@dataclass(frozen=True)
class SigningKey:
    """A generated key pair.

    Attributes:
        pfx: PKCS#12 bundle (key and certificate, no password).
        certificate: DER-encoded public certificate.
        subject: Certificate subject, e.g. "CN=MSFT".
    """

    pfx: bytes
    certificate: bytes
    subject: str


def _common_name(publisher: str) -> str:
    for part in publisher.split(","):
        key, sep, value = part.strip().partition("=")
        if sep and key.strip().upper() == "CN" and value.strip():
            return value.strip()
    raise PackagingError(f"Publisher has no CN to sign with: {publisher!r}")


def generate_signing_key(
    publisher: str, now: datetime.datetime | None = None
) -> SigningKey:
    """Create a self-signed code-signing certificate for publisher.

    Args:
        publisher: Manifest publisher, e.g. "CN=MSFT".
        now: Start of the validity period. Default is the current UTC time.

    Returns:
        SigningKey with the .pfx and .cer contents.

    Raises:
        PackagingError: If publisher has no CN component.
    """
    from iotappdeploy.logging import get_global_logger

    logger = get_global_logger()

    common_name = _common_name(publisher)
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CODE_SIGNING]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    pfx = pkcs12.serialize_key_and_certificates(
        FRIENDLY_NAME, key, cert, None, serialization.NoEncryption()
    )
    logger.verbose("BUILD", f"Generated temporary signing key for CN={common_name}")
    return SigningKey(
        pfx=pfx,
        certificate=cert.public_bytes(serialization.Encoding.DER),
        subject=f"CN={common_name}",
    )
