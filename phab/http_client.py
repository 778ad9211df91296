"""HTTP session for the Conduit API, optionally authenticated with a PKCS12 client identity."""

import logging
import os
import tempfile
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat
from cryptography.hazmat.primitives.serialization.pkcs12 import load_key_and_certificates

from phab.config import CertIdentityConfig, PhabricatorClientConfig
from phab.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Upper bound of the default asyncio executor: min(32, os.cpu_count() + 4).
POOL_MAXSIZE = 32


def _identity_to_pem(cert_config: CertIdentityConfig) -> bytes:
    """Decode a PKCS12 bundle into one PEM blob holding the key and certificate chain."""
    try:
        pkcs12_bytes = Path(cert_config.pkcs12_path).read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Failed to read pkcs12 from {cert_config.pkcs12_path}, {e}") from e

    try:
        key, cert, additional_certs = load_key_and_certificates(
            pkcs12_bytes, cert_config.pkcs12_password.encode() or None
        )
    except ValueError as e:
        raise ConfigurationError(
            f"Certificate identity path: {cert_config.pkcs12_path}, error: {e}"
        ) from e

    if key is None or cert is None:
        raise ConfigurationError(
            f"Certificate identity path: {cert_config.pkcs12_path}, "
            "error: bundle must contain a private key and a certificate"
        )

    pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
    pem += cert.public_bytes(Encoding.PEM)
    for extra in additional_certs:
        pem += extra.public_bytes(Encoding.PEM)
    return pem


def _write_private_file(content: bytes) -> Path:
    fd, name = tempfile.mkstemp(prefix="phab-identity-", suffix=".pem")
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    return Path(name)


def _new_session() -> requests.Session:
    """Session whose connection pool fits every worker thread ``asyncio.to_thread`` may use."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_maxsize=POOL_MAXSIZE)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def build_session(config: PhabricatorClientConfig) -> tuple[requests.Session, Path | None]:
    """Return a session for ``config`` and the temporary identity file it uses, if any.

    The caller owns the identity file and should delete it once the session is closed.
    """
    if config.cert_identity_config is None:
        return _new_session(), None

    pem = _identity_to_pem(config.cert_identity_config)
    identity_file = _write_private_file(pem)
    session = _new_session()
    session.cert = str(identity_file)
    logger.debug("Using client identity from %s", config.cert_identity_config.pkcs12_path)
    return session, identity_file
