"""Lazily generated secret values kept in the global secret record."""

import logging
import secrets as random_source

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from bundle_engine.core.errors import UnknownSecretFormatError
from bundle_engine.core.repository import SecretStore
from bundle_engine.domain.models import GenerateSecret

logger = logging.getLogger(__name__)


FORMAT_HEX = "hex"
FORMAT_RSA = "rsa"


def secret_key(install_name: str, parameter_name: str) -> str:
    return f"{install_name}.{parameter_name}"


def generate_secret_value(spec: GenerateSecret) -> str:
    """Generate a fresh value for a GenerateSecret spec."""
    if spec.format == FORMAT_HEX:
        return random_source.token_bytes(spec.bytes).hex()
    if spec.format == FORMAT_RSA:
        return _generate_pem_key(spec.bits)
    raise UnknownSecretFormatError(spec.format)


def _generate_pem_key(bits: int) -> str:
    """RSA private key, PEM encoded as PKCS#1 ("RSA PRIVATE KEY")."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return pem.decode("ascii")


class SecretResolver:
    """Resolves generated parameters against the shared secret store."""

    def __init__(self, store: SecretStore):
        self.store = store

    def resolve(self, install_name: str, parameter_name: str, spec: GenerateSecret) -> str:
        """
        Return the stored value for install.parameter, generating it on first use.

        When two callers race on the same key, both get whichever value
        was stored first.
        """
        key = secret_key(install_name, parameter_name)
        existing = self.store.get(key)
        if existing is not None:
            return existing

        value = generate_secret_value(spec)
        stored = self.store.create_if_absent(key, value)
        if stored == value:
            logger.info(f"[secrets] generated {spec.format} secret '{key}'")
        else:
            logger.info(f"[secrets] secret '{key}' was generated concurrently, using stored value")
        return stored

    def lookup(self, install_name: str, parameter_name: str):
        return self.store.get(secret_key(install_name, parameter_name))
