from __future__ import annotations

import logging
import os
import ssl
import tempfile
import textwrap
from typing import Final

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

_LOGGER = logging.getLogger(__name__)

# The certificate service only accepts 2048 bit RSA keys
KEY_SIZE: Final = 2048
PUBLIC_EXPONENT: Final = 65537

PUBLIC_KEY_HEADER: Final = "-----BEGIN PUBLIC KEY-----"
PUBLIC_KEY_FOOTER: Final = "-----END PUBLIC KEY-----"
CERT_HEADER: Final = "-----BEGIN CERTIFICATE-----"
CERT_FOOTER: Final = "-----END CERTIFICATE-----"


def generate_key_pair() -> tuple[rsa.RSAPrivateKey, str, str]:
    """Generate a new RSA key pair for the hub-local channel.

    Returns:
        A tuple of the private key object, the private key PEM and the public key PEM.
    """
    private_key = rsa.generate_private_key(
        public_exponent=PUBLIC_EXPONENT, key_size=KEY_SIZE
    )
    return private_key, get_private_key_pem(private_key), get_public_key_pem(private_key)


def get_private_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    """Serialize a private key as unencrypted PKCS#8 PEM.

    Args:
        private_key: The private key object.

    Returns:
        The PEM text.
    """
    return private_key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption(),
    ).decode("ascii")


def get_public_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    """Serialize the public half of a key as SubjectPublicKeyInfo PEM.

    Args:
        private_key: The private key object.

    Returns:
        The PEM text.
    """
    return (
        private_key.public_key()
        .public_bytes(encoding=Encoding.PEM, format=PublicFormat.SubjectPublicKeyInfo)
        .decode("ascii")
    )


def load_private_key(private_key_pem: str) -> rsa.RSAPrivateKey:
    """Load an RSA private key from PEM text.

    Args:
        private_key_pem: The PEM text.

    Returns:
        The private key object.
    """
    key = serialization.load_pem_private_key(private_key_pem.encode("ascii"), None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"Expected an RSA private key, got {type(key).__name__}")
    return key


def strip_public_key(public_key_pem: str) -> str:
    """Remove PEM armour and line breaks from a public key.

    Args:
        public_key_pem: The PEM text.

    Returns:
        The bare base64 body expected by the certificate service.
    """
    body = public_key_pem.replace(PUBLIC_KEY_HEADER, "").replace(PUBLIC_KEY_FOOTER, "")
    return "".join(body.split())


def format_certificate_pem(certificate: str) -> str:
    """Wrap a bare base64 certificate in PEM armour.

    Args:
        certificate: Base64 DER body, with or without armour.

    Returns:
        The PEM text, wrapped at 64 columns.
    """
    if CERT_HEADER in certificate:
        return certificate.strip() + "\n"
    body = "".join(certificate.split())
    return f"{CERT_HEADER}\n" + "\n".join(textwrap.wrap(body, 64)) + f"\n{CERT_FOOTER}\n"


def build_client_ssl_context(
    private_key_pem: str, peer_cert_pem: str, ica_cert_pem: str
) -> ssl.SSLContext:
    """Build a mutual-TLS client context for the hub.

    The hub presents a certificate that cannot be chained to a public root,
    so server verification is disabled; the client side authenticates with
    the issued peer certificate.

    Args:
        private_key_pem: The local private key.
        peer_cert_pem: The certificate issued for the local key.
        ica_cert_pem: The intermediate certificate.

    Returns:
        The configured SSL context.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    # load_cert_chain only reads from files
    with tempfile.TemporaryDirectory() as tmpdir:
        cert_path = os.path.join(tmpdir, "combined.crt")
        key_path = os.path.join(tmpdir, "private.pem")
        with open(cert_path, "w", encoding="ascii") as cert_file:
            cert_file.write(peer_cert_pem.strip() + "\n" + ica_cert_pem.strip() + "\n")
        with open(key_path, "w", encoding="ascii") as key_file:
            key_file.write(private_key_pem)
        os.chmod(key_path, 0o600)
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)

    _LOGGER.debug("Built hub TLS context")
    return context
