"""TLS identity and trust bundle construction.

This module converts the client certificate and key of a resolved user
into an Identity, and the certificate-authority bundle of a resolved
cluster into a list of trusted Certificates. Two interchangeable
identity encodings are provided: a PKCS#12 archive and a concatenated
PEM buffer.
"""

import contextlib
import re
import ssl
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Protocol

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12
from icecream import ic

from kubeconfig_loader.exceptions import SslError
from kubeconfig_loader.models import AuthInfo, Cluster

# Some PKCS#12 consumers reject empty passwords, so the archive uses a placeholder
PKCS12_PASSWORD = " "
PKCS12_FRIENDLY_NAME = b"kubeconfig"

_PEM_BEGIN = b"-----BEGIN "
_PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----", re.DOTALL)

# Library errors raised while parsing or serializing keys and certificates
_CRYPTO_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def _pem_blocks(data: bytes) -> list[tuple[str, bytes]]:
    """Split PEM data into (label, block) pairs in input order."""
    return [(match.group(1).decode(), match.group(0)) for match in _PEM_BLOCK.finditer(data)]


def _public_key_der(key: PrivateKeyTypes | x509.Certificate) -> bytes:
    public_key = key.public_key()
    return public_key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)


@dataclass(frozen=True, slots=True)
class Certificate:
    """A trusted certificate, held in DER form."""

    der: bytes

    @classmethod
    def from_der(cls, der: bytes) -> "Certificate":
        """Create a Certificate from DER bytes.

        Raises:
            SslError: If the bytes are not a DER encoded X.509 certificate.

        """
        try:
            x509.load_der_x509_certificate(der)
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Invalid DER certificate: {err}") from err
        return cls(der=der)

    def to_x509(self) -> x509.Certificate:
        """Return the parsed X.509 certificate."""
        return x509.load_der_x509_certificate(self.der)

    def to_pem(self) -> bytes:
        """Return the certificate PEM encoded."""
        return self.to_x509().public_bytes(serialization.Encoding.PEM)

    @property
    def subject(self) -> str:
        """The RFC 4514 subject of the certificate."""
        return self.to_x509().subject.rfc4514_string()


@dataclass(frozen=True)
class Identity:
    """A TLS client identity: private key, leaf certificate and optional chain."""

    private_key: PrivateKeyTypes
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()

    def __post_init__(self) -> None:
        if _public_key_der(self.private_key) != _public_key_der(self.certificate):
            raise SslError("Client key does not match client certificate")

    @classmethod
    def from_pkcs12_der(cls, der: bytes, password: str) -> "Identity":
        """Create an Identity from a DER encoded PKCS#12 archive.

        Args:
            der: The PKCS#12 archive.
            password: The archive password.

        Raises:
            SslError: If the archive cannot be decrypted or lacks a key or certificate.

        """
        try:
            key, cert, additional = pkcs12.load_key_and_certificates(der, password.encode())
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Invalid PKCS#12 archive: {err}") from err
        if key is None or cert is None:
            raise SslError("PKCS#12 archive must contain a private key and a certificate")
        return cls(private_key=key, certificate=cert, chain=tuple(additional))

    @classmethod
    def from_pem(cls, buffer: bytes) -> "Identity":
        """Create an Identity from a PEM buffer holding a private key and certificates.

        The first private key block is used as the key, the first
        certificate block as the leaf, and further certificates as the chain.

        Raises:
            SslError: If the buffer has no usable key or certificate.

        """
        key: PrivateKeyTypes | None = None
        certs: list[x509.Certificate] = []
        try:
            for label, block in _pem_blocks(buffer):
                if label.endswith("PRIVATE KEY") and key is None:
                    key = serialization.load_pem_private_key(block, password=None)
                elif label in ("CERTIFICATE", "X509 CERTIFICATE"):
                    certs.append(x509.load_pem_x509_certificate(block))
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Invalid PEM identity: {err}") from err

        if key is None:
            raise SslError("PEM identity contains no private key")
        if not certs:
            raise SslError("PEM identity contains no certificate")
        return cls(private_key=key, certificate=certs[0], chain=tuple(certs[1:]))

    def certificate_pem(self) -> bytes:
        """Return the leaf certificate followed by the chain, PEM encoded."""
        return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in (self.certificate, *self.chain))

    def private_key_pem(self) -> bytes:
        """Return the unencrypted private key in PKCS#8 PEM form."""
        return self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    @property
    def subject(self) -> str:
        """The RFC 4514 subject of the leaf certificate."""
        return self.certificate.subject.rfc4514_string()

    def load_into(self, context: ssl.SSLContext) -> None:
        """Load this identity as the client certificate chain of an SSL context.

        Raises:
            SslError: If the SSL library rejects the key or certificate.

        """
        # load_cert_chain only reads files, so stage the material on disk
        temp_file = NamedTemporaryFile(suffix=".pem", delete=False)
        temp_path = Path(temp_file.name)
        try:
            with temp_file:
                temp_file.write(self.private_key_pem())
                temp_file.write(self.certificate_pem())
            context.load_cert_chain(certfile=str(temp_path))
        except ssl.SSLError as err:
            raise SslError(f"SSL library rejected client identity: {err}") from err
        finally:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)


class IdentityEncoder(Protocol):
    """Turns client certificate and key PEM bytes into an Identity."""

    name: str

    def encode(self, certificate: bytes, key: bytes) -> Identity:
        """Build an Identity, raising SslError on failure."""
        ...


class Pkcs12IdentityEncoder:
    """Packages the certificate and key as a password-protected PKCS#12 archive."""

    name = "pkcs12"

    def encode(self, certificate: bytes, key: bytes) -> Identity:
        try:
            cert = x509.load_pem_x509_certificate(certificate)
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Invalid client certificate: {err}") from err
        try:
            private_key = serialization.load_pem_private_key(key, password=None)
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Invalid client key: {err}") from err

        try:
            der = pkcs12.serialize_key_and_certificates(
                name=PKCS12_FRIENDLY_NAME,
                key=private_key,
                cert=cert,
                cas=None,
                encryption_algorithm=serialization.BestAvailableEncryption(PKCS12_PASSWORD.encode()),
            )
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Cannot build PKCS#12 archive: {err}") from err

        return Identity.from_pkcs12_der(der, PKCS12_PASSWORD)


class PemIdentityEncoder:
    """Concatenates the key and certificate into a single PEM buffer."""

    name = "pem"

    def encode(self, certificate: bytes, key: bytes) -> Identity:
        # Key first, then certificate
        buffer = key if key.endswith(b"\n") else key + b"\n"
        return Identity.from_pem(buffer + certificate)


IDENTITY_ENCODERS: dict[str, IdentityEncoder] = {
    Pkcs12IdentityEncoder.name: Pkcs12IdentityEncoder(),
    PemIdentityEncoder.name: PemIdentityEncoder(),
}
DEFAULT_IDENTITY_ENCODER: IdentityEncoder = IDENTITY_ENCODERS[Pkcs12IdentityEncoder.name]


def get_identity_encoder(name: str) -> IdentityEncoder:
    """Return the identity encoder registered under ``name``.

    Raises:
        ValueError: If no encoder has that name.

    """
    try:
        return IDENTITY_ENCODERS[name]
    except KeyError:
        raise ValueError(f"Unknown identity encoding '{name}', expected one of {sorted(IDENTITY_ENCODERS)}") from None


def build_identity(user: AuthInfo, encoder: IdentityEncoder | None = None) -> Identity:
    """Build the TLS client identity of a user.

    Args:
        user: The resolved user entry.
        encoder: The identity encoding to use (PKCS#12 by default).

    Returns:
        The client Identity.

    Raises:
        KubeConfigError: If the user has no client certificate or key.
        SslError: If the certificate or key cannot be encoded.

    """
    encoder = encoder or DEFAULT_IDENTITY_ENCODER
    ic(encoder.name)
    return encoder.encode(user.load_client_certificate(), user.load_client_key())


def build_ca_bundle(cluster: Cluster) -> list[Certificate] | None:
    """Build the trusted certificates of a cluster.

    Args:
        cluster: The resolved cluster entry.

    Returns:
        The certificates in bundle order, or None if the cluster has no
        certificate authority configured.

    Raises:
        KubeConfigError: If the configured CA file cannot be read.
        SslError: If the inline CA data is not valid base64 or any block
                  of the bundle is malformed.

    """
    bundle = cluster.load_certificate_authority()
    if not bundle:
        return None

    blocks = _pem_blocks(bundle)
    if not blocks:
        raise SslError("Certificate authority data contains no PEM certificates")
    if len(blocks) != bundle.count(_PEM_BEGIN):
        raise SslError("Certificate authority data contains an unterminated PEM block")

    certs: list[Certificate] = []
    for index, (label, block) in enumerate(blocks):
        if label not in ("CERTIFICATE", "X509 CERTIFICATE"):
            raise SslError(f"Certificate authority block {index} is a {label}, not a CERTIFICATE")
        try:
            der = x509.load_pem_x509_certificate(block).public_bytes(serialization.Encoding.DER)
        except _CRYPTO_ERRORS as err:
            raise SslError(f"Certificate authority block {index} is malformed: {err}") from err
        certs.append(Certificate.from_der(der))

    ic(len(certs))
    return certs


def create_ssl_context(
    identity: Identity | None = None,
    ca_bundle: list[Certificate] | None = None,
    *,
    verify: bool = True,
) -> ssl.SSLContext:
    """Create a client SSL context from an identity and a trust bundle.

    Without a trust bundle the system default CAs are trusted.

    Args:
        identity: Client identity for mutual TLS.
        ca_bundle: Certificates to trust instead of the system defaults.
        verify: Verify the server certificate and hostname.

    Raises:
        SslError: If the SSL library rejects the identity or trust bundle.

    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if ca_bundle:
        try:
            context.load_verify_locations(cadata=b"".join(cert.der for cert in ca_bundle))
        except ssl.SSLError as err:
            raise SslError(f"SSL library rejected trust bundle: {err}") from err
    else:
        context.load_default_certs(ssl.Purpose.SERVER_AUTH)

    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if identity is not None:
        identity.load_into(context)
    return context
