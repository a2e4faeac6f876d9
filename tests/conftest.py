"""Shared test fixtures for kubeconfig-loader tests."""

import base64
from datetime import datetime, timedelta, timezone

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


def _make_cert(common_name, key, *, issuer=None, issuer_key=None, is_ca=False, dns_names=(), client=False):
    """Create a certificate for ``key`` signed by ``issuer`` (self-signed without one)."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if is_ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        usage = ExtendedKeyUsageOID.CLIENT_AUTH if client else ExtendedKeyUsageOID.SERVER_AUTH
        builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
    if issuer is not None:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()), critical=False
        )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]), critical=False
        )
    return builder.sign(issuer_key or key, hashes.SHA256())


def _key_pem(key):
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _cert_pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


@pytest.fixture(scope="session")
def ca():
    """A self-signed certificate authority as (certificate, key)."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _make_cert("test-ca", key, is_ca=True), key


@pytest.fixture(scope="session")
def second_ca():
    """Another self-signed certificate authority as (certificate, key)."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _make_cert("second-ca", key, is_ca=True), key


@pytest.fixture(scope="session")
def ca_pem(ca):
    """PEM bytes of the test CA."""
    return _cert_pem(ca[0])


@pytest.fixture(scope="session")
def ca_bundle_pem(ca, second_ca):
    """PEM bundle holding the test CA followed by the second CA."""
    return _cert_pem(ca[0]) + _cert_pem(second_ca[0])


@pytest.fixture(scope="session")
def client_pem(ca):
    """Client certificate and key PEM bytes, signed by the test CA."""
    key = ec.generate_private_key(ec.SECP256R1())
    cert = _make_cert("test-user", key, issuer=ca[0], issuer_key=ca[1], client=True)
    return _cert_pem(cert), _key_pem(key)


@pytest.fixture(scope="session")
def other_key_pem():
    """A private key that matches no certificate."""
    return _key_pem(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(scope="session")
def server_pem(ca):
    """Server certificate for 'localhost' and its key, signed by the test CA."""
    key = ec.generate_private_key(ec.SECP256R1())
    cert = _make_cert("localhost", key, issuer=ca[0], issuer_key=ca[1], dns_names=("localhost",))
    return _cert_pem(cert), _key_pem(key)


@pytest.fixture
def kubeconfig_document(ca_pem, client_pem):
    """A kubeconfig with a certificate-based 'dev' context and a token-based 'prod' context."""
    cert_pem, key_pem = client_pem
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "dev",
        "contexts": [
            {"name": "dev", "context": {"cluster": "dev-cluster", "user": "dev-user", "namespace": "apps"}},
            {"name": "prod", "context": {"cluster": "prod-cluster", "user": "prod-user"}},
        ],
        "clusters": [
            {
                "name": "dev-cluster",
                "cluster": {"server": "https://dev.example.com", "certificate-authority-data": b64(ca_pem)},
            },
            {
                "name": "prod-cluster",
                "cluster": {"server": "https://prod.example.com", "insecure-skip-tls-verify": True},
            },
        ],
        "users": [
            {
                "name": "dev-user",
                "user": {"client-certificate-data": b64(cert_pem), "client-key-data": b64(key_pem)},
            },
            {"name": "prod-user", "user": {"token": "prod-token"}},
        ],
    }


@pytest.fixture
def kubeconfig_file(tmp_path, kubeconfig_document):
    """The sample kubeconfig written to a temporary file."""
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(kubeconfig_document))
    return path
