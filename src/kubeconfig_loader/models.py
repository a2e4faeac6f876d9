"""Data models for kubeconfig-loader.

This module provides immutable data structures mirroring the sections
of a kubeconfig file, plus the resolved (context, cluster, user) triple.
"""

import base64
import binascii
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from kubeconfig_loader.exceptions import KubeConfigError, KubeconfigLoaderError, SslError

DEFAULT_EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"


def _load_material(
    data: str | None,
    path: str | None,
    field_name: str,
    data_error: type[KubeconfigLoaderError] = KubeConfigError,
) -> bytes | None:
    """Load credential bytes from inline base64 data or a file path.

    Inline data takes precedence over the file path. Whitespace inside
    the inline data is ignored; any other character outside the base64
    alphabet is an error.

    Args:
        data: Base64 encoded inline content.
        path: Path to a file holding the raw content.
        field_name: The kubeconfig key being loaded (for error messages).
        data_error: Exception raised when the inline data is not valid base64.

    Returns:
        The decoded bytes, or None if neither source is configured.

    Raises:
        KubeConfigError: If the file cannot be read, or the data is not valid base64.

    """
    if data:
        try:
            return base64.b64decode("".join(data.split()), validate=True)
        except (binascii.Error, ValueError) as err:
            raise data_error(f"{field_name}-data is not valid base64: {err}") from err
    if path:
        try:
            return Path(path).read_bytes()
        except OSError as err:
            raise KubeConfigError(f"Cannot read {field_name} file '{path}': {err.strerror}") from err
    return None


@dataclass(frozen=True, slots=True)
class Context:
    """A pairing of a cluster reference and a user reference.

    Attributes:
        cluster: Name of the cluster entry to use.
        user: Name of the user entry to use.
        namespace: Default namespace for this context, if any.

    """

    cluster: str = ""
    user: str = ""
    namespace: str | None = None


@dataclass(frozen=True, slots=True)
class Cluster:
    """Connection parameters for one cluster endpoint.

    Attributes:
        server: The API server URL.
        certificate_authority: Path to a PEM bundle of trusted CAs.
        certificate_authority_data: Base64 encoded PEM bundle of trusted CAs.
        insecure_skip_tls_verify: Disable server certificate verification.

    """

    server: str = ""
    certificate_authority: str | None = None
    certificate_authority_data: str | None = None
    insecure_skip_tls_verify: bool = False

    def load_certificate_authority(self) -> bytes | None:
        """Return the CA bundle bytes, or None if no CA is configured."""
        return _load_material(
            self.certificate_authority_data, self.certificate_authority, "certificate-authority", data_error=SslError
        )


@dataclass(frozen=True, slots=True)
class AuthProviderConfig:
    """An auth-provider plugin descriptor (e.g. ``gcp`` or ``oidc``)."""

    name: str
    config: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExecConfig:
    """An exec credential plugin descriptor.

    Attributes:
        command: The plugin executable.
        args: Arguments passed to the executable.
        env: Extra environment variables for the plugin process.
        api_version: The ExecCredential API version the plugin speaks.

    """

    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    api_version: str = DEFAULT_EXEC_API_VERSION


@dataclass(frozen=True, slots=True)
class AuthInfo:
    """Credential material for authenticating as one user."""

    client_certificate: str | None = None
    client_certificate_data: str | None = None
    client_key: str | None = None
    client_key_data: str | None = None
    token: str | None = None
    username: str | None = None
    password: str | None = None
    auth_provider: AuthProviderConfig | None = None
    exec: ExecConfig | None = None

    def load_client_certificate(self) -> bytes:
        """Return the client certificate PEM bytes.

        Raises:
            KubeConfigError: If no client certificate is configured or it cannot be read.

        """
        cert = _load_material(self.client_certificate_data, self.client_certificate, "client-certificate")
        if cert is None:
            raise KubeConfigError("User has no client-certificate or client-certificate-data")
        return cert

    def load_client_key(self) -> bytes:
        """Return the client private key PEM bytes.

        Raises:
            KubeConfigError: If no client key is configured or it cannot be read.

        """
        key = _load_material(self.client_key_data, self.client_key, "client-key")
        if key is None:
            raise KubeConfigError("User has no client-key or client-key-data")
        return key

    @property
    def auth_method(self) -> str:
        """A short label describing how this user authenticates."""
        if self.client_certificate or self.client_certificate_data:
            return "client-certificate"
        if self.token:
            return "token"
        if self.username:
            return "basic"
        if self.exec is not None:
            return f"exec ({self.exec.command})"
        if self.auth_provider is not None:
            return f"auth-provider ({self.auth_provider.name})"
        return "none"


class NamedContext(NamedTuple):
    """A context entry keyed by name."""

    name: str
    context: Context


class NamedCluster(NamedTuple):
    """A cluster entry keyed by name."""

    name: str
    cluster: Cluster


class NamedAuthInfo(NamedTuple):
    """A user entry keyed by name."""

    name: str
    auth_info: AuthInfo


@dataclass(frozen=True, slots=True)
class Configuration:
    """A parsed kubeconfig.

    Attributes:
        current_context: Name of the default context.
        contexts: Context entries in file order.
        clusters: Cluster entries in file order.
        auth_infos: User entries in file order.

    """

    current_context: str = ""
    contexts: tuple[NamedContext, ...] = ()
    clusters: tuple[NamedCluster, ...] = ()
    auth_infos: tuple[NamedAuthInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class ResolvedLoader:
    """The resolved (context, cluster, user) triple.

    Holds independent copies of the matched records, so the
    Configuration they came from may be discarded.
    """

    current_context: Context
    cluster: Cluster
    user: AuthInfo
