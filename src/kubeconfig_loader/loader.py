"""KubeConfigLoader facade class.

This module provides the KubeConfigLoader class which serves as the main
entry point: it loads a kubeconfig, resolves the context to use, and
builds TLS material for it on demand.
"""

import ssl
from pathlib import Path

from kubeconfig_loader.config import load_config
from kubeconfig_loader.models import AuthInfo, Cluster, Configuration, Context, ResolvedLoader
from kubeconfig_loader.resolver import resolve
from kubeconfig_loader.tls import (
    Certificate,
    Identity,
    IdentityEncoder,
    build_ca_bundle,
    build_identity,
    create_ssl_context,
)


class KubeConfigLoader:
    """Loads the current context, cluster, and authentication information.

    Resolution happens once, when the loader is created. Identity and
    trust bundle construction happen lazily on every call and never
    modify the loader.

    Attributes:
        current_context: The resolved context.
        cluster: The resolved cluster.
        user: The resolved user, with external credentials applied.
        identity_encoder: Encoding used to build the client identity.

    """

    def __init__(self, resolved: ResolvedLoader, *, identity_encoder: IdentityEncoder | None = None) -> None:
        """Initialize KubeConfigLoader from an already resolved triple.

        Args:
            resolved: The resolved context, cluster and user.
            identity_encoder: Encoding used to build the client identity.
                              Defaults to PKCS#12.

        """
        self.current_context: Context = resolved.current_context
        self.cluster: Cluster = resolved.cluster
        self.user: AuthInfo = resolved.user
        self.identity_encoder: IdentityEncoder | None = identity_encoder

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        context: str | None = None,
        cluster: str | None = None,
        user: str | None = None,
        *,
        identity_encoder: IdentityEncoder | None = None,
    ) -> "KubeConfigLoader":
        """Load a kubeconfig file and resolve the context to use.

        Args:
            path: Kubeconfig file. Defaults to ``KUBECONFIG`` or ``~/.kube/config``.
            context: Context name overriding the current context.
            cluster: Cluster name overriding the context's cluster.
            user: User name overriding the context's user.
            identity_encoder: Encoding used to build the client identity.

        Raises:
            KubeConfigError: If the file cannot be loaded or a reference cannot be resolved.

        """
        config = load_config(path) if path is not None else load_config()
        return cls.from_config(config, context, cluster, user, identity_encoder=identity_encoder)

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        context: str | None = None,
        cluster: str | None = None,
        user: str | None = None,
        *,
        identity_encoder: IdentityEncoder | None = None,
    ) -> "KubeConfigLoader":
        """Resolve the context to use from a parsed Configuration.

        Raises:
            KubeConfigError: If a reference cannot be resolved or credentials cannot be loaded.

        """
        return cls(resolve(config, context, cluster, user), identity_encoder=identity_encoder)

    def identity(self) -> Identity:
        """Build the TLS client identity of the resolved user.

        Raises:
            KubeConfigError: If the user has no client certificate or key.
            SslError: If the certificate or key cannot be encoded.

        """
        return build_identity(self.user, self.identity_encoder)

    def ca_bundle(self) -> list[Certificate] | None:
        """Build the trusted certificates of the resolved cluster.

        Returns:
            The certificates, or None if the cluster has no CA configured.

        Raises:
            SslError: If the CA bundle is malformed.

        """
        return build_ca_bundle(self.cluster)

    def ssl_context(self) -> ssl.SSLContext:
        """Create a client SSL context for the resolved cluster and user.

        The client identity is only loaded when the user has a client certificate.
        """
        has_client_cert = bool(self.user.client_certificate or self.user.client_certificate_data)
        return create_ssl_context(
            identity=self.identity() if has_client_cert else None,
            ca_bundle=self.ca_bundle(),
            verify=not self.cluster.insecure_skip_tls_verify,
        )

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return (
            f"KubeConfigLoader(server={self.cluster.server!r}, "
            f"auth={self.user.auth_method!r})"
        )
