"""kubeconfig-loader: resolve kubeconfig contexts into TLS connection material.

This package loads kubeconfig files, resolves the context, cluster and
user to connect with, and builds the client identity and trusted
certificates needed for a TLS connection to the cluster.

Example usage:
    from kubeconfig_loader import KubeConfigLoader

    # Resolve the current context of ~/.kube/config
    loader = KubeConfigLoader.load()

    # Or pick a context and build TLS material
    loader = KubeConfigLoader.load(context="dev")
    identity = loader.identity()
    ca_bundle = loader.ca_bundle()
"""

__version__ = "0.1.0"

from kubeconfig_loader.config import load_config, parse_config
from kubeconfig_loader.exceptions import (
    CredentialMaterializationError,
    KubeConfigError,
    KubeconfigLoaderError,
    ReferenceNotFoundError,
    SslError,
)
from kubeconfig_loader.loader import KubeConfigLoader
from kubeconfig_loader.resolver import find, resolve
from kubeconfig_loader.tls import (
    Certificate,
    Identity,
    IdentityEncoder,
    PemIdentityEncoder,
    Pkcs12IdentityEncoder,
    build_ca_bundle,
    build_identity,
)

__all__ = [
    # Version
    "__version__",
    # Loading and resolution
    "KubeConfigLoader",
    "load_config",
    "parse_config",
    "find",
    "resolve",
    # TLS material
    "Certificate",
    "Identity",
    "IdentityEncoder",
    "PemIdentityEncoder",
    "Pkcs12IdentityEncoder",
    "build_ca_bundle",
    "build_identity",
    # Exceptions
    "KubeconfigLoaderError",
    "KubeConfigError",
    "ReferenceNotFoundError",
    "CredentialMaterializationError",
    "SslError",
]
