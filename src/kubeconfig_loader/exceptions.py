"""Custom exceptions for kubeconfig-loader.

This module defines the exception hierarchy used throughout the package
to report resolution, credential and certificate encoding failures.
"""


class KubeconfigLoaderError(Exception):
    """Base exception for all kubeconfig-loader errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch all kubeconfig-loader errors with a single
    except clause if desired.
    """

    pass


class KubeConfigError(KubeconfigLoaderError):
    """Raised when a kubeconfig cannot be loaded or resolved.

    This can occur when:
    - The kubeconfig file is missing or is not valid YAML
    - An entry does not have the expected structure
    - Credential material referenced by a user or cluster cannot be read
    """

    pass


class ReferenceNotFoundError(KubeConfigError):
    """Raised when a named context, cluster or user does not exist.

    Attributes:
        kind: The collection that was searched ('context', 'cluster' or 'user').
        name: The name that was looked up.

    """

    def __init__(self, message: str, *, kind: str, name: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.name = name


class CredentialMaterializationError(KubeConfigError):
    """Raised when an exec plugin or auth provider fails to produce credentials.

    This can occur when:
    - The plugin binary is missing or exits with a non-zero status
    - The plugin output is not a valid ExecCredential document
    - The token endpoint is unreachable
    """

    pass


class SslError(KubeconfigLoaderError):
    """Raised when certificate or key material cannot be encoded.

    The underlying library error is chained as ``__cause__`` and is
    also available as :attr:`cause`.
    """

    @property
    def cause(self) -> BaseException | None:
        """The underlying error that triggered this one, if any."""
        return self.__cause__
