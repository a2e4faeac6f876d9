"""Context, cluster and user resolution.

This module resolves a Configuration plus optional overrides into the
concrete (context, cluster, user) triple used to connect to a cluster.
"""

import copy
from collections.abc import Callable, Iterable
from typing import TypeVar

from icecream import ic

from kubeconfig_loader.credentials import materialize
from kubeconfig_loader.exceptions import ReferenceNotFoundError
from kubeconfig_loader.models import AuthInfo, Configuration, ResolvedLoader

T = TypeVar("T")

# Human readable description of each lookup step, keyed by collection kind
_STEP_DESCRIPTIONS = {
    "context": "current context",
    "cluster": "cluster of context",
    "user": "user of context",
}


def find(collection: Iterable[tuple[str, T]], target: str, *, kind: str) -> T:
    """Return the value of the first entry named ``target``.

    Names are compared exactly (case-sensitive). When several entries
    share a name, the first one in iteration order wins.

    Args:
        collection: (name, value) pairs to search.
        target: The name to look up.
        kind: The collection kind, used in the error ('context', 'cluster' or 'user').

    Returns:
        The matching value.

    Raises:
        ReferenceNotFoundError: If no entry is named ``target``.

    """
    for name, value in collection:
        if name == target:
            return value
    raise ReferenceNotFoundError(
        f"unable to resolve {_STEP_DESCRIPTIONS.get(kind, kind)}: no {kind} named '{target}'",
        kind=kind,
        name=target,
    )


def resolve(
    config: Configuration,
    context: str | None = None,
    cluster: str | None = None,
    user: str | None = None,
    *,
    materializer: Callable[[AuthInfo], AuthInfo] | None = None,
) -> ResolvedLoader:
    """Resolve the context, cluster and user to connect with.

    Overrides take precedence over the configured current context and
    over the references held by the selected context.

    Args:
        config: The parsed kubeconfig.
        context: Context name overriding ``config.current_context``.
        cluster: Cluster name overriding the context's cluster.
        user: User name overriding the context's user.
        materializer: Callable loading external credentials for the user.
                      Defaults to :func:`kubeconfig_loader.credentials.materialize`.

    Returns:
        A ResolvedLoader holding independent copies of the matched records.

    Raises:
        ReferenceNotFoundError: If a context, cluster or user cannot be found.
        CredentialMaterializationError: If loading external credentials fails.

    """
    context_name = context if context is not None else config.current_context
    current_context = find(config.contexts, context_name, kind="context")
    ic(context_name, current_context)

    cluster_name = cluster if cluster is not None else current_context.cluster
    resolved_cluster = find(config.clusters, cluster_name, kind="cluster")
    ic(cluster_name)

    user_name = user if user is not None else current_context.user
    materializer = materializer or materialize
    resolved_user = materializer(find(config.auth_infos, user_name, kind="user"))
    ic(user_name, resolved_user.auth_method)

    return ResolvedLoader(
        current_context=copy.deepcopy(current_context),
        cluster=copy.deepcopy(resolved_cluster),
        user=copy.deepcopy(resolved_user),
    )
