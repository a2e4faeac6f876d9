"""Kubeconfig file discovery and parsing.

This module turns kubeconfig YAML documents into the immutable
Configuration model, merging several files the way ``KUBECONFIG``
lists them.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from kubeconfig_loader.exceptions import KubeConfigError
from kubeconfig_loader.models import (
    DEFAULT_EXEC_API_VERSION,
    AuthInfo,
    AuthProviderConfig,
    Cluster,
    Configuration,
    Context,
    ExecConfig,
    NamedAuthInfo,
    NamedCluster,
    NamedContext,
)


def default_kubeconfig_paths() -> list[Path]:
    """Return the kubeconfig files to load when no path is given.

    Uses the entries of the ``KUBECONFIG`` environment variable if set,
    otherwise ``~/.kube/config``.

    Returns:
        List of kubeconfig paths in merge order.

    """
    kubeconfig_env = os.environ.get("KUBECONFIG")
    if kubeconfig_env:
        paths = [Path(entry) for entry in kubeconfig_env.split(os.pathsep) if entry]
        if paths:
            return paths
    return [Path.home() / ".kube" / "config"]


def _resolve_path(value: str | None, base_dir: Path | None) -> str | None:
    if value is None or base_dir is None or Path(value).is_absolute():
        return value
    return str(base_dir / value)


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise KubeConfigError(f"Expected a mapping for {where}, got {type(value).__name__}")
    return value


def _entries(document: dict[str, Any], key: str, body_key: str) -> list[tuple[str, dict[str, Any]]]:
    """Extract the (name, body) pairs of a named kubeconfig collection.

    Raises:
        KubeConfigError: If the collection or one of its entries is malformed.

    """
    raw = document.get(key) or []
    if not isinstance(raw, list):
        raise KubeConfigError(f"Expected a list for '{key}', got {type(raw).__name__}")

    entries: list[tuple[str, dict[str, Any]]] = []
    for index, entry in enumerate(raw):
        entry = _mapping(entry, f"{key}[{index}]")
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise KubeConfigError(f"Entry {key}[{index}] has no name")
        entries.append((name, _mapping(entry.get(body_key), f"{key}[{index}].{body_key}")))
    return entries


def _parse_bool(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise KubeConfigError(f"Expected a boolean for {where}, got {value!r}")


def _parse_context(body: dict[str, Any]) -> Context:
    # Missing references fail at resolution time, and only for the chosen context
    return Context(
        cluster=str(body.get("cluster") or ""),
        user=str(body.get("user") or ""),
        namespace=body.get("namespace"),
    )


def _parse_cluster(body: dict[str, Any], name: str, base_dir: Path | None) -> Cluster:
    return Cluster(
        server=str(body.get("server") or ""),
        certificate_authority=_resolve_path(body.get("certificate-authority"), base_dir),
        certificate_authority_data=body.get("certificate-authority-data"),
        insecure_skip_tls_verify=_parse_bool(
            body.get("insecure-skip-tls-verify", False), f"cluster '{name}' insecure-skip-tls-verify"
        ),
    )


def _parse_exec(body: dict[str, Any], name: str) -> ExecConfig:
    command = body.get("command")
    if not command:
        raise KubeConfigError(f"User '{name}' has an exec section without a command")
    env: dict[str, str] = {}
    for item in body.get("env") or []:
        item = _mapping(item, f"user '{name}' exec env")
        if "name" not in item:
            raise KubeConfigError(f"User '{name}' has an exec env entry without a name")
        env[str(item["name"])] = str(item.get("value", ""))
    return ExecConfig(
        command=str(command),
        args=tuple(str(arg) for arg in body.get("args") or []),
        env=env,
        api_version=str(body.get("apiVersion") or DEFAULT_EXEC_API_VERSION),
    )


def _parse_auth_info(body: dict[str, Any], name: str, base_dir: Path | None) -> AuthInfo:
    provider = None
    if "auth-provider" in body:
        provider_body = _mapping(body["auth-provider"], f"user '{name}' auth-provider")
        provider = AuthProviderConfig(
            name=str(provider_body.get("name", "")),
            config={str(k): str(v) for k, v in _mapping(provider_body.get("config"), "auth-provider config").items()},
        )

    exec_config = None
    if "exec" in body:
        exec_config = _parse_exec(_mapping(body["exec"], f"user '{name}' exec"), name)

    return AuthInfo(
        client_certificate=_resolve_path(body.get("client-certificate"), base_dir),
        client_certificate_data=body.get("client-certificate-data"),
        client_key=_resolve_path(body.get("client-key"), base_dir),
        client_key_data=body.get("client-key-data"),
        token=body.get("token"),
        username=body.get("username"),
        password=body.get("password"),
        auth_provider=provider,
        exec=exec_config,
    )


def parse_config(document: dict[str, Any] | None, base_dir: Path | None = None) -> Configuration:
    """Build a Configuration from a kubeconfig document.

    Args:
        document: The kubeconfig as loaded from YAML.
        base_dir: Directory that relative file paths are resolved against.

    Returns:
        The parsed Configuration.

    Raises:
        KubeConfigError: If the document does not have the kubeconfig structure.

    """
    document = _mapping(document, "kubeconfig")

    contexts = tuple(
        NamedContext(name, _parse_context(body)) for name, body in _entries(document, "contexts", "context")
    )
    clusters = tuple(
        NamedCluster(name, _parse_cluster(body, name, base_dir))
        for name, body in _entries(document, "clusters", "cluster")
    )
    auth_infos = tuple(
        NamedAuthInfo(name, _parse_auth_info(body, name, base_dir)) for name, body in _entries(document, "users", "user")
    )

    return Configuration(
        current_context=str(document.get("current-context") or ""),
        contexts=contexts,
        clusters=clusters,
        auth_infos=auth_infos,
    )


def _read_document(path: Path) -> dict[str, Any] | None:
    try:
        with path.open() as stream:
            return yaml.safe_load(stream)
    except FileNotFoundError as err:
        raise KubeConfigError(f"Kubeconfig file '{path}' does not exist") from err
    except OSError as err:
        raise KubeConfigError(f"Cannot read kubeconfig file '{path}': {err.strerror}") from err
    except yaml.YAMLError as err:
        raise KubeConfigError(f"Kubeconfig file '{path}' contains malformed YAML: {err}") from err


def merge_configs(configs: list[Configuration]) -> Configuration:
    """Merge configurations so that the first occurrence of every name wins.

    Collections are concatenated in order; since lookups take the first
    match, entries from earlier configurations shadow later ones. The
    current context is taken from the first configuration that sets one.
    """
    current_context = next((c.current_context for c in configs if c.current_context), "")
    return Configuration(
        current_context=current_context,
        contexts=tuple(entry for c in configs for entry in c.contexts),
        clusters=tuple(entry for c in configs for entry in c.clusters),
        auth_infos=tuple(entry for c in configs for entry in c.auth_infos),
    )


def load_config(*paths: str | Path) -> Configuration:
    """Load and merge one or more kubeconfig files.

    Args:
        paths: Kubeconfig files in merge order. Defaults to
            :func:`default_kubeconfig_paths` when none are given.

    Returns:
        The merged Configuration.

    Raises:
        KubeConfigError: If a file is missing, unreadable, or malformed.

    """
    resolved = [Path(p).expanduser() for p in paths] or default_kubeconfig_paths()
    ic(resolved)

    configs = []
    for path in resolved:
        configs.append(parse_config(_read_document(path), base_dir=path.parent.absolute()))
    return merge_configs(configs)
