"""External credential materialization.

This module loads credentials that are not stored in the kubeconfig
itself: exec credential plugins and the ``gcp`` / ``oidc`` auth
providers. Every materializer returns a new AuthInfo and leaves the
one it was given untouched.
"""

import base64
import json
import os
import subprocess
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from icecream import ic

from kubeconfig_loader.exceptions import CredentialMaterializationError
from kubeconfig_loader.models import AuthInfo, AuthProviderConfig, ExecConfig

GCE_METADATA_TOKEN_URL = "http://metadata.google.internal/computeMetadata/v1/instance/service-accounts/default/token"
_METADATA_TIMEOUT = 5

_DEFAULT_TOKEN_KEY = "{.access_token}"
_DEFAULT_EXPIRY_KEY = "{.token_expiry}"


def _run_plugin(cmd: list[str], env: dict[str, str] | None = None) -> dict[str, Any]:
    """Run a credential plugin and parse its stdout as JSON.

    Args:
        cmd: The command to execute.
        env: Environment for the plugin process (defaults to the current one).

    Returns:
        The decoded JSON document.

    Raises:
        CredentialMaterializationError: If the plugin is missing, fails,
            or prints something other than a JSON object.

    """
    ic(cmd)
    try:
        result = subprocess.run(cmd, env=env, capture_output=True, text=True, check=True)
    except FileNotFoundError as err:
        raise CredentialMaterializationError(f"Credential plugin '{cmd[0]}' not found") from err
    except subprocess.CalledProcessError as err:
        stderr_msg = err.stderr.strip() if err.stderr else ""
        details = f" - {stderr_msg}" if stderr_msg else ""
        raise CredentialMaterializationError(
            f"Credential plugin '{cmd[0]}' failed (exit code {err.returncode}){details}"
        ) from err

    try:
        document = json.loads(result.stdout)
    except json.JSONDecodeError as err:
        raise CredentialMaterializationError(f"Credential plugin '{cmd[0]}' printed invalid JSON: {err}") from err
    if not isinstance(document, dict):
        raise CredentialMaterializationError(f"Credential plugin '{cmd[0]}' did not print a JSON object")
    return document


def _lookup(document: dict[str, Any], key: str) -> Any:
    """Extract a value using a simple JSONPath expression such as ``{.credential.access_token}``."""
    value: Any = document
    for part in key.strip().strip("{}").split("."):
        if not part:
            continue
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _is_expired(expiry: str | None) -> bool:
    if not expiry:
        return True
    try:
        expires_at = datetime.fromisoformat(expiry.replace("Z", "+00:00"))
    except ValueError:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)


def _encode_pem(pem: str) -> str:
    return base64.b64encode(pem.encode()).decode()


def load_exec_credential(auth_info: AuthInfo, exec_config: ExecConfig) -> AuthInfo:
    """Run an exec credential plugin and apply its ExecCredential status.

    Args:
        auth_info: The user entry holding the exec section.
        exec_config: The exec plugin descriptor.

    Returns:
        A new AuthInfo carrying the token and/or client certificate and key.

    Raises:
        CredentialMaterializationError: If the plugin fails or its output is invalid.

    """
    env = {**os.environ, **exec_config.env}
    env["KUBERNETES_EXEC_INFO"] = json.dumps(
        {"apiVersion": exec_config.api_version, "kind": "ExecCredential", "spec": {"interactive": False}}
    )

    credential = _run_plugin([exec_config.command, *exec_config.args], env=env)
    if credential.get("kind") != "ExecCredential":
        raise CredentialMaterializationError(
            f"Exec plugin '{exec_config.command}' returned kind {credential.get('kind')!r}, expected 'ExecCredential'"
        )

    status = credential.get("status")
    if not isinstance(status, dict):
        raise CredentialMaterializationError(f"Exec plugin '{exec_config.command}' returned no status")

    token = status.get("token")
    cert = status.get("clientCertificateData")
    key = status.get("clientKeyData")
    if bool(cert) != bool(key):
        raise CredentialMaterializationError(
            f"Exec plugin '{exec_config.command}' must return both clientCertificateData and clientKeyData"
        )
    if not token and not cert:
        raise CredentialMaterializationError(
            f"Exec plugin '{exec_config.command}' returned neither a token nor a client certificate"
        )

    updated = auth_info
    if token:
        updated = replace(updated, token=token)
    if cert:
        updated = replace(updated, client_certificate_data=_encode_pem(cert), client_key_data=_encode_pem(key))
    return updated


def _fetch_metadata_token() -> tuple[str, str]:
    """Fetch an access token for the default service account from the GCE metadata server.

    Returns:
        Tuple of (access token, RFC 3339 expiry).

    Raises:
        CredentialMaterializationError: If the metadata server cannot be reached.

    """
    ic(GCE_METADATA_TOKEN_URL)
    try:
        response = requests.get(
            GCE_METADATA_TOKEN_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=_METADATA_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as err:
        raise CredentialMaterializationError(f"Failed to fetch token from GCE metadata server: {err}") from err
    except ValueError as err:
        raise CredentialMaterializationError("GCE metadata server returned invalid JSON") from err

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise CredentialMaterializationError("GCE metadata server response has no access_token")
    try:
        expires_in = int(payload.get("expires_in", 0))
    except (TypeError, ValueError) as err:
        raise CredentialMaterializationError("GCE metadata server returned an invalid expires_in") from err
    expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return token, expiry.strftime("%Y-%m-%dT%H:%M:%SZ")


def load_gcp_credential(auth_info: AuthInfo, provider: AuthProviderConfig) -> AuthInfo:
    """Obtain a bearer token for the ``gcp`` auth provider.

    A cached ``access-token`` is reused while its ``expiry`` lies in the
    future. Otherwise the token comes from ``cmd-path`` (typically
    ``gcloud config config-helper``) or, without one, from the GCE
    metadata server.

    Args:
        auth_info: The user entry holding the auth-provider section.
        provider: The gcp auth-provider descriptor.

    Returns:
        A new AuthInfo with ``token`` set and the provider cache refreshed.

    Raises:
        CredentialMaterializationError: If no token can be obtained.

    """
    config = provider.config
    token = config.get("access-token")
    expiry = config.get("expiry")

    if token and not _is_expired(expiry):
        ic("using cached gcp access token")
    elif config.get("cmd-path"):
        cmd = [config["cmd-path"], *config.get("cmd-args", "").split()]
        output = _run_plugin(cmd)
        token = _lookup(output, config.get("token-key", _DEFAULT_TOKEN_KEY))
        expiry = _lookup(output, config.get("expiry-key", _DEFAULT_EXPIRY_KEY))
        if not token:
            raise CredentialMaterializationError(f"gcp auth provider command '{cmd[0]}' returned no token")
    else:
        token, expiry = _fetch_metadata_token()

    refreshed = {**config, "access-token": str(token)}
    if expiry:
        refreshed["expiry"] = str(expiry)
    return replace(auth_info, token=str(token), auth_provider=replace(provider, config=refreshed))


def load_oidc_credential(auth_info: AuthInfo, provider: AuthProviderConfig) -> AuthInfo:
    """Use the ``id-token`` of an ``oidc`` auth provider as the bearer token.

    Raises:
        CredentialMaterializationError: If the provider has no id-token.

    """
    token = provider.config.get("id-token")
    if not token:
        raise CredentialMaterializationError("oidc auth provider has no id-token")
    return replace(auth_info, token=token)


_AUTH_PROVIDERS = {
    "gcp": load_gcp_credential,
    "oidc": load_oidc_credential,
}


def materialize(auth_info: AuthInfo) -> AuthInfo:
    """Load any external credentials the user entry refers to.

    Static credentials (inline data or file paths) are returned as is.

    Args:
        auth_info: The resolved user entry.

    Returns:
        An AuthInfo with external credentials applied.

    Raises:
        CredentialMaterializationError: If an exec plugin or auth provider fails.

    """
    if auth_info.exec is not None:
        return load_exec_credential(auth_info, auth_info.exec)

    if auth_info.auth_provider is not None:
        loader = _AUTH_PROVIDERS.get(auth_info.auth_provider.name)
        if loader is not None:
            return loader(auth_info, auth_info.auth_provider)
        ic(f"unsupported auth provider {auth_info.auth_provider.name!r}, skipping")

    return auth_info
