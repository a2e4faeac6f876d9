#!/usr/bin/env python
"""Command-line interface for kubeconfig-loader.

This module provides the CLI entry point which resolves a kubeconfig
context and prints a summary of the connection material it yields.
"""

import sys

import click
import questionary
from icecream import ic
from rich.markup import escape

from kubeconfig_loader import __version__, console
from kubeconfig_loader.config import load_config
from kubeconfig_loader.exceptions import KubeConfigError, KubeconfigLoaderError
from kubeconfig_loader.loader import KubeConfigLoader
from kubeconfig_loader.models import Configuration
from kubeconfig_loader.styles import CURRENT_MARKER, POINTER, PROMPT_STYLE, QMARK
from kubeconfig_loader.tls import DEFAULT_IDENTITY_ENCODER, IDENTITY_ENCODERS, get_identity_encoder


def select_context(config: Configuration) -> str:
    """Prompt the user to pick one of the configured contexts.

    Args:
        config: The loaded kubeconfig.

    Returns:
        The selected context name.

    Raises:
        click.ClickException: If the kubeconfig has no contexts.
        click.Abort: If the user cancels the selection.

    """
    if not config.contexts:
        raise click.ClickException("Kubeconfig defines no contexts")

    choices = [
        questionary.Choice(
            title=f"{named.name}{CURRENT_MARKER}" if named.name == config.current_context else named.name,
            value=named.name,
        )
        for named in config.contexts
    ]
    context: str | None = questionary.select(
        "Select context to resolve",
        choices=choices,
        style=PROMPT_STYLE,
        pointer=POINTER,
        qmark=QMARK,
    ).ask()
    if context is None:
        console.warning("Context selection cancelled.")
        raise click.Abort()
    return context


def describe(loader: KubeConfigLoader) -> dict[str, str]:
    """Summarize the connection material of a resolved loader.

    Builds the trust bundle and, for certificate users, the client
    identity, so encoding problems surface here.

    Raises:
        KubeConfigError: If the resolved cluster has no server.
        KubeconfigLoaderError: If the CA bundle or client identity cannot be built.

    """
    if not loader.cluster.server:
        raise KubeConfigError("Resolved cluster has no server")

    ca_bundle = loader.ca_bundle()
    if ca_bundle is None:
        ca_summary = "system default"
    else:
        ca_summary = f"{len(ca_bundle)} certificate(s)"

    if loader.user.client_certificate or loader.user.client_certificate_data:
        identity_summary = loader.identity().subject
    else:
        identity_summary = "none"

    return {
        "Server": loader.cluster.server,
        "Namespace": loader.current_context.namespace or "default",
        "Auth": loader.user.auth_method,
        "CA": ca_summary,
        "Client identity": identity_summary,
        "Verify TLS": "no" if loader.cluster.insecure_skip_tls_verify else "yes",
    }


@click.command(help="Resolve a kubeconfig context into TLS connection material")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
@click.option("--kubeconfig", "-k", required=False, help="kubeconfig file (defaults to $KUBECONFIG or ~/.kube/config)")
@click.option("--context", required=False, help="context to use instead of the current context")
@click.option("--cluster", required=False, help="cluster to use instead of the context's cluster")
@click.option("--user", required=False, help="user to use instead of the context's user")
@click.option("--select", required=False, is_flag=True, default=False, help="prompt for context select")
@click.option(
    "--identity-encoding",
    type=click.Choice(sorted(IDENTITY_ENCODERS)),
    default=DEFAULT_IDENTITY_ENCODER.name,
    show_default=True,
    help="encoding used to build the client identity",
)
def cli(
    version: bool,
    debug: bool,
    kubeconfig: str | None,
    context: str | None,
    cluster: str | None,
    user: str | None,
    select: bool,
    identity_encoding: str,
) -> None:
    """Process CLI arguments and print the resolved connection summary.

    Args:
        version: Print version and exit.
        debug: Enable debug output.
        kubeconfig: Path to the kubeconfig file.
        context: Context name override.
        cluster: Cluster name override.
        user: User name override.
        select: Prompt for context selection.
        identity_encoding: Name of the identity encoder to use.

    """
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    try:
        config = load_config(kubeconfig) if kubeconfig else load_config()
        if select:
            context = select_context(config)

        context_name = context if context is not None else config.current_context
        console.action(f"Working with {console.highlight(context_name)} context")

        with console.spinner("Resolving credentials..."):
            loader = KubeConfigLoader.from_config(
                config,
                context,
                cluster,
                user,
                identity_encoder=get_identity_encoder(identity_encoding),
            )
            summary = describe(loader)
    except KubeconfigLoaderError as e:
        console.error(f"Failed to resolve kubeconfig: {escape(str(e))}")
        sys.exit(1)

    if loader.cluster.insecure_skip_tls_verify:
        console.warning("Server certificate verification is disabled for this cluster")
    console.summary_panel(f"Context {context_name}", summary)


if __name__ == "__main__":
    cli()
