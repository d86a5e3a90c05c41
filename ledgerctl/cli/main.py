"""Click commands for ledgerctl."""

from __future__ import annotations

import asyncio
import json

import click

from ledgerctl import __version__


@click.group()
@click.version_option(__version__, prog_name="ledgerctl")
def cli() -> None:
    """Reconciliation core for a ledger-network fleet controller."""


@cli.command("run")
@click.option("--namespace", default=None, help="Namespace to watch (default: LEDGERCTL_NAMESPACE, all if unset).")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override LEDGERCTL_LOG_LEVEL.",
)
@click.option("--no-api", is_flag=True, default=False, help="Do not serve the introspection API.")
def run_cmd(namespace: str | None, log_level: str | None, no_api: bool) -> None:
    """Start the controller and block until SIGTERM/SIGINT."""
    from ledgerctl.app import main
    from ledgerctl.config import load_config

    try:
        config = load_config()
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if namespace is not None:
        config.namespace = namespace
    if log_level is not None:
        config.log.level = log_level.lower()
    if no_api:
        config.api.enabled = False

    asyncio.run(main(config))


@cli.command("version-transition")
@click.argument("old")
@click.argument("new")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the flags as a JSON list.")
def version_transition_cmd(old: str, new: str, as_json: bool) -> None:
    """Print the remediation flags a fabric version change from OLD to NEW sets."""
    from ledgerctl.fabricversion import analyze_transition

    flags = analyze_transition(old, new).true_flags()
    if as_json:
        click.echo(json.dumps(flags))
        return
    if not flags:
        click.echo("no remediation required")
        return
    for flag in flags:
        click.echo(flag)
