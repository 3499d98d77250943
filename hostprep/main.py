"""
hostprep — CLI entrypoint.

Usage:
    sudo hostprep               # provision (same as `hostprep provision`)
    sudo hostprep check         # what would change, without changing it
    hostprep backups            # configuration backups kept on this host
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from hostprep import __version__
from hostprep.core.observability.logging_config import level_from_flags, setup_from_env


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="hostprep")
@click.option("--verbose", "-v", is_flag=True, help="Timestamped, per-module log lines.")
@click.option("--quiet", "-q", is_flag=True, help="Only report errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (every command run).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hostprep.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """hostprep — provision this host in one idempotent pass."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_env(level_from_flags(debug, verbose, quiet), verbose=verbose or debug)

    if ctx.invoked_subcommand is None:
        ctx.invoke(provision)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(ctx: click.Context, as_json: bool = False) -> None:
    """Install tools, enable SSH password logins and clone the repository."""
    from hostprep.core.use_cases.provision import run_provision

    result = run_provision(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    outcome = result.outcome
    assert outcome is not None  # set whenever error is not

    click.echo()
    for r in outcome.results:
        if r.status == "satisfied":
            click.secho(f"   ✓ {r.step}", fg="green", nl=False)
            click.echo("  (already in place)")
        elif r.status == "applied":
            click.secho(f"   ✓ {r.step}", fg="green", nl=False)
            click.echo("  (applied)")
        else:
            click.secho(f"   ✗ {r.step}", fg="red", nl=False)
            click.echo(f"  {r.reason}")
    for name in outcome.pending:
        click.secho(f"   · {name}", fg="bright_black", nl=False)
        click.echo("  (not started)")

    if outcome.backups:
        click.echo()
        click.secho("   Backups:", fg="white", bold=True)
        for path in outcome.backups:
            click.echo(f"     • {path}")

    if outcome.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warning in outcome.warnings:
            click.echo(f"   • {warning}")

    click.echo()
    if not outcome.converged:
        click.secho(
            f"❌ Failed at {outcome.failed_step}: {outcome.reason}",
            fg="red",
            bold=True,
            err=True,
        )
        click.echo("   Fix the cause and re-run; completed steps will be skipped.")
        sys.exit(1)

    if outcome.unconfirmed:
        click.secho("✅ All tasks completed (some checks unconfirmed, see warnings).", fg="yellow", bold=True)
    else:
        click.secho("✅ All tasks completed successfully!", fg="green", bold=True)

    if not ctx.obj.get("quiet"):
        click.echo("   Note: for Docker to work without sudo, log out and log back in.")
        click.echo("   SSH password authentication is enabled; you can connect using passwords.")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Report which steps are already in place. Changes nothing."""
    from hostprep.core.use_cases.check import run_check

    result = run_check(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.error is None else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    markers = {
        "satisfied": ("✓", "green", "in place"),
        "pending": ("○", "yellow", "would be applied"),
        "always": ("↻", "cyan", "runs every time"),
        "error": ("✗", "red", "cannot be checked"),
    }
    click.echo()
    for c in result.checks:
        symbol, color, label = markers[c.status]
        click.secho(f"   {symbol} {c.name}", fg=color, nl=False)
        click.echo(f"  {label}" + (f": {c.detail}" if c.detail else ""))
    click.echo()

    missing = [name for name, info in result.adapters.items() if not info.get("available")]
    if missing:
        click.secho(f"⚠️  Unavailable on this host: {', '.join(missing)}", fg="yellow")
        click.echo()

    if result.converged:
        click.secho("✅ Host is provisioned", fg="green", bold=True)
    else:
        pending = sum(1 for c in result.checks if c.status != "satisfied" and c.status != "always")
        click.secho(f"   {pending} step(s) would change the host", fg="yellow")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def backups(ctx: click.Context, as_json: bool) -> None:
    """List configuration backups kept next to their sources."""
    from hostprep.core.use_cases.backups import list_source_backups

    result = list_source_backups(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.error is None else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    if not result.total:
        click.echo("No backups found.")
        return

    click.echo()
    for source, paths in result.sources.items():
        if not paths:
            continue
        click.secho(f"   {source}", fg="white", bold=True)
        for path in paths:
            click.echo(f"     • {path}")
    click.echo()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
