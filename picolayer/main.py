"""
picolayer — CLI entrypoint.

Usage:
    picolayer --help
    picolayer apt-get cowsay
    picolayer gh-release --owner cli --repo cli --binary gh
    picolayer info
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from picolayer import __version__
from picolayer.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="picolayer")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to picolayer.yml (default: auto-detect).",
)
@click.option("--max-retries", type=int, default=None, help="Retries for transient network errors.")
@click.option("--retry-delay-ms", type=int, default=None, help="Initial retry delay in milliseconds.")
@click.option("--retry-backoff-multiplier", type=float, default=None, help="Retry backoff multiplier.")
@click.option("--timeout", "network_timeout", type=float, default=None,
              help="Network timeout per attempt, in seconds.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    max_retries: int | None,
    retry_delay_ms: int | None,
    retry_backoff_multiplier: float | None,
    network_timeout: float | None,
) -> None:
    """picolayer — install tools into container layers, leaving no cache behind."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PICOLAYER_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PICOLAYER_LOG_FILE"),
        log_file_level=os.environ.get("PICOLAYER_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    # ── Settings ────────────────────────────────────────────────
    from picolayer.core.config.loader import ConfigError, apply_overrides, load_settings

    try:
        settings = load_settings(ctx.obj["config_path"])
        settings = apply_overrides(settings, {
            "retry.max_retries": max_retries,
            "retry.initial_delay_ms": retry_delay_ms,
            "retry.backoff_multiplier": retry_backoff_multiplier,
            "network_timeout": network_timeout,
        })
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    ctx.obj["settings"] = settings


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, as_json: bool) -> None:
    """Show the detected platform, settings and backend availability."""
    from picolayer.adapters.base import BackendContext
    from picolayer.adapters.registry import BackendRegistry

    settings = ctx.obj["settings"]
    context = BackendContext.from_settings(settings)
    distro = context.get_distro()
    platform = context.get_platform()
    registry = ctx.obj.get("registry") or BackendRegistry.default(context)
    backends = registry.backend_status()

    if as_json:
        click.echo(json.dumps({
            "version": __version__,
            "platform": platform.triple,
            "distro": {
                "id": distro.id,
                "version_id": distro.version_id,
                "family": distro.family.value,
                "pretty_name": distro.pretty_name,
            },
            "settings": settings.public_dict(),
            "backends": backends,
        }, indent=2))
        return

    click.secho(f"\n📦 picolayer {__version__}", fg="cyan", bold=True)
    click.echo(f"   Platform: {platform.triple}")
    click.echo(f"   Distro:   {distro.pretty_name or distro.id} ({distro.family.value})")
    click.echo(f"   Install:  {settings.install_dir}")
    click.echo()
    click.secho("   Backends:", fg="white", bold=True)
    for name, entry in backends.items():
        if entry["available"]:
            click.secho(f"     ✓ {name}", fg="green")
        else:
            click.secho(f"     ✗ {name}", fg="bright_black")
    click.echo()


# ── Register install commands from picolayer/ui/cli/ ──────────────

from picolayer.ui.cli.packages import apk, apt, apt_get, aptitude, brew
from picolayer.ui.cli.languages import npm, pipx
from picolayer.ui.cli.releases import gh_release
from picolayer.ui.cli.runtimes import devcontainer_feature, pkgx

cli.add_command(apt_get)
cli.add_command(apt)
cli.add_command(aptitude)
cli.add_command(apk)
cli.add_command(brew)
cli.add_command(npm)
cli.add_command(pipx)
cli.add_command(gh_release)
cli.add_command(pkgx)
cli.add_command(devcontainer_feature)


if __name__ == "__main__":
    cli()
