"""
Shared CLI plumbing — option decorators, ``key=value`` parsing and
result printing.

Every install command builds an ``InstallRequest`` and hands it to
``run_request``, which executes it and sets the exit code.
"""

from __future__ import annotations

import json
import sys

import click

from picolayer.core.models.request import InstallRequest
from picolayer.core.models.result import InstallResult

json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output the result as JSON."
)

version_option = click.option(
    "--version", "version", default="latest", show_default=True,
    help="Version: 'latest', an exact version, or a range like '>=1.2,<2'.",
)

extra_options = click.option(
    "--opt", "-o", "extra", multiple=True, metavar="KEY=VALUE",
    help="Extra backend option (repeatable).",
)


def parse_pairs(values: tuple[str, ...], what: str = "option") -> dict[str, str]:
    """``("a=1", "b=2")`` → ``{"a": "1", "b": "2"}``."""
    pairs: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Invalid {what} {item!r} (expected key=value)")
        pairs[key.strip()] = value
    return pairs


def join_targets(values: tuple[str, ...]) -> str:
    """Accept ``a b`` as well as ``a,b``."""
    return ",".join(v.strip() for v in values if v.strip())


def _orchestrator(ctx: click.Context):
    orchestrator = ctx.obj.get("orchestrator")
    if orchestrator is None:
        from picolayer.core.services.install.orchestrator import Orchestrator

        orchestrator = Orchestrator(ctx.obj["settings"])
        ctx.obj["orchestrator"] = orchestrator
    return orchestrator


def run_request(ctx: click.Context, request: InstallRequest, as_json: bool) -> None:
    """Execute ``request``, print the outcome, exit 1 on failure."""
    result = _orchestrator(ctx).execute(request)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.failed:
            sys.exit(1)
        return

    print_result(ctx, result)
    if result.failed:
        sys.exit(1)


def print_result(ctx: click.Context, result: InstallResult) -> None:
    verbose = ctx.obj.get("verbose") or ctx.obj.get("debug")
    quiet = ctx.obj.get("quiet", False)

    for warning in result.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow", err=True)

    if result.failed:
        click.secho(f"❌ {result.message}", fg="red", err=True)
        if verbose:
            for line in result.error_chain[1:]:
                click.echo(f"   caused by: {line}", err=True)
        return

    if quiet:
        return
    click.secho(f"✅ {result.message}", fg="green")
    if verbose and result.paths_removed:
        click.echo(f"   Removed {len(result.paths_removed)} path(s):")
        for path in result.paths_removed:
            click.echo(f"     • {path}")
