"""
CLI commands for language package managers — npm and pipx.
"""

from __future__ import annotations

import click

from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.ui.cli.common import (
    extra_options,
    join_targets,
    json_option,
    parse_pairs,
    run_request,
    version_option,
)

keep_runtime_option = click.option(
    "--keep-runtime/--remove-runtime",
    default=None,
    help="Keep a runtime bootstrapped for this install (default: from config).",
)


def _runtime_options(extra: tuple[str, ...], keep_runtime: bool | None) -> dict[str, str]:
    options = parse_pairs(extra)
    if keep_runtime is not None:
        options["keep-runtime"] = "true" if keep_runtime else "false"
    return options


@click.command("npm")
@click.argument("packages", nargs=-1, required=True)
@version_option
@keep_runtime_option
@extra_options
@json_option
@click.pass_context
def npm(
    ctx: click.Context,
    packages: tuple[str, ...],
    version: str,
    keep_runtime: bool | None,
    extra: tuple[str, ...],
    as_json: bool,
) -> None:
    """Install global npm packages, bootstrapping Node.js if needed."""
    request = InstallRequest(
        kind=BackendKind.NPM.value,
        target=join_targets(packages),
        version=version,
        options=_runtime_options(extra, keep_runtime),
    )
    run_request(ctx, request, as_json)


@click.command("pipx")
@click.argument("packages", nargs=-1, required=True)
@version_option
@click.option("--python", "python", default="", help="Python interpreter for the app's venv.")
@keep_runtime_option
@extra_options
@json_option
@click.pass_context
def pipx(
    ctx: click.Context,
    packages: tuple[str, ...],
    version: str,
    python: str,
    keep_runtime: bool | None,
    extra: tuple[str, ...],
    as_json: bool,
) -> None:
    """Install Python apps with pipx, bootstrapping pipx if needed."""
    options = _runtime_options(extra, keep_runtime)
    if python:
        options["python"] = python
    request = InstallRequest(
        kind=BackendKind.PIPX.value,
        target=join_targets(packages),
        version=version,
        options=options,
    )
    run_request(ctx, request, as_json)
