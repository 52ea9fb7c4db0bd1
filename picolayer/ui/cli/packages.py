"""
CLI commands for system package managers — apt-get, apt, aptitude,
apk and brew.

Thin wrappers: each builds an ``InstallRequest`` and runs it.
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


def _apt_command(kind: BackendKind) -> click.Command:
    @click.command(kind.value)
    @click.argument("packages", nargs=-1, required=True)
    @version_option
    @click.option("--ppas", default="", help="Comma-separated PPAs to add (Ubuntu only).")
    @click.option(
        "--force-ppas-on-non-ubuntu", is_flag=True,
        help="Add the PPAs on non-Ubuntu distributions too.",
    )
    @extra_options
    @json_option
    @click.pass_context
    def command(
        ctx: click.Context,
        packages: tuple[str, ...],
        version: str,
        ppas: str,
        force_ppas_on_non_ubuntu: bool,
        extra: tuple[str, ...],
        as_json: bool,
    ) -> None:
        options = parse_pairs(extra)
        if ppas:
            options["ppas"] = ppas
        if force_ppas_on_non_ubuntu:
            options["force-ppas-on-non-ubuntu"] = "true"
        request = InstallRequest(
            kind=kind.value,
            target=join_targets(packages),
            version=version,
            options=options,
        )
        run_request(ctx, request, as_json)

    command.help = f"Install packages with {kind.value}, then purge its caches."
    return command


def _simple_command(kind: BackendKind, help_text: str) -> click.Command:
    @click.command(kind.value, help=help_text)
    @click.argument("packages", nargs=-1, required=True)
    @version_option
    @extra_options
    @json_option
    @click.pass_context
    def command(
        ctx: click.Context,
        packages: tuple[str, ...],
        version: str,
        extra: tuple[str, ...],
        as_json: bool,
    ) -> None:
        request = InstallRequest(
            kind=kind.value,
            target=join_targets(packages),
            version=version,
            options=parse_pairs(extra),
        )
        run_request(ctx, request, as_json)

    return command


apt_get = _apt_command(BackendKind.APT_GET)
apt = _apt_command(BackendKind.APT)
aptitude = _simple_command(
    BackendKind.APTITUDE, "Install packages with aptitude, then purge its caches."
)
apk = _simple_command(
    BackendKind.APK, "Install Alpine packages with apk add --no-cache."
)
brew = _simple_command(
    BackendKind.BREW, "Install Homebrew formulae, then clean up downloads."
)
