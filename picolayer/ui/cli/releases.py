"""
CLI command for GitHub release binaries.
"""

from __future__ import annotations

import click

from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.ui.cli.common import (
    extra_options,
    json_option,
    parse_pairs,
    run_request,
    version_option,
)


@click.command("gh-release")
@click.option("--owner", required=True, help="Repository owner.")
@click.option("--repo", required=True, help="Repository name.")
@version_option
@click.option("--asset-pattern", default="", help="Regex for the asset name ({os}, {arch} expand).")
@click.option("--binary", "binaries", default="", help="Comma-separated binaries (default: repo name).")
@click.option("--install-dir", default="", help="Install directory (default: from config).")
@click.option("--checksum", default="", help="Expected digest, e.g. sha256:<hex>.")
@click.option("--verify-checksum", is_flag=True, help="Fail when no checksum can be found.")
@click.option("--include-prerelease", is_flag=True, help="Allow prereleases.")
@extra_options
@json_option
@click.pass_context
def gh_release(
    ctx: click.Context,
    owner: str,
    repo: str,
    version: str,
    asset_pattern: str,
    binaries: str,
    install_dir: str,
    checksum: str,
    verify_checksum: bool,
    include_prerelease: bool,
    extra: tuple[str, ...],
    as_json: bool,
) -> None:
    """Install binaries from a GitHub release."""
    options = parse_pairs(extra)
    for key, value in (
        ("asset-pattern", asset_pattern),
        ("binary", binaries),
        ("install-dir", install_dir),
        ("checksum", checksum),
    ):
        if value:
            options[key] = value
    if verify_checksum:
        options["verify-checksum"] = "true"
    if include_prerelease:
        options["include-prerelease"] = "true"

    request = InstallRequest(
        kind=BackendKind.GH_RELEASE.value,
        target=f"{owner}/{repo}",
        version=version,
        options=options,
    )
    run_request(ctx, request, as_json)
