"""
CLI commands for ephemeral runtimes and devcontainer features.
"""

from __future__ import annotations

import click

from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.ui.cli.common import json_option, parse_pairs, run_request, version_option


@click.command("pkgx", context_settings={"ignore_unknown_options": True})
@click.option("--tool", required=True, help="Tool to run (e.g. node, python).")
@version_option
@click.option("--working-dir", default="", help="Directory to run in (default: current).")
@click.option("--env", "env", multiple=True, metavar="KEY=VALUE", help="Environment variable (repeatable).")
@json_option
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def pkgx(
    ctx: click.Context,
    tool: str,
    version: str,
    working_dir: str,
    env: tuple[str, ...],
    as_json: bool,
    args: tuple[str, ...],
) -> None:
    """Run a tool once through pkgx, leaving no runtime behind.

    Arguments after ``--`` are passed to the tool.
    """
    options = {"working-dir": working_dir} if working_dir else {}
    request = InstallRequest(
        kind=BackendKind.PKGX.value,
        target=tool,
        version=version,
        options=options,
        env=parse_pairs(env, "environment variable"),
        args=tuple(args),
    )
    run_request(ctx, request, as_json)


@click.command("devcontainer-feature")
@click.argument("feature")
@click.option("--option", "feature_options", multiple=True, metavar="KEY=VALUE",
              help="Feature option (repeatable).")
@click.option("--env", "env", multiple=True, metavar="KEY=VALUE",
              help="Environment variable for the script (repeatable).")
@click.option("--remote-user", default="", help="User the feature installs for.")
@click.option("--script", default="install.sh", show_default=True, help="Script to run.")
@click.option("--registry-username", default="", help="Registry username.")
@click.option("--registry-password", default="", envvar="PICOLAYER_REGISTRY_PASSWORD",
              help="Registry password.")
@click.option("--registry-token", default="", envvar="PICOLAYER_REGISTRY_TOKEN",
              help="Registry bearer token.")
@json_option
@click.pass_context
def devcontainer_feature(
    ctx: click.Context,
    feature: str,
    feature_options: tuple[str, ...],
    env: tuple[str, ...],
    remote_user: str,
    script: str,
    registry_username: str,
    registry_password: str,
    registry_token: str,
    as_json: bool,
) -> None:
    """Install a devcontainer feature (OCI ref, https tarball, or directory)."""
    if bool(registry_username) != bool(registry_password):
        raise click.UsageError(
            "--registry-username and --registry-password must be given together"
        )

    options = {"script": script}
    for key, value in (
        ("remote-user", remote_user),
        ("registry-username", registry_username),
        ("registry-password", registry_password),
        ("registry-token", registry_token),
    ):
        if value:
            options[key] = value

    request = InstallRequest(
        kind=BackendKind.DEVCONTAINER_FEATURE.value,
        target=feature,
        options=options,
        parameters=parse_pairs(feature_options),
        env=parse_pairs(env, "environment variable"),
    )
    run_request(ctx, request, as_json)
