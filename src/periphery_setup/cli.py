"""
Installer CLI

Command-line interface for installing and upgrading the periphery agent.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from .errors import UnsupportedPlatformError
from .fetch import ArtifactFetcher, FetchConfig
from .models import (
    DEFAULT_BINARY_BASE_URL,
    DEFAULT_CONFIG_URL,
    DEFAULT_RELEASE_INDEX_URL,
    LATEST,
    SERVICE_NAME,
    ArtifactSources,
    DesiredState,
    InstallMode,
    InstallReport,
    Outcome,
)
from .orchestrator import InstallOrchestrator
from .paths import InstallPaths
from .platform import detect
from .version import __version__

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

_OUTCOME_ICONS = {
    Outcome.CREATED: "✅",
    Outcome.UPDATED: "⬆️ ",
    Outcome.RECREATED: "♻️ ",
    Outcome.ALREADY_PRESENT: "✔️ ",
    Outcome.RESOLVED: "🔍",
    Outcome.FAILED: "❌",
}


def _load_profile(ctx: click.Context, param: click.Parameter, value: Optional[str]):
    """Use a YAML file as the source of option defaults"""
    if not value:
        return value

    path = Path(value)
    try:
        with path.open() as f:
            profile = yaml.safe_load(f) or {}
    except OSError as e:
        raise click.BadParameter(f"cannot read {path}: {e}", ctx=ctx, param=param)
    except yaml.YAMLError as e:
        raise click.BadParameter(f"invalid YAML in {path}: {e}", ctx=ctx, param=param)

    if not isinstance(profile, dict):
        raise click.BadParameter(f"{path} must map option names to values", ctx=ctx, param=param)

    defaults = {str(key).replace("-", "_"): val for key, val in profile.items()}
    ctx.default_map = {**(ctx.default_map or {}), **defaults}
    logger.debug(f"Loaded defaults from {path}: {sorted(defaults)}")
    return value


def echo_report(report: InstallReport):
    """Print per-stage outcomes"""
    for result in report.stages:
        icon = _OUTCOME_ICONS.get(result.outcome, " ")
        detail = f"  {result.detail}" if result.detail else ""
        click.echo(f"{icon} {result.stage.value:<20} {result.outcome.value:<16}{detail}")


@click.group()
@click.option("--debug", is_flag=True, envvar="PERIPHERY_SETUP_DEBUG", help="Enable debug logging")
def cli(debug: bool):
    """Install and upgrade the Komodo Periphery agent"""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@click.option("--profile", type=click.Path(dir_okay=False), callback=_load_profile, is_eager=True,
              expose_value=False, help="YAML file providing defaults for the options below")
@click.option("--version", default=LATEST, show_default=True, envvar="PERIPHERY_VERSION",
              help="Release tag to install, or 'latest'")
@click.option("--user", is_flag=True, envvar="PERIPHERY_USER_MODE",
              help="Install for the current user instead of system-wide")
@click.option("--root-directory", type=click.Path(file_okay=False), default=None, envvar="PERIPHERY_ROOT_DIRECTORY",
              help="Config/data root (default: /etc/komodo, or ~/.config/komodo with --user)")
@click.option("--core-address", default=None, envvar="PERIPHERY_CORE_ADDRESS",
              help="Core address to dial out to (omit to accept inbound connections)")
@click.option("--connect-as", default=None, envvar="PERIPHERY_CONNECT_AS",
              help="Name to connect to Core as (default: host name)")
@click.option("--onboarding-key", default=None, envvar="PERIPHERY_ONBOARDING_KEY",
              help="One-time onboarding key, written only into a newly created config")
@click.option("--force-service-file", is_flag=True, help="Rewrite the unit file even if it exists")
@click.option("--config-url", default=DEFAULT_CONFIG_URL, show_default=True,
              help="Config template URL ('{version}' is replaced by the release tag)")
@click.option("--binary-url", default=DEFAULT_BINARY_BASE_URL, show_default=True,
              help="Base URL of release binaries")
@click.option("--release-index-url", default=DEFAULT_RELEASE_INDEX_URL, show_default=True,
              help="Release index used to resolve versions")
@click.option("--service-name", default=SERVICE_NAME, show_default=True, help="Service unit name")
@click.option("--retries", default=4, show_default=True, type=click.IntRange(min=1),
              help="Download attempts before giving up")
def install(
    version: str,
    user: bool,
    root_directory: Optional[str],
    core_address: Optional[str],
    connect_as: Optional[str],
    onboarding_key: Optional[str],
    force_service_file: bool,
    config_url: str,
    binary_url: str,
    release_index_url: str,
    service_name: str,
    retries: int,
):
    """Install or upgrade the agent and its service"""
    overrides = {}
    if connect_as:
        overrides["connect_as"] = connect_as

    desired = DesiredState(
        version=version,
        mode=InstallMode.USER if user else InstallMode.SYSTEM,
        root_directory=Path(root_directory) if root_directory else None,
        core_address=core_address or None,
        onboarding_key=onboarding_key or None,
        force_service_file=force_service_file,
        service_name=service_name,
        sources=ArtifactSources(
            binary_base_url=binary_url,
            config_url=config_url,
            release_index_url=release_index_url,
        ),
        **overrides,
    )

    click.echo(f"Installing periphery ({desired.version}, {desired.mode.value} mode)")

    async def run() -> InstallReport:
        async with ArtifactFetcher(config=FetchConfig(retry_attempts=retries)) as fetcher:
            return await InstallOrchestrator(desired, fetcher).run()

    report = asyncio.run(run())
    echo_report(report)

    if not report.ok:
        click.echo(f"❌ Install failed during '{report.failed_stage.value}': {report.error}", err=True)
        sys.exit(1)

    click.echo(f"✅ Periphery {report.version} is installed")


@cli.command("detect")
@click.option("--user", is_flag=True, help="Show per-user install paths")
@click.option("--root-directory", type=click.Path(file_okay=False), default=None, help="Config/data root override")
def detect_command(user: bool, root_directory: Optional[str]):
    """Show detected platform and install paths"""
    try:
        info = detect()
    except UnsupportedPlatformError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    mode = InstallMode.USER if user else InstallMode.SYSTEM
    paths = InstallPaths.for_mode(mode, root_directory=Path(root_directory) if root_directory else None)

    click.echo(f"Hostname:        {info.hostname}")
    click.echo(f"Architecture:    {info.architecture.value}")
    click.echo(f"Service manager: {info.service_manager.value}")
    click.echo(f"Mode:            {mode.value}")
    click.echo(f"Binary:          {paths.binary_path}")
    click.echo(f"Config file:     {paths.config_path}")
    click.echo(f"Unit file:       {paths.unit_path}")


@cli.command()
def version():
    """Show installer version"""
    click.echo(f"periphery-setup {__version__}")


if __name__ == "__main__":
    cli()
