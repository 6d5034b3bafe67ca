from pathlib import Path
from typing import Optional

import click

from hybridmpi.config import SETTINGS_FILENAME, Settings, resolve_settings_path

from .utils import load_cli_settings


@click.group()
def config() -> None:
    """
    Create and inspect hybridmpi.yml settings
    """
    pass


@config.command()
@click.option("-o", "--output", default=SETTINGS_FILENAME, show_default=True, type=click.Path(dir_okay=False))
@click.option("-f", "--force", is_flag=True, help="Overwrite an existing file")
def init(output: str, force: bool) -> None:
    """
    Write a settings file populated with the defaults
    """
    path = Path(output)
    if path.exists() and not force:
        raise click.BadParameter(f"{path} already exists (use --force to overwrite)", param_hint="--output")
    Settings().save(path)
    click.echo(f"Wrote {path}")


@config.command()
@click.option("-c", "--config", "config_path", default=None)
def show(config_path: Optional[str]) -> None:
    """
    Print the effective settings (file, environment and defaults merged)
    """
    settings = load_cli_settings(config_path)
    source = resolve_settings_path(config_path)
    click.echo(f"# source: {source or 'defaults'}")
    click.echo(settings.dump_yaml(), nl=False)
