from typing import Optional

import click

from hybridmpi.compat import MPICommandError, MPIVersionError, check_compatible, container_mpi_version, host_mpi_version
from hybridmpi.platform.container import RUNTIMES

from .utils import load_cli_settings


@click.command("check-abi")
@click.option("-i", "--image", type=click.Path(), default=None)
@click.option("-r", "--runtime", type=click.Choice(sorted(RUNTIMES)), default=None)
@click.option("--host-command", default=None, help="Host launcher to query (default: configured launcher)")
@click.option("--container-command", default="mpirun", show_default=True)
@click.option("-c", "--config", "config_path", default=None)
def check_abi(
    image: Optional[str],
    runtime: Optional[str],
    host_command: Optional[str],
    container_command: str,
    config_path: Optional[str],
) -> None:
    """
    Compare the host MPI with the MPI inside a container image

        hybridmpi check-abi -i osu.sif

    Exits with status 1 when the two cannot be mixed.
    """
    settings = load_cli_settings(config_path)
    image = image or (str(settings.container.image) if settings.container.image else None)
    if image is None:
        raise click.BadParameter("No container image given", param_hint="--image")
    runtime_class = RUNTIMES[runtime] if runtime else settings.container.runtime_class
    host_command = host_command or settings.launcher.launcher_class.launch_command

    try:
        host = host_mpi_version(host_command)
        container = container_mpi_version(image, container_command, runtime_class)
    except (MPICommandError, MPIVersionError) as e:
        raise click.ClickException(str(e))

    report = check_compatible(host, container)
    click.echo(report.summary())
    if not report.compatible:
        raise click.exceptions.Exit(1)
