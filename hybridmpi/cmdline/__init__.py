import logging
import os
import sys

import click

from hybridmpi import __version__
from hybridmpi.cmdline import compat, config, definition, run, shim

logger = logging.getLogger("hybridmpi.cmdline")


@click.group()
@click.version_option(version=__version__)
def _main() -> None:
    """
    hybridmpi: run MPI applications inside Singularity/Apptainer containers.

    The host MPI launcher starts one container per rank; the MPI library
    inside the image must be compatible with the host's. Each subcommand
    is documented; use `--help` on it for details.
    """
    pass


def main() -> None:
    try:
        _main()
    except Exception as e:
        if os.environ.get("HYBRIDMPI_CLI_TRACEBACK"):
            raise
        logger.debug("Unhandled CLI error", exc_info=True)
        click.echo(f"{str(e).strip()}", err=True)
        click.echo("    [Export HYBRIDMPI_CLI_TRACEBACK=1 to see a full stack trace]", err=True)
        sys.exit(1)


LOAD_COMMANDS = [
    shim.shim,
    run.run,
    definition.definition,
    compat.check_abi,
    config.config,
]

for cmd in LOAD_COMMANDS:
    _main.add_command(cmd)

if __name__ == "__main__":
    main()
