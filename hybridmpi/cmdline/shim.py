from typing import Optional, Tuple

import click

from hybridmpi.shim import DEFAULT_SHIM_BASE_DIR, exec_target

from .utils import load_cli_settings

SHIM_CONTEXT = {"ignore_unknown_options": True, "allow_interspersed_args": False}


@click.command(context_settings=SHIM_CONTEXT)
@click.option(
    "-b",
    "--base-dir",
    envvar="HYBRIDMPI_SHIM_BASE_DIR",
    default=None,
    type=click.Path(file_okay=False),
    help=f"Directory that REL_PATH is resolved against [default: shim.base_dir setting or {DEFAULT_SHIM_BASE_DIR}]",
)
@click.argument("rel_path")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def shim(base_dir: Optional[str], rel_path: str, args: Tuple[str, ...]) -> None:
    """
    Container run-script shim: announce the rank, then exec the benchmark

    Used as the image runscript, once per MPI rank:

        mpirun -np 2 singularity run osu.sif pt2pt/osu_latency -m 1024

    All arguments after REL_PATH are forwarded unchanged.
    """
    if base_dir is None:
        base_dir = str(load_cli_settings().shim.base_dir or DEFAULT_SHIM_BASE_DIR)
    exec_target(rel_path, args, base_dir=base_dir)


def main() -> None:
    shim(prog_name="hybridmpi-shim")


if __name__ == "__main__":
    main()
