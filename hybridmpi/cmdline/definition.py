from typing import Optional, Tuple

import click

from hybridmpi.definition import DefinitionError, DefinitionTemplate, write_definition, write_hello_source

from .utils import load_cli_settings


@click.group("def")
def definition() -> None:
    """
    Generate container definition files
    """
    pass


@definition.command()
@click.option("-o", "--output", default="-", help="Definition file to write ('-' for stdout)")
@click.option("--base-image", default=None, help="Docker base image, e.g. ubuntu:22.04")
@click.option("--mpi-family", type=click.Choice(["openmpi", "mpich"]), default=None)
@click.option("--mpi-version", default=None, help="Must match the host MPI for the hybrid model")
@click.option("--mpi-dir", default=None, help="Install prefix inside the image (exported as OMPI_DIR)")
@click.option("--osu/--no-osu", "install_osu", default=None, help="Build the OSU micro-benchmarks")
@click.option("--osu-version", default=None)
@click.option("-a", "--app", "app_sources", multiple=True, help="C source compiled with mpicc into /opt")
@click.option("-j", "--build-jobs", type=click.IntRange(min=1), default=None)
@click.option("--shim-base-dir", default=None, help="Directory the runscript resolves relative paths against")
@click.option("-c", "--config", "config_path", default=None)
def render(
    output: str,
    base_image: Optional[str],
    mpi_family: Optional[str],
    mpi_version: Optional[str],
    mpi_dir: Optional[str],
    install_osu: Optional[bool],
    osu_version: Optional[str],
    app_sources: Tuple[str, ...],
    build_jobs: Optional[int],
    shim_base_dir: Optional[str],
    config_path: Optional[str],
) -> None:
    """
    Render a Singularity/Apptainer definition file

    1) OSU benchmarks on top of Open MPI 4.1.5 (match your host!)

        hybridmpi def render --mpi-version 4.1.5 -o osu.def

    2) The hello-world example without the benchmarks

        hybridmpi def hello -o .
        hybridmpi def render --no-osu -a mpitest.c -o hello.def
    """
    settings = load_cli_settings(config_path)
    try:
        text = DefinitionTemplate().render_settings(
            settings.definition,
            base_image=base_image,
            mpi_family=mpi_family,
            mpi_version=mpi_version,
            mpi_dir=mpi_dir,
            install_osu=install_osu,
            osu_version=osu_version,
            app_sources=list(app_sources) or None,
            build_jobs=build_jobs,
            shim_base_dir=shim_base_dir or settings.shim.base_dir,
        )
    except DefinitionError as e:
        raise click.BadParameter(str(e))

    if output == "-":
        click.echo(text, nl=False)
    else:
        path = write_definition(output, text)
        click.echo(f"Wrote {path}. Build it with: singularity build --fakeroot image.sif {path}")


@definition.command()
@click.option("-o", "--output-dir", default=".", type=click.Path(file_okay=False))
def hello(output_dir: str) -> None:
    """
    Write the MPI hello-world source (mpitest.c)
    """
    path = write_hello_source(output_dir)
    click.echo(f"Wrote {path}")
