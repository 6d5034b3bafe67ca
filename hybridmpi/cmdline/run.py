import sys
from typing import Dict, List, Optional, Tuple

import click

from hybridmpi.job import HybridJob
from hybridmpi.platform.container import RUNTIMES
from hybridmpi.platform.mpirun import LAUNCHERS

from .utils import load_cli_settings, split_hosts, validate_env


@click.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("-n", "--num-ranks", type=click.IntRange(min=1), help="Total number of MPI ranks")
@click.option("-N", "--ranks-per-node", type=click.IntRange(min=1))
@click.option("-i", "--image", type=click.Path(dir_okay=True), help="Container image (SIF file or sandbox)")
@click.option("-l", "--launcher", type=click.Choice(sorted(LAUNCHERS)), help="Host MPI launcher")
@click.option("-r", "--runtime", type=click.Choice(sorted(RUNTIMES)), help="Container runtime")
@click.option("-H", "--host", "hosts", multiple=True, callback=split_hosts)
@click.option("-B", "--bind", "binds", multiple=True, help="Extra bind mount src[:dst[:ro|rw]]")
@click.option("-e", "--env", "env", multiple=True, callback=validate_env, help="KEY=VALUE exported to all ranks")
@click.option("--exec", "exec_mode", is_flag=True, help="Use `exec` instead of the image runscript")
@click.option("-o", "--outfile", default=None, help="Write job output here instead of the terminal")
@click.option("--dry-run", is_flag=True, help="Print the command line and exit")
@click.option("-c", "--config", "config_path", default=None, help="Settings file (default: search for hybridmpi.yml)")
@click.argument("app_args", nargs=-1, required=True, type=click.UNPROCESSED)
def run(
    num_ranks: Optional[int],
    ranks_per_node: Optional[int],
    image: Optional[str],
    launcher: Optional[str],
    runtime: Optional[str],
    hosts: List[str],
    binds: Tuple[str, ...],
    env: Dict[str, str],
    exec_mode: bool,
    outfile: Optional[str],
    dry_run: bool,
    config_path: Optional[str],
    app_args: Tuple[str, ...],
) -> None:
    """
    Launch a hybrid MPI job: host launcher, one container per rank

    1) Run the OSU latency benchmark on 2 ranks

        hybridmpi run -n 2 -i osu.sif pt2pt/osu_latency

    2) Spread 8 ranks over two hosts with MPICH

        hybridmpi run -n 8 -N 4 -H node1,node2 -l mpich -i osu.sif collective/osu_allreduce

    3) Run an arbitrary command in the image instead of its runscript

        hybridmpi run --exec -n 4 -i hello.sif /opt/mpitest
    """
    settings = load_cli_settings(config_path)
    try:
        job = HybridJob.from_settings(
            settings,
            app_args=list(app_args),
            image=image,
            num_ranks=num_ranks,
            ranks_per_node=ranks_per_node,
            hosts=hosts,
            binds=binds,
            env=env,
            mode="exec" if exec_mode else "run",
            launcher_class=LAUNCHERS[launcher] if launcher else None,
            runtime_class=RUNTIMES[runtime] if runtime else None,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    if dry_run:
        click.echo(str(job))
        return

    settings.enable_logging("run")
    retcode = job.run(outfile=outfile)
    if retcode != 0 and outfile:
        click.echo(f"Job exited with code {retcode}. Last lines of {outfile}:", err=True)
        click.echo(job.tail_output(settings.launcher.error_tail_num_lines), err=True)
    sys.exit(retcode)
