"""
Container run-script shim.

Each MPI rank started by the host launcher enters the image through its
runscript, which calls into this module with a path relative to the
benchmark directory:

    mpirun -np 2 singularity run osu.sif pt2pt/osu_latency -m 1024

The shim announces which rank is about to run what, then replaces itself
with the benchmark so that the MPI library inside the image talks directly
to the host launcher.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, NoReturn, Optional, Sequence, TextIO, Union

PathLike = Union[str, Path]
logger = logging.getLogger(__name__)

DEFAULT_SHIM_BASE_DIR = Path("/usr/local/osu/libexec/osu-micro-benchmarks/mpi")

# PMI_RANK comes from MPICH-derived launchers; the rest are fallbacks
RANK_ENV_VARS = ("PMI_RANK", "OMPI_COMM_WORLD_RANK", "PMIX_RANK", "SLURM_PROCID")

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


def get_rank(environ: Optional[Mapping[str, str]] = None) -> str:
    """Returns the rank of this process, or "" outside of an MPI launch"""
    if environ is None:
        environ = os.environ
    for var in RANK_ENV_VARS:
        value = environ.get(var)
        if value is not None:
            return value
    return ""


def resolve_target(rel_path: PathLike, base_dir: PathLike = DEFAULT_SHIM_BASE_DIR) -> Path:
    """
    Joins `rel_path` onto `base_dir`. Nothing is checked: a missing
    target is reported by the exec itself.
    """
    return Path(base_dir).joinpath(str(rel_path).lstrip("/"))


def format_banner(target: PathLike, rank: str) -> str:
    return f"Rank {rank} - About to run: {target}"


def exec_target(
    rel_path: PathLike,
    args: Sequence[str] = (),
    base_dir: PathLike = DEFAULT_SHIM_BASE_DIR,
    environ: Optional[Mapping[str, str]] = None,
    stdout: Optional[TextIO] = None,
) -> NoReturn:
    """
    Print the banner, then replace the current process with the target,
    forwarding `args` unchanged. Only returns (via SystemExit) on failure.
    """
    target = resolve_target(rel_path, base_dir)
    print(format_banner(target, get_rank(environ)), file=stdout or sys.stdout, flush=True)

    argv = [str(target), *args]
    try:
        if environ is None:
            os.execv(target, argv)
        else:
            os.execve(target, argv, dict(environ))
    except FileNotFoundError:
        logger.error(f"{target}: no such file")
        sys.exit(EXIT_NOT_FOUND)
    except OSError as e:
        logger.error(f"{target}: cannot execute: {e.strerror}")
        sys.exit(EXIT_NOT_EXECUTABLE)
    raise AssertionError("unreachable: exec returned")
