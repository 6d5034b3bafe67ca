"""
Host/container MPI compatibility.

In the hybrid model the host launcher talks to the MPI library linked
inside the image, so both sides must agree on the MPI ABI. The checks
here compare the output of `mpirun --version` on the host and inside
the container.
"""
import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Pattern, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict

from hybridmpi.platform.container import ContainerRun, SingularityRun

PathLike = Union[str, Path]
logger = logging.getLogger(__name__)


class MPIVersionError(ValueError):
    pass


class MPICommandError(RuntimeError):
    pass


VERSION_NUMBER = r"(\d+)\.(\d+)(?:\.(\d+))?"

VERSION_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("openmpi", re.compile(r"\(Open MPI\)\s+" + VERSION_NUMBER)),
    ("intel", re.compile(r"Intel\(R\) MPI Library.*?Version\s+(\d+)(?:\.(\d+)|\s+Update\s+(\d+))?", re.DOTALL)),
    ("mvapich", re.compile(r"MVAPICH2?\s+(?:Version:?\s*)?" + VERSION_NUMBER, re.IGNORECASE)),
    ("mpich", re.compile(r"MPICH Version:\s+" + VERSION_NUMBER)),
    ("mpich", re.compile(r"HYDRA build details:.*?Version:\s+" + VERSION_NUMBER, re.DOTALL)),
]

# Implementations taking part in the MPICH ABI compatibility initiative
MPICH_ABI_FAMILIES = {"mpich", "intel", "mvapich"}
MPICH_ABI_MIN_VERSION = (3, 1)


class MPIVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    family: str
    major: int
    minor: int
    patch: Optional[int] = None

    def __str__(self) -> str:
        number = f"{self.major}.{self.minor}"
        if self.patch is not None:
            number += f".{self.patch}"
        return f"{self.family} {number}"


class CompatibilityReport(BaseModel):
    host: MPIVersion
    container: MPIVersion
    compatible: bool
    messages: List[str] = []

    def summary(self) -> str:
        status = "compatible" if self.compatible else "INCOMPATIBLE"
        lines = [f"host: {self.host}", f"container: {self.container}", f"status: {status}"]
        lines.extend(f"  - {msg}" for msg in self.messages)
        return "\n".join(lines)


def parse_mpi_version(text: str) -> MPIVersion:
    for family, pattern in VERSION_PATTERNS:
        match = pattern.search(text)
        if match:
            major, minor, patch = match.groups()
            if family == "intel":
                # "2021.5", "2019 Update 8" or a bare "2019"
                minor, patch = minor or patch or "0", None
            return MPIVersion(
                family=family,
                major=int(major),
                minor=int(minor),
                patch=int(patch) if patch is not None else None,
            )
    first_line = text.strip().splitlines()[0] if text.strip() else "<empty>"
    raise MPIVersionError(f"Could not recognise MPI version output: {first_line}")


def mpi_subproc(args: List[str]) -> str:
    logger.debug(f"Running {' '.join(args)}")
    try:
        p = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
        )
    except FileNotFoundError:
        raise MPICommandError(f"{args[0]}: command not found")
    if p.returncode != 0:
        raise MPICommandError(f"{' '.join(args)} returned {p.returncode}:\n{p.stdout}")
    return p.stdout


def host_mpi_version(launch_command: str = "mpirun") -> MPIVersion:
    return parse_mpi_version(mpi_subproc([launch_command, "--version"]))


def container_mpi_version(
    image: PathLike,
    launch_command: str = "mpirun",
    runtime_class: Type[ContainerRun] = SingularityRun,
) -> MPIVersion:
    container_run = runtime_class(image, [launch_command, "--version"], mode="exec")
    return parse_mpi_version(mpi_subproc(container_run.render_args()))


def _check_mpich_abi(host: MPIVersion, container: MPIVersion) -> Tuple[bool, List[str]]:
    messages = []
    for side, version in (("host", host), ("container", container)):
        if version.family == "mpich" and (version.major, version.minor) < MPICH_ABI_MIN_VERSION:
            min_str = ".".join(map(str, MPICH_ABI_MIN_VERSION))
            messages.append(f"{side} {version} predates the MPICH ABI initiative (MPICH >= {min_str})")
            return False, messages
    if host.family != container.family:
        messages.append(f"{host.family} and {container.family} rely on MPICH ABI compatibility")
    elif (host.major, host.minor) != (container.major, container.minor):
        messages.append(f"versions differ ({host} vs {container}); MPICH ABI is expected to hold")
    return True, messages


def check_compatible(host: MPIVersion, container: MPIVersion) -> CompatibilityReport:
    """
    Rules:
      - Open MPI on both sides: major versions must match; a minor mismatch is a warning
      - MPICH ABI family on both sides (MPICH >= 3.1, Intel MPI, MVAPICH2): compatible
      - anything else: incompatible
    """
    messages: List[str] = []
    if host.family == container.family == "openmpi":
        if host.major != container.major:
            compatible = False
            messages.append(f"Open MPI major versions differ: {host} vs {container}")
        else:
            compatible = True
            if host.minor != container.minor:
                messages.append(f"Open MPI minor versions differ ({host} vs {container}); prefer matching versions")
    elif host.family in MPICH_ABI_FAMILIES and container.family in MPICH_ABI_FAMILIES:
        compatible, messages = _check_mpich_abi(host, container)
    else:
        compatible = False
        messages.append(f"{host.family} on the host cannot launch {container.family} in the container")

    report = CompatibilityReport(host=host, container=container, compatible=compatible, messages=messages)
    log = logger.info if compatible else logger.warning
    log(f"MPI compatibility host={host} container={container}: {'OK' if compatible else 'FAILED'}")
    return report
