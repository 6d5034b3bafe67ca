from .mpich import MPICHRun
from .mpirun import DirectRun, FailedStartProcess, MPIRun, TimeoutExpired
from .openmpi import OpenMPIRun
from .slurm import SlurmRun

LAUNCHERS = {
    "openmpi": OpenMPIRun,
    "mpich": MPICHRun,
    "slurm": SlurmRun,
    "direct": DirectRun,
}

__all__ = [
    "MPIRun",
    "DirectRun",
    "FailedStartProcess",
    "TimeoutExpired",
    "OpenMPIRun",
    "MPICHRun",
    "SlurmRun",
    "LAUNCHERS",
]
