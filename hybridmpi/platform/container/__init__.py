from .container_run import ContainerRun, validate_bind
from .singularity import ApptainerRun, SingularityRun

RUNTIMES = {
    "singularity": SingularityRun,
    "apptainer": ApptainerRun,
}

__all__ = ["ContainerRun", "SingularityRun", "ApptainerRun", "validate_bind", "RUNTIMES"]
