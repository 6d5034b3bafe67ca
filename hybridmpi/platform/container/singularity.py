from typing import List

from .container_run import ContainerRun


class SingularityRun(ContainerRun):
    """
    https://docs.sylabs.io/guides/latest/user-guide/mpi.html
    """

    runtime_command = "singularity"

    def get_options(self) -> List[str]:
        opts = []
        if self.cleanenv:
            opts.append("--cleanenv")
        for bind in self.binds:
            opts += ["--bind", bind]
        for var, val in self.env.items():
            opts += ["--env", f"{var}={val}"]
        return opts


class ApptainerRun(SingularityRun):
    """
    https://apptainer.org/docs/user/latest/mpi.html
    """

    runtime_command = "apptainer"
