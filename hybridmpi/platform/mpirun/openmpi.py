from typing import List

from .mpirun import MPIRun


class OpenMPIRun(MPIRun):
    """
    https://www.open-mpi.org/doc/v4.1/man1/mpirun.1.php
    """

    launch_command = "mpirun"

    def get_launch_args(self) -> List[str]:
        args = ["-np", str(self.num_ranks)]
        if self.ranks_per_node:
            args += ["--map-by", f"ppr:{self.ranks_per_node}:node"]
        for var in self.env:
            args += ["-x", var]
        if self.hosts:
            args += ["-H", ",".join(self.hosts)]
        return args
