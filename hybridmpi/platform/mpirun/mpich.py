from typing import List

from .mpirun import MPIRun


class MPICHRun(MPIRun):
    """
    https://wiki.mpich.org/mpich/index.php/Using_the_Hydra_Process_Manager
    """

    launch_command = "mpiexec"

    def get_launch_args(self) -> List[str]:
        args = ["-n", str(self.num_ranks)]
        if self.ranks_per_node:
            args += ["--ppn", str(self.ranks_per_node)]
        for var, val in self.env.items():
            args += ["-env", var, str(val)]
        if self.hosts:
            args += ["--hosts", ",".join(self.hosts)]
        return args
