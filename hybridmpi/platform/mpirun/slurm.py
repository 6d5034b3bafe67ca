from typing import List

from .mpirun import MPIRun


class SlurmRun(MPIRun):
    """
    https://slurm.schedmd.com/srun.html
    """

    launch_command = "srun"

    def get_launch_args(self) -> List[str]:
        args = ["-n", str(self.num_ranks)]
        if self.ranks_per_node:
            args += ["--ntasks-per-node", str(self.ranks_per_node)]
        if self.hosts:
            args += ["--nodelist", ",".join(self.hosts), "--nodes", str(len(self.hosts))]
        # srun exports the full environment by default; the job env is set on Popen
        return args
