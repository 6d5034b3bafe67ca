import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Type, Union

from hybridmpi.config import Settings
from hybridmpi.platform.container import ContainerRun
from hybridmpi.platform.mpirun import MPIRun, TimeoutExpired
from hybridmpi.util import SigHandler

PathLike = Union[str, Path]
logger = logging.getLogger(__name__)


class HybridJob:
    """
    Host launcher around one container invocation per rank:

        <mpi-launcher> -n N <container-tool> run <image> <rel-path> [args...]

    Process management is delegated to the launcher.
    """

    POLL_INTERVAL_SEC = 0.5

    def __init__(self, container_run: ContainerRun, mpi_run_class: Type[MPIRun], **launch_kwargs: object) -> None:
        self.container_run = container_run
        self.mpi_run = mpi_run_class(container_run.render_args(), **launch_kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        app_args: Sequence[str],
        image: Optional[PathLike] = None,
        num_ranks: Optional[int] = None,
        ranks_per_node: Optional[int] = None,
        hosts: Optional[Sequence[str]] = None,
        binds: Sequence[str] = (),
        env: Optional[Dict[str, str]] = None,
        mode: str = "run",
        launcher_class: Optional[Type[MPIRun]] = None,
        runtime_class: Optional[Type[ContainerRun]] = None,
    ) -> "HybridJob":
        """
        Build a job from `settings`; explicit arguments override the configured values
        """
        container_conf = settings.container
        launcher_conf = settings.launcher

        image = image or container_conf.image
        if image is None:
            raise ValueError("No container image given: pass one explicitly or set container.image")

        container_run = (runtime_class or container_conf.runtime_class)(
            image=image,
            app_args=list(app_args),
            mode=mode,
            binds=[*container_conf.binds, *binds],
            cleanenv=container_conf.cleanenv,
            env=container_conf.env,
        )
        return cls(
            container_run,
            launcher_class or launcher_conf.launcher_class,
            num_ranks=num_ranks or launcher_conf.num_ranks,
            ranks_per_node=ranks_per_node or launcher_conf.ranks_per_node,
            hosts=list(hosts) if hosts else launcher_conf.hosts,
            env={**launcher_conf.env, **(env or {})},
            launch_params=launcher_conf.launch_params,
        )

    def __str__(self) -> str:
        return str(self.mpi_run)

    def __iter__(self) -> Iterator[str]:
        return iter(self.render_args())

    def render_args(self) -> List[str]:
        return self.mpi_run.render_args()

    @property
    def env(self) -> Dict[str, str]:
        return self.mpi_run.env

    def start(self, cwd: Optional[PathLike] = None, outfile: Optional[PathLike] = None) -> None:
        self.mpi_run.start(cwd or os.getcwd(), outfile)

    def poll(self) -> Optional[int]:
        return self.mpi_run.poll()

    def terminate(self) -> None:
        self.mpi_run.terminate()

    def kill(self) -> None:
        self.mpi_run.kill()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.mpi_run.wait(timeout=timeout)

    def tail_output(self, nlines: int = 10) -> str:
        return self.mpi_run.tail_output(nlines)

    def run(
        self,
        cwd: Optional[PathLike] = None,
        outfile: Optional[PathLike] = None,
        grace_period_sec: float = 10.0,
    ) -> int:
        """
        Start the job and block until it ends. SIGINT/SIGTERM terminate the
        launcher; if it has not exited after `grace_period_sec`, it is killed.
        Returns the launcher exit code.
        """
        sig_handler = SigHandler()
        try:
            self.start(cwd, outfile)
            retcode = self.poll()
            while retcode is None:
                if SigHandler.wait_until_exit(timeout=self.POLL_INTERVAL_SEC):
                    logger.warning("Received exit signal: terminating the MPI launcher")
                    self.terminate()
                    try:
                        retcode = self.wait(timeout=grace_period_sec)
                    except TimeoutExpired:
                        logger.warning(f"Launcher still alive after {grace_period_sec} sec: killing")
                        self.kill()
                        retcode = self.wait()
                    break
                retcode = self.poll()
        finally:
            sig_handler.restore()

        if retcode != 0:
            logger.error(f"{self} exited with code {retcode}")
        else:
            logger.info(f"{self} finished OK")
        return retcode
