import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional, Sequence, Union, cast

import psutil  # type: ignore

PathLike = Union[str, Path]
logger = logging.getLogger(__name__)


class TimeoutExpired(subprocess.TimeoutExpired):
    pass


class FailedStartProcess:
    """Stands in for a Popen whose launcher executable could not be started"""

    returncode = 127

    def poll(self) -> Optional[int]:
        return self.returncode

    def terminate(self) -> None:
        pass

    def kill(self) -> None:
        pass

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.returncode


class MPIRun:
    """
    Host-side MPI launch interface.
    Renders the launcher command line around `app_args` and manages
    the lifecycle of the launched process: start/poll/terminate/kill/wait
    """

    launch_command = "mpirun"
    START_DELAY = 0.01

    def __init__(
        self,
        app_args: Union[str, Sequence[str]],
        num_ranks: int = 1,
        ranks_per_node: Optional[int] = None,
        hosts: Optional[Sequence[str]] = None,
        env: Optional[Dict[str, str]] = None,
        launch_params: Optional[Dict[str, str]] = None,
    ) -> None:
        if isinstance(app_args, str):
            self.app_args = shlex.split(app_args)
        elif isinstance(app_args, (list, tuple)):
            self.app_args = [str(arg) for arg in app_args]
        else:
            raise TypeError(f"Expected str or list app_args; got {type(app_args)}")

        self.num_ranks = int(num_ranks)
        if self.num_ranks < 1:
            raise ValueError(f"num_ranks must be a positive integer; got {num_ranks}")
        self.ranks_per_node = int(ranks_per_node) if ranks_per_node else None
        self.hosts = list(hosts) if hosts else []
        self.env = dict(env) if env else {}
        self.launch_params = dict(launch_params) if launch_params else {}
        self._process: Optional["subprocess.Popen[bytes]"] = None
        self._outfile: Optional[IO[bytes]] = None
        self._outfile_path: Optional[Path] = None

    def __str__(self) -> str:
        return " ".join(shlex.quote(arg) for arg in self.render_args())

    def __iter__(self) -> Iterator[str]:
        return iter(self.render_args())

    def __repr__(self) -> str:
        param_str = ", ".join(
            f"{k}={v!r}" for k, v in self.__dict__.items() if not k.startswith("_")
        )
        return f"{self.__class__.__name__}({param_str})"

    def get_launch_args(self) -> List[str]:
        return []

    def render_launch_params(self) -> List[str]:
        args = []
        for flag, value in self.launch_params.items():
            args.append(flag)
            if value:
                args.append(str(value))
        return args

    def render_args(self) -> List[str]:
        launch_args = [str(a) for a in self.get_launch_args()]
        return [self.launch_command] + launch_args + self.render_launch_params() + self.app_args

    def _build_env(self) -> Dict[str, str]:
        envs = os.environ.copy()
        envs.update(self.env)
        return envs

    def start(self, cwd: PathLike, outfile: Optional[PathLike] = None) -> None:
        """
        Start the launcher in `cwd`. Output goes to `outfile` (relative to `cwd`)
        if given; otherwise it is inherited from the calling process.
        """
        cwd = Path(cwd)
        if not cwd.is_dir():
            raise ValueError(f"{cwd} is not a valid working directory")

        if outfile is not None:
            self._outfile_path = cwd.joinpath(outfile)
            self._outfile = open(self._outfile_path, "wb")

        args = self.render_args()
        logger.info(f"{self.__class__.__name__} Popen: {self}")
        try:
            self._process = subprocess.Popen(
                args,
                shell=False,
                stdout=self._outfile,
                stderr=subprocess.STDOUT if self._outfile else None,
                stdin=subprocess.DEVNULL,
                env=self._build_env(),
                cwd=cwd,
            )
        except OSError as e:
            logger.error(f"Popen failed: {e}")
            self._process = cast("subprocess.Popen[bytes]", FailedStartProcess())
        time.sleep(self.START_DELAY)

    @property
    def process(self) -> "subprocess.Popen[bytes]":
        if self._process is None:
            raise RuntimeError(f"{self.__class__.__name__} has not been started")
        return self._process

    def _close_outfile(self) -> None:
        if self._outfile is not None and not self._outfile.closed:
            self._outfile.close()

    def poll(self) -> Optional[int]:
        returncode = self.process.poll()
        if returncode is not None:
            self._close_outfile()
        return returncode

    def terminate(self) -> None:
        """Send SIGTERM"""
        self.process.terminate()

    def kill(self) -> None:
        """Send SIGKILL to the launcher and anything it spawned; close outfile"""
        if not isinstance(self.process, FailedStartProcess):
            try:
                children = psutil.Process(self.process.pid).children(recursive=True)
            except psutil.NoSuchProcess:
                children = []
            for child in children:
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    pass
        self.process.kill()
        self.process.poll()
        self._close_outfile()

    def wait(self, timeout: Optional[float] = None) -> int:
        """
        Wait up to `timeout` seconds for the launcher to end.
        If ended, close outfile and return the exit code.
        Otherwise raise TimeoutExpired and leave the outfile open.
        """
        try:
            retcode = self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            assert timeout is not None
            raise TimeoutExpired(cmd=str(self), timeout=timeout)
        self._close_outfile()
        return retcode

    def tail_output(self, nlines: int = 10) -> str:
        if self._outfile_path is None:
            return ""
        with open(self._outfile_path, encoding="utf-8", errors="replace") as fp:
            lines = fp.readlines()
        return "".join(lines[-nlines:])


class DirectRun(MPIRun):
    """Runs the app args with no launcher: a single rank"""

    def render_args(self) -> List[str]:
        return self.app_args
