import shlex
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

PathLike = Union[str, Path]


class ContainerRun:
    """
    Renders one container runtime invocation:
        <runtime> run|exec [options] IMAGE ARGS...
    Each MPI rank started by the host launcher runs one of these.
    """

    runtime_command = ""
    MODES = ("run", "exec")

    def __init__(
        self,
        image: PathLike,
        app_args: Union[str, Sequence[str]] = (),
        mode: str = "run",
        binds: Optional[Sequence[str]] = None,
        cleanenv: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        if mode not in self.MODES:
            raise ValueError(f"mode must be one of {self.MODES}; got {mode!r}")
        if isinstance(app_args, str):
            app_args = shlex.split(app_args)
        self.image = str(image)
        self.app_args = [str(arg) for arg in app_args]
        self.mode = mode
        self.binds = [validate_bind(b) for b in binds] if binds else []
        self.cleanenv = cleanenv
        self.env = dict(env) if env else {}

    def __str__(self) -> str:
        return " ".join(shlex.quote(arg) for arg in self.render_args())

    def __iter__(self) -> Iterator[str]:
        return iter(self.render_args())

    def __repr__(self) -> str:
        param_str = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__name__}({param_str})"

    def get_options(self) -> List[str]:
        return []

    def render_args(self) -> List[str]:
        if not self.runtime_command:
            raise NotImplementedError(f"{self.__class__.__name__} does not define a runtime_command")
        return [self.runtime_command, self.mode, *self.get_options(), self.image, *self.app_args]


def validate_bind(bind: str) -> str:
    """
    Checks a bind spec `src[:dst[:ro|rw]]` and returns it unchanged
    """
    parts = bind.split(":")
    if not parts[0] or len(parts) > 3 or not all(parts):
        raise ValueError(f"Invalid bind spec {bind!r}: expected src[:dst[:ro|rw]]")
    if len(parts) == 3 and parts[2] not in ("ro", "rw"):
        raise ValueError(f"Invalid bind option {parts[2]!r} in {bind!r}: expected ro or rw")
    return bind
