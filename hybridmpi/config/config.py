import logging
import os
from datetime import datetime
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, Union, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from hybridmpi.platform.container import ContainerRun
from hybridmpi.platform.mpirun import MPIRun
from hybridmpi.shim import DEFAULT_SHIM_BASE_DIR
from hybridmpi.util import config_file_logging

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "hybridmpi.yml"


class InvalidSettings(Exception):
    pass


def get_class_path(cls: type) -> str:
    return cls.__module__ + "." + cls.__name__


def import_string(dotted_path: str) -> Any:
    """
    Import a dotted module path and return the attribute/class designated by the
    last name in the path. Raise ImportError if the import fails.
    """
    try:
        module_path, class_name = dotted_path.strip(" ").rsplit(".", 1)
    except ValueError as e:
        raise ImportError(f'"{dotted_path}" doesn\'t look like a module path') from e

    module = import_module(module_path)
    try:
        return getattr(module, class_name)
    except AttributeError as e:
        raise ImportError(f'Module "{module_path}" does not define a "{class_name}" attribute') from e


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s.%(msecs)03d | %(process)d | %(levelname)s | %(name)s:%(lineno)s] %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"
    buffer_num_records: int = 1024
    flush_period: int = 30
    log_dir: Optional[Path] = None


class ShimSettings(BaseModel):
    # None: the OSU install dir for images with the benchmarks, else /opt
    base_dir: Optional[Path] = None


class ContainerSettings(BaseModel):
    runtime_class: Type[ContainerRun] = Field("hybridmpi.platform.container.SingularityRun", validate_default=True)
    image: Optional[Path] = None
    binds: List[str] = []
    cleanenv: bool = False
    env: Dict[str, str] = {}

    @field_validator("runtime_class", mode="before")
    @classmethod
    def load_runtime_class(cls, v: Any) -> Type[ContainerRun]:
        try:
            loaded = import_string(v) if isinstance(v, str) else v
        except ImportError as e:
            raise ValueError(str(e))
        if not isinstance(loaded, type) or not issubclass(loaded, ContainerRun):
            raise ValueError(f"runtime_class must subclass {get_class_path(ContainerRun)}")
        return cast(Type[ContainerRun], loaded)

    @field_serializer("runtime_class")
    def dump_runtime_class(self, v: type) -> str:
        return get_class_path(v)


class LauncherSettings(BaseModel):
    launcher_class: Type[MPIRun] = Field("hybridmpi.platform.mpirun.OpenMPIRun", validate_default=True)
    num_ranks: int = Field(2, ge=1)
    ranks_per_node: Optional[int] = Field(None, ge=1)
    hosts: List[str] = []
    env: Dict[str, str] = {}
    launch_params: Dict[str, str] = {}
    error_tail_num_lines: int = 10

    @field_validator("launcher_class", mode="before")
    @classmethod
    def load_launcher_class(cls, v: Any) -> Type[MPIRun]:
        try:
            loaded = import_string(v) if isinstance(v, str) else v
        except ImportError as e:
            raise ValueError(str(e))
        if not isinstance(loaded, type) or not issubclass(loaded, MPIRun):
            raise ValueError(f"launcher_class must subclass {get_class_path(MPIRun)}")
        return cast(Type[MPIRun], loaded)

    @field_serializer("launcher_class")
    def dump_launcher_class(self, v: type) -> str:
        return get_class_path(v)


class DefinitionSettings(BaseModel):
    base_image: str = "ubuntu:22.04"
    mpi_family: str = "openmpi"
    mpi_version: str = "4.1.5"
    mpi_dir: str = "/opt/ompi"
    install_osu: bool = True
    osu_version: str = "7.3"
    app_sources: List[str] = []
    build_jobs: int = Field(8, ge=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HYBRIDMPI_", env_nested_delimiter="__")

    logging: LoggingConfig = LoggingConfig()
    shim: ShimSettings = ShimSettings()
    container: ContainerSettings = ContainerSettings()
    launcher: LauncherSettings = LauncherSettings()
    definition: DefinitionSettings = DefinitionSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """
        HYBRIDMPI_* environment variables take precedence over the values
        read from hybridmpi.yml (passed as init kwargs by `load`)
        """
        return env_settings, init_settings, file_secret_settings

    def save(self, path: Union[str, Path]) -> None:
        with open(path, "w") as fp:
            fp.write(self.dump_yaml())

    def dump_yaml(self) -> str:
        return cast(
            str,
            yaml.dump(
                self.model_dump(mode="json"),
                sort_keys=False,
                indent=4,
            ),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Settings":
        with open(path) as fp:
            raw_data = yaml.safe_load(fp) or {}
        if not isinstance(raw_data, dict):
            raise InvalidSettings(f"{path} must contain a YAML mapping")
        try:
            return cls(**raw_data)
        except ValidationError as exc:
            raise InvalidSettings(f"{path} is invalid:\n{exc}")

    def enable_logging(self, basename: str, filename: Optional[str] = None) -> Optional[Path]:
        """
        Route the package logger into a buffered log file when `logging.log_dir` is set
        """
        if self.logging.log_dir is None:
            return None
        if filename is None:
            ts = datetime.now().strftime("%Y-%m-%d_%H%M%S")
            filename = f"{basename}_{ts}.log"
        self.logging.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.logging.log_dir.joinpath(filename)
        config_file_logging(
            filename=log_path,
            **self.logging.model_dump(exclude={"log_dir"}),
        )
        return log_path


def search_settings_file(start: Optional[Path] = None) -> Optional[Path]:
    check_dir = (start or Path.cwd()).resolve()
    while True:
        candidate = check_dir.joinpath(SETTINGS_FILENAME)
        if candidate.is_file():
            return candidate
        if check_dir.parent == check_dir:
            return None
        check_dir = check_dir.parent


def resolve_settings_path(path: Union[None, str, Path] = None) -> Optional[Path]:
    """
    Settings file determined from either passed argument, environ,
    or walking up parent directories, in that order.
    An explicitly requested file must exist.
    """
    requested = path or os.environ.get("HYBRIDMPI_CONFIG")
    if requested:
        settings_path = Path(requested).expanduser().resolve()
        if not settings_path.is_file():
            raise FileNotFoundError(f"Settings file {settings_path} does not exist")
        return settings_path
    return search_settings_file()


def load_settings(path: Union[None, str, Path] = None) -> Settings:
    settings_path = resolve_settings_path(path)
    if settings_path is None:
        logger.debug("No settings file found; using defaults")
        return Settings()
    logger.debug(f"Loading settings from {settings_path}")
    return Settings.load(settings_path)
