import logging
import re
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, Dict, NamedTuple, Optional, Sequence, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from hybridmpi.config import DefinitionSettings
from hybridmpi.shim import DEFAULT_SHIM_BASE_DIR

PathLike = Union[str, Path]
logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.joinpath("templates")
DEFAULT_TEMPLATE = "singularity.def.tmpl"
HELLO_SOURCE = "mpitest.c"
APPS_DIR = PurePosixPath("/opt")

VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")
OSU_VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")
OSU_URL = "https://mvapich.cse.ohio-state.edu/download/mvapich/osu-micro-benchmarks-{version}.tar.gz"


class DefinitionError(ValueError):
    pass


class MPISource(NamedTuple):
    label: str
    url: str
    archive: str
    src_dir: str
    configure_flags: str


def mpi_source(family: str, version: str) -> MPISource:
    if not VERSION_RE.match(version):
        raise DefinitionError(f"MPI version must look like X.Y.Z; got {version!r}")
    series = ".".join(version.split(".")[:2])
    if family == "openmpi":
        archive = f"openmpi-{version}.tar.bz2"
        return MPISource(
            label="Open MPI",
            url=f"https://download.open-mpi.org/release/open-mpi/v{series}/{archive}",
            archive=archive,
            src_dir=f"openmpi-{version}",
            configure_flags="",
        )
    elif family == "mpich":
        archive = f"mpich-{version}.tar.gz"
        return MPISource(
            label="MPICH",
            url=f"https://www.mpich.org/static/downloads/{version}/{archive}",
            archive=archive,
            src_dir=f"mpich-{version}",
            configure_flags="--disable-fortran",
        )
    raise DefinitionError(f"Unsupported MPI family {family!r}: expected openmpi or mpich")


def _basename(path: str) -> str:
    return PurePosixPath(path).name


def _stem(path: str) -> str:
    return PurePosixPath(path).stem


class DefinitionTemplate:
    def __init__(self, template_name: str = DEFAULT_TEMPLATE, template_dir: PathLike = TEMPLATE_DIR) -> None:
        """
        Wraps a container definition file template located in `template_dir`
        """
        env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        env.filters["basename"] = _basename
        env.filters["stem"] = _stem
        self._template = env.get_template(template_name)
        logger.debug(f"Loaded definition template {template_name} from {template_dir}")

    def render(
        self,
        base_image: str,
        mpi_family: str = "openmpi",
        mpi_version: str = "4.1.5",
        mpi_dir: str = "/opt/ompi",
        install_osu: bool = True,
        osu_version: str = "7.3",
        app_sources: Sequence[str] = (),
        build_jobs: int = 8,
        shim_base_dir: Optional[PathLike] = None,
    ) -> str:
        """
        Returns the filled definition file
        """
        if not base_image.strip():
            raise DefinitionError("base_image must not be empty")
        if build_jobs < 1:
            raise DefinitionError(f"build_jobs must be positive; got {build_jobs}")
        if install_osu and not OSU_VERSION_RE.match(osu_version):
            raise DefinitionError(f"OSU version must look like X.Y; got {osu_version!r}")
        for src in app_sources:
            if not src.endswith(".c"):
                raise DefinitionError(f"Application sources are compiled with mpicc and must be .c files: {src}")
        if not PurePosixPath(mpi_dir).is_absolute():
            raise DefinitionError(f"mpi_dir must be an absolute path inside the image; got {mpi_dir!r}")

        source = mpi_source(mpi_family, mpi_version)
        if shim_base_dir is None:
            shim_base_dir = DEFAULT_SHIM_BASE_DIR if install_osu else APPS_DIR

        conf: Dict[str, Any] = dict(
            base_image=base_image,
            mpi_family=mpi_family,
            mpi_version=mpi_version,
            mpi_dir=mpi_dir,
            mpi_label=source.label,
            mpi_url=source.url,
            mpi_archive=source.archive,
            mpi_src_dir=source.src_dir,
            mpi_configure_flags=source.configure_flags,
            install_osu=install_osu,
            osu_version=osu_version,
            osu_url=OSU_URL.format(version=osu_version),
            app_sources=list(app_sources),
            build_jobs=build_jobs,
            shim_base_dir=str(shim_base_dir).rstrip("/"),
        )
        return self._template.render(conf)

    def render_settings(self, settings: DefinitionSettings, **overrides: Any) -> str:
        conf = settings.model_dump()
        conf.update({k: v for k, v in overrides.items() if v is not None})
        return self.render(**conf)


def write_definition(path: PathLike, text: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    logger.info(f"Wrote container definition {path}")
    return path


def write_hello_source(directory: PathLike) -> Path:
    """
    Copies the bundled MPI hello-world into `directory`
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    dest = directory.joinpath(HELLO_SOURCE)
    shutil.copyfile(TEMPLATE_DIR.joinpath(HELLO_SOURCE), dest)
    return dest
