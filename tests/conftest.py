import os
import stat
import sys
from pathlib import Path
from typing import Iterator

import pytest

from hybridmpi.shim import RANK_ENV_VARS
from hybridmpi.util import SigHandler

ECHO_ARGS_SCRIPT = """#!/bin/sh
echo "ARGS: $@"
echo "RANK_ENV: $PMI_RANK"
"""

FAKE_MPIRUN_SCRIPT = """#!{python}
import sys
print("FAKE-MPIRUN", " ".join(sys.argv[1:]))
sys.exit(int(__import__("os").environ.get("FAKE_MPIRUN_EXIT", "0")))
"""


def make_executable(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Tests must not pick up rank variables or settings from the calling shell
    """
    for var in RANK_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("HYBRIDMPI_"):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def reset_sighandler() -> Iterator[None]:
    SigHandler.clear()
    yield
    SigHandler.clear()


@pytest.fixture
def bench_dir(tmp_path: Path) -> Path:
    """
    A fake benchmark tree, laid out like the OSU install inside an image
    """
    base = tmp_path.joinpath("osu", "mpi")
    make_executable(base.joinpath("pt2pt", "osu_latency"), ECHO_ARGS_SCRIPT)
    not_exec = base.joinpath("pt2pt", "osu_bw")
    not_exec.write_text("#!/bin/sh\necho never\n")
    return base


@pytest.fixture
def fake_mpirun(tmp_path: Path) -> Path:
    return make_executable(tmp_path.joinpath("bin", "fake-mpirun"), FAKE_MPIRUN_SCRIPT.format(python=sys.executable))


@pytest.fixture
def in_tmp_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def make_exe():
    return make_executable
