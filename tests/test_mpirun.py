import os
import sys
import tempfile
import time
import unittest

import pytest

from hybridmpi.platform.mpirun import (
    LAUNCHERS,
    DirectRun,
    FailedStartProcess,
    MPICHRun,
    MPIRun,
    OpenMPIRun,
    SlurmRun,
    TimeoutExpired,
)

APP = ["singularity", "run", "osu.sif", "pt2pt/osu_latency"]


class TestRenderArgs:
    def test_openmpi_minimal(self):
        run = OpenMPIRun(APP, num_ranks=2)
        assert run.render_args() == ["mpirun", "-np", "2", *APP]

    def test_openmpi_full(self):
        run = OpenMPIRun(APP, num_ranks=8, ranks_per_node=4, hosts=["n1", "n2"], env={"FOO": "1", "BAR": "2"})
        assert run.render_args() == [
            "mpirun",
            "-np",
            "8",
            "--map-by",
            "ppr:4:node",
            "-x",
            "FOO",
            "-x",
            "BAR",
            "-H",
            "n1,n2",
            *APP,
        ]

    def test_mpich(self):
        run = MPICHRun(APP, num_ranks=4, ranks_per_node=2, hosts=["n1", "n2"], env={"FOO": "a b"})
        assert run.render_args() == [
            "mpiexec",
            "-n",
            "4",
            "--ppn",
            "2",
            "-env",
            "FOO",
            "a b",
            "--hosts",
            "n1,n2",
            *APP,
        ]

    def test_slurm(self):
        run = SlurmRun(APP, num_ranks=4, ranks_per_node=2, hosts=["n1", "n2"])
        assert run.render_args() == [
            "srun",
            "-n",
            "4",
            "--ntasks-per-node",
            "2",
            "--nodelist",
            "n1,n2",
            "--nodes",
            "2",
            *APP,
        ]

    def test_slurm_without_hosts(self):
        assert SlurmRun(APP, num_ranks=3).render_args() == ["srun", "-n", "3", *APP]

    def test_direct_run_has_no_launcher(self):
        assert DirectRun(APP, num_ranks=1).render_args() == APP

    def test_launch_params_go_before_app(self):
        run = OpenMPIRun(APP, num_ranks=2, launch_params={"--bind-to": "core", "--oversubscribe": ""})
        assert run.render_args() == ["mpirun", "-np", "2", "--bind-to", "core", "--oversubscribe", *APP]

    def test_string_app_args_are_split(self):
        run = OpenMPIRun("singularity run 'my image.sif' a", num_ranks=1)
        assert run.app_args == ["singularity", "run", "my image.sif", "a"]

    def test_str_is_shell_quoted(self):
        run = OpenMPIRun(["echo", "a b"], num_ranks=1)
        assert str(run) == "mpirun -np 1 echo 'a b'"
        assert list(run) == ["mpirun", "-np", "1", "echo", "a b"]

    def test_repr_names_class(self):
        assert repr(OpenMPIRun(APP)).startswith("OpenMPIRun(app_args=")

    def test_bad_app_args(self):
        with pytest.raises(TypeError):
            OpenMPIRun(42)  # type: ignore[arg-type]

    def test_bad_num_ranks(self):
        with pytest.raises(ValueError):
            OpenMPIRun(APP, num_ranks=0)

    def test_registry(self):
        assert LAUNCHERS["openmpi"] is OpenMPIRun
        assert LAUNCHERS["mpich"] is MPICHRun
        assert LAUNCHERS["slurm"] is SlurmRun
        assert LAUNCHERS["direct"] is DirectRun


class MpirunTestMixin:
    sleep_sec = 2.0

    def make_run(self, *args: str) -> MPIRun:
        raise NotImplementedError

    def test_wait(self):
        run = self.make_run(sys.executable, "-c", "print('hello from app')")
        run.start(self.cwd, "out.txt")
        retval = run.wait(timeout=30)
        self.assertEqual(retval, 0)
        self.assertIn("hello from app", run.tail_output())

    def test_exit_code_is_returned_unchanged(self):
        run = self.make_run(sys.executable, "-c", "import sys; sys.exit(3)")
        run.start(self.cwd, "out.txt")
        self.assertEqual(run.wait(timeout=30), 3)

    def test_poll(self):
        run = self.make_run(sys.executable, "-c", "print('x')")
        run.start(self.cwd, "out.txt")
        retval = run.poll()
        counter = 0
        while retval is None and counter < 100:
            time.sleep(0.1)
            retval = run.poll()
            counter += 1
        self.assertEqual(retval, 0)

    def test_wait_timeout(self):
        run = self.make_run(sys.executable, "-c", f"import time; time.sleep({self.sleep_sec * 5})")
        run.start(self.cwd, "out.txt")
        with self.assertRaises(TimeoutExpired):
            run.wait(timeout=0.1)
        run.kill()
        self.assertIsNotNone(run.wait(timeout=10))

    def test_terminate(self):
        run = self.make_run(sys.executable, "-c", f"import time; time.sleep({self.sleep_sec * 5})")
        run.start(self.cwd, "out.txt")
        start = time.time()
        run.terminate()
        run.wait(timeout=10)
        self.assertLessEqual(time.time() - start, self.sleep_sec)

    def test_kill(self):
        run = self.make_run(sys.executable, "-c", f"import time; time.sleep({self.sleep_sec * 5})")
        run.start(self.cwd, "out.txt")
        start = time.time()
        run.kill()
        run.wait(timeout=10)
        self.assertLessEqual(time.time() - start, self.sleep_sec)


class DirectRunTest(MpirunTestMixin, unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cwd = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def make_run(self, *args: str) -> MPIRun:
        return DirectRun(list(args))


class FakeLauncherRun(OpenMPIRun):
    launch_command = ""


def test_launcher_receives_rendered_args_and_env(fake_mpirun, tmp_path):
    run = FakeLauncherRun(APP, num_ranks=2, env={"FOO": "bar"})
    run.launch_command = str(fake_mpirun)
    run.start(tmp_path, "job.out")
    assert run.wait(timeout=30) == 0
    out = tmp_path.joinpath("job.out").read_text()
    assert "FAKE-MPIRUN -np 2 -x FOO singularity run osu.sif pt2pt/osu_latency" in out


def test_launcher_env_reaches_process(fake_mpirun, tmp_path):
    run = FakeLauncherRun(APP, num_ranks=1, env={"FAKE_MPIRUN_EXIT": "5"})
    run.launch_command = str(fake_mpirun)
    run.start(tmp_path, "job.out")
    assert run.wait(timeout=30) == 5


def test_missing_launcher_is_failed_start(tmp_path):
    run = OpenMPIRun(APP, num_ranks=2)
    run.launch_command = str(tmp_path.joinpath("no-such-mpirun"))
    run.start(tmp_path, "job.out")
    assert isinstance(run.process, FailedStartProcess)
    assert run.poll() == 127
    assert run.wait() == 127
    run.kill()


def test_bad_cwd(tmp_path):
    with pytest.raises(ValueError):
        DirectRun(["true"]).start(tmp_path.joinpath("missing"))


def test_not_started():
    with pytest.raises(RuntimeError):
        DirectRun(["true"]).poll()


def test_tail_output_without_outfile(tmp_path):
    run = DirectRun([sys.executable, "-c", "pass"])
    run.start(tmp_path)
    assert run.wait(timeout=30) == 0
    assert run.tail_output() == ""


def test_tail_output_last_lines(tmp_path):
    run = DirectRun([sys.executable, "-c", "[print(i) for i in range(20)]"])
    run.start(tmp_path, "out.txt")
    run.wait(timeout=30)
    assert run.tail_output(3).split() == ["17", "18", "19"]


def test_kill_reaps_children(tmp_path):
    script = (
        "import subprocess, sys, time;"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']);"
        "time.sleep(60)"
    )
    run = DirectRun([sys.executable, "-c", script])
    run.start(tmp_path, "out.txt")
    time.sleep(0.5)

    import psutil

    children = psutil.Process(run.process.pid).children(recursive=True)
    run.kill()
    run.wait(timeout=10)
    gone, alive = psutil.wait_procs(children, timeout=10)
    assert not alive
    assert os.path.exists(tmp_path.joinpath("out.txt"))
