import os
import sys

import pytest

from recipekit import errors
from recipekit.build.environment import BuildEnvironment
from recipekit.packages.recipe import EnvOverride


def test_prepare_set_and_append():
    base = {"CFLAGS": "-O2", "PATH": "/usr/bin"}
    env = BuildEnvironment().prepare(
        base,
        {
            "CFLAGS": EnvOverride("-I../include", "append"),
            "LC_ALL": EnvOverride("C"),
            "PATH": EnvOverride("/opt/bin", "prepend", sep=os.pathsep),
        },
    )
    assert env["CFLAGS"] == "-O2 -I../include"
    assert env["LC_ALL"] == "C"
    assert env["PATH"] == f"/opt/bin{os.pathsep}/usr/bin"
    assert base == {"CFLAGS": "-O2", "PATH": "/usr/bin"}


def test_prepare_append_to_absent_variable():
    env = BuildEnvironment().prepare(
        {}, {"CFLAGS": EnvOverride("-I../include", "append")}
    )
    assert env["CFLAGS"] == "-I../include"


def test_prepare_set_replaces():
    env = BuildEnvironment().prepare(
        {"CC": "gcc"}, {"CC": EnvOverride("clang")}
    )
    assert env["CC"] == "clang"


def test_prepare_templates_and_deparallelize():
    env = BuildEnvironment().prepare(
        {"MAKEFLAGS": "-j8"},
        {"LDFLAGS": EnvOverride("-L@@prefix/lib", "append")},
        variables={"prefix": "/opt/nethack"},
        deparallelize=True,
    )
    assert env["LDFLAGS"] == "-L/opt/nethack/lib"
    assert env["MAKEFLAGS"] == "-j1"


def test_run_success(tmp_path):
    env = dict(os.environ, RECIPEKIT_TEST="42")
    status = BuildEnvironment().run(
        [
            sys.executable,
            "-c",
            "import os; open('out', 'w').write(os.environ['RECIPEKIT_TEST'])",
        ],
        env,
        tmp_path,
    )
    assert status == 0
    assert (tmp_path / "out").read_text() == "42"


def test_run_nonzero_exit(tmp_path):
    with pytest.raises(errors.ExecError) as excinfo:
        BuildEnvironment().run(
            [sys.executable, "-c", "import sys; sys.exit(3)"],
            dict(os.environ),
            tmp_path,
        )
    assert excinfo.value.returncode == 3


def test_run_missing_binary(tmp_path):
    with pytest.raises(errors.ExecError) as excinfo:
        BuildEnvironment().run(
            ["recipekit-no-such-program"], dict(os.environ), tmp_path
        )
    assert excinfo.value.returncode is None


def test_run_missing_cwd(tmp_path):
    with pytest.raises(errors.ExecError):
        BuildEnvironment().run(
            [sys.executable, "-c", "pass"],
            dict(os.environ),
            tmp_path / "missing",
        )
