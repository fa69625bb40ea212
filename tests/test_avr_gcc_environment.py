#!/usr/bin/env python3

import contextlib
import io
import os
import tempfile
import unittest
from unittest import mock

import common
import build_plan as plan
from avr_gcc_environment import environment, output_dir_exists

RUN_PREFIX = "[avr-gcc] Run command: "


def make_patch_dir(root):
    patch_dir = os.path.join(root, "patches")
    for item in (plan.build_patch, plan.freestanding_malloc_patch, plan.streams_patch, plan.avr_libc_patch):
        path = os.path.join(patch_dir, item.file)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as file:
            file.write("")
    return patch_dir


class DryRunBuildTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.home = self.tmp.name
        self.patch_dir = make_patch_dir(self.home)
        common.command_dry_run.set(True)

    def tearDown(self):
        common.command_dry_run.set(False)
        self.tmp.cleanup()

    def run_build(self, gcc, mode, **kwargs):
        build_plan = plan.resolve_build_plan(gcc, mode)
        env = environment(gcc, build_plan, self.home, "out", 4, patch_dir=self.patch_dir, **kwargs)
        output = io.StringIO()
        with mock.patch.dict(os.environ, {"PATH": "/usr/bin"}), contextlib.redirect_stdout(output):
            env.build(mode != "no")
        lines = output.getvalue().splitlines()
        commands = [line[len(RUN_PREFIX) :] for line in lines if line.startswith(RUN_PREFIX)]
        return env, lines, commands

    @staticmethod
    def index_of(commands, text):
        for i, command in enumerate(commands):
            if text in command:
                return i
        raise AssertionError(f"{text} not found in {commands}")

    def test_stage_order(self):
        env, _, commands = self.run_build("10.2", "hosted+streams")
        binutils = self.index_of(commands, "binutils-2.32.tar.gz")
        clone = self.index_of(commands, "git clone")
        libc = self.index_of(commands, "avr-libc-2.0.0.tar.bz2")
        assert binutils < clone < libc
        configures = [command for command in commands if command.startswith("../configure")]
        assert len(configures) == 4
        assert configures[-1].endswith("--enable-cstdio=stdio_pure")
        assert "--with-avrlibc" in configures[-1]
        assert "--with-avrlibc" not in configures[1]
        assert all(command.startswith("make install-strip") for command in commands if command.startswith("make install"))

    def test_clone_release_branch(self):
        _, _, commands = self.run_build("10.2", "no")
        clone = commands[self.index_of(commands, "git clone")]
        assert clone.startswith("git clone --depth 1 --branch releases/gcc-10.2 https://github.com/gcc-mirror/gcc.git")
        assert clone.endswith(os.path.join(self.home, "tmp", "gcc-10.2"))
        assert "./contrib/download_prerequisites" in commands

    def test_clone_trunk_from_native_remote(self):
        _, _, commands = self.run_build(None, "no", remote="native")
        clone = commands[self.index_of(commands, "git clone")]
        assert clone == f"git clone --depth 1 git://gcc.gnu.org/git/gcc.git {os.path.join(self.home, 'tmp', 'gcc-trunk')}"

    def test_patches_applied_before_their_builds(self):
        _, _, commands = self.run_build("10.2", "hosted+streams")
        libc_patch = self.index_of(commands, "avr-libc/avr-libc.patch")
        libc_configure = self.index_of(commands, "--host=avr")
        assert commands[libc_patch].startswith("patch -d ")
        assert libc_patch < libc_configure
        build_patch = self.index_of(commands, plan.build_patch.file)
        streams_patch = self.index_of(commands, plan.streams_patch.file)
        assert commands[build_patch].startswith("git -C ")
        assert libc_configure < build_patch < streams_patch
        last_configure = max(i for i, command in enumerate(commands) if command.startswith("../configure"))
        assert streams_patch < last_configure

    def test_no_libstdcxx_stops_after_avr_libc(self):
        _, lines, commands = self.run_build("10.2", "no")
        configures = [command for command in commands if command.startswith("../configure")]
        assert len(configures) == 3
        assert not any(command.startswith(("git -C", "patch ")) for command in commands)
        assert "[avr-gcc] No libstdc++ will be built, build completed." in lines

    def test_upstream_patches_not_applied(self):
        _, _, commands = self.run_build("11.1", "freestanding")
        assert not any(command.startswith(("git -C", "patch ")) for command in commands)
        assert commands[-3].startswith("../configure")
        assert commands[-3].endswith("--disable-hosted-libstdcxx")

    def test_cleanup_unless_preserved(self):
        _, lines, _ = self.run_build("10.2", "no")
        assert "[avr-gcc] Removing intermediate artifacts." in lines
        _, lines, _ = self.run_build("10.2", "no", preserve=True)
        assert "[avr-gcc] Removing intermediate artifacts." not in lines

    def test_jobs_passed_to_make(self):
        _, _, commands = self.run_build(None, "no")
        assert "make -j 4" in commands

    def test_gcc_bin_dir_registered_in_path(self):
        build_plan = plan.resolve_build_plan(None, "no")
        env = environment(None, build_plan, self.home, "out", patch_dir=self.patch_dir)
        with mock.patch.dict(os.environ, {"PATH": "/usr/bin"}), contextlib.redirect_stdout(io.StringIO()):
            env.build_gcc_phase1()
            assert os.environ["PATH"] == f"{os.path.join(self.home, 'out', 'bin')}:/usr/bin"


class FailureTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.home = self.tmp.name
        common.command_dry_run.set(True)

    def tearDown(self):
        common.command_dry_run.set(False)
        self.tmp.cleanup()

    def make_env(self, gcc, mode, **kwargs):
        return environment(gcc, plan.resolve_build_plan(gcc, mode), self.home, "out", **kwargs)

    def test_failed_stage_still_cleans_up(self):
        env = self.make_env("10.2", "hosted")
        with mock.patch.object(env, "build_gcc_phase1", side_effect=RuntimeError("clone failed")), mock.patch.object(
            env, "build_avr_libc"
        ) as build_avr_libc, mock.patch.object(env, "cleanup") as cleanup, contextlib.redirect_stdout(io.StringIO()):
            with self.assertRaises(RuntimeError):
                env.build()
        build_avr_libc.assert_not_called()
        cleanup.assert_called_once()

    def test_failed_stage_preserved(self):
        env = self.make_env("10.2", "hosted", preserve=True)
        with mock.patch.object(env, "build_binutils", side_effect=RuntimeError), mock.patch.object(
            env, "cleanup"
        ) as cleanup, contextlib.redirect_stdout(io.StringIO()):
            with self.assertRaises(RuntimeError):
                env.build()
        cleanup.assert_not_called()

    def test_missing_patch_file(self):
        env = self.make_env("10.2", "hosted", patch_dir=os.path.join(self.home, "patches"))
        with self.assertRaises(plan.missing_patch_file):
            env.check_patch_files()

    def test_default_patch_dir_under_home(self):
        env = self.make_env("10.2", "hosted")
        assert env.patch_dir == os.path.join(self.home, "patches")
        assert env.get_patch_path(plan.avr_libc_patch) == os.path.join(self.home, "patches", "avr-libc", "avr-libc.patch")

    def test_patch_files_not_needed_upstream(self):
        env = self.make_env("11.2", "hosted+streams", patch_dir=os.path.join(self.home, "patches"))
        env.check_patch_files()

    def test_existing_output_dir(self):
        os.makedirs(os.path.join(self.home, "out"))
        env = self.make_env(None, "no")
        with self.assertRaises(output_dir_exists):
            env.check_output_dir(False)

    def test_clean_existing_output_dir(self):
        common.command_dry_run.set(False)
        os.makedirs(os.path.join(self.home, "out", "bin"))
        env = self.make_env(None, "no")
        with contextlib.redirect_stdout(io.StringIO()):
            env.check_output_dir(True)
        assert not os.path.exists(os.path.join(self.home, "out"))


class CleanupTests(unittest.TestCase):
    def setUp(self):
        self.cwd = os.getcwd()
        self.tmp = tempfile.TemporaryDirectory()
        self.home = self.tmp.name
        self.env = environment("10.2", plan.build_plan((), ()), self.home, "out")
        for path in (self.env.binutils_dir, self.env.avr_libc_dir, self.env.gcc_dir):
            os.makedirs(os.path.join(path, "build"))
        for name in ("binutils-2.32.tar.gz", "avr-libc-2.0.0.tar.bz2"):
            with open(os.path.join(self.env.tmp_dir, name), "w") as file:
                file.write("")

    def tearDown(self):
        os.chdir(self.cwd)
        self.tmp.cleanup()

    def test_cleanup_removes_tmp_dir(self):
        with contextlib.redirect_stdout(io.StringIO()):
            self.env.cleanup()
        assert not os.path.exists(self.env.tmp_dir)

    def test_cleanup_keeps_foreign_artifacts(self):
        foreign = os.path.join(self.env.tmp_dir, "gcc-trunk")
        os.makedirs(foreign)
        output = io.StringIO()
        with contextlib.redirect_stdout(output):
            self.env.cleanup()
        assert os.listdir(self.env.tmp_dir) == ["gcc-trunk"]
        assert "contains artifacts from another build" in output.getvalue()


if __name__ == "__main__":
    unittest.main()
