"""Tests for the isolated import environment."""

from __future__ import annotations

import os
import pathlib
import sys
from collections.abc import Callable

import pytest

from pyexploder.environment import IsolatedEnvironment, build_environment

MakeZip = Callable[..., pathlib.Path]


class TestResolution:
    """Tests for module lookup through the environment."""

    def test_earlier_archive_wins(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """When two archives provide the same module, the first listed wins."""
        first = make_zip(tmp_path / "first.zip", [("pxenv_shared.py", "ORIGIN = 'first'\n")])
        second = make_zip(tmp_path / "second.zip", [("pxenv_shared.py", "ORIGIN = 'second'\n")])

        with build_environment([first, second]) as env:
            assert env.import_module("pxenv_shared").ORIGIN == "first"

        with build_environment([second, first]) as env:
            assert env.import_module("pxenv_shared").ORIGIN == "second"

    def test_falls_through_to_later_archive(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """A module missing from the first archive is found in the next."""
        first = make_zip(tmp_path / "first.zip", [("pxenv_only_first.py", "X = 1\n")])
        second = make_zip(tmp_path / "second.zip", [("pxenv_only_second.py", "X = 2\n")])

        with build_environment([first, second]) as env:
            assert env.import_module("pxenv_only_second").X == 2

    def test_submodules_and_cross_archive_imports(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """Packages load their submodules, and can import from other nested archives."""
        app = make_zip(
            tmp_path / "app.zip",
            [
                ("pxenv_app/", None),
                ("pxenv_app/__init__.py", ""),
                ("pxenv_app/core.py", "from pxenv_dep import VALUE\nRESULT = VALUE * 2\n"),
            ],
        )
        dep = make_zip(tmp_path / "dep.zip", [("pxenv_dep.py", "VALUE = 21\n")])

        with build_environment([app, dep]) as env:
            core = env.import_module("pxenv_app.core")
            assert core.RESULT == 42
            assert env.owns(core) is True

    def test_namespace_package_spans_archives(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """Namespace portions in several archives merge into one package, in archive order."""
        first = make_zip(tmp_path / "a.whl", [("pxns/", None), ("pxns/auth/__init__.py", "NAME = 'auth'\n")])
        second = make_zip(tmp_path / "b.whl", [("pxns/", None), ("pxns/proto/__init__.py", "NAME = 'proto'\n")])

        with build_environment([first, second]) as env:
            assert env.import_module("pxns.auth").NAME == "auth"
            assert env.import_module("pxns.proto").NAME == "proto"
            ns = env.import_module("pxns")
            assert list(ns.__path__) == [f"{first}{os.sep}pxns", f"{second}{os.sep}pxns"]

        assert "pxns" not in sys.modules
        assert "pxns.proto" not in sys.modules

    def test_regular_package_beats_namespace_portion(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """A regular package in a later archive wins over an earlier namespace portion."""
        portion = make_zip(tmp_path / "a.whl", [("pxns_mixed/", None), ("pxns_mixed/extra/__init__.py", "")])
        regular = make_zip(
            tmp_path / "b.whl",
            [("pxns_mixed/", None), ("pxns_mixed/__init__.py", "KIND = 'regular'\n")],
        )

        with build_environment([portion, regular]) as env:
            assert env.import_module("pxns_mixed").KIND == "regular"

    def test_missing_module(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """Names no archive provides raise ImportError."""
        lib = make_zip(tmp_path / "lib.zip", [("pxenv_present.py", "")])

        with build_environment([lib]) as env:
            with pytest.raises(ImportError):
                env.import_module("pxenv_absent")

    def test_host_modules_are_not_provided(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """Modules outside the nested archives are not resolved through the environment."""
        lib = make_zip(tmp_path / "lib.zip", [("pxenv_present.py", "")])

        with build_environment([lib]) as env:
            assert env.provides("json") is False
            with pytest.raises(ImportError):
                env.import_module("json")

    def test_unreadable_archive_is_skipped(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """A broken or missing archive provides nothing and does not fail the build."""
        broken = tmp_path / "broken.zip"
        broken.write_bytes(b"garbage")
        missing = tmp_path / "missing.zip"
        good = make_zip(tmp_path / "good.zip", [("pxenv_good.py", "OK = True\n")])

        with build_environment([broken, missing, good]) as env:
            assert env.import_module("pxenv_good").OK is True


class TestRelease:
    """Tests for closing the environment."""

    def test_close_uninstalls_and_unloads(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """After close, the finder is gone and its modules are forgotten."""
        lib = make_zip(
            tmp_path / "lib.zip",
            [("pxenv_pkg/__init__.py", ""), ("pxenv_pkg/mod.py", "X = 1\n")],
        )
        env = build_environment([lib])
        assert env in sys.meta_path
        env.import_module("pxenv_pkg.mod")
        assert "pxenv_pkg.mod" in sys.modules

        env.close()

        assert env.closed is True
        assert env not in sys.meta_path
        assert "pxenv_pkg" not in sys.modules
        assert "pxenv_pkg.mod" not in sys.modules
        assert not any(key.startswith(str(lib)) for key in sys.path_importer_cache)

    def test_close_is_idempotent(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """Closing twice is harmless."""
        lib = make_zip(tmp_path / "lib.zip", [("pxenv_twice.py", "")])
        env = build_environment([lib])
        env.close()
        env.close()
        assert env not in sys.meta_path

    def test_closed_environment_imports_nothing(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """A released environment refuses further imports."""
        lib = make_zip(tmp_path / "lib.zip", [("pxenv_late.py", "")])
        env = build_environment([lib])
        env.close()

        with pytest.raises(ImportError):
            env.import_module("pxenv_late")
        assert env.find_spec("pxenv_late", None) is None

    def test_not_installed_until_built(self, tmp_path: pathlib.Path, make_zip: MakeZip) -> None:
        """A bare IsolatedEnvironment does not touch sys.meta_path."""
        lib = make_zip(tmp_path / "lib.zip", [("pxenv_bare.py", "")])
        env = IsolatedEnvironment([lib])
        assert env not in sys.meta_path
        with pytest.raises(ImportError):
            env.import_module("pxenv_bare")
