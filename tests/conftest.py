"""Pytest configuration and fixtures for pyexploder tests."""

from __future__ import annotations

import logging
import pathlib
import sys
import zipfile
from collections.abc import Callable, Generator, Iterable, Mapping

import pytest

from pyexploder.environment import IsolatedEnvironment
from pyexploder.log import LOGGER_NAME
from pyexploder.manifest import MANIFEST_PATH

# (member name, content); content None writes a directory entry.
ZipEntries = Iterable[tuple[str, "bytes | str | None"]]
MakeZip = Callable[[pathlib.Path, ZipEntries], pathlib.Path]


def _write_zip(path: pathlib.Path, entries: ZipEntries) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries:
            if content is None:
                zf.writestr(name if name.endswith("/") else name + "/", b"")
            elif isinstance(content, str):
                zf.writestr(name, content.encode("utf-8"))
            else:
                zf.writestr(name, content)
    return path


@pytest.fixture(autouse=True)
def reset_logger() -> Generator[None, None, None]:
    """Undo logger configuration done by a test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def no_leaked_environments() -> Generator[None, None, None]:
    """Remove any environment a failing test left installed."""
    yield
    for finder in list(sys.meta_path):
        if isinstance(finder, IsolatedEnvironment):
            finder.close()


@pytest.fixture
def make_zip() -> MakeZip:
    """Factory writing a zip file with entries in the given order."""
    return _write_zip


@pytest.fixture
def make_self_archive(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Factory for a self archive with a manifest and nested library archives.

    ``libs`` maps a nested archive name to its ``{member: source}`` contents;
    the archives are stored under ``lib/`` in mapping order.
    """

    def factory(
        *,
        entry: str | None,
        libs: Mapping[str, Mapping[str, str]],
        name: str = "app.pyz",
        extra: ZipEntries = (),
    ) -> pathlib.Path:
        entries: list[tuple[str, bytes | str | None]] = [("META-INF/", None)]
        manifest = "Manifest-Version: 1.0\n"
        if entry is not None:
            manifest += f"Start-Entry: {entry}\n"
        entries.append((MANIFEST_PATH, manifest + "\n"))
        entries.append(("lib/", None))
        for lib_name, members in libs.items():
            lib_path = _write_zip(tmp_path / "libsrc" / lib_name, members.items())
            entries.append((f"lib/{lib_name}", lib_path.read_bytes()))
        entries.extend(extra)
        return _write_zip(tmp_path / name, entries)

    return factory


@pytest.fixture
def workspace_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Parent directory for workspaces created by a test."""
    root = tmp_path / "workspaces"
    root.mkdir()
    return root
