"""Streaming extraction of the self archive into a workspace."""

import logging
import pathlib
import re
import shutil
import zipfile

from pyexploder.archive import SelfArchiveHandle
from pyexploder.errors import BootstrapIOError
from pyexploder.log import get_logger
from pyexploder.workspace import Workspace


NESTED_ARCHIVE_SUFFIXES: tuple[str, ...] = (".zip", ".whl", ".pyz")

_COPY_BUFFER_SIZE: int = 64 * 1024

_DRIVE_RE: re.Pattern[str] = re.compile(r"^[A-Za-z]:")


def is_nested_archive(name: str) -> bool:
    """Return whether a file name denotes a nested archive.

    :param name: File name or path.
    :returns: ``True`` if the name ends with a nested archive suffix.
    """

    return name.lower().endswith(NESTED_ARCHIVE_SUFFIXES)


def _member_path(name: str, dest_dir: pathlib.Path) -> pathlib.Path:
    """Map a zip member name to a path under ``dest_dir``.

    :param name: Zip member name.
    :param dest_dir: Destination root.
    :returns: Target path.
    :raises BootstrapIOError: If the member would land outside ``dest_dir``.
    """

    if "\\" in name:
        raise BootstrapIOError(f"Refusing to extract backslash path: {name!r}")
    if _DRIVE_RE.match(name) is not None:
        raise BootstrapIOError(f"Refusing to extract drive-like path: {name!r}")
    p = pathlib.PurePosixPath(name)
    if p.is_absolute() is True:
        raise BootstrapIOError(f"Refusing to extract absolute path: {name!r}")
    if ".." in p.parts:
        raise BootstrapIOError(f"Refusing to extract parent-traversal path: {name!r}")
    return dest_dir.joinpath(*p.parts)


def _make_dirs(path: pathlib.Path, workspace: Workspace) -> None:
    """Create ``path`` and missing ancestors, registering each new directory.

    :param path: Directory to create (under the workspace).
    :param workspace: Workspace owning the registry.
    """

    missing: list[pathlib.Path] = []
    current: pathlib.Path = path
    while current != workspace.path and current.is_dir() is False:
        missing.append(current)
        current = current.parent

    for d in reversed(missing):
        d.mkdir()
        workspace.register(d)


def extract(
    archive: SelfArchiveHandle,
    workspace: Workspace,
    *,
    logger: logging.Logger | None = None,
) -> list[pathlib.Path]:
    """Explode ``archive`` into ``workspace``.

    Entries are processed in stored order. File contents are streamed with a
    bounded buffer, so entry size does not affect memory use. A failure part way
    leaves what was written so far; removal is left to the workspace registry.

    :param archive: Self archive handle.
    :param workspace: Destination workspace.
    :param logger: Optional logger.
    :returns: Absolute paths of the nested archives, in enumeration order.
    :raises BootstrapIOError: If an entry cannot be read or written.
    """

    log: logging.Logger = get_logger(logger)
    nested: list[pathlib.Path] = []

    with archive.open() as zf:
        for info in zf.infolist():
            out_path: pathlib.Path = _member_path(info.filename, workspace.path)
            try:
                if info.is_dir() is True:
                    log.info(f"Create directory [{info.filename}]")
                    _make_dirs(out_path, workspace)
                    continue

                log.info(f"Saving file [{info.filename}]")
                _make_dirs(out_path.parent, workspace)
                workspace.register(out_path)
                with zf.open(info, mode="r") as src, open(out_path, "wb") as dst:
                    shutil.copyfileobj(src, dst, _COPY_BUFFER_SIZE)
            except BootstrapIOError:
                raise
            # Unsupported compression raises NotImplementedError, encrypted members RuntimeError.
            except (OSError, zipfile.BadZipFile, NotImplementedError, RuntimeError) as e:
                raise BootstrapIOError(f"Could not extract {info.filename!r} to {out_path}: {e}") from e

            if is_nested_archive(out_path.name) is True:
                if log.isEnabledFor(logging.DEBUG) is True:
                    log.debug(f"Archive [{out_path}] added to the search path")
                nested.append(out_path)

    return nested
