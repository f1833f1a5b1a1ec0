"""Exploding archive builder.

This module writes a single, directly executable zip archive:

- an optional ``#!`` interpreter line, so ``./app.pyz`` works,
- ``__main__.py``, which hands control to :func:`pyexploder.bootstrap.main`,
- ``META-INF/MANIFEST.MF`` naming the real entry point (``Start-Entry``),
- the pyexploder runtime modules, so the archive needs nothing installed,
- ``lib/`` holding the nested archives: the zipped app sources first, then the
  given library archives in the given order (earlier archives win lookups).
"""

from collections.abc import Sequence
from dataclasses import dataclass
import io
import logging
import os
import pathlib
import stat
import time
import zipfile

from pyexploder import __version__
from pyexploder.entrypoint import parse_entry_point
from pyexploder.errors import BuildError, ConfigError
from pyexploder.extract import NESTED_ARCHIVE_SUFFIXES, is_nested_archive
from pyexploder.log import get_logger
from pyexploder.manifest import MANIFEST_PATH, START_ENTRY_KEY, render_manifest


LIB_DIR: str = "lib"

DEFAULT_INTERPRETER: str = "/usr/bin/env python3"

# Modules an exploding archive needs at runtime. The build-side modules stay out.
RUNTIME_MODULES: tuple[str, ...] = (
    "__init__.py",
    "archive.py",
    "bootstrap.py",
    "config.py",
    "entrypoint.py",
    "environment.py",
    "errors.py",
    "extract.py",
    "log.py",
    "manifest.py",
    "workspace.py",
)

_MAIN_SOURCE: str = (
    "# Generated by pyexploder. Explodes this archive and starts the application.\n"
    "from pyexploder.bootstrap import main\n"
    "\n"
    "main()\n"
)

_IGNORE_NAMES: frozenset[str] = frozenset(
    {
        "__pycache__",
        ".git",
        ".hg",
        ".svn",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".venv",
        "venv",
        ".DS_Store",
    }
)


@dataclass(frozen=True, slots=True)
class CopyStats:
    """Stats collected while zipping a directory tree.

    :ivar files_copied: Number of files written.
    :ivar bytes_copied: Total uncompressed bytes written.
    """

    files_copied: int
    bytes_copied: int


def _validate_compresslevel(compresslevel: int) -> None:
    """Validate a zip compression level.

    :param compresslevel: Compression level (0-9).
    :raises BuildError: If the level is out of range.
    """

    if compresslevel < 0 or compresslevel > 9:
        raise BuildError(f"Invalid compresslevel={compresslevel}; expected 0-9.")


def _validate_entry(entry: str) -> str:
    try:
        parse_entry_point(entry)
    except ConfigError as e:
        raise BuildError(str(e)) from e
    return entry.strip()


def _validate_libs(libs: Sequence[pathlib.Path]) -> list[pathlib.Path]:
    """Check that every library is an existing zip archive with a nested suffix.

    :param libs: Library archive paths.
    :returns: The same paths, in order.
    :raises BuildError: If a library is missing, misnamed or not a zip file.
    """

    seen: set[str] = set()
    checked: list[pathlib.Path] = []
    for lib in libs:
        if lib.is_file() is False:
            raise BuildError(f"Library archive does not exist: {lib}")
        if is_nested_archive(lib.name) is False:
            raise BuildError(
                f"Library archive {lib.name!r} must end with one of {', '.join(NESTED_ARCHIVE_SUFFIXES)}"
            )
        if zipfile.is_zipfile(lib) is False:
            raise BuildError(f"Library archive is not a zip file: {lib}")
        if lib.name in seen:
            raise BuildError(f"Duplicate library archive name: {lib.name!r}")
        seen.add(lib.name)
        checked.append(lib)
    return checked


def _zip_app_dir(*, app_dir: pathlib.Path, compresslevel: int) -> tuple[bytes, CopyStats]:
    """Zip an application source tree into bytes.

    Caches, VCS metadata and compiled files are skipped.

    :param app_dir: Root of the application sources (becomes the zip root).
    :param compresslevel: Deflate compression level.
    :returns: ``(zip_bytes, stats)``.
    """

    paths: list[pathlib.Path] = []
    for root_str, dirs, files in os.walk(app_dir, topdown=True):
        dirs[:] = sorted(d for d in dirs if d not in _IGNORE_NAMES)
        root_path: pathlib.Path = pathlib.Path(root_str)
        for name in files:
            if name in _IGNORE_NAMES:
                continue
            if name.endswith((".pyc", ".pyo")) is True:
                continue
            paths.append(root_path / name)

    files_copied: int = 0
    bytes_copied: int = 0
    buf: io.BytesIO = io.BytesIO()
    with zipfile.ZipFile(
        buf,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compresslevel,
    ) as zf:
        for p in sorted(paths):
            arcname: str = p.relative_to(app_dir).as_posix()
            zf.write(p, arcname=arcname)
            files_copied += 1
            bytes_copied += p.stat().st_size

    return (buf.getvalue(), CopyStats(files_copied=files_copied, bytes_copied=bytes_copied))


def _write_archive(
    *,
    out: io.BufferedIOBase,
    entry: str,
    app_zip: tuple[str, bytes] | None,
    libs: list[pathlib.Path],
    compresslevel: int,
) -> None:
    """Write the archive members to an open binary stream.

    :param out: Binary stream positioned after the optional shebang.
    :param entry: Entry point name for the manifest.
    :param app_zip: Optional ``(name, bytes)`` of the zipped app sources.
    :param libs: Library archives, in precedence order.
    :param compresslevel: Deflate compression level.
    """

    runtime_dir: pathlib.Path = pathlib.Path(__file__).resolve().parent
    manifest: str = render_manifest(
        {
            "Manifest-Version": "1.0",
            "Created-By": f"pyexploder {__version__}",
            START_ENTRY_KEY: entry,
        }
    )

    with zipfile.ZipFile(
        out,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compresslevel,
    ) as zf:
        zf.writestr("META-INF/", b"")
        zf.writestr(MANIFEST_PATH, manifest.encode("utf-8"))
        zf.writestr("__main__.py", _MAIN_SOURCE.encode("utf-8"))

        zf.writestr("pyexploder/", b"")
        for name in RUNTIME_MODULES:
            src: pathlib.Path = runtime_dir / name
            if src.is_file() is False:
                raise BuildError(f"Internal error: runtime module missing: {src}")
            zf.write(src, arcname=f"pyexploder/{name}")

        zf.writestr(f"{LIB_DIR}/", b"")
        # Nested archives are already compressed.
        if app_zip is not None:
            zf.writestr(f"{LIB_DIR}/{app_zip[0]}", app_zip[1], compress_type=zipfile.ZIP_STORED)
        for lib in libs:
            zf.write(lib, arcname=f"{LIB_DIR}/{lib.name}", compress_type=zipfile.ZIP_STORED)


def build_archive(
    *,
    output_path: pathlib.Path,
    entry: str,
    libs: Sequence[pathlib.Path] = (),
    app_dir: pathlib.Path | None = None,
    interpreter: str | None = DEFAULT_INTERPRETER,
    compresslevel: int = 6,
    logger: logging.Logger | None = None,
) -> None:
    """Build an exploding archive.

    :param output_path: Output path for the archive.
    :param entry: Entry point name (``package.module:function``).
    :param libs: Library archives placed under ``lib/`` in the given order.
    :param app_dir: Optional application source directory, zipped into ``lib/`` first.
    :param interpreter: Interpreter for the ``#!`` line; ``None`` writes no shebang.
    :param compresslevel: Deflate compression level.
    :param logger: Optional logger for build progress output.
    :raises BuildError: If the inputs are invalid or the archive cannot be written.
    """

    logger = get_logger(logger)

    entry = _validate_entry(entry)
    checked_libs: list[pathlib.Path] = _validate_libs(libs)
    _validate_compresslevel(compresslevel)
    if app_dir is not None and app_dir.is_dir() is False:
        raise BuildError(f"Application directory does not exist: {app_dir}")
    if app_dir is None and len(checked_libs) == 0:
        raise BuildError("Nothing to bundle: provide an application directory or at least one library.")

    t_total0: float = time.perf_counter()
    logger.info(f"output={output_path}")
    logger.info(f"entry={entry}")

    app_zip: tuple[str, bytes] | None = None
    if app_dir is not None:
        app_name: str = f"{app_dir.resolve().name}.zip"
        if app_name in {lib.name for lib in checked_libs}:
            raise BuildError(f"Application archive name {app_name!r} collides with a library archive")
        zip_bytes: bytes
        stats: CopyStats
        zip_bytes, stats = _zip_app_dir(app_dir=app_dir, compresslevel=compresslevel)
        logger.info(
            f"zipped application sources ({stats.files_copied} files, {stats.bytes_copied / (1024 * 1024):.1f} MiB)"
        )
        app_zip = (app_name, zip_bytes)

    if logger.isEnabledFor(logging.DEBUG) is True:
        order: list[str] = ([app_zip[0]] if app_zip is not None else []) + [lib.name for lib in checked_libs]
        logger.debug(f"search path order={order}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: pathlib.Path = output_path.with_name(output_path.name + ".tmp")
    try:
        with open(tmp_path, "wb") as f:
            if interpreter is not None:
                f.write(b"#!" + interpreter.encode("utf-8") + b"\n")
            _write_archive(
                out=f,
                entry=entry,
                app_zip=app_zip,
                libs=checked_libs,
                compresslevel=compresslevel,
            )
        if interpreter is not None:
            mode: int = tmp_path.stat().st_mode
            tmp_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        tmp_path.replace(output_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise BuildError(f"Could not write archive {output_path}: {e}") from e

    t_total1: float = time.perf_counter()
    out_size: int = output_path.stat().st_size
    logger.info(f"wrote {output_path} ({out_size / (1024 * 1024):.1f} MiB) in {t_total1 - t_total0:.2f}s")
