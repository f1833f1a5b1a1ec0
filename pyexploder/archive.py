"""Locating the archive the running process was started from."""

from dataclasses import dataclass
import logging
import os
import pathlib
import sys
import zipfile
import zipimport

from pyexploder.errors import BootstrapIOError
from pyexploder.log import get_logger


@dataclass(frozen=True, slots=True)
class SelfArchiveHandle:
    """The archive this bootstrap was launched from.

    :ivar path: Canonical filesystem path of the archive.
    """

    path: pathlib.Path

    def open(self) -> zipfile.ZipFile:
        """Open the archive for reading.

        :returns: An open :class:`zipfile.ZipFile`; the caller closes it.
        :raises BootstrapIOError: If the archive cannot be opened as a zip file.
        """

        try:
            return zipfile.ZipFile(self.path, mode="r")
        except (OSError, zipfile.BadZipFile) as e:
            raise BootstrapIOError(f"Could not open archive {self.path}: {e}") from e


def _loader_archive() -> str | None:
    """Return the archive path of the zipimporter that loaded this package, if any."""

    loader: object = globals().get("__loader__")
    if isinstance(loader, zipimport.zipimporter) is True:
        return loader.archive
    return None


def locate_self_archive(
    *,
    override: pathlib.Path | None = None,
    logger: logging.Logger | None = None,
) -> SelfArchiveHandle:
    """Find the archive the process was launched from.

    Resolution order: ``override``, the archive pyexploder itself was imported
    from, then ``sys.argv[0]`` when it names a zip file.

    :param override: Explicit archive path.
    :param logger: Optional logger.
    :returns: Handle on the canonical archive path.
    :raises BootstrapIOError: If no archive can be found.
    """

    log: logging.Logger = get_logger(logger)

    candidate: str | None
    if override is not None:
        candidate = str(override)
    else:
        candidate = _loader_archive()
        if candidate is None and len(sys.argv) > 0 and len(sys.argv[0]) > 0:
            if os.path.isfile(sys.argv[0]) is True and zipfile.is_zipfile(sys.argv[0]) is True:
                candidate = sys.argv[0]

    if candidate is None:
        raise BootstrapIOError("Could not determine the archive this process was started from")

    path: pathlib.Path = pathlib.Path(os.path.realpath(candidate))
    if path.is_file() is False:
        raise BootstrapIOError(f"Archive does not exist: {path}")

    if log.isEnabledFor(logging.DEBUG) is True:
        log.debug(f"Self archive is [{path}]")
    return SelfArchiveHandle(path=path)
