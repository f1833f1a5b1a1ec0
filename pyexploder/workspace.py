"""Ephemeral workspace with a deletion registry.

Every path created under the workspace is registered at creation time. A single
teardown walks the registry in reverse order (children before parents) and
removes what it can. Teardown is scheduled with :mod:`atexit` as soon as the
workspace exists, so it also runs when a later bootstrap step fails.
"""

import atexit
import logging
import os
import pathlib
import shutil
import tempfile

from pyexploder.errors import BootstrapIOError
from pyexploder.log import get_logger


class Workspace:
    """A temporary directory plus the paths registered for deletion under it."""

    path: pathlib.Path
    _registry: list[pathlib.Path]
    _cleaned: bool
    _logger: logging.Logger

    def __init__(self, path: pathlib.Path, *, logger: logging.Logger | None = None) -> None:
        self.path = path
        self._registry = []
        self._cleaned = False
        self._logger = get_logger(logger)

    @classmethod
    def acquire(
        cls,
        *,
        root: pathlib.Path | None = None,
        logger: logging.Logger | None = None,
    ) -> "Workspace":
        """Create a new, empty, uniquely named workspace directory.

        :param root: Parent directory (defaults to the system temp directory).
        :param logger: Optional logger.
        :returns: The workspace, already registered for removal at exit.
        :raises BootstrapIOError: If the directory cannot be created.
        """

        log: logging.Logger = get_logger(logger)
        try:
            if root is not None:
                root.mkdir(parents=True, exist_ok=True)
            raw: str = tempfile.mkdtemp(prefix="pyexploder_", dir=root)
        except OSError as e:
            raise BootstrapIOError(f"Could not create temporary directory under {root or tempfile.gettempdir()}") from e

        path: pathlib.Path = pathlib.Path(os.path.realpath(raw))
        log.info(f"Temporary directory is: {path}")

        workspace: Workspace = cls(path, logger=log)
        workspace.register(path)
        atexit.register(workspace.cleanup)
        return workspace

    @property
    def registered(self) -> tuple[pathlib.Path, ...]:
        """Paths registered for deletion, in registration order."""

        return tuple(self._registry)

    @property
    def cleaned(self) -> bool:
        return self._cleaned

    def register(self, path: pathlib.Path) -> None:
        """Register a path created under the workspace for deletion.

        :param path: Path to remove during cleanup.
        :raises BootstrapIOError: If the path lies outside the workspace.
        """

        if path != self.path and path.is_relative_to(self.path) is False:
            raise BootstrapIOError(f"Refusing to register path outside the workspace: {path}")
        self._registry.append(path)
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            self._logger.debug(f"[{path}] will be deleted on exit")

    def cleanup(self) -> None:
        """Remove every registered path, newest first.

        Individual failures are logged at debug level and otherwise ignored.
        Anything the application left behind under the root is swept last.
        Runs at most once.
        """

        if self._cleaned is True:
            return
        self._cleaned = True
        atexit.unregister(self.cleanup)

        for path in reversed(self._registry):
            try:
                if path.is_dir() is True and path.is_symlink() is False:
                    path.rmdir()
                elif path.exists() is True or path.is_symlink() is True:
                    path.unlink()
            except OSError as e:
                if self._logger.isEnabledFor(logging.DEBUG) is True:
                    self._logger.debug(f"Could not delete [{path}]: {e}")
        self._registry.clear()

        if self.path.exists() is True:
            shutil.rmtree(self.path, ignore_errors=True)

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"Workspace({str(self.path)!r})"
