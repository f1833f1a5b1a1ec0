"""Bootstrap lifecycle.

This is what an exploding archive runs at startup (its ``__main__.py`` calls
:func:`main`):

- locate the archive the process was started from,
- explode it into a fresh temporary workspace,
- build an import environment from the nested archives under ``lib/``,
- read the manifest and call the ``Start-Entry`` callable with ``sys.argv[1:]``,
- release the environment and exit with ``0`` or ``1``.

The workspace is removed at interpreter exit, after the environment has been
released.
"""

from collections.abc import Sequence
import logging
import pathlib
import signal
import sys
import traceback
import types

from pyexploder.archive import SelfArchiveHandle, locate_self_archive
from pyexploder.config import BootstrapConfig, load_config
from pyexploder.entrypoint import InvocationResult, invoke, resolve_entry_point_name
from pyexploder.environment import build_environment
from pyexploder.errors import BootstrapError
from pyexploder.extract import extract
from pyexploder.log import configure_logging, get_logger
from pyexploder.manifest import BootstrapManifest, read_manifest
from pyexploder.workspace import Workspace


EXIT_SUCCESS: int = 0
EXIT_FAILURE: int = 1


class Exploder:
    """Runs the bootstrap sequence once."""

    workspace: Workspace | None
    result: InvocationResult | None

    def __init__(self, *, config: BootstrapConfig | None = None, logger: logging.Logger | None = None) -> None:
        self._config = config if config is not None else BootstrapConfig()
        self._logger = get_logger(logger)
        self.workspace = None
        self.result = None

    def run(self, args: Sequence[str]) -> int:
        """Explode the archive and call its entry point.

        :param args: Arguments for the entry point (program name excluded).
        :returns: Process exit status.
        """

        log: logging.Logger = self._logger
        try:
            archive: SelfArchiveHandle = locate_self_archive(override=self._config.archive, logger=log)
            self.workspace = Workspace.acquire(root=self._config.tmp_root, logger=log)
            nested: list[pathlib.Path] = extract(archive, self.workspace, logger=log)
            with build_environment(nested, logger=log) as env:
                manifest: BootstrapManifest = read_manifest(archive)
                name: str = resolve_entry_point_name(manifest)
                result: InvocationResult = invoke(env, name, args, logger=log)
        except BootstrapError as e:
            _report_fatal(e)
            return EXIT_FAILURE

        self.result = result
        if result.failure is not None:
            sys.stderr.write(result.failure.trace)
            return EXIT_FAILURE
        return EXIT_SUCCESS


def _report_fatal(error: BootstrapError) -> None:
    """Print a bootstrap failure with its traceback to stderr."""

    traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)


def _raise_system_exit(signum: int, frame: types.FrameType | None) -> None:
    raise SystemExit(128 + signum)


def _install_termination_handler() -> None:
    """Turn SIGTERM into ``SystemExit`` so exit hooks (workspace cleanup) run."""

    if hasattr(signal, "SIGTERM") is False:
        return
    try:
        signal.signal(signal.SIGTERM, _raise_system_exit)
    except ValueError:
        # Not the main thread.
        pass


def main(argv: Sequence[str] | None = None) -> None:
    """Program entrypoint of an exploding archive.

    :param argv: Entry point arguments (defaults to ``sys.argv[1:]``).
    """

    config: BootstrapConfig = load_config()
    logger: logging.Logger = configure_logging(debug=config.debug)
    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"sys.path is {sys.path}")
    _install_termination_handler()

    args: list[str] = list(sys.argv[1:] if argv is None else argv)
    raise SystemExit(Exploder(config=config, logger=logger).run(args))
