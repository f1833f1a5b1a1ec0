"""Command line interface for pyexploder."""

import argparse
import dataclasses
import logging
import pathlib

from pyexploder.bootstrap import EXIT_FAILURE, Exploder
from pyexploder.builder import DEFAULT_INTERPRETER, build_archive
from pyexploder.config import BootstrapConfig, load_config
from pyexploder.errors import BuildError
from pyexploder.log import configure_logging


def _resolve_level(*, verbose: int, quiet: int, debug: bool) -> int:
    """Map verbosity counts to a logging level.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :param debug: Debug flag from the environment.
    :returns: Logging level.
    """

    if quiet >= 2:
        return logging.ERROR
    if quiet >= 1:
        return logging.WARNING
    if verbose >= 1 or debug is True:
        return logging.DEBUG
    return logging.INFO


def _add_verbosity(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging.",
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass twice to show errors only.",
    )


def main(argv: list[str] | None = None) -> int:
    """Run the pyexploder CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="pyexploder",
        description="Build and run self-exploding application archives.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser(
        "build",
        help="Build an exploding archive.",
    )
    p_build.add_argument(
        "libs",
        type=pathlib.Path,
        nargs="*",
        help="Library archives (.zip, .whl, .pyz) to put on the search path, in precedence order.",
    )
    p_build.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        required=True,
        help="Output path for the archive (e.g. app.pyz).",
    )
    p_build.add_argument(
        "-e",
        "--entry",
        type=str,
        required=True,
        help="Entry point to call, as 'package.module:function'.",
    )
    p_build.add_argument(
        "--app-dir",
        type=pathlib.Path,
        default=None,
        help="Application source directory; zipped and placed first on the search path.",
    )
    p_build.add_argument(
        "-p",
        "--python",
        type=str,
        default=DEFAULT_INTERPRETER,
        help=f"Interpreter for the #! line (default: {DEFAULT_INTERPRETER!r}).",
    )
    p_build.add_argument(
        "--no-shebang",
        action="store_true",
        help="Do not write a #! line.",
    )
    p_build.add_argument(
        "--compresslevel",
        type=int,
        default=6,
        help="Deflate compression level 0-9 (default: 6).",
    )
    _add_verbosity(p_build)

    p_run = subparsers.add_parser(
        "run",
        help="Explode an archive and call its entry point in this process.",
    )
    p_run.add_argument(
        "archive",
        type=pathlib.Path,
        help="Path to an exploding archive.",
    )
    p_run.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="Arguments passed on to the entry point.",
    )
    _add_verbosity(p_run)

    ns = parser.parse_args(argv)
    config: BootstrapConfig = load_config()
    logger: logging.Logger = configure_logging(
        level=_resolve_level(verbose=ns.verbose, quiet=ns.quiet, debug=config.debug)
    )

    if ns.command == "build":
        try:
            build_archive(
                output_path=ns.output,
                entry=ns.entry,
                libs=ns.libs,
                app_dir=ns.app_dir,
                interpreter=None if ns.no_shebang is True else ns.python,
                compresslevel=ns.compresslevel,
                logger=logger,
            )
        except BuildError as e:
            logger.error(f"build failed: {e}")
            return EXIT_FAILURE
        return 0

    if ns.command == "run":
        args: list[str] = list(ns.args)
        if len(args) > 0 and args[0] == "--":
            args = args[1:]
        run_config: BootstrapConfig = dataclasses.replace(config, archive=ns.archive)
        return Exploder(config=run_config, logger=logger).run(args)

    raise AssertionError(f"Unhandled command: {ns.command}")
