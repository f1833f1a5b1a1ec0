"""Runtime configuration read from the process environment.

The bootstrap runs before any application code, so configuration is limited to
a handful of environment variables read once at startup:

- ``PYEXPLODER_DEBUG`` enables debug output.
- ``PYEXPLODER_TMPDIR`` overrides the parent directory for workspaces.
- ``PYEXPLODER_ARCHIVE`` names the archive to explode explicitly.
"""

from collections.abc import Mapping
from dataclasses import dataclass
import os
import pathlib


ENV_DEBUG: str = "PYEXPLODER_DEBUG"
ENV_TMPDIR: str = "PYEXPLODER_TMPDIR"
ENV_ARCHIVE: str = "PYEXPLODER_ARCHIVE"


@dataclass(frozen=True, slots=True)
class BootstrapConfig:
    """Bootstrap configuration.

    :ivar debug: Emit debug log lines.
    :ivar tmp_root: Parent directory for the workspace (``None`` = system default).
    :ivar archive: Explicit self archive path (``None`` = locate automatically).
    """

    debug: bool = False
    tmp_root: pathlib.Path | None = None
    archive: pathlib.Path | None = None


def _parse_env_bool(value: str) -> bool | None:
    """Parse a string into a boolean.

    :param value: Raw environment variable string.
    :returns: Parsed boolean, or ``None`` if unknown.
    """

    v: str = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return None


def _env_path(environ: Mapping[str, str], name: str) -> pathlib.Path | None:
    """Return the path in ``environ[name]``, or ``None`` when unset or blank.

    :param environ: Environment mapping.
    :param name: Variable name.
    :returns: Path, or ``None``.
    """

    raw: str | None = environ.get(name)
    if raw is None or len(raw.strip()) == 0:
        return None
    return pathlib.Path(raw.strip())


def load_config(environ: Mapping[str, str] | None = None) -> BootstrapConfig:
    """Build a :class:`BootstrapConfig` from environment variables.

    Unknown boolean spellings are ignored and leave the default in place.

    :param environ: Mapping to read from (defaults to ``os.environ``).
    :returns: Resolved configuration.
    """

    if environ is None:
        environ = os.environ

    debug: bool = False
    raw_debug: str | None = environ.get(ENV_DEBUG)
    if raw_debug is not None and len(raw_debug) > 0:
        parsed: bool | None = _parse_env_bool(raw_debug)
        if parsed is not None:
            debug = parsed

    return BootstrapConfig(
        debug=debug,
        tmp_root=_env_path(environ, ENV_TMPDIR),
        archive=_env_path(environ, ENV_ARCHIVE),
    )
