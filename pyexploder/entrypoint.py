"""Entry point resolution and invocation.

The manifest names the entry point with the usual entry-point syntax,
``package.module:attribute``. A bare module name stands for its ``main``
attribute. The callable receives the argument list as its single argument.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import inspect
import logging
import re
import traceback
import types

from pyexploder.environment import IsolatedEnvironment
from pyexploder.errors import ConfigError, InvocationFailure, ResolutionError, SignatureError
from pyexploder.log import get_logger
from pyexploder.manifest import START_ENTRY_KEY, BootstrapManifest


DEFAULT_ATTRIBUTE: str = "main"

_DOTTED: str = r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*"
_ENTRY_RE: re.Pattern[str] = re.compile(rf"^(?P<module>{_DOTTED})(?::(?P<attr>{_DOTTED}))?$")


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Outcome of calling the entry point.

    :ivar entry_point: Entry point name.
    :ivar failure: ``None`` on normal completion, otherwise the captured failure.
    """

    entry_point: str
    failure: InvocationFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def resolve_entry_point_name(manifest: BootstrapManifest) -> str:
    """Return the declared entry point name.

    :param manifest: Archive manifest.
    :returns: Entry point name.
    :raises ConfigError: If the manifest has no ``Start-Entry`` value.
    """

    value: str | None = manifest.get(START_ENTRY_KEY)
    if value is None or len(value.strip()) == 0:
        raise ConfigError(
            f"Missing required entry-point declaration: the manifest must contain a {START_ENTRY_KEY} entry"
        )
    return value.strip()


def parse_entry_point(name: str) -> tuple[str, str]:
    """Split an entry point name into module and attribute path.

    :param name: ``module:attr`` or ``module``.
    :returns: ``(module, attr)``.
    :raises ConfigError: If the name is malformed.
    """

    m = _ENTRY_RE.match(name.strip())
    if m is None:
        raise ConfigError(f"Invalid entry point {name!r}; expected 'package.module:function'")
    attr: str | None = m.group("attr")
    return (m.group("module"), attr if attr is not None else DEFAULT_ATTRIBUTE)


def _check_signature(name: str, target: object) -> None:
    """Check that ``target`` can be called as ``target(args)`` and returns nothing.

    :raises SignatureError: If the shape does not match.
    """

    if callable(target) is False:
        raise SignatureError(f"Entry point {name!r} is not callable ({type(target).__name__})")

    try:
        sig: inspect.Signature = inspect.signature(target)
    except (TypeError, ValueError):
        # Some builtins have no introspectable signature.
        return

    try:
        sig.bind([])
    except TypeError as e:
        raise SignatureError(f"Entry point {name!r} must accept a single argument list: {sig}") from e

    ret: object = sig.return_annotation
    if ret is not inspect.Signature.empty and ret is not None and ret != "None":
        raise SignatureError(f"Entry point {name!r} must not declare a return value (annotated {ret!r})")


def load_entry_point(env: IsolatedEnvironment, name: str) -> Callable[[list[str]], None]:
    """Resolve ``name`` to a callable inside ``env``.

    :param env: Active isolated environment.
    :param name: Entry point name.
    :returns: The entry point callable.
    :raises ConfigError: If the name is malformed.
    :raises ResolutionError: If the module or attribute cannot be found.
    :raises SignatureError: If the callable has the wrong shape.
    """

    module_name: str
    attr_path: str
    module_name, attr_path = parse_entry_point(name)

    try:
        module: types.ModuleType = env.import_module(module_name)
    except ImportError as e:
        raise ResolutionError(f"Cannot find entry point module {module_name!r}: {e}") from e
    except Exception as e:
        raise ResolutionError(f"Importing entry point module {module_name!r} failed: {e!r}") from e

    target: object = module
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ResolutionError(f"Module {module_name!r} has no attribute {attr_path!r}") from e

    _check_signature(name, target)
    return target  # type: ignore[return-value]


def _failure(name: str, error: BaseException) -> InvocationResult:
    """Capture ``error`` as a failed result, dropping the invoker's own frame."""

    tb: types.TracebackType | None = error.__traceback__
    if tb is not None:
        tb = tb.tb_next
    trace: str = "".join(traceback.format_exception(type(error), error, tb))
    failure: InvocationFailure = InvocationFailure(name, trace)
    failure.__cause__ = error
    return InvocationResult(entry_point=name, failure=failure)


def invoke(
    env: IsolatedEnvironment,
    name: str,
    args: Sequence[str],
    *,
    logger: logging.Logger | None = None,
) -> InvocationResult:
    """Resolve and call the entry point.

    Errors raised by the entry point are captured in the result rather than
    propagated. ``SystemExit`` with a zero or empty code counts as success.

    :param env: Active isolated environment.
    :param name: Entry point name.
    :param args: Arguments passed on unchanged.
    :param logger: Optional logger.
    :returns: The invocation result.
    :raises ResolutionError: If the entry point cannot be found.
    :raises SignatureError: If the entry point has the wrong shape.
    """

    log: logging.Logger = get_logger(logger)
    entry: Callable[[list[str]], None] = load_entry_point(env, name)

    log.info(f"Calling entry point [{name}]")
    try:
        entry(list(args))
    except SystemExit as e:
        if e.code is None or e.code == 0:
            return InvocationResult(entry_point=name)
        return _failure(name, e)
    except (Exception, KeyboardInterrupt) as e:
        return _failure(name, e)
    return InvocationResult(entry_point=name)
