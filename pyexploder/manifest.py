"""Archive manifest: ``Key: Value`` attributes stored in ``META-INF/MANIFEST.MF``.

Only the main section (everything before the first blank line) is read. Long
values continue on the next line after a single leading space.
"""

from collections.abc import Iterator, Mapping
import email.parser
import email.policy
import zipfile

from pyexploder.archive import SelfArchiveHandle
from pyexploder.errors import BootstrapIOError, ConfigError


MANIFEST_PATH: str = "META-INF/MANIFEST.MF"
START_ENTRY_KEY: str = "Start-Entry"

_MAX_LINE_BYTES: int = 72


class BootstrapManifest(Mapping[str, str]):
    """Read-only, case-insensitive view of the manifest main attributes."""

    def __init__(self, attributes: Mapping[str, str] | None = None) -> None:
        self._items: dict[str, tuple[str, str]] = {}
        if attributes is not None:
            for key, value in attributes.items():
                self._items[key.lower()] = (key, value)

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()][1]

    def __iter__(self) -> Iterator[str]:
        for original, _ in self._items.values():
            yield original

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._items

    def __repr__(self) -> str:
        return f"BootstrapManifest({dict(self)!r})"


def parse_manifest(text: str) -> BootstrapManifest:
    """Parse manifest text.

    :param text: Manifest contents.
    :returns: Main-section attributes.
    """

    message = email.parser.HeaderParser(policy=email.policy.compat32).parsestr(text)
    attributes: dict[str, str] = {}
    for key, value in message.items():
        # A continuation line starts with exactly one space, which is not part of the value.
        joined: str = value.replace("\r\n ", "").replace("\n ", "")
        attributes[key] = joined.strip()
    return BootstrapManifest(attributes)


def read_manifest(archive: SelfArchiveHandle) -> BootstrapManifest:
    """Read the manifest of ``archive``.

    An archive without a manifest yields an empty manifest.

    :param archive: Self archive handle.
    :returns: Manifest attributes.
    :raises BootstrapIOError: If the archive cannot be read.
    :raises ConfigError: If the manifest is not valid UTF-8.
    """

    with archive.open() as zf:
        try:
            raw: bytes = zf.read(MANIFEST_PATH)
        except KeyError:
            return BootstrapManifest()
        except (OSError, zipfile.BadZipFile, NotImplementedError, RuntimeError) as e:
            raise BootstrapIOError(f"Could not read {MANIFEST_PATH} from {archive.path}: {e}") from e
    try:
        text: str = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ConfigError(f"{MANIFEST_PATH} in {archive.path} is not valid UTF-8: {e}") from e
    return parse_manifest(text)


def _wrap_line(line: str) -> str:
    encoded: bytes = line.encode("utf-8")
    if len(encoded) <= _MAX_LINE_BYTES:
        return line + "\n"

    parts: list[str] = []
    current: str = ""
    limit: int = _MAX_LINE_BYTES
    for ch in line:
        if len((current + ch).encode("utf-8")) > limit:
            parts.append(current)
            current = ""
            # Continuation lines spend one byte on the leading space.
            limit = _MAX_LINE_BYTES - 1
        current += ch
    parts.append(current)
    return "\n ".join(parts) + "\n"


def render_manifest(attributes: Mapping[str, str]) -> str:
    """Render main attributes as manifest text, wrapping long lines.

    :param attributes: Ordered attributes.
    :returns: Manifest text terminated by a blank line.
    """

    lines: list[str] = []
    for key, value in attributes.items():
        if "\n" in value or "\r" in value:
            raise ValueError(f"Manifest value for {key!r} contains a line break")
        lines.append(_wrap_line(f"{key}: {value}"))
    return "".join(lines) + "\n"
