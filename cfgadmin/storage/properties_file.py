"""Flat key/value ``.cfg`` files — the on-disk format of a configuration.

The format is the classic ``.properties`` layout: one ``key = value`` entry
per logical line, ``#``/``!`` comments, backslash line continuations and
escapes. ``PropertiesFile`` keeps the layout of a parsed file (comments,
key order, untouched lines) so that updating a handful of values and
storing it again leaves the rest of the file as the operator wrote it.
"""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping


class BackingStoreIOError(OSError):
    """A ``.cfg`` source could not be read or written."""

    def __init__(self, message: str, path: str | Path | None = None):
        super().__init__(message)
        self.path = str(path) if path is not None else ""


COMMENT_CHARS = "#!"
SEPARATOR_CHARS = "=:"
WHITESPACE_CHARS = " \t\f"

_UNESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_ESCAPES = {"\t": "\\t", "\n": "\\n", "\r": "\\r", "\f": "\\f", "\\": "\\\\"}
_PLACEHOLDER = re.compile(r"\$\{([^${}]+)\}")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
# Characters str.splitlines() treats as line breaks but the format does not
_EXTRA_LINE_BREAKS = "\x0b\x0c\x1c\x1d\x1e\x85\u2028\u2029"


@dataclass
class _Entry:
    key: str
    value: str
    comments: list[str] = field(default_factory=list)
    raw: list[str] | None = None  # Original lines, reused while the value is unchanged


class PropertiesFile:
    """Parsed ``.cfg`` content with its layout."""

    def __init__(self) -> None:
        self.header: list[str] = []
        self.footer: list[str] = []
        self._entries: dict[str, _Entry] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def loads(cls, text: str) -> PropertiesFile:
        """Parse ``.cfg`` text. Raises ``ValueError`` on a malformed ``\\u`` escape."""
        result = cls()
        pending: list[str] = []
        seen_entry = False

        for raw, logical in _logical_lines(_split_lines(text)):
            if logical is None:
                # A comment block closed by a blank line before any entry is the header
                if not seen_entry and not raw[0].strip() and pending and not result.header:
                    result.header = pending + raw
                    pending = []
                else:
                    pending.extend(raw)
                continue

            key, value = _split_entry(logical)
            seen_entry = True
            if key in result._entries:
                # Later duplicates win, at the position of the first
                entry = result._entries[key]
                entry.value = value
                entry.raw = None
                entry.comments.extend(pending)
            else:
                result._entries[key] = _Entry(key=key, value=value, comments=pending, raw=raw)
            pending = []

        result.footer = pending
        return result

    @classmethod
    def load_path(cls, path: str | Path, encoding: str = "utf-8") -> PropertiesFile:
        """Read and parse a ``.cfg`` file, wrapping every failure in ``BackingStoreIOError``."""
        path = Path(path)
        try:
            text = path.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise BackingStoreIOError(f"Cannot read {path}: {e}", path) from e
        try:
            return cls.loads(text)
        except ValueError as e:
            raise BackingStoreIOError(f"Cannot parse {path}: {e}", path) from e

    # ------------------------------------------------------------------
    # Mapping access
    # ------------------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __getitem__(self, key: str) -> str:
        return self._entries[key].value

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, key: str, default: str | None = None) -> str | None:
        entry = self._entries.get(key)
        return entry.value if entry else default

    def as_dict(self, defaults: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the values with ``${name}`` placeholders substituted.

        Placeholders resolve against the other keys of this file first, then
        against ``defaults``. Unknown names are left verbatim. Substitution is
        a single pass, so self-references and cycles cannot loop.
        """
        raw = {key: entry.value for key, entry in self._entries.items()}
        return {key: _substitute(value, raw, defaults) for key, value in raw.items()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(
        self, values: Mapping[str, str], defaults: Mapping[str, str] | None = None
    ) -> bool:
        """Make this file hold exactly ``values``.

        Keys absent from ``values`` are removed, changed values are rewritten
        in place (keeping their comments) and new keys are appended. A value
        equal to the substituted form of the current one keeps the original
        placeholder text. Returns True if anything changed.
        """
        modified = False
        current = self.as_dict(defaults)

        for key in list(self._entries):
            if key not in values:
                del self._entries[key]
                modified = True

        for key, value in values.items():
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = _Entry(key=key, value=value)
                modified = True
            elif value != entry.value and value != current.get(key):
                entry.value = value
                entry.raw = None
                modified = True

        return modified

    # ------------------------------------------------------------------
    # Storing
    # ------------------------------------------------------------------

    def dumps(self) -> str:
        lines = list(self.header)
        for entry in self._entries.values():
            lines.extend(entry.comments)
            if entry.raw is not None:
                lines.extend(entry.raw)
            else:
                lines.append(f"{_escape(entry.key, is_key=True)} = {_escape(entry.value)}")
        lines.extend(self.footer)
        return "\n".join(lines) + "\n" if lines else ""

    def store(self, path: str | Path, encoding: str = "utf-8") -> None:
        """Overwrite ``path`` with the full file content."""
        path = Path(path)
        try:
            path.write_text(self.dumps(), encoding=encoding)
        except (OSError, UnicodeEncodeError) as e:
            raise BackingStoreIOError(f"Cannot write {path}: {e}", path) from e


def _logical_lines(lines: Iterable[str]) -> Iterator[tuple[list[str], str | None]]:
    """Yield ``(raw_lines, logical_text)``; ``logical_text`` is None for comments and blanks."""
    it = iter(lines)
    for line in it:
        raw = [line]
        text = line.lstrip(WHITESPACE_CHARS)
        if not text or text[0] in COMMENT_CHARS:
            yield raw, None
            continue

        while _continues(text):
            text = text[:-1]
            try:
                following = next(it)
            except StopIteration:
                break
            raw.append(following)
            text += following.lstrip(WHITESPACE_CHARS)

        yield raw, text


def _split_lines(text: str) -> list[str]:
    lines = _LINE_BREAK.split(text)
    if lines and not lines[-1]:
        lines.pop()
    return lines


def _continues(text: str) -> bool:
    backslashes = len(text) - len(text.rstrip("\\"))
    return backslashes % 2 == 1


def _split_entry(text: str) -> tuple[str, str]:
    i = 0
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c in SEPARATOR_CHARS or c in WHITESPACE_CHARS:
            break
        i += 1

    key = text[:i]
    j = i
    while j < len(text) and text[j] in WHITESPACE_CHARS:
        j += 1
    if j < len(text) and text[j] in SEPARATOR_CHARS:
        j += 1
    while j < len(text) and text[j] in WHITESPACE_CHARS:
        j += 1

    return _unescape(key), _unescape(text[j:])


def _unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != "\\":
            out.append(c)
            i += 1
            continue

        i += 1
        if i >= len(text):
            break
        c = text[i]
        if c == "u":
            code = text[i + 1 : i + 5]
            if len(code) != 4 or any(ch not in string.hexdigits for ch in code):
                raise ValueError(f"Malformed \\uxxxx encoding: \\u{code}")
            out.append(chr(int(code, 16)))
            i += 5
            continue
        out.append(_UNESCAPES.get(c, c))
        i += 1

    return "".join(out)


def _escape(text: str, is_key: bool = False) -> str:
    out: list[str] = []
    for index, c in enumerate(text):
        if c in _ESCAPES:
            out.append(_ESCAPES[c])
        elif c in SEPARATOR_CHARS or c in COMMENT_CHARS:
            out.append("\\" + c)
        elif c == " " and (is_key or index == 0):
            out.append("\\ ")
        elif ord(c) < 0x20 or c in _EXTRA_LINE_BREAKS:
            out.append(f"\\u{ord(c):04x}")
        else:
            out.append(c)
    return "".join(out)


def _substitute(
    value: str, raw: Mapping[str, str], defaults: Mapping[str, str] | None
) -> str:
    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in raw:
            return raw[name]
        if defaults is not None and name in defaults:
            return defaults[name]
        return match.group(0)

    return _PLACEHOLDER.sub(replace, value)
