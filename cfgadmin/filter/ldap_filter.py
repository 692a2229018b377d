"""LDAP-style filter expressions over flat property dictionaries.

Supports the RFC 1960 subset used for configuration queries:

- Composites: ``(&F F ...)``, ``(|F F ...)``, ``(!F)``
- Items: ``(key=value)``, ``(key~=value)``, ``(key>=value)``, ``(key<=value)``
- Presence: ``(key=*)``
- Substrings: ``(key=pre*mid*suf)``

Attribute names match keys case-insensitively. Values compare according to
the type of the stored property value (numbers numerically, booleans as
``true``/``false``, collections if any element matches, everything else as
strings).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping


class InvalidFilterSyntax(ValueError):
    """A filter expression could not be compiled."""

    def __init__(self, message: str, expression: str, position: int):
        super().__init__(f"{message} at position {position}: {expression!r}")
        self.expression = expression
        self.position = position


class Operator(Enum):
    EQUAL = "="
    APPROX = "~="
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="


_VALUE_SPECIALS = "\\()*"


class Filter:
    """A compiled filter."""

    def match(self, properties: Mapping[str, Any]) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class AndFilter(Filter):
    children: tuple[Filter, ...]

    def match(self, properties: Mapping[str, Any]) -> bool:
        return all(child.match(properties) for child in self.children)

    def __str__(self) -> str:
        return "(&" + "".join(str(c) for c in self.children) + ")"


@dataclass(frozen=True)
class OrFilter(Filter):
    children: tuple[Filter, ...]

    def match(self, properties: Mapping[str, Any]) -> bool:
        return any(child.match(properties) for child in self.children)

    def __str__(self) -> str:
        return "(|" + "".join(str(c) for c in self.children) + ")"


@dataclass(frozen=True)
class NotFilter(Filter):
    child: Filter

    def match(self, properties: Mapping[str, Any]) -> bool:
        return not self.child.match(properties)

    def __str__(self) -> str:
        return f"(!{self.child})"


@dataclass(frozen=True)
class PresenceFilter(Filter):
    attribute: str

    def match(self, properties: Mapping[str, Any]) -> bool:
        found, _ = _lookup(properties, self.attribute)
        return found

    def __str__(self) -> str:
        return f"({self.attribute}=*)"


@dataclass(frozen=True)
class ComparisonFilter(Filter):
    attribute: str
    operator: Operator
    value: str

    def match(self, properties: Mapping[str, Any]) -> bool:
        found, actual = _lookup(properties, self.attribute)
        return found and _compare(self.operator, actual, self.value)

    def __str__(self) -> str:
        return f"({self.attribute}{self.operator.value}{_escape_value(self.value)})"


@dataclass(frozen=True)
class SubstringFilter(Filter):
    attribute: str
    parts: tuple[str, ...]  # Literal text between the '*' wildcards

    def match(self, properties: Mapping[str, Any]) -> bool:
        found, actual = _lookup(properties, self.attribute)
        if not found:
            return False
        pattern = re.compile(".*".join(re.escape(p) for p in self.parts), re.DOTALL)
        return any(pattern.fullmatch(str(v)) for v in _values(actual))

    def __str__(self) -> str:
        return f"({self.attribute}=" + "*".join(_escape_value(p) for p in self.parts) + ")"


def compile_filter(expression: str) -> Filter:
    """Compile an LDAP-style filter expression.

    Raises:
        InvalidFilterSyntax: if the expression is malformed.
    """
    if not isinstance(expression, str):
        raise InvalidFilterSyntax("Filter must be a string", repr(expression), 0)
    return _Parser(expression).parse()


class _Parser:
    def __init__(self, expression: str):
        self.text = expression
        self.pos = 0

    def parse(self) -> Filter:
        self._skip_whitespace()
        if self.pos >= len(self.text):
            self._error("Empty filter")
        result = self._filter()
        self._skip_whitespace()
        if self.pos != len(self.text):
            self._error("Unexpected trailing characters")
        return result

    def _filter(self) -> Filter:
        self._skip_whitespace()
        self._expect("(")
        self._skip_whitespace()

        c = self._peek()
        if c == "&":
            self.pos += 1
            result: Filter = AndFilter(self._filter_list())
        elif c == "|":
            self.pos += 1
            result = OrFilter(self._filter_list())
        elif c == "!":
            self.pos += 1
            result = NotFilter(self._filter())
        else:
            result = self._item()

        self._skip_whitespace()
        self._expect(")")
        return result

    def _filter_list(self) -> tuple[Filter, ...]:
        children = []
        self._skip_whitespace()
        while self._peek() == "(":
            children.append(self._filter())
            self._skip_whitespace()
        if not children:
            self._error("Missing operand")
        return tuple(children)

    def _item(self) -> Filter:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in "=<>~()":
            self.pos += 1
        attribute = self.text[start : self.pos].strip()
        if not attribute:
            self._error("Missing attribute name")

        c = self._peek()
        if c in ("<", ">", "~"):
            if self.text[self.pos + 1 : self.pos + 2] != "=":
                self._error(f"Invalid operator '{c}'")
            operator = Operator(c + "=")
            self.pos += 2
            parts = self._value()
            if len(parts) > 1:
                self._error("Wildcard not allowed with this operator")
            return ComparisonFilter(attribute, operator, parts[0])

        if c == "=":
            self.pos += 1
            parts = self._value()
            if parts == ["", ""]:
                return PresenceFilter(attribute)
            if len(parts) == 1:
                return ComparisonFilter(attribute, Operator.EQUAL, parts[0])
            return SubstringFilter(attribute, tuple(parts))

        self._error("Missing operator")

    def _value(self) -> list[str]:
        """Read a value up to the closing paren, split on unescaped '*'."""
        parts: list[str] = []
        buf: list[str] = []
        while True:
            c = self._peek()
            if c is None:
                self._error("Unterminated filter")
            if c == ")":
                break
            if c == "(":
                self._error("Unescaped '(' in value")
            if c == "*":
                parts.append("".join(buf))
                buf = []
            elif c == "\\":
                self.pos += 1
                escaped = self._peek()
                if escaped is None:
                    self._error("Dangling escape")
                buf.append(escaped)
            else:
                buf.append(c)
            self.pos += 1
        parts.append("".join(buf))
        return parts

    def _peek(self) -> str | None:
        return self.text[self.pos] if self.pos < len(self.text) else None

    def _expect(self, char: str) -> None:
        if self._peek() != char:
            self._error(f"Expected '{char}'")
        self.pos += 1

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _error(self, message: str):
        raise InvalidFilterSyntax(message, self.text, self.pos)


def _lookup(properties: Mapping[str, Any], attribute: str) -> tuple[bool, Any]:
    if attribute in properties:
        return True, properties[attribute]
    lowered = attribute.lower()
    for key, value in properties.items():
        if isinstance(key, str) and key.lower() == lowered:
            return True, value
    return False, None


def _values(actual: Any) -> list[Any]:
    if isinstance(actual, (list, tuple, set, frozenset)):
        return list(actual)
    return [actual]


def _compare(operator: Operator, actual: Any, operand: str) -> bool:
    if actual is None:
        return False
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_compare(operator, item, operand) for item in actual)

    if isinstance(actual, bool):
        if operator in (Operator.EQUAL, Operator.APPROX):
            return str(actual).lower() == operand.strip().lower()
        return False

    if isinstance(actual, (int, float, Decimal)):
        try:
            target = Decimal(operand.strip())
        except InvalidOperation:
            return False
        number = Decimal(str(actual)) if isinstance(actual, float) else Decimal(actual)
        if number.is_nan() or target.is_nan():
            return False
        if operator is Operator.GREATER_EQUAL:
            return number >= target
        if operator is Operator.LESS_EQUAL:
            return number <= target
        return number == target

    text = str(actual)
    if operator is Operator.EQUAL:
        return text == operand
    if operator is Operator.APPROX:
        return _normalize(text) == _normalize(operand)
    if operator is Operator.GREATER_EQUAL:
        return text >= operand
    return text <= operand


def _normalize(text: str) -> str:
    return "".join(text.split()).lower()


def _escape_value(value: str) -> str:
    return "".join("\\" + c if c in _VALUE_SPECIALS else c for c in value)
