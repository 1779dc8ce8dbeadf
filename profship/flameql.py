"""Query language for selecting profiles by application name and tags."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Optional

INVALID_QUERY_SYNTAX = "invalid query syntax"
INVALID_APP_NAME = "invalid application name"
INVALID_MATCHERS_SYNTAX = "invalid tag matchers syntax"
INVALID_TAG_KEY = "invalid tag key"
INVALID_TAG_VALUE_SYNTAX = "invalid tag value syntax"

APP_NAME_IS_REQUIRED = "application name is required"
TAG_KEY_IS_REQUIRED = "tag key is required"
TAG_KEY_RESERVED = "tag key is reserved"

MATCH_OPERATOR_IS_REQUIRED = "match operator is required"
UNKNOWN_OP = "unknown tag match operator"

RESERVED_TAG_KEY_NAME = "__name__"

_RESERVED_TAG_KEYS = (RESERVED_TAG_KEY_NAME,)


class FlameQLError(ValueError):
    """A query, key or name that violates the query language rules.

    ``kind`` is one of the module-level error messages (or the text of a
    regular-expression error); ``expr`` is the offending expression, if any.
    """

    def __init__(self, kind: str, expr: Optional[str] = None) -> None:
        self.kind = kind
        self.expr = expr
        super().__init__(kind if expr is None else f"{kind}: {expr}")


def _invalid_rune_error(kind: str, text: str, ch: str) -> FlameQLError:
    return FlameQLError(kind, f"{text}: character is not allowed: {ch!r}")


class Op(enum.IntEnum):
    """Tag match operators, ordered by priority; negations come first."""

    NOT_EQUAL = 1  # !=
    NOT_EQUAL_REGEX = 2  # !~
    EQUAL = 3  # =
    EQUAL_REGEX = 4  # =~

    def is_negation(self) -> bool:
        """Report whether the operator assumes negation."""
        return self < Op.EQUAL


@dataclass
class TagMatcher:
    """A single ``key<op>"value"`` condition."""

    key: str
    value: str
    op: Op
    regex: Optional[re.Pattern] = None

    def is_negation(self) -> bool:
        return self.op.is_negation()

    def match(self, value: str) -> bool:
        """Report whether a tag value satisfies this matcher."""
        if self.op is Op.EQUAL:
            return self.value == value
        if self.op is Op.NOT_EQUAL:
            return self.value != value
        if self.op is Op.EQUAL_REGEX:
            return self.regex.search(value) is not None
        if self.op is Op.NOT_EQUAL_REGEX:
            return self.regex.search(value) is None
        raise ValueError("invalid match operator")


@dataclass
class Query:
    """A parsed query: an application name and tag matchers."""

    app_name: str
    matchers: list[TagMatcher] = field(default_factory=list)
    raw: str = ""

    def __str__(self) -> str:
        return self.raw


def is_tag_key_rune_allowed(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9") or ch == "_"


def is_app_name_rune_allowed(ch: str) -> bool:
    return ch in "-." or is_tag_key_rune_allowed(ch)


def is_tag_key_reserved(key: str) -> bool:
    return key in _RESERVED_TAG_KEYS


def validate_tag_key(key: str) -> None:
    """Raise FlameQLError if ``key`` is not a valid, unreserved tag key."""
    if not key:
        raise FlameQLError(TAG_KEY_IS_REQUIRED)
    for ch in key:
        if not is_tag_key_rune_allowed(ch):
            raise _invalid_rune_error(INVALID_TAG_KEY, key, ch)
    if is_tag_key_reserved(key):
        raise FlameQLError(TAG_KEY_RESERVED, key)


def validate_app_name(name: str) -> None:
    """Raise FlameQLError if ``name`` is not a valid application name."""
    if not name:
        raise FlameQLError(APP_NAME_IS_REQUIRED)
    for ch in name:
        if not is_app_name_rune_allowed(ch):
            raise _invalid_rune_error(INVALID_APP_NAME, name, ch)


def parse_query(s: str) -> Query:
    """Parse a string of ``app_name{tag_matchers}`` form."""
    s = s.strip()
    for offset, ch in enumerate(s):
        if ch == "{":
            if offset == 0:
                raise FlameQLError(APP_NAME_IS_REQUIRED)
            if s[-1] != "}":
                raise FlameQLError(INVALID_QUERY_SYNTAX, "expected } at the end")
            matchers = parse_matchers(s[offset + 1 : -1])
            return Query(app_name=s[:offset], matchers=matchers, raw=s)
        if not is_app_name_rune_allowed(ch):
            raise FlameQLError(INVALID_APP_NAME, s[: offset + 1])
    if not s:
        raise FlameQLError(APP_NAME_IS_REQUIRED)
    return Query(app_name=s, matchers=[], raw=s)


def parse_matchers(s: str) -> list[TagMatcher]:
    """Parse a comma-separated list of tag matchers, sorted by priority."""
    matchers = [parse_matcher(part.strip()) for part in _split(s) if part]
    if not matchers and s:
        raise FlameQLError(INVALID_MATCHERS_SYNTAX, s)
    matchers.sort(key=lambda m: m.op)
    return matchers


def parse_matcher(s: str) -> TagMatcher:
    """Parse a string of ``key<op>"value"`` form."""
    op: Optional[Op] = None
    offset = 0
    for offset, ch in enumerate(s):
        remaining = len(s) - (offset + 1)
        if ch == "=":
            if remaining <= 2:
                raise FlameQLError(INVALID_TAG_VALUE_SYNTAX, s)
            nxt = s[offset + 1]
            if nxt == '"':
                op = Op.EQUAL
            elif nxt == "~":
                if remaining <= 3:
                    raise FlameQLError(INVALID_TAG_VALUE_SYNTAX, s)
                op = Op.EQUAL_REGEX
            else:
                if s[offset + 2] != '"':
                    raise FlameQLError(INVALID_TAG_VALUE_SYNTAX, s)
                raise FlameQLError(UNKNOWN_OP, s)
            break
        if ch == "!":
            if remaining <= 3:
                raise FlameQLError(INVALID_TAG_VALUE_SYNTAX, s)
            nxt = s[offset + 1]
            if nxt == "=":
                op = Op.NOT_EQUAL
            elif nxt == "~":
                op = Op.NOT_EQUAL_REGEX
            else:
                raise FlameQLError(UNKNOWN_OP, s)
            break
        if not is_tag_key_rune_allowed(ch):
            raise _invalid_rune_error(INVALID_TAG_KEY, s, ch)

    key = s[:offset]
    if is_tag_key_reserved(key):
        raise FlameQLError(TAG_KEY_RESERVED, key)

    if op is None:
        raise FlameQLError(MATCH_OPERATOR_IS_REQUIRED, s)
    raw_value = s[offset + 1 :] if op is Op.EQUAL else s[offset + 2 :]
    value = _unquote(raw_value)
    if value is None:
        raise FlameQLError(INVALID_TAG_VALUE_SYNTAX, raw_value)

    regex = None
    if op in (Op.EQUAL_REGEX, Op.NOT_EQUAL_REGEX):
        try:
            regex = re.compile(value)
        except re.error as err:
            raise FlameQLError(str(err), value) from err

    return TagMatcher(key=key, value=value, op=op, regex=regex)


def _unquote(s: str) -> Optional[str]:
    if not s or s[0] != '"' or s[-1] != '"':
        return None
    return s[1:-1]


def _split(s: str) -> list[str]:
    parts: list[str] = []
    start = 0
    quoted = False
    for i, ch in enumerate(s):
        if ch == "," and not quoted:
            parts.append(s[start:i])
            start = i + 1
        elif ch == '"':
            if quoted and i > 0 and s[i - 1] != "\\":
                quoted = False
                continue
            quoted = True
    parts.append(s[start:])
    return parts