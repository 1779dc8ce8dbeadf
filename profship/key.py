"""Profile keys: an application name plus a set of tags."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .flameql import (
    RESERVED_TAG_KEY_NAME,
    Query,
    is_tag_key_reserved,
    validate_app_name,
    validate_tag_key,
)
from .sortedmap import SortedMap

_INTEGER = re.compile(r"[+-]?[0-9]+")


class _State(enum.Enum):
    NAME = enum.auto()
    TAG_KEY = enum.auto()
    TAG_VALUE = enum.auto()
    DONE = enum.auto()


@dataclass
class Key:
    """A set of labels; the application name is held under ``__name__``."""

    labels: dict[str, str] = field(default_factory=dict)

    def segment_key(self) -> str:
        return self.normalized()

    def tree_key(self, depth: int, t: datetime) -> str:
        return tree_key(self.normalized(), depth, math.floor(t.timestamp()))

    def dict_key(self) -> str:
        return self.labels.get(RESERVED_TAG_KEY_NAME, "")

    def app_name(self) -> str:
        return self.labels.get(RESERVED_TAG_KEY_NAME, "")

    def normalized(self) -> str:
        """Return ``name{k1=v1,k2=v2}`` with tags in sorted key order."""
        name = ""
        tags = SortedMap()
        for k, v in self.labels.items():
            if k == RESERVED_TAG_KEY_NAME:
                name = v
            else:
                tags.put(k, v)
        body = ",".join(f"{k}={tags.get(k)}" for k in tags.keys())
        return f"{name}{{{body}}}"

    def add(self, key: str, value: str) -> None:
        """Set a label; an empty value removes it."""
        if value == "":
            self.labels.pop(key, None)
        else:
            self.labels[key] = value

    def clone(self) -> "Key":
        return Key(dict(self.labels))

    def match(self, query: Query) -> bool:
        """Report whether the key satisfies the query."""
        if self.app_name() != query.app_name:
            return False
        for matcher in query.matchers:
            value = self.labels.get(matcher.key)
            if value is None:
                if not matcher.is_negation():
                    return False
                continue
            if not matcher.match(value):
                return False
        return True


def parse_key(name: str) -> Key:
    """Parse ``app.name{foo=bar,baz=qux}`` into a Key."""
    key = Key()
    state = _State.NAME
    tag_key = ""
    value = ""
    for ch in name + "{":
        if state is _State.NAME:
            if ch == "{":
                state = _State.TAG_KEY
                app_name = value.strip()
                validate_app_name(app_name)
                key.labels[RESERVED_TAG_KEY_NAME] = app_name
            else:
                value += ch
        elif state is _State.TAG_KEY:
            if ch == "}":
                state = _State.DONE
            elif ch == "=":
                state = _State.TAG_VALUE
                value = ""
            else:
                tag_key += ch
        elif state is _State.TAG_VALUE:
            if ch in ",}":
                state = _State.TAG_KEY
                stripped = tag_key.strip()
                if not is_tag_key_reserved(stripped):
                    validate_tag_key(stripped)
                key.labels[stripped] = value.strip()
                tag_key = ""
            else:
                value += ch
    return key


def tree_key(key: str, depth: int, unix_time: int) -> str:
    return f"{key}:{depth}:{unix_time}"


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    return int(text)


def parse_tree_key(key: str) -> tuple[datetime, int]:
    """Return the time and depth level encoded in a tree key."""
    parts = key.split(":")
    if len(parts) < 3:
        raise ValueError("invalid key")
    level = _parse_int(parts[1])
    seconds = _parse_int(parts[2])
    return datetime.fromtimestamp(seconds, tz=timezone.utc), level


def from_tree_to_dict_key(key: str) -> str:
    """Return the app name part of a tree key such as ``foo{}:0:1234567890``."""
    return key[: key.index("{")]