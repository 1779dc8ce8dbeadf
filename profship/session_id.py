"""Per-process session identifiers attached to uploaded profiles."""

from __future__ import annotations

import os
import random
import socket
import threading
from dataclasses import dataclass
from typing import Optional

SESSION_ID_LABEL_NAME = "__session_id__"

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = (1 << 64) - 1


@dataclass(frozen=True)
class SessionID:
    """A 64-bit session identifier."""

    value: int

    def __str__(self) -> str:
        """Return the little-endian bytes of the value as hex."""
        return (self.value & _MASK64).to_bytes(8, "little").hex()


def _to_int64(x: int) -> int:
    x &= _MASK64
    return x - (1 << 64) if x >= 1 << 63 else x


def _fnv1a64(data: bytes) -> int:
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return h


def session_id_host_seed() -> Optional[int]:
    """Return a seed hashed from the host name, or None if it is unavailable."""
    try:
        name = socket.gethostname()
    except OSError:
        return None
    return _to_int64(_fnv1a64(name.encode()))


def session_id_rand_seed() -> int:
    """Return a random signed 64-bit seed from the OS entropy source."""
    return int.from_bytes(os.urandom(8), "little", signed=True)


class SessionIDGenerator:
    """Thread-safe source of session IDs seeded from the host name."""

    def __init__(self, seed: Optional[int] = None) -> None:
        if seed is None:
            seed = session_id_host_seed()
        if seed is None:
            seed = session_id_rand_seed()
        self._lock = threading.Lock()
        self._rng = random.Random(seed)

    def new_session_id(self) -> SessionID:
        with self._lock:
            return SessionID(self._rng.getrandbits(64))


_global_generator = SessionIDGenerator()


def new_session_id() -> SessionID:
    return _global_generator.new_session_id()