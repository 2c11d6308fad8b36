"""Time-ordered 128-bit identifiers.

Identifiers are opaque 16-byte strings laid out like a ULID: a 48-bit
big-endian millisecond timestamp followed by an 80-bit tail. Byte-wise
comparison therefore orders identifiers by creation time.

The translator never generates identifiers itself; it calls an injected
``IdSource``. ``MonotonicIdSource`` is the process default and
``SequentialIdSource`` produces reproducible identifiers for tests and
golden files.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable

ID = bytes
IdSource = Callable[[], ID]

ID_LENGTH = 16
_TAIL_BITS = 80
_TAIL_MAX = (1 << _TAIL_BITS) - 1
_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_CROCKFORD_INDEX = {ch: i for i, ch in enumerate(_CROCKFORD)}


def _pack(timestamp_ms: int, tail: int) -> ID:
    return ((timestamp_ms << _TAIL_BITS) | tail).to_bytes(ID_LENGTH, "big")


class MonotonicIdSource:
    """Generate ULID-style identifiers, strictly increasing within a process.

    When two identifiers are requested within the same millisecond the random
    tail of the previous one is incremented, so ordering never depends on
    randomness. Safe to share between threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_tail = 0

    def __call__(self) -> ID:
        with self._lock:
            now_ms = time.time_ns() // 1_000_000
            if now_ms <= self._last_ms:
                # Clock did not advance (or went backwards): stay on the last
                # timestamp and bump the tail.
                now_ms = self._last_ms
                tail = self._last_tail + 1
                if tail > _TAIL_MAX:
                    now_ms += 1
                    tail = int.from_bytes(os.urandom(10), "big") >> 1
            else:
                # Keep headroom below the maximum so increments do not overflow.
                tail = int.from_bytes(os.urandom(10), "big") >> 1
            self._last_ms = now_ms
            self._last_tail = tail
            return _pack(now_ms, tail)


class SequentialIdSource:
    """Deterministic identifier source: fixed timestamp, counting tail.

    Two sources built with the same arguments yield identical sequences.
    """

    def __init__(self, timestamp_ms: int = 0, start: int = 1) -> None:
        if timestamp_ms < 0 or start < 0:
            raise ValueError("timestamp_ms and start must be non-negative")
        self._timestamp_ms = timestamp_ms
        self._next = start

    def __call__(self) -> ID:
        value = _pack(self._timestamp_ms, self._next)
        self._next += 1
        return value


_default_source: MonotonicIdSource | None = None


def new_id() -> ID:
    """Return a fresh identifier from the process-wide monotonic source."""
    global _default_source
    if _default_source is None:
        _default_source = MonotonicIdSource()
    return _default_source()


def id_timestamp_ms(value: ID) -> int:
    """Extract the millisecond timestamp encoded in an identifier."""
    return int.from_bytes(value, "big") >> _TAIL_BITS


def format_id(value: ID) -> str:
    """Render an identifier as a 26-character Crockford base32 string."""
    if len(value) != ID_LENGTH:
        raise ValueError(f"identifier must be {ID_LENGTH} bytes, got {len(value)}")
    number = int.from_bytes(value, "big")
    chars = []
    for _ in range(26):
        chars.append(_CROCKFORD[number & 0x1F])
        number >>= 5
    return "".join(reversed(chars))


def parse_id(text: str) -> ID:
    """Parse an identifier from Crockford base32 (26 chars) or hex (32 chars).

    Raises:
        ValueError: If the text is neither form.
    """
    text = text.strip()
    if len(text) == 32:
        try:
            return bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid hex identifier: {text!r}") from exc
    if len(text) == 26:
        number = 0
        for ch in text.upper():
            if ch not in _CROCKFORD_INDEX:
                raise ValueError(f"invalid base32 identifier: {text!r}")
            number = (number << 5) | _CROCKFORD_INDEX[ch]
        if number >> (ID_LENGTH * 8):
            raise ValueError(f"identifier out of range: {text!r}")
        return number.to_bytes(ID_LENGTH, "big")
    raise ValueError(f"identifier must be 26 base32 or 32 hex characters, got {len(text)}")
