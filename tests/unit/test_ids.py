"""Tests for identifier generation and formatting."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from harflow.ids import (
    ID_LENGTH,
    MonotonicIdSource,
    SequentialIdSource,
    format_id,
    id_timestamp_ms,
    new_id,
    parse_id,
)


class TestMonotonicIdSource:
    """Tests for the default identifier source."""

    def test_length(self) -> None:
        assert len(MonotonicIdSource()()) == ID_LENGTH

    def test_strictly_increasing_within_same_millisecond(self) -> None:
        source = MonotonicIdSource()
        with patch("harflow.ids.time.time_ns", return_value=1_700_000_000_000_000_000):
            ids = [source() for _ in range(100)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 100
        assert {id_timestamp_ms(i) for i in ids} == {1_700_000_000_000}

    def test_clock_going_backwards_stays_ordered(self) -> None:
        source = MonotonicIdSource()
        with patch("harflow.ids.time.time_ns", return_value=2_000_000_000_000_000):
            first = source()
        with patch("harflow.ids.time.time_ns", return_value=1_000_000_000_000_000):
            second = source()
        assert second > first

    def test_thread_safe(self) -> None:
        source = MonotonicIdSource()
        results: list[bytes] = []
        lock = threading.Lock()

        def worker() -> None:
            local = [source() for _ in range(200)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(results)) == 800

    def test_new_id_uses_process_source(self) -> None:
        a, b = new_id(), new_id()
        assert a < b


class TestSequentialIdSource:
    """Tests for the deterministic identifier source."""

    def test_reproducible(self) -> None:
        a = SequentialIdSource(timestamp_ms=5)
        b = SequentialIdSource(timestamp_ms=5)
        assert [a() for _ in range(3)] == [b() for _ in range(3)]

    def test_counting_tail(self) -> None:
        source = SequentialIdSource(timestamp_ms=0, start=1)
        assert source() == (1).to_bytes(16, "big")
        assert source() == (2).to_bytes(16, "big")

    def test_timestamp_embedded(self) -> None:
        assert id_timestamp_ms(SequentialIdSource(timestamp_ms=1234)()) == 1234

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            SequentialIdSource(timestamp_ms=-1)


class TestFormatting:
    """Tests for Crockford base32 and hex forms."""

    def test_format_length_and_alphabet(self) -> None:
        text = format_id(new_id())
        assert len(text) == 26
        assert set(text) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")

    def test_zero(self) -> None:
        assert format_id(bytes(16)) == "0" * 26

    def test_parse_base32(self) -> None:
        value = new_id()
        assert parse_id(format_id(value)) == value

    def test_parse_lowercase_base32(self) -> None:
        value = new_id()
        assert parse_id(format_id(value).lower()) == value

    def test_parse_hex(self) -> None:
        value = new_id()
        assert parse_id(value.hex()) == value

    def test_format_preserves_order(self) -> None:
        source = SequentialIdSource(timestamp_ms=99)
        ids = [source() for _ in range(40)]
        assert [format_id(i) for i in ids] == sorted(format_id(i) for i in ids)

    @pytest.mark.parametrize("text", ["", "short", "I" * 26, "z" * 32, "8" + "Z" * 25])
    def test_parse_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_id(text)

    def test_format_wrong_length(self) -> None:
        with pytest.raises(ValueError, match="16 bytes"):
            format_id(b"\x00")
