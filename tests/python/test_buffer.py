"""Tests for the outbound buffer."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../python'))

from duplex_call.websocket.buffer import DROP_NEWEST, DROP_OLDEST, OutboundBuffer


class TestOutboundBuffer:
    """Test OutboundBuffer ordering and overflow."""

    def test_fifo_order(self):
        buffer = OutboundBuffer(maxsize=10)
        for i in range(3):
            buffer.append(f"p{i}")

        assert list(buffer) == ["p0", "p1", "p2"]
        assert buffer.peek() == "p0"
        assert buffer.popleft() == "p0"
        assert len(buffer) == 2

    def test_empty_is_falsy(self):
        buffer = OutboundBuffer()
        assert not buffer
        assert buffer.peek() is None
        buffer.append(b"x")
        assert buffer

    def test_requeue_goes_first(self):
        buffer = OutboundBuffer(maxsize=3)
        buffer.append("a")
        buffer.append("b")
        head = buffer.popleft()

        assert buffer.requeue(head) is None
        assert list(buffer) == ["a", "b"]
        assert buffer.dropped_count == 0

    def test_requeue_when_full(self):
        """Test requeue respects maxsize under both policies."""
        oldest = OutboundBuffer(maxsize=2, overflow_policy=DROP_OLDEST)
        oldest.append("a")
        head = oldest.popleft()
        oldest.append("b")
        oldest.append("c")
        assert oldest.requeue(head) == "a"
        assert list(oldest) == ["b", "c"]

        newest = OutboundBuffer(maxsize=2, overflow_policy=DROP_NEWEST)
        newest.append("a")
        head = newest.popleft()
        newest.append("b")
        newest.append("c")
        assert newest.requeue(head) == "c"
        assert list(newest) == ["a", "b"]
        assert newest.dropped_count == 1

    def test_drop_oldest(self):
        """Test overflow evicts the oldest payload."""
        buffer = OutboundBuffer(maxsize=2, overflow_policy=DROP_OLDEST)
        assert buffer.append("a") is None
        assert buffer.append("b") is None
        assert buffer.append("c") == "a"

        assert list(buffer) == ["b", "c"]
        assert buffer.dropped_count == 1

    def test_drop_newest(self):
        """Test overflow refuses the incoming payload."""
        buffer = OutboundBuffer(maxsize=2, overflow_policy=DROP_NEWEST)
        buffer.append("a")
        buffer.append("b")
        assert buffer.append("c") == "c"

        assert list(buffer) == ["a", "b"]
        assert buffer.dropped_count == 1

    def test_unbounded(self):
        buffer = OutboundBuffer(maxsize=0)
        for i in range(1000):
            buffer.append(i.to_bytes(2, "big"))
        assert len(buffer) == 1000
        assert not buffer.is_full

    def test_is_full(self):
        buffer = OutboundBuffer(maxsize=1)
        assert not buffer.is_full
        buffer.append("a")
        assert buffer.is_full

    def test_clear(self):
        buffer = OutboundBuffer(maxsize=5)
        buffer.append("a")
        buffer.append("b")
        assert buffer.clear() == 2
        assert len(buffer) == 0

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            OutboundBuffer(overflow_policy="drop_random")

    def test_iteration_is_a_snapshot(self):
        """Test iterating does not break when the buffer changes."""
        buffer = OutboundBuffer(maxsize=5)
        buffer.append("a")
        buffer.append("b")
        seen = []
        for item in buffer:
            seen.append(item)
            buffer.popleft()
        assert seen == ["a", "b"]
