"""
Outbound Buffer.

Ordered queue of payloads that could not be sent yet. Insertion order is
send order. Capacity is bounded; on overflow either the oldest payload is
evicted (drop_oldest) or the incoming one is refused (drop_newest).
"""

import logging
from collections import deque
from typing import Deque, Iterator, Optional

from .protocol import Payload

logger = logging.getLogger("duplex.buffer")

DROP_OLDEST = "drop_oldest"
DROP_NEWEST = "drop_newest"


class OutboundBuffer:
    """Bounded FIFO with a selectable overflow policy."""

    def __init__(self, maxsize: int = 300, overflow_policy: str = DROP_OLDEST):
        """
        Args:
            maxsize: Maximum buffered payloads (0 or less means unbounded)
            overflow_policy: "drop_oldest" or "drop_newest"
        """
        if overflow_policy not in (DROP_OLDEST, DROP_NEWEST):
            raise ValueError(f"Unknown overflow policy: {overflow_policy}")
        self.maxsize = maxsize
        self.overflow_policy = overflow_policy
        self._items: Deque[Payload] = deque()
        self._dropped_count = 0

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[Payload]:
        return iter(list(self._items))

    @property
    def dropped_count(self) -> int:
        """Number of payloads discarded due to overflow."""
        return self._dropped_count

    @property
    def is_full(self) -> bool:
        return self.maxsize > 0 and len(self._items) >= self.maxsize

    def append(self, payload: Payload) -> Optional[Payload]:
        """
        Queue a payload behind everything already buffered.

        Returns:
            The payload discarded to make room (the oldest one, or `payload`
            itself under drop_newest), or None if nothing was dropped.
        """
        dropped: Optional[Payload] = None
        if self.is_full:
            if self.overflow_policy == DROP_NEWEST:
                self._dropped_count += 1
                return payload
            dropped = self._items.popleft()
            self._dropped_count += 1
        self._items.append(payload)
        return dropped

    def peek(self) -> Optional[Payload]:
        """Oldest payload without removing it."""
        return self._items[0] if self._items else None

    def popleft(self) -> Payload:
        """
        Remove and return the oldest payload.

        Raises:
            IndexError: if empty
        """
        return self._items.popleft()

    def requeue(self, payload: Payload) -> Optional[Payload]:
        """
        Put a payload taken with popleft() back at the front.

        It is older than everything still buffered, so on overflow it is
        the one dropped under drop_oldest; under drop_newest the newest
        buffered payload makes room instead.

        Returns:
            The payload discarded to make room, or None.
        """
        if not self.is_full:
            self._items.appendleft(payload)
            return None
        self._dropped_count += 1
        if self.overflow_policy == DROP_OLDEST:
            return payload
        dropped = self._items.pop()
        self._items.appendleft(payload)
        return dropped

    def clear(self) -> int:
        """Discard everything; returns how many payloads were discarded."""
        count = len(self._items)
        self._items.clear()
        if count:
            logger.debug(f"Discarded {count} buffered payloads")
        return count
