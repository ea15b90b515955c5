"""Queues of outgoing payloads waiting to be sent."""

from __future__ import annotations

from collections import deque

from .payload_queue import PayloadData


class PendingQueueError(RuntimeError):
    """Base class of pending queue errors."""


class UnexpectedChunkPoppedError(PendingQueueError):
    """The chunk at the head of the queue is not the one asked for."""


class UnexpectedQueueStateError(PendingQueueError):
    """A chunk was popped that should have followed a selected queue."""


class PendingBaseQueue:
    """A plain FIFO of payloads."""

    def __init__(self) -> None:
        self._queue: deque[PayloadData] = deque()

    def push(self, chunk: PayloadData) -> None:
        self._queue.append(chunk)

    def pop(self) -> PayloadData | None:
        """Remove and return the front chunk, or None when empty."""
        return self._queue.popleft() if self._queue else None

    def get(self, index: int) -> PayloadData | None:
        """Return the chunk at ``index``, or None when out of range."""
        if 0 <= index < len(self._queue):
            return self._queue[index]
        return None

    def __len__(self) -> int:
        return len(self._queue)


class PendingQueue:
    """Unordered and ordered pending payloads.

    Unordered chunks go first; once a fragmented message has started, its
    queue stays selected until its ending fragment has been popped.
    """

    def __init__(self) -> None:
        self._unordered = PendingBaseQueue()
        self._ordered = PendingBaseQueue()
        self._n_bytes = 0
        self._selected = False
        self._unordered_is_selected = False

    def push(self, chunk: PayloadData) -> None:
        (self._unordered if chunk.unordered else self._ordered).push(chunk)
        self._n_bytes += len(chunk.user_data)

    def peek(self) -> PayloadData | None:
        """Return the chunk that should be sent next, or None."""
        if self._selected:
            queue = self._unordered if self._unordered_is_selected else self._ordered
            return queue.get(0)
        chunk = self._unordered.get(0)
        return chunk if chunk is not None else self._ordered.get(0)

    @staticmethod
    def _pop_expected(queue: PendingBaseQueue, chunk: PayloadData, unordered: bool) -> PayloadData:
        popped = queue.pop()
        if popped is not chunk:
            kind = "unordered" if unordered else "ordered"
            raise UnexpectedChunkPoppedError(f"unexpected chunk popped ({kind})")
        return popped

    def pop(self, chunk: PayloadData) -> None:
        """Remove ``chunk``, which must be the one ``peek`` returned."""
        if self._selected:
            unordered = self._unordered_is_selected
            queue = self._unordered if unordered else self._ordered
            popped = self._pop_expected(queue, chunk, unordered)
            if popped.ending_fragment:
                self._selected = False
        else:
            if not chunk.beginning_fragment:
                raise UnexpectedQueueStateError(
                    "unexpected q state (should've been selected)"
                )
            unordered = chunk.unordered
            queue = self._unordered if unordered else self._ordered
            popped = self._pop_expected(queue, chunk, unordered)
            if not popped.ending_fragment:
                self._selected = True
                self._unordered_is_selected = unordered
        self._n_bytes -= len(chunk.user_data)

    def num_bytes(self) -> int:
        """Return the number of user-data bytes waiting."""
        return self._n_bytes

    def __len__(self) -> int:
        return len(self._unordered) + len(self._ordered)