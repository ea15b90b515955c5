"""SCTP streams: message framing for sending and reassembly for receiving."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Sequence

from .payload_queue import PayloadData
from .reassembly_queue import ReassemblyQueue, TryAgainError

_log = logging.getLogger(__name__)

_MASK16 = 0xFFFF
# Data Channel Establishment Protocol messages must be sent ordered and reliably.
_PPI_WEBRTC_DCEP = 50

DEFAULT_MAX_MESSAGE_SIZE = 65536
DEFAULT_MAX_PAYLOAD_SIZE = 1200


class ReliabilityType(enum.IntEnum):
    """How a stream retransmits lost data."""

    RELIABLE = 0
    REXMIT = 1
    TIMED = 2


class StreamState(enum.IntEnum):
    """Lifecycle state of a stream."""

    OPEN = 0
    CLOSING = 1
    CLOSED = 2

    def __str__(self) -> str:
        return self.name.lower()


class StreamError(Exception):
    """Base class of stream errors."""


class StreamClosedError(StreamError):
    """The stream no longer accepts data."""

    def __init__(self, message: str = "stream closed") -> None:
        super().__init__(message)


class OutboundPacketTooLargeError(StreamError, ValueError):
    """A message is larger than the association allows."""


class ReadDeadlineExceededError(StreamError, TimeoutError):
    """The read deadline passed before a message arrived."""

    def __init__(self, message: str = "read deadline exceeded") -> None:
        super().__init__(message)


class Association:
    """Minimal association endpoint that queues outgoing data.

    Sent chunks collect in ``outbound`` and reset requests in
    ``reset_requests`` for a transport to drain. Subclasses may override the
    methods to hand data to a real transport.
    """

    def __init__(
        self,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
    ) -> None:
        if max_payload_size <= 0:
            raise ValueError("max_payload_size must be positive")
        self._max_message_size = max_message_size
        self._max_payload_size = max_payload_size
        self._lock = threading.Lock()
        self.outbound: list[PayloadData] = []
        self.reset_requests: list[int] = []

    def max_message_size(self) -> int:
        """Return the largest message a stream may write."""
        return self._max_message_size

    def max_payload_size(self) -> int:
        """Return the largest user-data size of one DATA chunk."""
        return self._max_payload_size

    def send_payload_data(self, chunks: Sequence[PayloadData]) -> None:
        """Queue DATA chunks for sending."""
        with self._lock:
            self.outbound.extend(chunks)

    def send_reset_request(self, stream_identifier: int) -> None:
        """Queue a request to reset an outgoing stream."""
        with self._lock:
            self.reset_requests.append(stream_identifier)


class Stream:
    """One SCTP stream of an association."""

    def __init__(
        self,
        association: Association,
        stream_identifier: int,
        default_payload_type: int = 0,
        name: str = "",
    ) -> None:
        self._association = association
        self._stream_identifier = stream_identifier
        self._default_payload_type = default_payload_type
        self._name = name or f"stream-{stream_identifier}"
        self._lock = threading.Lock()
        self._read_ready = threading.Condition(self._lock)
        self._reassembly_queue = ReassemblyQueue(stream_identifier)
        self._sequence_number = 0
        self._read_err: type[Exception] | None = None
        self._read_timer: threading.Timer | None = None
        self._unordered = False
        self._reliability_type = ReliabilityType.RELIABLE
        self._reliability_value = 0
        self._buffered_amount = 0
        self._buffered_amount_low = 0
        self._on_buffered_amount_low: Callable[[], None] | None = None
        self._state = StreamState.OPEN

    def stream_identifier(self) -> int:
        """Return the identifier of this stream."""
        with self._lock:
            return self._stream_identifier

    def set_default_payload_type(self, payload_type: int) -> None:
        """Set the payload protocol identifier used by ``write``."""
        with self._lock:
            self._default_payload_type = payload_type

    def set_reliability_params(self, unordered: bool, rel_type: int, rel_value: int) -> None:
        """Set ordering and partial-reliability parameters."""
        with self._lock:
            _log.debug(
                "[%s] reliability params: ordered=%s type=%d value=%d",
                self._name, not unordered, rel_type, rel_value,
            )
            self._unordered = unordered
            self._reliability_type = ReliabilityType(rel_type)
            self._reliability_value = rel_value

    def read(self, size: int) -> bytes:
        """Read one message of at most ``size`` bytes, dropping its identifier."""
        data, _ = self.read_sctp(size)
        return data

    def read_sctp(self, size: int) -> tuple[bytes, int]:
        """Read one message and its payload protocol identifier.

        Blocks until a message is ready. Raises ``EOFError`` once the peer has
        reset the stream, ``ReadDeadlineExceededError`` when the read deadline
        passes and ``ShortBufferError`` when the message exceeds ``size``.
        """
        with self._read_ready:
            try:
                while True:
                    try:
                        return self._reassembly_queue.read(size)
                    except TryAgainError:
                        pass
                    if self._read_err is not None:
                        raise self._read_err()
                    self._read_ready.wait()
            finally:
                if self._read_timer is not None and self._read_err is not None:
                    self._read_timer.cancel()
                    self._read_timer = None

    def set_read_deadline(self, deadline: float | None) -> None:
        """Set an absolute ``time.monotonic()`` deadline for reads; None clears it."""
        with self._lock:
            if self._read_timer is not None:
                self._read_timer.cancel()
                self._read_timer = None

            if self._read_err is not None:
                if self._read_err is not ReadDeadlineExceededError:
                    return
                self._read_err = None

            if deadline is not None:
                delay = max(deadline - time.monotonic(), 0.0)
                timer = threading.Timer(delay, self._on_read_deadline)
                timer.daemon = True
                self._read_timer = timer
                timer.start()

    def _on_read_deadline(self) -> None:
        with self._read_ready:
            if self._read_timer is not threading.current_thread():
                return
            if self._read_err is None:
                self._read_err = ReadDeadlineExceededError
            self._read_timer = None
            self._read_ready.notify()

    def handle_data(self, chunk: PayloadData) -> None:
        """Take an incoming DATA chunk and wake a reader if a message is ready."""
        with self._read_ready:
            if self._reassembly_queue.push(chunk):
                readable = self._reassembly_queue.is_readable()
                _log.debug("[%s] reassemblyQueue readable=%s", self._name, readable)
                if readable:
                    self._read_ready.notify()

    def handle_forward_tsn_for_ordered(self, ssn: int) -> None:
        """Drop ordered fragments abandoned by the peer up to ``ssn``."""
        with self._read_ready:
            if self._unordered:
                return
            self._reassembly_queue.forward_tsn_for_ordered(ssn)
            if self._reassembly_queue.is_readable():
                self._read_ready.notify()

    def handle_forward_tsn_for_unordered(self, new_cumulative_tsn: int) -> None:
        """Drop unordered fragments abandoned by the peer up to the new TSN."""
        with self._read_ready:
            if not self._unordered:
                return
            self._reassembly_queue.forward_tsn_for_unordered(new_cumulative_tsn)
            if self._reassembly_queue.is_readable():
                self._read_ready.notify()

    def write(self, data: bytes) -> int:
        """Write a message with the default payload protocol identifier."""
        with self._lock:
            ppi = self._default_payload_type
        return self.write_sctp(data, ppi)

    def write_sctp(self, data: bytes, ppi: int) -> int:
        """Write a message with the given identifier; return its length."""
        max_size = self._association.max_message_size()
        if len(data) > max_size:
            raise OutboundPacketTooLargeError(
                f"outbound packet larger than maximum message size: {max_size}"
            )
        if self.state() != StreamState.OPEN:
            raise StreamClosedError()

        chunks = self.packetize(data, ppi)
        try:
            self._association.send_payload_data(chunks)
        except Exception as exc:
            raise StreamClosedError() from exc
        return len(data)

    def packetize(self, data: bytes, ppi: int) -> list[PayloadData]:
        """Split a message into DATA chunks and account for it as buffered."""
        with self._lock:
            unordered = ppi != _PPI_WEBRTC_DCEP and self._unordered
            max_payload = self._association.max_payload_size()
            raw = bytes(data)

            chunks: list[PayloadData] = []
            head: PayloadData | None = None
            for offset in range(0, len(raw), max_payload):
                piece = raw[offset : offset + max_payload]
                chunk = PayloadData(
                    stream_identifier=self._stream_identifier,
                    user_data=piece,
                    unordered=unordered,
                    beginning_fragment=offset == 0,
                    ending_fragment=offset + len(piece) == len(raw),
                    immediate_sack=False,
                    payload_type=ppi,
                    stream_sequence_number=self._sequence_number,
                    head=head,
                )
                if head is None:
                    head = chunk
                chunks.append(chunk)

            # RFC 4960 6.6: unordered chunks do not advance the SSN.
            if not unordered:
                self._sequence_number = (self._sequence_number + 1) & _MASK16

            self._buffered_amount += len(raw)
            _log.debug("[%s] bufferedAmount = %d", self._name, self._buffered_amount)
            return chunks

    def close(self) -> None:
        """Close the write direction and ask the association to reset it."""
        with self._lock:
            _log.debug("[%s] close: state=%s", self._name, self._state)
            reset_outbound = self._state == StreamState.OPEN
            if reset_outbound:
                self._state = (
                    StreamState.CLOSING if self._read_err is None else StreamState.CLOSED
                )
                _log.debug("[%s] state change: open => %s", self._name, self._state)
            sid = self._stream_identifier
        if reset_outbound:
            self._association.send_reset_request(sid)

    def buffered_amount(self) -> int:
        """Return the number of bytes queued to be sent."""
        with self._lock:
            return self._buffered_amount

    def buffered_amount_low_threshold(self) -> int:
        """Return the threshold below which buffered data counts as low."""
        with self._lock:
            return self._buffered_amount_low

    def set_buffered_amount_low_threshold(self, threshold: int) -> None:
        """Set the low-buffer threshold."""
        with self._lock:
            self._buffered_amount_low = threshold

    def on_buffered_amount_low(self, callback: Callable[[], None] | None) -> None:
        """Set the callback run when buffered data drops to the threshold."""
        with self._lock:
            self._on_buffered_amount_low = callback

    def on_buffer_released(self, n_bytes_released: int) -> None:
        """Account for outgoing data the peer has acknowledged."""
        if n_bytes_released <= 0:
            return

        with self._lock:
            from_amount = self._buffered_amount
            if self._buffered_amount < n_bytes_released:
                self._buffered_amount = 0
                _log.error(
                    "[%s] released buffer size %d should be <= %d",
                    self._name, n_bytes_released, from_amount,
                )
            else:
                self._buffered_amount -= n_bytes_released
            _log.debug("[%s] bufferedAmount = %d", self._name, self._buffered_amount)

            callback = self._on_buffered_amount_low
            fire = (
                callback is not None
                and from_amount > self._buffered_amount_low
                and self._buffered_amount <= self._buffered_amount_low
            )

        if fire:
            callback()

    def num_bytes_in_reassembly_queue(self) -> int:
        """Return the number of received bytes not yet read."""
        with self._lock:
            return self._reassembly_queue.num_bytes()

    def on_inbound_stream_reset(self) -> None:
        """Handle the peer's reset of its outgoing stream: readers get EOF."""
        with self._read_ready:
            _log.debug("[%s] onInboundStreamReset: state=%s", self._name, self._state)
            self._read_err = EOFError
            self._read_ready.notify_all()
            if self._state == StreamState.CLOSING:
                _log.debug("[%s] state change: closing => closed", self._name)
                self._state = StreamState.CLOSED

    def state(self) -> StreamState:
        """Return the current stream state."""
        with self._lock:
            return self._state