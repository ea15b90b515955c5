import threading
import time

import pytest

from sctpkit.payload_queue import PayloadData
from sctpkit.reassembly_queue import ShortBufferError
from sctpkit.stream import (
    Association,
    OutboundPacketTooLargeError,
    ReadDeadlineExceededError,
    ReliabilityType,
    Stream,
    StreamClosedError,
    StreamState,
)

PPI_BINARY = 53
PPI_DCEP = 50


def make_stream(sid=0, **assoc_kwargs):
    assoc = Association(**assoc_kwargs)
    return assoc, Stream(assoc, sid)


def data_chunk(tsn, ssn, payload, *, sid=0, unordered=False, begin=True, end=True):
    return PayloadData(
        tsn=tsn,
        stream_identifier=sid,
        stream_sequence_number=ssn,
        user_data=payload,
        unordered=unordered,
        beginning_fragment=begin,
        ending_fragment=end,
        payload_type=PPI_BINARY,
    )


def test_buffered_amount():
    _, s = make_stream()
    assert s.buffered_amount() == 0
    assert s.buffered_amount_low_threshold() == 0

    s.write(bytes(8192))
    s.set_buffered_amount_low_threshold(2048)
    assert s.buffered_amount() == 8192
    assert s.buffered_amount_low_threshold() == 2048


def test_on_buffered_amount_low():
    _, s = make_stream()
    s.write(bytes(4096))
    s.set_buffered_amount_low_threshold(2048)
    calls = []
    s.on_buffered_amount_low(lambda: calls.append(1))

    s.on_buffer_released(-32)
    assert s.buffered_amount() == 4096
    assert len(calls) == 0

    s.on_buffer_released(1024)
    assert s.buffered_amount() == 3072
    assert len(calls) == 0

    s.on_buffer_released(1024)
    assert s.buffered_amount() == 2048
    assert len(calls) == 1

    s.on_buffer_released(1024)
    assert s.buffered_amount() == 1024
    assert len(calls) == 1

    s.on_buffer_released(1024)
    assert s.buffered_amount() == 0
    assert len(calls) == 1

    s.on_buffer_released(1024)
    assert s.buffered_amount() == 0
    assert len(calls) == 1


def test_packetize_fragments_message():
    _, s = make_stream(sid=7, max_payload_size=4)
    chunks = s.packetize(b"0123456789", PPI_BINARY)
    assert [c.user_data for c in chunks] == [b"0123", b"4567", b"89"]
    assert [c.beginning_fragment for c in chunks] == [True, False, False]
    assert [c.ending_fragment for c in chunks] == [False, False, True]
    assert all(c.stream_identifier == 7 for c in chunks)
    assert all(c.stream_sequence_number == 0 for c in chunks)
    assert chunks[0].head is None
    assert chunks[1].head is chunks[0]
    assert chunks[2].head is chunks[0]
    assert s.buffered_amount() == 10


def test_ordered_write_advances_ssn():
    _, s = make_stream()
    first = s.packetize(b"a", PPI_BINARY)
    second = s.packetize(b"b", PPI_BINARY)
    assert first[0].stream_sequence_number == 0
    assert second[0].stream_sequence_number == 1


def test_unordered_does_not_advance_ssn_but_dcep_is_ordered():
    _, s = make_stream()
    s.set_reliability_params(True, ReliabilityType.REXMIT, 3)
    a = s.packetize(b"a", PPI_BINARY)
    b = s.packetize(b"b", PPI_BINARY)
    assert a[0].unordered is True
    assert a[0].stream_sequence_number == 0
    assert b[0].stream_sequence_number == 0
    dcep = s.packetize(b"c", PPI_DCEP)
    assert dcep[0].unordered is False
    after = s.packetize(b"d", PPI_BINARY)
    assert after[0].stream_sequence_number == 1


def test_write_uses_default_payload_type():
    assoc, s = make_stream()
    s.set_default_payload_type(PPI_BINARY)
    assert s.write(b"hello") == 5
    assert len(assoc.outbound) == 1
    assert assoc.outbound[0].payload_type == PPI_BINARY
    assert assoc.outbound[0].user_data == b"hello"


def test_write_too_large():
    _, s = make_stream(max_message_size=8)
    with pytest.raises(OutboundPacketTooLargeError):
        s.write(bytes(9))


def test_write_send_failure_reports_closed():
    class FailingAssociation(Association):
        def send_payload_data(self, chunks):
            raise ConnectionError("gone")

    s = Stream(FailingAssociation(), 1)
    with pytest.raises(StreamClosedError):
        s.write(b"x")


def test_close_then_write_fails_and_reset_requested():
    assoc, s = make_stream(sid=777)
    assert s.state() == StreamState.OPEN
    s.close()
    assert s.state() == StreamState.CLOSING
    assert assoc.reset_requests == [777]
    with pytest.raises(StreamClosedError):
        s.write(b"\x01")
    s.close()
    assert assoc.reset_requests == [777]
    s.on_inbound_stream_reset()
    assert s.state() == StreamState.CLOSED


def test_close_after_inbound_reset_goes_straight_to_closed():
    assoc, s = make_stream(sid=3)
    s.on_inbound_stream_reset()
    s.close()
    assert s.state() == StreamState.CLOSED
    assert assoc.reset_requests == [3]


def test_stream_state_str():
    _, s = make_stream()
    names = [str(s.state())]
    s.close()
    names.append(str(s.state()))
    s.on_inbound_stream_reset()
    names.append(str(s.state()))
    assert names == ["open", "closing", "closed"]


def test_handle_data_and_read():
    _, s = make_stream()
    s.handle_data(data_chunk(1, 0, b"ABC", end=False))
    s.handle_data(data_chunk(2, 0, b"DEFG", begin=False))
    assert s.num_bytes_in_reassembly_queue() == 7
    data, ppi = s.read_sctp(16)
    assert data == b"ABCDEFG"
    assert ppi == PPI_BINARY
    assert s.num_bytes_in_reassembly_queue() == 0


def test_read_short_buffer():
    _, s = make_stream()
    s.handle_data(data_chunk(1, 0, b"0123456789"))
    with pytest.raises(ShortBufferError):
        s.read(8)


def test_chunk_for_other_stream_ignored():
    _, s = make_stream(sid=123)
    s.handle_data(data_chunk(1, 0, b"IN", sid=124))
    assert s.num_bytes_in_reassembly_queue() == 0


def test_read_after_inbound_reset_raises_eof():
    _, s = make_stream()
    s.on_inbound_stream_reset()
    with pytest.raises(EOFError):
        s.read(16)


def test_blocked_read_woken_by_data():
    _, s = make_stream()
    result = []
    reader = threading.Thread(target=lambda: result.append(s.read(16)))
    reader.start()
    time.sleep(0.05)
    s.handle_data(data_chunk(1, 0, b"HELLO"))
    reader.join(timeout=2)
    assert not reader.is_alive()
    assert result == [b"HELLO"]
    assert s.num_bytes_in_reassembly_queue() == 0


def test_blocked_read_woken_by_reset():
    _, s = make_stream()
    errors = []

    def reader():
        try:
            s.read(16)
        except EOFError as exc:
            errors.append(exc)

    thread = threading.Thread(target=reader)
    thread.start()
    time.sleep(0.05)
    s.on_inbound_stream_reset()
    thread.join(timeout=2)
    assert not thread.is_alive()
    assert len(errors) == 1
    with pytest.raises(EOFError):
        s.read(16)


def test_read_deadline_exceeded_and_cleared():
    _, s = make_stream()
    s.set_read_deadline(time.monotonic() + 0.05)
    started = time.monotonic()
    with pytest.raises(ReadDeadlineExceededError):
        s.read(16)
    assert time.monotonic() - started >= 0.04

    s.set_read_deadline(None)
    s.handle_data(data_chunk(1, 0, b"OK"))
    assert s.read(16) == b"OK"


def test_read_deadline_not_overriding_eof():
    _, s = make_stream()
    s.on_inbound_stream_reset()
    s.set_read_deadline(time.monotonic() + 10)
    with pytest.raises(EOFError):
        s.read(16)


def test_forward_tsn_for_ordered_drops_incomplete():
    _, s = make_stream()
    s.handle_data(data_chunk(10, 5, b"123"))
    s.handle_data(data_chunk(11, 6, b"ABC", end=False))
    assert s.num_bytes_in_reassembly_queue() == 6
    s.handle_forward_tsn_for_ordered(6)
    assert s.num_bytes_in_reassembly_queue() == 3
    assert s.read(16) == b"123"


def test_forward_tsn_for_unordered_only_when_unordered():
    _, s = make_stream()
    s.handle_data(data_chunk(11, 0, b"ABC", unordered=True, end=False))
    s.handle_data(data_chunk(14, 0, b"SOS", unordered=True, end=False))
    assert s.num_bytes_in_reassembly_queue() == 6

    s.handle_forward_tsn_for_unordered(13)
    assert s.num_bytes_in_reassembly_queue() == 6

    s.set_reliability_params(True, ReliabilityType.RELIABLE, 0)
    s.handle_forward_tsn_for_unordered(13)
    assert s.num_bytes_in_reassembly_queue() == 3


def test_stream_identifier():
    _, s = make_stream(sid=42)
    assert s.stream_identifier() == 42