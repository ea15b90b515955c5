# sctpkit

Building blocks for an SCTP (RFC 4960 / RFC 6525) stack, in plain Python with
no third-party dependencies.

## What is inside

- `sctpkit.util` – `get_padding`, `pad_byte` and RFC 1982 serial number
  arithmetic for 32- and 16-bit values (`sna32_lt`, `sna32_lte`, `sna32_gt`,
  `sna32_gte`, `sna32_eq` and the `sna16_*` counterparts).
- `sctpkit.paramtype` – the `ParamType` enumeration, `parse_param_type` and
  `param_type_name`.
- `sctpkit.params` – codecs for parameters: `ParamHeader`,
  `ParamReconfigResponse` (with `ReconfigResult`), `ParamRequestedHmacAlgorithm`
  (with `HmacAlgorithm`), `ParamStateCookie` (and `new_random_state_cookie`,
  which makes a 32-byte random cookie) and `ParamSupportedExtensions`.
- `sctpkit.payload_queue` – `PayloadData`, the DATA chunk record, and
  `PayloadQueue`, a TSN-keyed queue with duplicate tracking, gap-ack blocks
  (`GapAckBlock`) and acknowledgement/retransmission marking.
- `sctpkit.pending_queue` – `PendingQueue`, the outbound queue that prefers
  unordered data and keeps the fragments of one message together.
- `sctpkit.rtx_timer` – `RtoManager` (RTO estimation), `calculate_next_timeout`
  (exponential back-off capped at 60 s) and `RtxTimer`, a background-thread
  retransmission timer reporting to an `RtxTimerObserver`.
- `sctpkit.reassembly_queue` – `ReassemblyQueue` and `ChunkSet`, which rebuild
  user messages from ordered and unordered fragments.
- `sctpkit.stream` – `Stream`, one SCTP stream, on top of `Association`.

## Installation

```
pip install .
```

## Examples

Parsing and re-encoding a parameter:

```python
from sctpkit.params import ParamReconfigResponse, ReconfigResult

raw = bytes([0x00, 0x10, 0x00, 0x0C, 0, 0, 0, 1, 0, 0, 0, 1])
param = ParamReconfigResponse()
param.unmarshal(raw)
assert param.result is ReconfigResult.SUCCESS_PERFORMED
assert param.marshal() == raw
```

Serial number arithmetic wraps around:

```python
from sctpkit.util import sna32_lt

assert sna32_lt(0xFFFFFFFF, 0)
```

Reassembling a fragmented message:

```python
from sctpkit.payload_queue import PayloadData
from sctpkit.reassembly_queue import ReassemblyQueue

rq = ReassemblyQueue(0)
rq.push(PayloadData(tsn=1, beginning_fragment=True, user_data=b"ABC"))
rq.push(PayloadData(tsn=2, ending_fragment=True, user_data=b"DEFG"))
data, ppi = rq.read(16)
assert data == b"ABCDEFG"
```

Writing to and reading from a stream:

```python
from sctpkit.payload_queue import PayloadData
from sctpkit.stream import Association, Stream, StreamState

assoc = Association(max_payload_size=4)
stream = Stream(assoc, 1)

assert stream.write(b"hello world") == 11
assert len(assoc.outbound) == 3          # split into 4-byte DATA chunks
assert stream.buffered_amount() == 11
stream.on_buffer_released(11)            # the peer acknowledged the data

stream.handle_data(PayloadData(stream_identifier=1, tsn=1, beginning_fragment=True,
                               ending_fragment=True, user_data=b"hi", payload_type=51))
assert stream.read_sctp(100) == (b"hi", 51)

stream.close()
assert assoc.reset_requests == [1]
assert stream.state() is StreamState.CLOSING
```

`Stream.read` and `Stream.read_sctp` block until a whole message is ready.
They raise `EOFError` once `on_inbound_stream_reset` has been called,
`ReadDeadlineExceededError` after a deadline set with `set_read_deadline`
(an absolute `time.monotonic()` value) has passed, and
`sctpkit.reassembly_queue.ShortBufferError` when the message is longer than the
size asked for (the message is then discarded). Writing to a stream that is no
longer open raises `StreamClosedError`; a message larger than the association's
maximum message size raises `OutboundPacketTooLargeError`.

Other errors are raised as exceptions too: a truncated parameter raises
`ParamHeaderTooShortError`, and `ReassemblyQueue.read` raises `TryAgainError`
when no complete message is ready.

## What this package does not do

There is no association state machine, no packet or chunk codec beyond the
parameters listed above, no handshake, congestion control or socket I/O.
`Association` only records what a stream hands it: sent DATA chunks collect in
`outbound` and stream reset requests in `reset_requests`. A transport that
sends them on the wire is left to the user, for example by subclassing
`Association` and overriding `send_payload_data` and `send_reset_request`.

## Running the tests

```
pip install .[test]
pytest
```