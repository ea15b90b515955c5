"""Reassembly of fragmented user messages received on one stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cmp_to_key

from .payload_queue import PayloadData
from .util import sna16_gt, sna16_lt, sna16_lte, sna32_gt, sna32_lt

_MASK32 = 0xFFFFFFFF
_MASK16 = 0xFFFF


class TryAgainError(Exception):
    """No complete message is ready to be read yet."""

    def __init__(self, message: str = "try again") -> None:
        super().__init__(message)


class ShortBufferError(BufferError):
    """The message is larger than the space offered to read it into."""

    def __init__(self, message: str = "short buffer") -> None:
        super().__init__(message)


def _tsn_cmp(a: PayloadData, b: PayloadData) -> int:
    if sna32_lt(a.tsn, b.tsn):
        return -1
    if sna32_lt(b.tsn, a.tsn):
        return 1
    return 0


def _ssn_cmp(a: ChunkSet, b: ChunkSet) -> int:
    if sna16_lt(a.ssn, b.ssn):
        return -1
    if sna16_lt(b.ssn, a.ssn):
        return 1
    return 0


def _sort_by_tsn(chunks: list[PayloadData]) -> None:
    chunks.sort(key=cmp_to_key(_tsn_cmp))


@dataclass
class ChunkSet:
    """Fragments that share one stream sequence number."""

    ssn: int = 0
    ppi: int = 0
    chunks: list[PayloadData] = field(default_factory=list)

    def push(self, chunk: PayloadData) -> bool:
        """Add ``chunk`` unless its TSN is already held; return completeness."""
        if any(c.tsn == chunk.tsn for c in self.chunks):
            return False
        self.chunks.append(chunk)
        _sort_by_tsn(self.chunks)
        return self.is_complete()

    def is_complete(self) -> bool:
        """Tell whether the set runs from a first to a last fragment without gaps."""
        if not self.chunks:
            return False
        if not self.chunks[0].beginning_fragment:
            return False
        if not self.chunks[-1].ending_fragment:
            return False
        # Fragments of one message must carry strictly sequential TSNs.
        return all(
            cur.tsn == (prev.tsn + 1) & _MASK32
            for prev, cur in zip(self.chunks, self.chunks[1:])
        )


class ReassemblyQueue:
    """Collects DATA chunks of one stream and hands out whole messages."""

    def __init__(self, si: int) -> None:
        self.si = si
        # Stream sequence numbers start from 0 (RFC 4960 section 6.5).
        self.next_ssn = 0
        self.ordered: list[ChunkSet] = []
        self.unordered: list[ChunkSet] = []
        self.unordered_chunks: list[PayloadData] = []
        self._n_bytes = 0

    def push(self, chunk: PayloadData) -> bool:
        """Accept a chunk; return True when it completes a message."""
        if chunk.stream_identifier != self.si:
            return False

        if chunk.unordered:
            self.unordered_chunks.append(chunk)
            self._n_bytes += len(chunk.user_data)
            _sort_by_tsn(self.unordered_chunks)
            cset = self._find_complete_unordered_chunk_set()
            if cset is not None:
                self.unordered.append(cset)
                return True
            return False

        if sna16_lt(chunk.stream_sequence_number, self.next_ssn):
            return False

        cset = next(
            (s for s in self.ordered if s.ssn == chunk.stream_sequence_number), None
        )
        if cset is None:
            cset = ChunkSet(chunk.stream_sequence_number, chunk.payload_type)
            self.ordered.append(cset)
            self.ordered.sort(key=cmp_to_key(_ssn_cmp))

        self._n_bytes += len(chunk.user_data)
        return cset.push(chunk)

    def _find_complete_unordered_chunk_set(self) -> ChunkSet | None:
        start = -1
        count = 0
        last_tsn = 0
        found = False

        for index, chunk in enumerate(self.unordered_chunks):
            if chunk.beginning_fragment:
                start = index
                count = 1
                last_tsn = chunk.tsn
                if chunk.ending_fragment:
                    found = True
                    break
                continue

            if start < 0:
                continue

            if chunk.tsn != (last_tsn + 1) & _MASK32:
                start = -1
                continue

            last_tsn = chunk.tsn
            count += 1
            if chunk.ending_fragment:
                found = True
                break

        if not found:
            return None

        chunks = self.unordered_chunks[start : start + count]
        del self.unordered_chunks[start : start + count]
        return ChunkSet(0, chunks[0].payload_type, chunks)

    def is_readable(self) -> bool:
        """Tell whether ``read`` would return a message now."""
        if self.unordered:
            return True
        if self.ordered:
            cset = self.ordered[0]
            if cset.is_complete() and sna16_lte(cset.ssn, self.next_ssn):
                return True
        return False

    def read(self, size: int) -> tuple[bytes, int]:
        """Return the next whole message and its payload protocol identifier.

        Raises ``TryAgainError`` when nothing is ready and ``ShortBufferError``
        when the message is longer than ``size``; in the latter case the
        message is discarded.
        """
        if self.unordered:
            cset = self.unordered.pop(0)
        elif self.ordered:
            cset = self.ordered[0]
            if not cset.is_complete():
                raise TryAgainError()
            if sna16_gt(cset.ssn, self.next_ssn):
                raise TryAgainError()
            self.ordered.pop(0)
            if cset.ssn == self.next_ssn:
                self.next_ssn = (self.next_ssn + 1) & _MASK16
        else:
            raise TryAgainError()

        for chunk in cset.chunks:
            self._subtract_num_bytes(len(chunk.user_data))
        data = b"".join(bytes(c.user_data) for c in cset.chunks)
        if len(data) > size:
            raise ShortBufferError()
        return data, cset.ppi

    def forward_tsn_for_ordered(self, last_ssn: int) -> None:
        """Drop incomplete sets up to ``last_ssn`` and advance the expected SSN."""
        keep = []
        for cset in self.ordered:
            if sna16_lte(cset.ssn, last_ssn) and not cset.is_complete():
                for chunk in cset.chunks:
                    self._subtract_num_bytes(len(chunk.user_data))
                continue
            keep.append(cset)
        self.ordered = keep

        if sna16_lte(self.next_ssn, last_ssn):
            self.next_ssn = (last_ssn + 1) & _MASK16

    def forward_tsn_for_unordered(self, new_cumulative_tsn: int) -> None:
        """Drop pending unordered fragments with TSN up to ``new_cumulative_tsn``."""
        cut = 0
        for chunk in self.unordered_chunks:
            if sna32_gt(chunk.tsn, new_cumulative_tsn):
                break
            cut += 1
        for chunk in self.unordered_chunks[:cut]:
            self._subtract_num_bytes(len(chunk.user_data))
        del self.unordered_chunks[:cut]

    def _subtract_num_bytes(self, n_bytes: int) -> None:
        self._n_bytes = max(self._n_bytes - n_bytes, 0)

    def num_bytes(self) -> int:
        """Return the number of user-data bytes held."""
        return self._n_bytes