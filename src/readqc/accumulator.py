# Copyright (C) 2023 Leiden University Medical Center
# This file is part of readqc
#
# readqc is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# readqc is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with readqc.  If not, see <https://www.gnu.org/licenses/
"""
Streaming accumulation of read statistics.

A :class:`SequenceAccumulator` is fed one :class:`Read` at a time and keeps
only counters whose size is bounded by the read length cutoff, the k-mer
size and the duplication limit. Once the stream ends :meth:`finalize`
returns an immutable :class:`Snapshot` that is shared by all report modules.

An accumulator has a single writer. Reads from different files go into
different accumulators.
"""

import array
import dataclasses
import types
import typing
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .counters import (DEFAULT_DUPLICATION_LIMIT, DEFAULT_POSITION_CUTOFF,
                       DuplicationMap, PositionCounts, zeroed_array)
from .exceptions import AccumulatorStateError

A = 0
C = 1
T = 2
G = 3
N = 4
NUMBER_OF_NUCS = 4
NUCLEOTIDE_BITS = 2
NUCLEOTIDES = "ACTG"

NUMBER_OF_QUALITY_VALUES = 128
QUALITY_BITS = 7
PHRED_MAX = NUMBER_OF_QUALITY_VALUES - 1

NUMBER_OF_GC_BINS = 101

DEFAULT_KMER_SIZE = 7
MIN_KMER_SIZE = 2
MAX_KMER_SIZE = 8
DEFAULT_KMER_MAX_POSITION = 500

# Sequences longer than this are truncated before duplication counting.
DUPLICATION_MAX_UNTRUNCATED_LENGTH = 75
DUPLICATION_TRUNCATED_LENGTH = 50

NUCLEOTIDE_TO_INDEX: Dict[str, int] = {"A": A, "C": C, "T": T, "G": G}


class Read(typing.NamedTuple):
    sequence: str
    qualities: Sequence[int]
    tile: Optional[int] = None


def kmer_to_sequence(kmer: int, kmer_size: int) -> str:
    bases = []
    for _ in range(kmer_size):
        bases.append(NUCLEOTIDES[kmer & 0b11])
        kmer >>= NUCLEOTIDE_BITS
    return "".join(reversed(bases))


def duplication_key(sequence: str) -> str:
    if len(sequence) > DUPLICATION_MAX_UNTRUNCATED_LENGTH:
        return sequence[:DUPLICATION_TRUNCATED_LENGTH]
    return sequence


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """
    Read-only view of everything a :class:`SequenceAccumulator` counted.

    All positional accessors take a single 0-based position; whether the
    counters for that position live in the dense or in the overflow store
    is hidden.
    """
    number_of_reads: int
    total_bases: int
    total_gc: int
    min_read_length: int
    max_read_length: int
    kmer_size: int
    kmer_max_position: int
    count_at_limit: int
    gc_histogram: Tuple[int, ...]
    mean_quality_histogram: Tuple[int, ...]
    reads_covering: Tuple[int, ...]
    sequence_counts: Mapping[str, int]
    tile_quality: Mapping[int, Tuple[Tuple[int, ...], Tuple[int, ...]]]
    _base_counts: PositionCounts = dataclasses.field(repr=False)
    _n_counts: PositionCounts = dataclasses.field(repr=False)
    _quality_counts: PositionCounts = dataclasses.field(repr=False)
    _read_lengths: PositionCounts = dataclasses.field(repr=False)
    _kmer_counts: PositionCounts = dataclasses.field(repr=False)
    _kmer_totals: PositionCounts = dataclasses.field(repr=False)

    def base_count(self, position: int, nucleotide: int) -> int:
        if nucleotide == N:
            return self._n_counts.get(position, 0)
        return self._base_counts.get(position, nucleotide)

    def n_count(self, position: int) -> int:
        return self._n_counts.get(position, 0)

    def quality_histogram(self, position: int) -> array.ArrayType:
        return self._quality_counts.row(position)

    def read_length_count(self, length: int) -> int:
        return self._read_lengths.get(length, 0)

    def reads_at_position(self, position: int) -> int:
        """Number of reads that have a base at ``position``."""
        if position < len(self.reads_covering):
            return self.reads_covering[position]
        return 0

    def kmer_count(self, position: int, kmer: int) -> int:
        return self._kmer_counts.get(position, kmer)

    def kmer_row(self, position: int) -> array.ArrayType:
        """Counts of every k-mer ending at ``position``, indexed by k-mer."""
        return self._kmer_counts.row(position)

    def kmer_total(self, position: int) -> int:
        return self._kmer_totals.get(position, 0)


class SequenceAccumulator:
    number_of_reads: int
    total_bases: int
    total_gc: int
    min_length: int
    max_length: int
    kmer_size: int
    kmer_max_position: int
    finalized: bool

    def __init__(self,
                 kmer_size: int = DEFAULT_KMER_SIZE,
                 position_cutoff: int = DEFAULT_POSITION_CUTOFF,
                 kmer_max_position: int = DEFAULT_KMER_MAX_POSITION,
                 duplication_limit: int = DEFAULT_DUPLICATION_LIMIT):
        if not MIN_KMER_SIZE <= kmer_size <= MAX_KMER_SIZE:
            raise ValueError(
                f"kmer_size must be between {MIN_KMER_SIZE} and "
                f"{MAX_KMER_SIZE}, got {kmer_size}")
        if kmer_max_position < 0:
            raise ValueError(f"kmer_max_position must be positive, "
                             f"got {kmer_max_position}")
        self.kmer_size = kmer_size
        self.kmer_max_position = kmer_max_position
        self.number_of_reads = 0
        self.total_bases = 0
        self.total_gc = 0
        self.min_length = 0
        self.max_length = 0
        self.finalized = False
        self._base_counts = PositionCounts(NUCLEOTIDE_BITS, position_cutoff)
        self._n_counts = PositionCounts(0, position_cutoff)
        self._quality_counts = PositionCounts(QUALITY_BITS, position_cutoff)
        self._read_lengths = PositionCounts(0, position_cutoff)
        # K-mers are never counted beyond kmer_max_position so the overflow
        # store is never used for them.
        self._kmer_counts = PositionCounts(2 * kmer_size, kmer_max_position)
        self._kmer_totals = PositionCounts(0, kmer_max_position)
        self._gc_histogram = zeroed_array(NUMBER_OF_GC_BINS)
        self._mean_quality_histogram = zeroed_array(NUMBER_OF_QUALITY_VALUES)
        self._tile_quality: Dict[int, Tuple[array.ArrayType,
                                            array.ArrayType]] = {}
        self._duplication = DuplicationMap(duplication_limit)

    def observe(self, read: Read) -> None:
        if self.finalized:
            raise AccumulatorStateError(
                "Cannot observe reads after finalize() was called.")
        sequence = read.sequence.upper()
        qualities = read.qualities
        length = len(sequence)
        number_of_qualities = len(qualities)

        if self.number_of_reads == 0 or length < self.min_length:
            self.min_length = length
        if length > self.max_length:
            self.max_length = length
        self.number_of_reads += 1
        self.total_bases += length
        self._read_lengths.add(length, 0)

        tile_sums: Optional[array.ArrayType] = None
        tile_counts: Optional[array.ArrayType] = None
        if read.tile is not None:
            tile_sums, tile_counts = self._tile_arrays(read.tile, length)

        kmer_size = self.kmer_size
        kmer_mask = (1 << (2 * kmer_size)) - 1
        kmer_max_position = self.kmer_max_position
        base_counts = self._base_counts
        n_counts = self._n_counts
        quality_counts = self._quality_counts
        kmer_counts = self._kmer_counts
        kmer_totals = self._kmer_totals

        gc = 0
        quality_sum = 0
        kmer = 0
        kmer_length = 0
        for position, base in enumerate(sequence):
            if position < number_of_qualities:
                quality = min(max(qualities[position], 0), PHRED_MAX)
            else:
                quality = 0
            quality_sum += quality
            quality_counts.add(position, quality)
            if tile_sums is not None:
                tile_sums[position] += quality
                tile_counts[position] += 1  # type: ignore
            nucleotide = NUCLEOTIDE_TO_INDEX.get(base, N)
            if nucleotide == N:
                n_counts.add(position, 0)
                kmer = 0
                kmer_length = 0
                continue
            base_counts.add(position, nucleotide)
            if nucleotide == G or nucleotide == C:
                gc += 1
            if position < kmer_max_position:
                kmer = ((kmer << NUCLEOTIDE_BITS) | nucleotide) & kmer_mask
                kmer_length += 1
                if kmer_length >= kmer_size:
                    kmer_counts.add(position, kmer)
                    kmer_totals.add(position, 0)

        self.total_gc += gc
        if length > 0:
            self._gc_histogram[round(100 * gc / length)] += 1
            self._mean_quality_histogram[quality_sum // length] += 1
        self._duplication.add(duplication_key(sequence))

    def observe_many(self, reads: Iterable[Read]) -> None:
        for read in reads:
            self.observe(read)

    def _tile_arrays(self, tile: int, length: int
                     ) -> Tuple[array.ArrayType, array.ArrayType]:
        arrays = self._tile_quality.get(tile)
        if arrays is None:
            arrays = (array.array("Q"), array.array("Q"))
            self._tile_quality[tile] = arrays
        sums, counts = arrays
        missing = length - len(sums)
        if missing > 0:
            sums.frombytes(bytes(8 * missing))
            counts.frombytes(bytes(8 * missing))
        return sums, counts

    def _reads_covering(self) -> Tuple[int, ...]:
        covering: List[int] = [0] * self.max_length
        running_total = 0
        for length in range(self.max_length, 0, -1):
            running_total += self._read_lengths.get(length, 0)
            covering[length - 1] = running_total
        return tuple(covering)

    def finalize(self) -> Snapshot:
        if self.finalized:
            raise AccumulatorStateError("finalize() was already called.")
        self.finalized = True
        counters = (self._base_counts, self._n_counts, self._quality_counts,
                    self._read_lengths, self._kmer_counts, self._kmer_totals,
                    self._duplication)
        for counter in counters:
            counter.freeze()
        tile_quality = types.MappingProxyType({
            tile: (tuple(sums), tuple(counts))
            for tile, (sums, counts) in sorted(self._tile_quality.items())
        })
        return Snapshot(
            number_of_reads=self.number_of_reads,
            total_bases=self.total_bases,
            total_gc=self.total_gc,
            min_read_length=self.min_length,
            max_read_length=self.max_length,
            kmer_size=self.kmer_size,
            kmer_max_position=self.kmer_max_position,
            count_at_limit=self._duplication.count_at_limit,
            gc_histogram=tuple(self._gc_histogram),
            mean_quality_histogram=tuple(self._mean_quality_histogram),
            reads_covering=self._reads_covering(),
            sequence_counts=self._duplication.counts(),
            tile_quality=tile_quality,
            _base_counts=self._base_counts,
            _n_counts=self._n_counts,
            _quality_counts=self._quality_counts,
            _read_lengths=self._read_lengths,
            _kmer_counts=self._kmer_counts,
            _kmer_totals=self._kmer_totals,
        )
