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

import array
import types
from typing import Dict, Iterator, Mapping, Tuple

from .exceptions import AccumulatorStateError

DEFAULT_POSITION_CUTOFF = 500
DEFAULT_DUPLICATION_LIMIT = 100_000


def zeroed_array(size: int) -> array.ArrayType:
    # use bytes constructor to initialize to 0
    return array.array("Q", bytes(8 * size))


class PositionCounts:
    """
    A table of counters for a fixed alphabet of symbols at every position of
    a read.

    Positions below the cutoff are kept in one contiguous array indexed by
    ``(position << symbol_bits) | symbol`` so an update is a single index
    operation. The array grows with the longest position seen, but never
    beyond the cutoff. Positions at or beyond the cutoff are stored in a
    dictionary with one small array per position, which bounds the memory
    for very long reads to the positions that actually occur.

    Callers always use a single logical position and never need to know
    which of the two stores holds it.
    """
    symbol_bits: int
    row_size: int
    cutoff: int
    positions: int
    frozen: bool

    def __init__(self, symbol_bits: int,
                 cutoff: int = DEFAULT_POSITION_CUTOFF):
        if symbol_bits < 0:
            raise ValueError(f"symbol_bits must be positive, got {symbol_bits}")
        if cutoff < 0:
            raise ValueError(f"cutoff must be positive, got {cutoff}")
        self.symbol_bits = symbol_bits
        self.row_size = 1 << symbol_bits
        self.cutoff = cutoff
        self.positions = 0
        self.frozen = False
        self._dense = array.array("Q")
        self._dense_positions = 0
        self._overflow: Dict[int, array.ArrayType] = {}

    def _grow(self, positions: int):
        positions = min(positions, self.cutoff)
        extra_positions = positions - self._dense_positions
        if extra_positions > 0:
            self._dense.frombytes(bytes(8 * self.row_size * extra_positions))
            self._dense_positions = positions

    def add(self, position: int, symbol: int, count: int = 1) -> None:
        if self.frozen:
            raise AccumulatorStateError("Cannot update frozen counters.")
        if position < self.cutoff:
            if position >= self._dense_positions:
                self._grow(position + 1)
            self._dense[(position << self.symbol_bits) | symbol] += count
        else:
            row = self._overflow.get(position)
            if row is None:
                row = zeroed_array(self.row_size)
                self._overflow[position] = row
            row[symbol] += count
        if position >= self.positions:
            self.positions = position + 1

    def get(self, position: int, symbol: int) -> int:
        if position < self._dense_positions:
            return self._dense[(position << self.symbol_bits) | symbol]
        row = self._overflow.get(position)
        if row is None:
            return 0
        return row[symbol]

    def row(self, position: int) -> array.ArrayType:
        """Return a copy of all symbol counts at position."""
        if position < self._dense_positions:
            offset = position << self.symbol_bits
            return self._dense[offset: offset + self.row_size]
        row = self._overflow.get(position)
        if row is None:
            return zeroed_array(self.row_size)
        return array.array("Q", row)

    def row_total(self, position: int) -> int:
        return sum(self.row(position))

    def total(self) -> int:
        return sum(self._dense) + sum(sum(row) for row in
                                      self._overflow.values())

    def overflow_positions(self) -> int:
        return len(self._overflow)

    def freeze(self) -> None:
        self.frozen = True


class DuplicationMap:
    """
    Counts how often each sequence key is observed.

    Once ``limit`` distinct keys are stored, admission is closed: keys that
    are already present keep being counted, new keys are ignored.
    ``count_at_limit`` is the number of observations made while admission
    was still open, including the one that closed it.
    """
    limit: int
    admission_closed: bool
    count_at_limit: int
    frozen: bool

    def __init__(self, limit: int = DEFAULT_DUPLICATION_LIMIT):
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self.limit = limit
        self.admission_closed = False
        self.count_at_limit = 0
        self.frozen = False
        self._counts: Dict[str, int] = {}

    def add(self, key: str) -> None:
        if self.frozen:
            raise AccumulatorStateError("Cannot update frozen counters.")
        counts = self._counts
        count = counts.get(key)
        if count is not None:
            counts[key] = count + 1
            if not self.admission_closed:
                self.count_at_limit += 1
        elif not self.admission_closed:
            counts[key] = 1
            self.count_at_limit += 1
            if len(counts) >= self.limit:
                self.admission_closed = True

    def __len__(self) -> int:
        return len(self._counts)

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(self._counts.items())

    def counts(self) -> Mapping[str, int]:
        return types.MappingProxyType(self._counts)

    def freeze(self) -> None:
        self.frozen = True
