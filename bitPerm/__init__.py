# Copyright 2019 Facebook Inc. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Rank and unrank fixed-width bit-vectors with a fixed number of set bits.

Overview
--------

Take every integer of ``ntotbits`` bits that has exactly ``nsetbits``
bits set and sort them in ascending order.  These are the "bit
permutations" of the class ``(ntotbits, nsetbits)``.  This module maps
such a bit-vector to its 0-based position in that order (its *rank*)
and back again:

    >>> table = build(8)
    >>> unrank_of(0, 8, 5, table)
    31
    >>> bin(unrank_of(1, 8, 5, table))
    '0b101111'
    >>> rank_of(0b101111, 8, 5, table)
    1

This is the combinatorial number system specialized to bit-vectors.
Both directions read binomial coefficients out of a precomputed
Pascal's triangle, so each call is linear in ``ntotbits``.

**BinomialTable** holds rows ``0..maxWidth`` of the triangle.  It is
built once by ``build()``, never changes afterwards, and can be shared
freely between threads.  Entries are checked against an unsigned
integer type (``uint32_t`` by default), the fixed-width type a C or
Rust port of the table would store them in.

**rank_of** walks the bit-vector from its most significant bit down.
``row`` counts the positions left and ``col`` the zeros still to be
placed.  A set bit adds the number of class members that have a zero
there instead, ``C(row, col-1)``.  Once ``C(row, col) == 1`` the rest
of the bits are forced and the walk stops.

**unrank_of** runs the same walk in reverse, choosing a zero whenever
the remaining rank is smaller than ``C(row, col-1)``.

Tables can be passed explicitly to every call, or a process-wide one
installed with ``init()`` and picked up when ``table`` is omitted.
"""

from math import comb
from typing import Iterator, Optional, Tuple


__all__ = [
    "BitPermError",
    "InvalidArgument",
    "CoefficientOverflow",
    "Uninitialized",
    "VerificationError",
    "BinomialTable",
    "BitPermutations",
    "build",
    "rank_of",
    "unrank_of",
    "init",
    "default_table",
    "popcount",
    "typeWidth",
    "typeMax",
    "type_for",
    "maxWidthFor",
]

__version__ = "1.0.0"


# Errors


class BitPermError(Exception):
    """Base class for all errors raised by this package."""


class InvalidArgument(BitPermError, ValueError):
    """An argument is outside the domain of the operation."""


class CoefficientOverflow(InvalidArgument, OverflowError):
    """The requested table has coefficients that do not fit its type."""


class Uninitialized(BitPermError, RuntimeError):
    """No shared table covering the requested width has been built."""


class VerificationError(BitPermError, AssertionError):
    """Rank and unrank disagree with an independent enumeration."""


# Integer types


_UNSIGNED_WIDTHS = (8, 16, 32, 64)


def _checkInt(name, value):
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgument("%s must be an integer, got %r" % (name, value))
    if value < 0:
        raise InvalidArgument("%s must be non-negative, got %d" % (name, value))


def typeWidth(typ):
    """
    >>> typeWidth('uint8_t')
    8
    >>> typeWidth('u64')
    64
    """
    if not isinstance(typ, str) or typ[:1] != "u":
        raise InvalidArgument("unsigned integer type expected, got %r" % (typ,))
    digits = "".join([c for c in typ if c.isdigit()])
    if not digits or int(digits) not in _UNSIGNED_WIDTHS:
        raise InvalidArgument("unknown integer type: %r" % (typ,))
    if typ not in ("uint%d_t" % int(digits), "u%d" % int(digits)):
        raise InvalidArgument("unknown integer type: %r" % (typ,))
    return int(digits)


def typeMax(typ):
    """
    >>> typeMax('uint8_t')
    255
    >>> typeMax('u16')
    65535
    """
    return (1 << typeWidth(typ)) - 1


def type_for(maxV):
    """Returns the narrowest unsigned C type that can store [0, maxV].

    >>> type_for(0)
    'uint8_t'
    >>> type_for(256)
    'uint16_t'
    >>> type_for(601080390)
    'uint32_t'
    """
    _checkInt("maxV", maxV)
    for width in _UNSIGNED_WIDTHS:
        if maxV < 1 << width:
            return "uint%d_t" % width
    raise InvalidArgument("value out of range: %d" % maxV)


def maxWidthFor(typ):
    """Largest maxWidth whose coefficients all fit in typ.

    >>> maxWidthFor('uint8_t')
    10
    >>> maxWidthFor('uint32_t')
    34
    """
    limit = typeMax(typ)
    n = 0
    while comb(n + 1, (n + 1) // 2) <= limit:
        n += 1
    return n


def popcount(value):
    """
    >>> popcount(0)
    0
    >>> popcount(0b1011)
    3
    """
    return bin(value).count("1")


# The table


class BinomialTable:
    """Rows 0..maxWidth of Pascal's triangle, immutable once built.

    ``table[i][j]`` is C(i, j) for ``0 <= j <= i <= maxWidth``.  Use
    ``build()`` to make one.
    """

    __slots__ = ("maxWidth", "typ", "_rows")

    def __init__(self, rows, typ="uint32_t"):
        rows = tuple(tuple(row) for row in rows)
        if not rows:
            raise InvalidArgument("table must have at least one row")
        limit = typeMax(typ)
        above = ()
        for i, row in enumerate(rows):
            if len(row) != i + 1:
                raise InvalidArgument(
                    "row %d has %d entries, expected %d" % (i, len(row), i + 1)
                )
            for j, v in enumerate(row):
                if not isinstance(v, int) or isinstance(v, bool):
                    raise InvalidArgument(
                        "table[%d][%d] must be an integer, got %r" % (i, j, v)
                    )
                expected = 1 if j in (0, i) else above[j - 1] + above[j]
                if v != expected:
                    raise InvalidArgument(
                        "table[%d][%d] is %d, expected %d" % (i, j, v, expected)
                    )
                if v > limit:
                    raise CoefficientOverflow(
                        "coefficient %d does not fit in %s" % (v, typ)
                    )
            above = row
        object.__setattr__(self, "_rows", rows)
        object.__setattr__(self, "maxWidth", len(rows) - 1)
        object.__setattr__(self, "typ", typ)

    def __setattr__(self, name, value):
        raise AttributeError("%s is immutable" % self.__class__.__name__)

    def __delattr__(self, name):
        raise AttributeError("%s is immutable" % self.__class__.__name__)

    def __len__(self):
        return len(self._rows)

    def __getitem__(self, i) -> Tuple[int, ...]:
        return self._rows[i]

    def __iter__(self) -> Iterator[Tuple[int, ...]]:
        for i in range(len(self)):
            yield self[i]

    def __eq__(self, other):
        if not isinstance(other, BinomialTable):
            return NotImplemented
        return self.typ == other.typ and self._rows == other._rows

    def __hash__(self):
        return hash((self.typ, self._rows))

    def __repr__(self):
        return "%s(maxWidth=%d, typ=%r)" % (
            self.__class__.__name__,
            self.maxWidth,
            self.typ,
        )

    def comb(self, n, k):
        """C(n, k) read from the table; zero when k > n."""
        if k > n:
            return 0
        return self[n][k]

    def covers(self, ntotbits):
        return ntotbits <= self.maxWidth


def build(maxWidth: int, typ: str = "uint32_t") -> BinomialTable:
    """Build rows 0..maxWidth of Pascal's triangle.

    Args:
        maxWidth: Widest bit-vector class the table must serve.
        typ: Unsigned integer type every coefficient must fit in.
            Defaults to ``uint32_t``.

    Returns:
        An immutable BinomialTable.

    Raises:
        InvalidArgument: If maxWidth is not a non-negative integer or
            typ is not an unsigned integer type.
        CoefficientOverflow: If C(maxWidth, maxWidth // 2) does not fit
            in typ.

    >>> build(4)[4]
    (1, 4, 6, 4, 1)
    """
    _checkInt("maxWidth", maxWidth)
    limit = typeMax(typ)
    peak = comb(maxWidth, maxWidth // 2)
    if peak > limit:
        raise CoefficientOverflow(
            "maxWidth %d overflows %s: C(%d, %d) = %d > %d"
            % (maxWidth, typ, maxWidth, maxWidth // 2, peak, limit)
        )

    rows = [(1,)]
    for i in range(1, maxWidth + 1):
        above = rows[-1]
        # Each interior entry is the sum of the two entries above it.
        row = [above[0]]
        for j in range(1, len(above)):
            row.append(above[j - 1] + above[j])
        row.append(above[-1])
        rows.append(tuple(row))

    return BinomialTable(rows, typ)


# Shared table


_default = None


def init(maxWidth: int = 32, typ: str = "uint32_t") -> BinomialTable:
    """Build a table and install it as the process-wide default.

    The installed table is read by ``rank_of`` and ``unrank_of`` when
    they are not given one.  Calling ``init`` again replaces it.
    """
    global _default
    table = build(maxWidth, typ)
    _default = table
    return table


def default_table() -> BinomialTable:
    """Return the table installed by ``init``.

    Raises:
        Uninitialized: If ``init`` has not been called.
    """
    table = _default
    if table is None:
        raise Uninitialized("no binomial table has been built; call init()")
    return table


def _resolve(table, ntotbits, nsetbits):
    _checkInt("ntotbits", ntotbits)
    _checkInt("nsetbits", nsetbits)
    if table is None:
        table = default_table()
        if not table.covers(ntotbits):
            raise Uninitialized(
                "no binomial table covering %d bits has been built "
                "(default table covers %d)" % (ntotbits, table.maxWidth)
            )
    elif not isinstance(table, BinomialTable):
        raise InvalidArgument("table must be a BinomialTable, got %r" % (table,))
    elif not table.covers(ntotbits):
        raise InvalidArgument(
            "ntotbits (%d) exceeds table width (%d)" % (ntotbits, table.maxWidth)
        )
    if nsetbits > ntotbits:
        raise InvalidArgument(
            "nsetbits (%d) > ntotbits (%d)" % (nsetbits, ntotbits)
        )
    return table


# Public API


def rank_of(
    bitmap: int,
    ntotbits: int,
    nsetbits: int,
    table: Optional[BinomialTable] = None,
) -> int:
    """Return the rank of bitmap within the class (ntotbits, nsetbits).

    Args:
        bitmap: Bit-vector with exactly nsetbits of its low ntotbits
            bits set and nothing set above them.
        ntotbits: Width of the class.
        nsetbits: Population count of the class.
        table: Table to read coefficients from.  Defaults to the table
            installed by ``init``.

    Returns:
        An integer in [0, C(ntotbits, nsetbits)).

    Raises:
        InvalidArgument: If the class is malformed, exceeds the given
            table, or bitmap is not a member of it.
        Uninitialized: If table is omitted and no shared table covering
            ntotbits exists.

    >>> rank_of(0b00011111, 8, 5, build(8))
    0
    >>> rank_of(0b11111000, 8, 5, build(8))
    55
    """
    table = _resolve(table, ntotbits, nsetbits)
    _checkInt("bitmap", bitmap)
    if bitmap >> ntotbits:
        raise InvalidArgument(
            "bitmap 0x%x has bits set at or above position %d" % (bitmap, ntotbits)
        )
    if popcount(bitmap) != nsetbits:
        raise InvalidArgument(
            "bitmap 0x%x has %d bits set, expected %d"
            % (bitmap, popcount(bitmap), nsetbits)
        )

    total = 0
    row = ntotbits
    col = ntotbits - nsetbits
    while table[row][col] != 1:
        row -= 1
        if bitmap >> row & 1:
            total += table[row][col - 1]
        else:
            col -= 1
    return total


def unrank_of(
    rank: int,
    ntotbits: int,
    nsetbits: int,
    table: Optional[BinomialTable] = None,
) -> int:
    """Return the bit-vector at position rank within (ntotbits, nsetbits).

    Args:
        rank: Position in [0, C(ntotbits, nsetbits)).
        ntotbits: Width of the class.
        nsetbits: Population count of the class.
        table: Table to read coefficients from.  Defaults to the table
            installed by ``init``.

    Returns:
        The unique member of the class whose rank is rank.

    Raises:
        InvalidArgument: If the class is malformed, exceeds the given
            table, or rank is out of range.
        Uninitialized: If table is omitted and no shared table covering
            ntotbits exists.

    >>> unrank_of(55, 8, 5, build(8)) == 0b11111000
    True
    """
    table = _resolve(table, ntotbits, nsetbits)
    _checkInt("rank", rank)
    size = table[ntotbits][nsetbits]
    if rank >= size:
        raise InvalidArgument(
            "rank %d out of range for class (%d, %d): must be < %d"
            % (rank, ntotbits, nsetbits, size)
        )

    bitmap = 0
    row = ntotbits
    col = ntotbits - nsetbits
    while row:
        row -= 1
        if col and rank < table[row][col - 1]:
            col -= 1
        else:
            if col:
                rank -= table[row][col - 1]
            bitmap |= 1 << row
    return bitmap


class BitPermutations:
    """The class (ntotbits, nsetbits) as an ascending, read-only sequence.

    Works like ``range``: indexing unranks, ``index()`` ranks, and
    iteration can be restarted at will.

    >>> list(BitPermutations(4, 2, build(4)))
    [3, 5, 6, 9, 10, 12]
    """

    def __init__(self, ntotbits, nsetbits, table=None):
        self.table = _resolve(table, ntotbits, nsetbits)
        self.ntotbits = ntotbits
        self.nsetbits = nsetbits
        # len() is capped at sys.maxsize; wide classes use size instead.
        self.size = self.table[ntotbits][nsetbits]

    def __len__(self):
        return self.size

    def __getitem__(self, i):
        if not isinstance(i, int) or isinstance(i, bool):
            raise TypeError("indices must be integers, not %s" % type(i).__name__)
        if i < 0:
            i += self.size
        if not 0 <= i < self.size:
            raise IndexError("%s index out of range" % self.__class__.__name__)
        return unrank_of(i, self.ntotbits, self.nsetbits, self.table)

    def __iter__(self):
        rank = 0
        while rank < self.size:
            yield unrank_of(rank, self.ntotbits, self.nsetbits, self.table)
            rank += 1

    def __contains__(self, bitmap):
        return (
            isinstance(bitmap, int)
            and not isinstance(bitmap, bool)
            and bitmap >= 0
            and not bitmap >> self.ntotbits
            and popcount(bitmap) == self.nsetbits
        )

    def index(self, bitmap):
        if bitmap not in self:
            raise InvalidArgument(
                "%r is not in %r" % (bitmap, self)
            )
        return rank_of(bitmap, self.ntotbits, self.nsetbits, self.table)

    def __repr__(self):
        return "%s(%d, %d)" % (
            self.__class__.__name__,
            self.ntotbits,
            self.nsetbits,
        )


if __name__ == "__main__":
    import doctest
    import sys

    sys.exit(doctest.testmod().failed)
