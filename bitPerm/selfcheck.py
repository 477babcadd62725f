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

"""Cross-check rank_of / unrank_of against an independent enumeration.

Classes up to ``exhaustive`` bits wide are walked in full.  Wider ones
have C(n, k) members (C(32, 16) is about 6e8), so those are only
sampled: random ranks and random bit-vectors, each pushed through both
directions.
"""

import random
from typing import Callable, Iterator, Optional

from . import (
    BinomialTable,
    VerificationError,
    default_table,
    popcount,
    rank_of,
    unrank_of,
)


__all__ = [
    "combinations",
    "verify",
]


def combinations(ntotbits: int, nsetbits: int) -> Iterator[int]:
    """Yield every ntotbits-wide bit-vector with nsetbits bits set, ascending.

    Choose-or-skip on the most significant bit: every member with that
    bit clear is smaller than every member with it set.

    >>> [bin(b) for b in combinations(3, 2)]
    ['0b11', '0b101', '0b110']
    >>> list(combinations(0, 0))
    [0]
    >>> list(combinations(2, 3))
    []
    """
    if nsetbits > ntotbits:
        return
    if nsetbits == 0:
        yield 0
        return
    if nsetbits == ntotbits:
        yield (1 << ntotbits) - 1
        return
    top = 1 << (ntotbits - 1)
    yield from combinations(ntotbits - 1, nsetbits)
    for rest in combinations(ntotbits - 1, nsetbits - 1):
        yield top | rest


def _fail(ntotbits, nsetbits, what):
    raise VerificationError("class (%d, %d): %s" % (ntotbits, nsetbits, what))


def _check_symmetry(table):
    for i, row in enumerate(table):
        for j in range(i + 1):
            if row[j] != row[i - j]:
                raise VerificationError(
                    "table[%d][%d] = %d but table[%d][%d] = %d"
                    % (i, j, row[j], i, i - j, row[i - j])
                )


def _check_exhaustive(table, ntotbits, nsetbits):
    count = 0
    previous = -1
    for bits in combinations(ntotbits, nsetbits):
        rank = rank_of(bits, ntotbits, nsetbits, table)
        if rank != count:
            _fail(
                ntotbits,
                nsetbits,
                "rank_of(0x%x) = %d, expected %d" % (bits, rank, count),
            )
        back = unrank_of(count, ntotbits, nsetbits, table)
        if back != bits:
            _fail(
                ntotbits,
                nsetbits,
                "unrank_of(%d) = 0x%x, expected 0x%x" % (count, back, bits),
            )
        if back <= previous:
            _fail(ntotbits, nsetbits, "unrank_of(%d) is not increasing" % count)
        previous = back
        count += 1
    size = table.comb(ntotbits, nsetbits)
    if count != size:
        _fail(
            ntotbits,
            nsetbits,
            "enumerated %d members, table says %d" % (count, size),
        )
    return count


def _check_sampled(table, ntotbits, nsetbits, samples, rng):
    size = table.comb(ntotbits, nsetbits)
    ranks = [0, size - 1] + [rng.randrange(size) for _ in range(samples)]
    for rank in ranks:
        bits = unrank_of(rank, ntotbits, nsetbits, table)
        if popcount(bits) != nsetbits or bits >> ntotbits:
            _fail(
                ntotbits,
                nsetbits,
                "unrank_of(%d) = 0x%x is not a member" % (rank, bits),
            )
        back = rank_of(bits, ntotbits, nsetbits, table)
        if back != rank:
            _fail(ntotbits, nsetbits, "rank_of(unrank_of(%d)) = %d" % (rank, back))
    for _ in range(samples):
        bits = 0
        for position in rng.sample(range(ntotbits), nsetbits):
            bits |= 1 << position
        rank = rank_of(bits, ntotbits, nsetbits, table)
        back = unrank_of(rank, ntotbits, nsetbits, table)
        if back != bits:
            _fail(
                ntotbits,
                nsetbits,
                "unrank_of(rank_of(0x%x)) = 0x%x" % (bits, back),
            )
    return len(ranks) + samples


def verify(
    table: Optional[BinomialTable] = None,
    exhaustive: int = 12,
    samples: int = 200,
    seed: Optional[int] = None,
    progress: Optional[Callable[[int, int], None]] = None,
) -> int:
    """Check every class the table serves.

    Args:
        table: Table under test.  Defaults to the shared table.
        exhaustive: Classes up to this width are enumerated in full.
        samples: Random ranks and random bit-vectors tried per wider class.
        seed: Seed for the sampling, for reproducible runs.
        progress: Called with (ntotbits, nsetbits) before each class.

    Returns:
        Number of bit-vectors checked.

    Raises:
        VerificationError: On the first disagreement.
    """
    if table is None:
        table = default_table()
    rng = random.Random(seed)

    _check_symmetry(table)

    checked = 0
    for ntotbits in range(table.maxWidth + 1):
        for nsetbits in range(ntotbits + 1):
            if progress is not None:
                progress(ntotbits, nsetbits)
            if ntotbits <= exhaustive:
                checked += _check_exhaustive(table, ntotbits, nsetbits)
            else:
                checked += _check_sampled(table, ntotbits, nsetbits, samples, rng)
    return checked


if __name__ == "__main__":
    import doctest
    import sys

    sys.exit(doctest.testmod().failed)
