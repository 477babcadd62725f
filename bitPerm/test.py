import doctest
import random
import subprocess
import sys
from math import comb

import pytest

import bitPerm
from bitPerm import (
    BinomialTable,
    BitPermError,
    BitPermutations,
    CoefficientOverflow,
    InvalidArgument,
    Uninitialized,
    VerificationError,
    build,
    default_table,
    init,
    maxWidthFor,
    popcount,
    rank_of,
    type_for,
    typeMax,
    typeWidth,
    unrank_of,
)
from bitPerm import selfcheck
from bitPerm.selfcheck import combinations, verify
from bitPerm.__main__ import main  # noqa: F401


def _members(ntotbits, nsetbits):
    return [b for b in range(1 << ntotbits) if popcount(b) == nsetbits]


@pytest.fixture(scope="module")
def table32():
    return build(32)


@pytest.fixture
def no_default(monkeypatch):
    monkeypatch.setattr(bitPerm, "_default", None)


def _corrupted(table, i, j, value):
    """Return a view of table whose entry [i][j] reads as value."""

    class Corrupted(BinomialTable):
        __slots__ = ()

        def __getitem__(self, n):
            row = super().__getitem__(n)
            if n == i:
                row = row[:j] + (value,) + row[j + 1 :]
            return row

    return Corrupted(table, table.typ)


# ── Doctests ───────────────────────────────────────────────────────


@pytest.mark.parametrize("module", [bitPerm, selfcheck])
def test_doctests(module):
    assert doctest.testmod(module).failed == 0


# ── Integer types ──────────────────────────────────────────────────


class TestTypeWidth:
    def test_c_types(self):
        assert typeWidth("uint8_t") == 8
        assert typeWidth("uint16_t") == 16
        assert typeWidth("uint32_t") == 32
        assert typeWidth("uint64_t") == 64

    def test_short_types(self):
        assert typeWidth("u8") == 8
        assert typeWidth("u64") == 64

    def test_signed_rejected(self):
        with pytest.raises(InvalidArgument):
            typeWidth("int32_t")
        with pytest.raises(InvalidArgument):
            typeWidth("i32")

    def test_unknown_rejected(self):
        for typ in ("uint128_t", "u12", "unsigned", "uint32", "", None, 32):
            with pytest.raises(InvalidArgument):
                typeWidth(typ)

    def test_zero_padded_rejected(self):
        for typ in ("uint08_t", "u08", "uint016_t", "u064"):
            with pytest.raises(InvalidArgument):
                typeWidth(typ)


class TestTypeMax:
    def test_values(self):
        assert typeMax("uint8_t") == 255
        assert typeMax("uint16_t") == 65535
        assert typeMax("u32") == 2**32 - 1
        assert typeMax("u64") == 2**64 - 1


class TestTypeFor:
    def test_boundaries(self):
        assert type_for(0) == "uint8_t"
        assert type_for(255) == "uint8_t"
        assert type_for(256) == "uint16_t"
        assert type_for(65535) == "uint16_t"
        assert type_for(65536) == "uint32_t"
        assert type_for(2**32 - 1) == "uint32_t"
        assert type_for(2**32) == "uint64_t"
        assert type_for(2**64 - 1) == "uint64_t"

    def test_out_of_range(self):
        with pytest.raises(InvalidArgument):
            type_for(2**64)
        with pytest.raises(InvalidArgument):
            type_for(-1)


class TestMaxWidthFor:
    def test_limits(self):
        assert maxWidthFor("uint8_t") == 10
        assert maxWidthFor("uint16_t") == 18
        assert maxWidthFor("uint32_t") == 34
        assert maxWidthFor("uint64_t") == 67

    def test_limit_is_buildable(self):
        for typ in ("uint8_t", "uint16_t", "uint32_t", "uint64_t"):
            build(maxWidthFor(typ), typ)
            with pytest.raises(CoefficientOverflow):
                build(maxWidthFor(typ) + 1, typ)


class TestPopcount:
    def test_values(self):
        assert popcount(0) == 0
        assert popcount(1) == 1
        assert popcount(0b11111000) == 5
        assert popcount(2**64 - 1) == 64


# ── Binomial table ─────────────────────────────────────────────────


class TestBuild:
    def test_width_zero(self):
        table = build(0)
        assert table.maxWidth == 0
        assert len(table) == 1
        assert table[0] == (1,)

    def test_small_rows(self):
        table = build(5)
        assert list(table) == [
            (1,),
            (1, 1),
            (1, 2, 1),
            (1, 3, 3, 1),
            (1, 4, 6, 4, 1),
            (1, 5, 10, 10, 5, 1),
        ]

    def test_recurrence(self, table32):
        for i in range(1, 33):
            assert table32[i][0] == table32[i][i] == 1
            for j in range(1, i):
                assert table32[i][j] == table32[i - 1][j - 1] + table32[i - 1][j]

    def test_matches_math_comb(self, table32):
        for i, row in enumerate(table32):
            assert len(row) == i + 1
            assert list(row) == [comb(i, j) for j in range(i + 1)]

    def test_symmetry(self, table32):
        for i, row in enumerate(table32):
            for j in range(i + 1):
                assert row[j] == row[i - j]

    def test_deterministic(self):
        assert build(20) == build(20)
        assert hash(build(20)) == hash(build(20))

    def test_type_is_part_of_identity(self):
        assert build(8, "uint16_t") != build(8, "uint32_t")
        assert build(8).typ == "uint32_t"

    def test_bad_width(self):
        for width in (-1, 1.5, "8", None, True):
            with pytest.raises(InvalidArgument):
                build(width)

    def test_bad_type(self):
        with pytest.raises(InvalidArgument):
            build(8, "int32_t")

    def test_overflow_uint32(self):
        build(34)
        with pytest.raises(CoefficientOverflow):
            build(35)

    def test_overflow_is_invalid_argument(self):
        with pytest.raises(InvalidArgument):
            build(11, "uint8_t")
        with pytest.raises(OverflowError):
            build(11, "uint8_t")

    def test_uint64(self):
        table = build(64, "uint64_t")
        assert table[64][32] == comb(64, 32)


class TestBinomialTable:
    def test_immutable(self):
        table = build(4)
        with pytest.raises(AttributeError):
            table.maxWidth = 10
        with pytest.raises(AttributeError):
            del table.typ
        with pytest.raises(TypeError):
            table[2][1] = 7

    def test_comb(self):
        table = build(10)
        assert table.comb(10, 3) == 120
        assert table.comb(3, 4) == 0
        assert table.comb(0, 0) == 1

    def test_covers(self):
        table = build(10)
        assert table.covers(0)
        assert table.covers(10)
        assert not table.covers(11)

    def test_repr(self):
        assert repr(build(6, "u16")) == "BinomialTable(maxWidth=6, typ='u16')"

    def test_ragged_rows_rejected(self):
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (1, 1), (1, 2)])

    def test_empty_rejected(self):
        with pytest.raises(InvalidArgument):
            BinomialTable([])

    def test_values_checked_against_type(self):
        # Row 11 is the first with a coefficient past 255.
        with pytest.raises(CoefficientOverflow):
            BinomialTable(build(11, "uint16_t"), "uint8_t")

    def test_rebuilt_from_rows(self):
        table = build(8)
        assert BinomialTable(table) == table
        assert BinomialTable([list(row) for row in table]) == table

    def test_wrong_coefficient_rejected(self):
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (1, 1), (1, 1, 1)])
        rows = [list(row) for row in build(6)]
        rows[4][2] = 7
        with pytest.raises(InvalidArgument):
            BinomialTable(rows)

    def test_asymmetric_rejected(self):
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (1, 1), (1, 2, 1), (1, 3, 4, 1)])

    def test_non_integer_rejected(self):
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (1, "a")])
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (1, 1.0)])
        with pytest.raises(InvalidArgument):
            BinomialTable([(1,), (True, 1)])


# ── rank_of / unrank_of ────────────────────────────────────────────


FIRST_8_5 = [
    "00011111",
    "00101111",
    "00110111",
    "00111011",
    "00111101",
    "00111110",
    "01001111",
]


class TestRankOf:
    def test_first_member(self):
        assert rank_of(31, 8, 5, build(8)) == 0

    def test_last_member(self):
        assert rank_of(0b11111000, 8, 5, build(8)) == comb(8, 5) - 1

    def test_ascending(self):
        table = build(8)
        for i, b in enumerate(_members(8, 5)):
            assert rank_of(b, 8, 5, table) == i

    def test_wrong_popcount(self):
        table = build(8)
        with pytest.raises(InvalidArgument):
            rank_of(0b00001111, 8, 5, table)
        with pytest.raises(InvalidArgument):
            rank_of(0b00111111, 8, 5, table)

    def test_bits_beyond_width(self):
        with pytest.raises(InvalidArgument):
            rank_of(0b100001111, 8, 5, build(9))

    def test_nsetbits_exceeds_ntotbits(self):
        with pytest.raises(InvalidArgument):
            rank_of(0b111, 2, 3, build(8))

    def test_class_exceeds_table(self):
        with pytest.raises(InvalidArgument):
            rank_of(31, 9, 5, build(8))

    def test_bad_arguments(self):
        table = build(8)
        with pytest.raises(InvalidArgument):
            rank_of(-1, 8, 5, table)
        with pytest.raises(InvalidArgument):
            rank_of(31.0, 8, 5, table)
        with pytest.raises(InvalidArgument):
            rank_of(31, 8, -5, table)
        with pytest.raises(InvalidArgument):
            rank_of(31, 8, 5, [[1]])

    def test_errors_share_base(self):
        with pytest.raises(BitPermError):
            rank_of(1, 8, 5, build(8))
        with pytest.raises(ValueError):
            rank_of(1, 8, 5, build(8))


class TestUnrankOf:
    def test_first_member(self):
        assert unrank_of(0, 8, 5, build(8)) == 31

    def test_first_twenty(self):
        table = build(8)
        got = [unrank_of(r, 8, 5, table) for r in range(20)]
        assert got == _members(8, 5)[:20]
        assert ["{:08b}".format(b) for b in got[: len(FIRST_8_5)]] == FIRST_8_5

    def test_rank_one_past_end(self):
        with pytest.raises(InvalidArgument):
            unrank_of(comb(8, 5), 8, 5, build(8))

    def test_last_rank(self):
        assert unrank_of(comb(8, 5) - 1, 8, 5, build(8)) == 0b11111000

    def test_negative_rank(self):
        with pytest.raises(InvalidArgument):
            unrank_of(-1, 8, 5, build(8))

    def test_class_exceeds_table(self):
        with pytest.raises(InvalidArgument):
            unrank_of(0, 9, 5, build(8))

    def test_monotonic(self):
        table = build(12)
        for k in range(13):
            values = [unrank_of(r, 12, k, table) for r in range(comb(12, k))]
            assert all(a < b for a, b in zip(values, values[1:]))


class TestBoundaryClasses:
    def test_no_bits_set(self):
        table = build(16)
        for n in range(17):
            assert unrank_of(0, n, 0, table) == 0
            assert rank_of(0, n, 0, table) == 0
            with pytest.raises(InvalidArgument):
                unrank_of(1, n, 0, table)

    def test_all_bits_set(self):
        table = build(16)
        for n in range(17):
            full = (1 << n) - 1
            assert unrank_of(0, n, n, table) == full
            assert rank_of(full, n, n, table) == 0

    def test_empty_class(self):
        table = build(0)
        assert unrank_of(0, 0, 0, table) == 0
        assert rank_of(0, 0, 0, table) == 0
        with pytest.raises(InvalidArgument):
            unrank_of(1, 0, 0, table)
        with pytest.raises(InvalidArgument):
            rank_of(1, 0, 0, table)

    def test_full_width_uint64(self):
        table = build(64, "uint64_t")
        assert unrank_of(0, 64, 64, table) == 2**64 - 1
        assert rank_of(2**64 - 1, 64, 64, table) == 0
        assert unrank_of(comb(64, 1) - 1, 64, 1, table) == 1 << 63


class TestBijection:
    def test_exhaustive_small_widths(self):
        table = build(10)
        for n in range(11):
            for k in range(n + 1):
                expected = _members(n, k)
                assert len(expected) == comb(n, k)
                for r, b in enumerate(expected):
                    assert unrank_of(r, n, k, table) == b
                    assert rank_of(b, n, k, table) == r

    @pytest.mark.parametrize("n", [16, 24, 32])
    def test_sampled_ranks(self, table32, n):
        rng = random.Random(n)
        for k in range(n + 1):
            size = comb(n, k)
            for r in {0, size - 1} | {rng.randrange(size) for _ in range(20)}:
                b = unrank_of(r, n, k, table32)
                assert popcount(b) == k
                assert b >> n == 0
                assert rank_of(b, n, k, table32) == r

    @pytest.mark.parametrize("n", [16, 24, 32])
    def test_sampled_bitvectors(self, table32, n):
        rng = random.Random(-n)
        for k in range(n + 1):
            for _ in range(20):
                b = sum(1 << p for p in rng.sample(range(n), k))
                assert unrank_of(rank_of(b, n, k, table32), n, k, table32) == b

    def test_order_matches_sorting(self, table32):
        rng = random.Random(5)
        bs = sorted({sum(1 << p for p in rng.sample(range(32), 16)) for _ in range(50)})
        ranks = [rank_of(b, 32, 16, table32) for b in bs]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ranks)


# ── Shared default table ───────────────────────────────────────────


class TestDefaultTable:
    def test_uninitialized(self, no_default):
        with pytest.raises(Uninitialized):
            default_table()
        with pytest.raises(Uninitialized):
            rank_of(31, 8, 5)
        with pytest.raises(Uninitialized):
            unrank_of(0, 8, 5)

    def test_init(self, no_default):
        table = init(8)
        assert default_table() is table
        assert unrank_of(0, 8, 5) == 31
        assert rank_of(31, 8, 5) == 0

    def test_default_too_narrow(self, no_default):
        init(6)
        with pytest.raises(Uninitialized):
            unrank_of(0, 8, 5)

    def test_reinit_replaces(self, no_default):
        init(6)
        init(10)
        assert default_table().maxWidth == 10
        assert unrank_of(0, 10, 1) == 1

    def test_explicit_table_wins(self, no_default):
        init(4)
        assert unrank_of(0, 8, 5, build(8)) == 31

    def test_init_overflow(self, no_default):
        with pytest.raises(CoefficientOverflow):
            init(20, "uint16_t")
        with pytest.raises(Uninitialized):
            default_table()

    def test_uninitialized_is_not_invalid_argument(self):
        assert not issubclass(Uninitialized, InvalidArgument)
        assert issubclass(Uninitialized, BitPermError)


# ── BitPermutations ────────────────────────────────────────────────


class TestBitPermutations:
    def test_len(self):
        assert len(BitPermutations(8, 5, build(8))) == 56
        assert len(BitPermutations(0, 0, build(0))) == 1

    def test_iteration(self):
        assert list(BitPermutations(8, 5, build(8))) == _members(8, 5)

    def test_restartable(self):
        seq = BitPermutations(6, 3, build(6))
        assert list(seq) == list(seq)

    def test_indexing(self):
        seq = BitPermutations(8, 5, build(8))
        assert seq[0] == 31
        assert seq[-1] == 0b11111000
        with pytest.raises(IndexError):
            seq[56]
        with pytest.raises(IndexError):
            seq[-57]
        with pytest.raises(TypeError):
            seq["0"]

    def test_contains(self):
        seq = BitPermutations(8, 5, build(8))
        assert 31 in seq
        assert 15 not in seq
        assert 0b100001111 not in seq
        assert -1 not in seq
        assert "31" not in seq

    def test_index(self):
        seq = BitPermutations(8, 5, build(8))
        assert seq.index(0b00101111) == 1
        with pytest.raises(ValueError):
            seq.index(15)

    def test_uses_default(self, no_default):
        init(8)
        assert BitPermutations(8, 5)[0] == 31

    def test_bad_class(self):
        with pytest.raises(InvalidArgument):
            BitPermutations(4, 5, build(8))

    def test_repr(self):
        assert repr(BitPermutations(8, 5, build(8))) == "BitPermutations(8, 5)"

    def test_wide_class(self):
        seq = BitPermutations(67, 33, build(67, "uint64_t"))
        assert seq.size == comb(67, 33)
        assert seq.size > sys.maxsize
        low = (1 << 33) - 1
        assert seq[0] == low
        assert seq[1] == ((low >> 1) | (1 << 33))
        assert seq[-1] == low << 34
        assert seq[seq.size - 1] == low << 34
        it = iter(seq)
        assert next(it) == low
        assert next(it) == seq[1]
        assert seq.index(low << 34) == seq.size - 1
        # len() itself cannot report more than sys.maxsize.
        with pytest.raises(OverflowError):
            len(seq)


# ── Self-check ─────────────────────────────────────────────────────


class TestCombinations:
    def test_matches_filter(self):
        for n in range(9):
            for k in range(n + 1):
                assert list(combinations(n, k)) == _members(n, k)

    def test_empty_class(self):
        assert list(combinations(3, 4)) == []


class TestVerify:
    def test_exhaustive(self):
        table = build(8)
        assert verify(table, exhaustive=8) == sum(1 << n for n in range(9))

    def test_sampled(self):
        table = build(20)
        checked = verify(table, exhaustive=6, samples=3, seed=1)
        # Each sampled class checks 2 fixed ranks plus 3 random ranks and 3
        # random bit-vectors.
        sampled = sum(n + 1 for n in range(7, 21))
        assert checked == sum(1 << n for n in range(7)) + sampled * 8

    def test_progress(self):
        seen = []
        verify(build(3), progress=lambda n, k: seen.append((n, k)))
        assert seen == [(n, k) for n in range(4) for k in range(n + 1)]

    def test_default_table(self, no_default):
        init(5)
        assert verify() == sum(1 << n for n in range(6))

    def test_default_uninitialized(self, no_default):
        with pytest.raises(Uninitialized):
            verify()

    def test_detects_asymmetric_table(self):
        table = _corrupted(build(6), 3, 2, 4)
        assert table[3] == (1, 3, 4, 1)
        with pytest.raises(VerificationError, match="table\\[3\\]"):
            verify(table)

    def test_detects_wrong_coefficient(self):
        # Row 4 stays symmetric, so only the rank walk can notice.
        table = _corrupted(build(6), 4, 2, 7)
        assert table[4] == (1, 4, 7, 4, 1)
        with pytest.raises(VerificationError, match="class"):
            verify(table)


# ── CLI ────────────────────────────────────────────────────────────


class TestCLI:
    def _run(self, *args):
        result = subprocess.run(
            [sys.executable, "-m", "bitPerm", *args],
            capture_output=True,
            text=True,
        )
        return result

    def test_default_listing(self):
        r = self._run()
        assert r.returncode == 0
        lines = r.stdout.splitlines()
        assert lines[0] == (
            "The first 20 binary permutations of 5 set bits out of 8 total bits are"
        )
        assert len(lines) == 21
        assert lines[1] == "    1: 00011111"
        assert [line.split(": ")[1] for line in lines[1:8]] == FIRST_8_5
        assert lines[20] == "   20: " + "{:08b}".format(_members(8, 5)[19])

    def test_listing_is_capped_by_class_size(self):
        r = self._run("--bits", "4", "--set", "2", "--count", "100")
        assert r.returncode == 0
        assert len(r.stdout.splitlines()) == 7

    def test_rank(self):
        r = self._run("--rank", "0b00101111")
        assert r.returncode == 0
        assert r.stdout.strip() == "1"

    def test_unrank(self):
        r = self._run("--unrank", "0")
        assert r.returncode == 0
        assert r.stdout.strip() == "00011111 31"

    def test_rank_error(self):
        r = self._run("--rank", "15")
        assert r.returncode == 1
        assert r.stderr.startswith("error:")

    def test_unrank_out_of_range(self):
        r = self._run("--unrank", "56")
        assert r.returncode == 1
        assert "out of range" in r.stderr

    def test_overflowing_table(self):
        r = self._run("--max-width", "40")
        assert r.returncode == 1
        assert "overflows" in r.stderr

    def test_self_test(self):
        r = self._run(
            "--self-test", "--max-width", "14", "--exhaustive", "8", "--samples", "5"
        )
        assert r.returncode == 0
        assert "Test complete." in r.stdout

    def test_listing_wide_class(self):
        r = self._run(
            "--max-width",
            "67",
            "--type",
            "uint64_t",
            "--bits",
            "67",
            "--set",
            "33",
            "--count",
            "2",
        )
        assert r.returncode == 0
        lines = r.stdout.splitlines()
        assert len(lines) == 3
        assert lines[1] == "    1: " + "0" * 34 + "1" * 33
        assert lines[2] == "    2: " + "0" * 33 + "10" + "1" * 32

    def test_actions_are_exclusive(self):
        r = self._run("--rank", "31", "--unrank", "0")
        assert r.returncode != 0
        assert "not allowed" in r.stderr

    def test_help(self):
        r = self._run("--help")
        assert r.returncode == 0
        assert "bitPerm" in r.stdout
