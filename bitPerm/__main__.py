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

from . import *
from .selfcheck import verify
import argparse
import sys


def _int(text):
    # Accepts 0b/0o/0x prefixes as well as plain decimal.
    return int(text, 0)


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="bitPerm",
        description=(
            "Rank and unrank bit-vectors with a fixed number of set bits. "
            "Without an action, lists the first members of a class."
        ),
    )
    parser.add_argument(
        "--bits",
        type=int,
        default=8,
        help="total number of bits in the class (default: 8)",
    )
    parser.add_argument(
        "--set",
        dest="nset",
        type=int,
        default=5,
        help="number of set bits in the class (default: 5)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=20,
        help="how many members to list (default: 20)",
    )
    parser.add_argument(
        "--max-width",
        type=int,
        default=32,
        help="width of the binomial table to build (default: 32)",
    )
    parser.add_argument(
        "--type",
        dest="typ",
        default="uint32_t",
        help="unsigned type the coefficients must fit in (default: uint32_t)",
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--rank",
        type=_int,
        metavar="VALUE",
        help="print the rank of VALUE (e.g. 0b00101111) within the class",
    )
    action.add_argument(
        "--unrank",
        type=_int,
        metavar="RANK",
        help="print the member of the class at RANK",
    )
    action.add_argument(
        "--self-test",
        action="store_true",
        help=(
            "check every class the table serves against an independent "
            "enumeration"
        ),
    )

    parser.add_argument(
        "--exhaustive",
        type=int,
        default=12,
        help=(
            "with --self-test, enumerate classes up to this width in full "
            "(default: 12)"
        ),
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=200,
        help="with --self-test, random checks per wider class (default: 200)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="with --self-test, seed for the random checks",
    )

    parsed = parser.parse_args(args)

    if parsed.count < 0:
        parser.error(f"--count must be non-negative, got {parsed.count}")
    if parsed.samples < 0:
        parser.error(f"--samples must be non-negative, got {parsed.samples}")

    try:
        table = init(parsed.max_width, parsed.typ)

        if parsed.self_test:
            def progress(ntotbits, nsetbits):
                print(
                    f"{ntotbits}:{nsetbits} bits   ",
                    end="\r",
                    file=sys.stderr,
                    flush=True,
                )

            print(f"Testing all classes up to {table.maxWidth} bits")
            checked = verify(
                table,
                exhaustive=parsed.exhaustive,
                samples=parsed.samples,
                seed=parsed.seed,
                progress=progress,
            )
            print(file=sys.stderr)
            print(f"Checked {checked} bit-vectors.")
            print("Test complete.")
            return 0

        ntotbits, nsetbits = parsed.bits, parsed.nset

        if parsed.rank is not None:
            print(rank_of(parsed.rank, ntotbits, nsetbits))
            return 0

        if parsed.unrank is not None:
            bitmap = unrank_of(parsed.unrank, ntotbits, nsetbits)
            print(f"{bitmap:0{ntotbits}b} {bitmap}" if ntotbits else f"0 {bitmap}")
            return 0

        members = BitPermutations(ntotbits, nsetbits)
        count = min(parsed.count, members.size)
        print(
            f"The first {count} binary permutations of {nsetbits} set bits "
            f"out of {ntotbits} total bits are"
        )
        for i in range(count):
            bitmap = members[i]
            bits = f"{bitmap:0{ntotbits}b}" if ntotbits else "0"
            print(f"{i + 1:5}: {bits}")
        return 0

    except BitPermError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
