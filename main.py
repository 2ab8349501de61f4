import argparse
import logging
import os
import sys

from typing import List, Optional, Tuple
from bitvector import BitVector, Mode
from errors import BitValueError, BitVectorError
from serializer import decode, encode, string_to_vector, vector_to_string
from store import FileStore

log = logging.getLogger(__name__)


def _non_negative_int(text: str) -> int:
    """Parse an ``argparse`` value that must be an integer ``>= 0``.

    :param text: Raw command-line value.
    :type text: str
    :returns: The parsed integer.
    :rtype: int
    :raises argparse.ArgumentTypeError: If ``text`` is not such an integer.
    """
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return value


def get_parser():
    """Create and configure the CLI argument parser.

    :returns: Configured argument parser.
    :rtype: argparse.ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Save and restore bit vectors in a binary store file"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(
        title="subcommands", dest="cmd", required=True
    )

    write = subparsers.add_parser(
        "write", aliases=["w"], help="Encode bit strings into a store file"
    )
    write.add_argument(
        "bits", nargs="+", help="Bit strings made of '0' and '1'"
    )
    write.add_argument(
        "-o", "--output", required=True, help="Store file path"
    )
    write.add_argument(
        "--array",
        action="store_true",
        help="Store fixed-length array vectors instead of streams",
    )
    write.add_argument(
        "--offset",
        type=_non_negative_int,
        default=None,
        help="Byte offset of the first vector "
        "(default: end of file with --append, 0 otherwise)",
    )
    write.add_argument(
        "--append",
        action="store_true",
        help="Keep existing store content and write after it",
    )

    read = subparsers.add_parser(
        "read", aliases=["r"], help="Decode and print vectors from a store file"
    )
    read.add_argument("store", help="Store file to read")
    read.add_argument(
        "--offset",
        type=_non_negative_int,
        default=0,
        help="Byte offset of the first vector",
    )
    read.add_argument(
        "-n",
        "--count",
        type=_non_negative_int,
        default=None,
        help="Number of vectors to read (default: until end of store)",
    )

    return parser


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for the CLI.

    :param verbose: Log debug records when set, warnings only otherwise.
    :type verbose: bool
    :returns: None
    :rtype: None
    """
    log_fmt = "[%(asctime)s] %(levelname)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format=log_fmt,
        datefmt=datefmt,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _parse_vectors(bit_strings: List[str], as_array: bool) -> List[BitVector]:
    """Build one vector per bit string.

    :param bit_strings: Bit strings given on the command line.
    :type bit_strings: List[str]
    :param as_array: Build array vectors instead of streams.
    :type as_array: bool
    :returns: Vectors in the order given.
    :rtype: List[BitVector]
    :raises BitValueError: If a string holds a character other than
        ``'0'``/``'1'``, or is empty while ``as_array`` is set.
    :raises AllocationError: If a buffer cannot be allocated.
    """
    mode = Mode.ARRAY if as_array else Mode.STREAM
    vectors: List[BitVector] = []
    try:
        for text in bit_strings:
            vectors.append(string_to_vector(text, mode))
    except BitVectorError:
        for vector in vectors:
            vector.release()
        raise
    return vectors


def describe(vector: BitVector) -> str:
    """One-line summary like ``stream 8/5 10110``.

    :param vector: Vector to describe.
    :type vector: BitVector
    :returns: Mode, capacity/used bits and the bit string.
    :rtype: str
    """
    return (
        f"{vector.mode.name.lower()} "
        f"{vector.capacity_bits}/{vector.used_bits} "
        f"{vector_to_string(vector)}"
    ).rstrip()


def write_vectors(
    bit_strings: List[str],
    output_path: str,
    as_array: bool = False,
    offset: Optional[int] = None,
    append: bool = False,
) -> int:
    """Encode bit strings back to back into a store file.

    Store layout is a plain sequence of encoded vectors (see
    :func:`serializer.encode`) starting at ``offset``.

    :param bit_strings: Bit strings to store, one vector each.
    :type bit_strings: List[str]
    :param output_path: Destination store file path.
    :type output_path: str
    :param as_array: Store array vectors instead of streams.
    :type as_array: bool
    :param offset: Byte offset of the first vector. Defaults to the
        current end of the file when ``append`` is set, 0 otherwise.
    :type offset: Optional[int]
    :param append: Keep existing file content instead of truncating.
    :type append: bool
    :returns: Offset just past the last vector written.
    :rtype: int
    :raises BitValueError: If a bit string is invalid or
        ``offset`` is negative.
    :raises StoreIOError: If a write comes up short.
    :raises OSError: If the store file cannot be opened.
    """
    if offset is not None and offset < 0:
        raise BitValueError(f"Negative store offset: {offset}")
    vectors = _parse_vectors(bit_strings, as_array)
    flags = os.O_WRONLY | os.O_CREAT
    if not append:
        flags |= os.O_TRUNC
    try:
        with FileStore.open(output_path, flags) as store:
            if offset is None:
                offset = store.size() if append else 0
            for vector in vectors:
                offset = encode(vector, store, offset)
                log.info("stored %s", describe(vector))
    finally:
        for vector in vectors:
            vector.release()
    return offset


def read_vectors(
    store_path: str, offset: int = 0, count: Optional[int] = None
) -> Tuple[List[BitVector], int]:
    """Decode consecutive vectors from a store file.

    :param store_path: Store file path.
    :type store_path: str
    :param offset: Byte offset of the first vector.
    :type offset: int
    :param count: Number of vectors to read; ``None`` reads until the end
        of the store.
    :type count: Optional[int]
    :returns: Decoded vectors and the offset just past the last one.
    :rtype: Tuple[List[BitVector], int]
    :raises FileNotFoundError: If the store file does not exist.
    :raises StoreIOError: If a vector is truncated.
    """
    vectors: List[BitVector] = []
    with FileStore.open(store_path) as store:
        end = store.size()
        try:
            while True:
                if count is None and offset >= end:
                    break
                if count is not None and len(vectors) >= count:
                    break
                vector, offset = decode(store, offset)
                vectors.append(vector)
        except BitVectorError:
            for vector in vectors:
                vector.release()
            raise
    return vectors, offset


def main(argv=None) -> int:
    """Entry point for the CLI tool.

    :param argv: Arguments to parse; defaults to ``sys.argv[1:]``.
    :type argv: Optional[List[str]]
    :returns: Process exit status.
    :rtype: int
    """
    parser = get_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.cmd in ["write", "w"]:
        try:
            end = write_vectors(
                args.bits, args.output, args.array, args.offset, args.append
            )
        except BitValueError as e:
            print(f"[!] Invalid bit string: {e}")
            return 1
        except BitVectorError as e:
            print(f"[!] Could not write store {args.output}: {e}")
            return 1
        except OSError as e:
            print(f"[!] Could not write store {args.output}: {e.strerror or e}")
            return 1
        print(f"Wrote {len(args.bits)} vector(s), next offset {end}")
    elif args.cmd in ["read", "r"]:
        try:
            vectors, _ = read_vectors(args.store, args.offset, args.count)
        except FileNotFoundError:
            print(f"[!] Store file not found: {args.store}")
            return 1
        except BitVectorError as e:
            print(f"[!] Could not read store {args.store}: {e}")
            return 1
        except OSError as e:
            print(f"[!] Could not read store {args.store}: {e.strerror or e}")
            return 1
        for vector in vectors:
            print(describe(vector))
            vector.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
