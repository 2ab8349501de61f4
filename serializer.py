import logging
import struct
import sys
from typing import Optional, TextIO, Tuple

from bitvector import BitVector, Mode
from errors import BitValueError, BitVectorError, StoreIOError
from store import ByteStore

log = logging.getLogger(__name__)

#: Header layout: mode tag, capacity_bits, used_bits. Native byte order,
#: standard sizes, no alignment padding.
HEADER_FORMAT = "=BQQ"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  #: 17 bytes


def payload_bytes(payload_bits: int) -> int:
    """Number of buffer bytes persisted for ``payload_bits`` bits."""
    return (payload_bits + 7) // 8


def _check_offset(offset: int) -> None:
    if offset < 0:
        raise BitValueError(f"Negative store offset: {offset}")


def string_to_vector(text: str, mode: Mode = Mode.STREAM) -> BitVector:
    """Build a vector from a ``'0'``/``'1'`` string.

    By default the result is a stream built from a zero length hint. With
    ``Mode.ARRAY`` it is an array of exactly ``len(text)`` bits.

    :param text: Bit string, first character is bit 0.
    :type text: str
    :param mode: Variant of the resulting vector.
    :type mode: Mode
    :returns: The new vector.
    :rtype: BitVector
    :raises BitValueError: On a character other than ``'0'`` or ``'1'``,
        or an empty string for an array.
    :raises AllocationError: If the buffer cannot be allocated.
    """
    if mode == Mode.ARRAY:
        vector = BitVector(Mode.ARRAY, len(text))
        try:
            for i, char in enumerate(text):
                if char == "1":
                    vector.set(i)
                elif char != "0":
                    raise BitValueError(
                        f"Invalid bit character {char!r} at position {i}"
                    )
        except BitVectorError:
            vector.release()
            raise
        return vector

    vector = BitVector(Mode.STREAM, 0)
    try:
        vector.append_string(text)
    except BitVectorError:
        vector.release()
        raise
    return vector


def vector_to_string(vector: BitVector) -> str:
    """Render the payload bits of ``vector`` as a ``'0'``/``'1'`` string.

    :param vector: Vector to render.
    :type vector: BitVector
    :returns: One character per payload bit, in index order.
    :rtype: str
    """
    return "".join("1" if bit else "0" for bit in vector)


def print_vector(vector: BitVector, file: Optional[TextIO] = None) -> None:
    """Print the bit string of ``vector`` followed by a newline.

    Nothing at all is written for an empty payload.

    :param vector: Vector to print.
    :type vector: BitVector
    :param file: Output stream; defaults to ``sys.stdout``.
    :type file: Optional[TextIO]
    :returns: None
    :rtype: None
    """
    text = vector_to_string(vector)
    if not text:
        return
    out = sys.stdout if file is None else file
    out.write(text + "\n")
    out.flush()


def encode(vector: BitVector, store: ByteStore, offset: int) -> int:
    """Write ``vector`` into ``store`` at ``offset``.

    Format (host byte order):
    - Mode tag: uint8 (0=stream, 1=array)
    - Capacity in bits: uint64
    - Used bits: uint64
    - Payload: ``ceil(payload_bits / 8)`` raw buffer bytes, where
      ``payload_bits`` is the capacity for arrays and the used bits for
      streams

    :param vector: Vector to persist.
    :type vector: BitVector
    :param store: Destination byte store.
    :type store: ByteStore
    :param offset: Byte offset of the header.
    :type offset: int
    :returns: Offset just past the payload, for chaining vectors.
    :rtype: int
    :raises BitValueError: If ``offset`` is negative.
    :raises StoreIOError: If any write comes up short.
    """
    _check_offset(offset)
    nbytes = payload_bytes(vector.payload_bits)
    header = struct.pack(
        HEADER_FORMAT, int(vector.mode), vector.capacity_bits, vector.used_bits
    )
    written = store.pwrite(header, offset)
    if written < HEADER_SIZE:
        raise StoreIOError(
            f"Short header write at offset {offset}: "
            f"{written}/{HEADER_SIZE} bytes"
        )
    offset += HEADER_SIZE

    payload = bytes(vector.buffer[:nbytes])
    written = store.pwrite(payload, offset)
    if written < nbytes:
        raise StoreIOError(
            f"Short payload write at offset {offset}: {written}/{nbytes} bytes"
        )
    offset += nbytes

    log.debug(
        "encoded %s vector (%d/%d bits) ending at offset %d",
        vector.mode.name.lower(), vector.used_bits,
        vector.capacity_bits, offset,
    )
    return offset


def decode(store: ByteStore, offset: int) -> Tuple[BitVector, int]:
    """Read a vector written by :func:`encode` from ``store`` at ``offset``.

    The capacity is restored exactly as recorded, without rounding it
    again as a stream length hint.

    :param store: Source byte store.
    :type store: ByteStore
    :param offset: Byte offset of the header.
    :type offset: int
    :returns: The restored vector and the offset just past its payload.
    :rtype: Tuple[BitVector, int]
    :raises StoreIOError: If the header or payload is truncated.
    :raises BitValueError: If ``offset`` is negative, or the header holds
        an unknown mode tag or inconsistent bit counts.
    """
    _check_offset(offset)
    header = store.pread(HEADER_SIZE, offset)
    if len(header) < HEADER_SIZE:
        raise StoreIOError(
            f"Short header read at offset {offset}: "
            f"{len(header)}/{HEADER_SIZE} bytes"
        )
    tag, capacity_bits, used_bits = struct.unpack(HEADER_FORMAT, header)
    offset += HEADER_SIZE

    try:
        mode = Mode(tag)
    except ValueError as e:
        raise BitValueError(f"Unsupported vector mode tag: {tag}") from e

    vector = BitVector.with_capacity(mode, capacity_bits, used_bits)
    nbytes = payload_bytes(vector.payload_bits)
    payload = store.pread(nbytes, offset)
    if len(payload) < nbytes:
        vector.release()
        raise StoreIOError(
            f"Short payload read at offset {offset}: "
            f"{len(payload)}/{nbytes} bytes"
        )
    vector.buffer[:nbytes] = payload
    offset += nbytes

    log.debug(
        "decoded %s vector (%d/%d bits) ending at offset %d",
        mode.name.lower(), vector.used_bits, capacity_bits, offset,
    )
    return vector, offset
