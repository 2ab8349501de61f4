import logging
from enum import IntEnum
from typing import Iterator, Optional

from errors import (
    AllocationError,
    BitIndexError,
    BitValueError,
    EmptyError,
    ModeError,
    ReleasedError,
)

log = logging.getLogger(__name__)


class Mode(IntEnum):
    """Vector variant. The value doubles as the persisted mode tag."""

    STREAM = 0
    ARRAY = 1


def _allocate(nbytes: int) -> bytearray:
    """Allocate a zero-filled buffer of ``nbytes`` bytes.

    :param nbytes: Buffer size in bytes.
    :type nbytes: int
    :returns: A fresh zero-filled buffer.
    :rtype: bytearray
    :raises AllocationError: If the memory cannot be obtained.
    """
    try:
        return bytearray(nbytes)
    except MemoryError as e:
        raise AllocationError(f"Cannot allocate {nbytes} bytes") from e


def round_stream_hint(length_hint: int) -> int:
    """Round a stream length hint to the power of two above it.

    ``0 -> 1``, ``1 -> 2``, ``5 -> 8``, ``8 -> 16``.

    :param length_hint: Caller's estimate of the bits it will append.
    :type length_hint: int
    :returns: Realized stream capacity in bits.
    :rtype: int
    """
    return 1 << length_hint.bit_length()


def _check_count(value, what: str) -> None:
    """Reject anything but a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise BitValueError(f"The {what} must be an integer, got {value!r}")
    if value < 0:
        raise BitValueError(f"Negative {what}: {value}")


class BitVector:
    """Byte-backed bit container usable as a fixed array or a bit stream.

    Bit ``i`` lives in byte ``i // 8`` at bit position ``i & 7`` (bit 0 is
    the least significant bit of byte 0). The buffer always holds one
    padding byte beyond the bit-exact size.

    In stream mode bits are appended at ``used_bits`` and detached from the
    top, LIFO. Capacity doubles whenever the stream is full.

    :ivar PADDING_BYTES: Bytes kept beyond ``ceil(capacity_bits / 8)``.
    :type PADDING_BYTES: int
    :ivar GROWTH_FACTOR: Capacity multiplier applied when a stream is full.
    :type GROWTH_FACTOR: int
    :ivar mode: Vector variant, fixed for the lifetime of the instance.
    :type mode: Mode
    :ivar buffer: Exclusively owned backing store; ``None`` once released.
    :type buffer: bytearray | None
    :ivar capacity_bits: Number of bits the buffer provisions for.
    :type capacity_bits: int
    :ivar used_bits: Stream high-water mark; equals ``capacity_bits``
        for arrays.
    :type used_bits: int
    """

    PADDING_BYTES = 1
    GROWTH_FACTOR = 2

    def __init__(self, mode: Mode, length_hint: int = 0):
        """Create a zero-filled vector.

        Array vectors get exactly ``length_hint`` bits, which must be
        positive. Stream vectors treat ``length_hint`` as a hint and round
        it with :func:`round_stream_hint`.

        :param mode: Vector variant.
        :type mode: Mode
        :param length_hint: Array length, or expected stream length.
        :type length_hint: int
        :returns: None
        :rtype: None
        :raises BitValueError: On an unknown mode, a hint that is not a
            non-negative integer, or a zero-length array.
        :raises AllocationError: If the buffer cannot be allocated.
        """
        mode = self._coerce_mode(mode)
        _check_count(length_hint, "length hint")
        if mode is Mode.ARRAY:
            if length_hint == 0:
                raise BitValueError("Array vectors need a non-zero length")
            capacity_bits = length_hint
        else:
            capacity_bits = round_stream_hint(length_hint)
        self._setup(mode, capacity_bits)

    @classmethod
    def with_capacity(
        cls, mode: Mode, capacity_bits: int, used_bits: Optional[int] = None
    ) -> "BitVector":
        """Create a vector with an exact capacity, skipping hint rounding.

        Used to restore a persisted vector whose capacity was already
        realized when it was saved.

        :param mode: Vector variant.
        :type mode: Mode
        :param capacity_bits: Exact capacity in bits (at least 1).
        :type capacity_bits: int
        :param used_bits: Stream high-water mark; defaults to 0 for streams.
            Ignored for arrays.
        :type used_bits: Optional[int]
        :returns: The new vector.
        :rtype: BitVector
        :raises BitValueError: If the capacity is not positive or
            ``used_bits`` does not fit in it.
        :raises AllocationError: If the buffer cannot be allocated.
        """
        mode = cls._coerce_mode(mode)
        _check_count(capacity_bits, "capacity")
        if used_bits is not None:
            _check_count(used_bits, "used bits")
        if capacity_bits < 1:
            raise BitValueError(f"Invalid capacity: {capacity_bits}")
        if mode is Mode.STREAM and used_bits is not None:
            if not 0 <= used_bits <= capacity_bits:
                raise BitValueError(
                    f"Used bits {used_bits} outside [0, {capacity_bits}]"
                )
        vector = cls.__new__(cls)
        vector._setup(mode, capacity_bits)
        if mode is Mode.STREAM and used_bits is not None:
            vector.used_bits = used_bits
        return vector

    def _setup(self, mode: Mode, capacity_bits: int) -> None:
        self.mode = mode
        self.buffer = _allocate(self._buffer_size(capacity_bits))
        self.capacity_bits = capacity_bits
        self.used_bits = 0 if mode is Mode.STREAM else capacity_bits

    @staticmethod
    def _coerce_mode(mode) -> Mode:
        if isinstance(mode, bool):
            raise BitValueError(f"Unknown vector mode: {mode!r}")
        try:
            return Mode(mode)
        except ValueError as e:
            raise BitValueError(f"Unknown vector mode: {mode!r}") from e

    @classmethod
    def _buffer_size(cls, capacity_bits: int) -> int:
        """Bytes needed for ``capacity_bits`` bits plus padding."""
        return (capacity_bits + 7) // 8 + cls.PADDING_BYTES

    @property
    def released(self) -> bool:
        return self.buffer is None

    @property
    def payload_bits(self) -> int:
        """Number of meaningful bits: capacity for arrays, used for streams.

        :returns: Bit count that is printed and persisted.
        :rtype: int
        """
        self._check_live()
        if self.mode is Mode.ARRAY:
            return self.capacity_bits
        return self.used_bits

    def _check_live(self) -> None:
        if self.buffer is None:
            raise ReleasedError("Bit vector has been released")

    def _check_stream(self) -> None:
        self._check_live()
        if self.mode is not Mode.STREAM:
            raise ModeError("Operation requires a stream-mode vector")

    def _locate(self, index: int):
        """Map a bit index to ``(byte_index, bit_mask)``.

        :param index: Bit index.
        :type index: int
        :returns: Byte position in ``buffer`` and the mask of the bit in it.
        :rtype: Tuple[int, int]
        :raises BitIndexError: If ``index`` is outside
            ``[0, capacity_bits)``.
        """
        self._check_live()
        if index < 0 or index >= self.capacity_bits:
            raise BitIndexError(
                f"Bit index {index} out of range [0, {self.capacity_bits})"
            )
        return index >> 3, 1 << (index & 7)

    def get(self, index: int) -> int:
        """Return the bit at ``index`` as 0 or 1.

        :param index: Bit index.
        :type index: int
        :returns: The bit value.
        :rtype: int
        :raises BitIndexError: If ``index`` is out of range.
        """
        byte_index, mask = self._locate(index)
        return 1 if self.buffer[byte_index] & mask else 0

    def set(self, index: int) -> None:
        """Set the bit at ``index`` to 1. Does not move ``used_bits``.

        :raises BitIndexError: If ``index`` is out of range.
        """
        byte_index, mask = self._locate(index)
        self.buffer[byte_index] |= mask

    def clear(self, index: int) -> None:
        """Set the bit at ``index`` to 0. Does not move ``used_bits``.

        :raises BitIndexError: If ``index`` is out of range.
        """
        byte_index, mask = self._locate(index)
        self.buffer[byte_index] &= ~mask & 0xFF

    def resize(self, new_capacity_bits: int) -> None:
        """Reallocate the buffer for ``new_capacity_bits`` bits.

        Existing bytes are carried over up to the new size. Bits exposed by
        growing are only guaranteed zero where they were not already backed
        by the old buffer's padding byte, so callers growing an array should
        clear new bits before reading them. A shrinking stream has its
        ``used_bits`` clamped to the new capacity.

        On allocation failure the vector is left unmodified.

        :param new_capacity_bits: New capacity in bits (at least 1).
        :type new_capacity_bits: int
        :returns: None
        :rtype: None
        :raises BitValueError: If ``new_capacity_bits`` is not an integer
            of at least 1.
        :raises AllocationError: If the new buffer cannot be allocated.
        """
        self._check_live()
        _check_count(new_capacity_bits, "capacity")
        if new_capacity_bits < 1:
            raise BitValueError(f"Invalid capacity: {new_capacity_bits}")
        nbytes = self._buffer_size(new_capacity_bits)
        buffer = _allocate(nbytes)
        keep = min(nbytes, len(self.buffer))
        buffer[:keep] = self.buffer[:keep]
        log.debug(
            "resize %s vector: %d -> %d bits (%d bytes)",
            self.mode.name.lower(), self.capacity_bits,
            new_capacity_bits, nbytes,
        )
        self.buffer = buffer
        self.capacity_bits = new_capacity_bits
        if self.mode is Mode.ARRAY:
            self.used_bits = new_capacity_bits
        elif self.used_bits > new_capacity_bits:
            self.used_bits = new_capacity_bits

    def append(self, bit: int) -> None:
        """Append one bit at the top of the stream.

        Doubles the capacity first when the stream is full.

        :param bit: 0 or 1.
        :type bit: int
        :returns: None
        :rtype: None
        :raises ModeError: If the vector is not a stream.
        :raises BitValueError: If ``bit`` is not 0 or 1.
        :raises AllocationError: If growing the buffer fails; the stream is
            left as it was.
        """
        self._check_stream()
        if bit not in (0, 1):
            raise BitValueError(f"Bit must be 0 or 1, got {bit!r}")
        if self.used_bits == self.capacity_bits:
            self.resize(self.capacity_bits * self.GROWTH_FACTOR)
        if bit:
            self.set(self.used_bits)
        else:
            self.clear(self.used_bits)
        self.used_bits += 1

    def append_string(self, text: str) -> None:
        """Append a ``'0'``/``'1'`` string, left to right.

        Stops at the first other character; bits appended before it stay.

        :param text: Bit string.
        :type text: str
        :returns: None
        :rtype: None
        :raises ModeError: If the vector is not a stream.
        :raises BitValueError: On a character other than ``'0'`` or ``'1'``.
        """
        self._check_stream()
        for pos, char in enumerate(text):
            if char == "0":
                self.append(0)
            elif char == "1":
                self.append(1)
            else:
                raise BitValueError(
                    f"Invalid bit character {char!r} at position {pos}"
                )

    def append_vector(self, src: "BitVector", max_bits: int = 0) -> None:
        """Append the bits of ``src`` in index order.

        ``src`` may be of either mode, and may be this vector. The number of
        bits copied is fixed before copying starts: the payload length of
        ``src`` when ``max_bits`` is 0, otherwise ``max_bits`` capped at
        that length.

        :param src: Vector to copy from.
        :type src: BitVector
        :param max_bits: Maximum number of bits to copy; 0 copies all.
        :type max_bits: int
        :returns: None
        :rtype: None
        :raises ModeError: If this vector is not a stream.
        :raises BitValueError: If ``max_bits`` is not a non-negative
            integer.
        :raises AllocationError: If growing the buffer fails.
        """
        self._check_stream()
        _check_count(max_bits, "bit count")
        count = src.payload_bits
        if max_bits:
            count = min(max_bits, count)
        for i in range(count):
            self.append(src.get(i))

    def detach(self) -> int:
        """Pop the most recently appended bit. Capacity is kept.

        :returns: The detached bit.
        :rtype: int
        :raises ModeError: If the vector is not a stream.
        :raises EmptyError: If no bits are used.
        """
        self._check_stream()
        if self.used_bits == 0:
            raise EmptyError("Cannot detach from an empty stream")
        self.used_bits -= 1
        return self.get(self.used_bits)

    def release(self) -> None:
        """Drop the buffer. Further operations raise :class:`ReleasedError`.

        Releasing twice is a no-op.
        """
        self.buffer = None

    def __enter__(self) -> "BitVector":
        self._check_live()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __len__(self) -> int:
        return self.payload_bits

    def __iter__(self) -> Iterator[int]:
        for i in range(self.payload_bits):
            yield self.get(i)

    def __repr__(self) -> str:
        mode = self.mode.name.lower()
        if self.released:
            return f"<BitVector {mode} released>"
        bits = "".join("1" if bit else "0" for bit in self)
        return f"<BitVector {mode} {bits}>"
