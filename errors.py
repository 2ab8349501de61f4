class BitVectorError(Exception):
    """Base class for every error raised by the bit vector modules."""


class AllocationError(BitVectorError, MemoryError):
    """The bit buffer could not be allocated or grown."""


class BitIndexError(BitVectorError, IndexError):
    """A bit index falls outside ``[0, capacity_bits)``."""


class ModeError(BitVectorError, TypeError):
    """A stream-only operation was called on an array-mode vector."""


class BitValueError(BitVectorError, ValueError):
    """A bit value, bit string character or length is not acceptable."""


class EmptyError(BitVectorError, IndexError):
    """Detach was called on a stream with no used bits."""


class StoreIOError(BitVectorError, OSError):
    """A positioned read or write against a byte store came up short."""


class ReleasedError(BitVectorError, ValueError):
    """The vector was used after :meth:`BitVector.release`."""
