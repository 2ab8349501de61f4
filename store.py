import os
from typing import Optional

from errors import BitValueError


class ByteStore:
    """Random-access byte store addressed by explicit offsets.

    Subclasses implement positioned reads and writes. A result shorter than
    requested is how a short read or write is reported; callers decide
    whether that is an error.
    """

    def pread(self, size: int, offset: int) -> bytes:
        """Read up to ``size`` bytes starting at ``offset``.

        :param size: Number of bytes wanted.
        :type size: int
        :param offset: Absolute byte offset.
        :type offset: int
        :returns: The bytes read; shorter than ``size`` at end of store.
        :rtype: bytes
        """
        raise NotImplementedError

    def pwrite(self, data: bytes, offset: int) -> int:
        """Write ``data`` starting at ``offset``.

        :param data: Bytes to write.
        :type data: bytes
        :param offset: Absolute byte offset.
        :type offset: int
        :returns: Number of bytes actually written.
        :rtype: int
        """
        raise NotImplementedError


class FileStore(ByteStore):
    """Byte store over an OS file descriptor.

    Uses ``os.pread``/``os.pwrite`` so the descriptor's file position is
    left alone. Platforms without them fall back to seek + read/write.

    :ivar fd: Underlying file descriptor.
    :type fd: int
    """

    def __init__(self, fd: int, owns_fd: bool = False):
        """Wrap an already open descriptor.

        :param fd: File descriptor opened for the intended access.
        :type fd: int
        :param owns_fd: Close ``fd`` in :meth:`close`.
        :type owns_fd: bool
        :returns: None
        :rtype: None
        """
        self.fd = fd
        self._owns_fd = owns_fd

    @classmethod
    def open(cls, path: str, flags: int = os.O_RDONLY,
             mode: int = 0o644) -> "FileStore":
        """Open ``path`` and wrap the new descriptor.

        :param path: Filesystem path.
        :type path: str
        :param flags: ``os.open`` flags.
        :type flags: int
        :param mode: Permission bits for newly created files.
        :type mode: int
        :returns: A store that closes the descriptor on :meth:`close`.
        :rtype: FileStore
        :raises FileNotFoundError: If the path does not exist and
            ``os.O_CREAT`` is not given.
        """
        if hasattr(os, "O_BINARY"):
            flags |= os.O_BINARY
        return cls(os.open(path, flags, mode), owns_fd=True)

    def pread(self, size: int, offset: int) -> bytes:
        if hasattr(os, "pread"):
            return os.pread(self.fd, size, offset)
        os.lseek(self.fd, offset, os.SEEK_SET)
        return os.read(self.fd, size)

    def pwrite(self, data: bytes, offset: int) -> int:
        if hasattr(os, "pwrite"):
            return os.pwrite(self.fd, data, offset)
        os.lseek(self.fd, offset, os.SEEK_SET)
        return os.write(self.fd, data)

    def size(self) -> int:
        return os.fstat(self.fd).st_size

    def close(self) -> None:
        if self._owns_fd and self.fd >= 0:
            os.close(self.fd)
            self.fd = -1

    def __enter__(self) -> "FileStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class MemoryStore(ByteStore):
    """In-memory byte store.

    Writes past the end zero-fill the gap. With ``limit`` set, the store
    never grows beyond ``limit`` bytes and writes crossing it come up short.
    Negative offsets are rejected with :class:`BitValueError`.

    :ivar data: Store contents.
    :type data: bytearray
    :ivar limit: Maximum store size, or ``None`` for unbounded.
    :type limit: int | None
    """

    def __init__(self, data: bytes = b"", limit: Optional[int] = None):
        self.data = bytearray(data)
        self.limit = limit

    def pread(self, size: int, offset: int) -> bytes:
        self._check_offset(offset)
        return bytes(self.data[offset:offset + size])

    def pwrite(self, data: bytes, offset: int) -> int:
        self._check_offset(offset)
        end = offset + len(data)
        if self.limit is not None:
            end = min(end, self.limit)
        count = max(0, end - offset)
        if count == 0:
            return 0
        if len(self.data) < offset:
            self.data.extend(bytes(offset - len(self.data)))
        self.data[offset:offset + count] = data[:count]
        return count

    def size(self) -> int:
        return len(self.data)

    @staticmethod
    def _check_offset(offset: int) -> None:
        if offset < 0:
            raise BitValueError(f"Negative store offset: {offset}")
