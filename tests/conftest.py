import os
import sys
from pathlib import Path
import importlib
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import bitvector  # noqa: E402
from store import FileStore, MemoryStore  # noqa: E402


@pytest.fixture()
def m():
    """Lazily import the main module for tests to avoid module-level import."""
    return importlib.import_module("main")


@pytest.fixture()
def memory_store():
    """Provide an empty, unbounded in-memory byte store."""
    return MemoryStore()


@pytest.fixture()
def file_store(tmp_path: Path):
    """Provide a read/write store over a fresh file, closed after the test."""
    path = tmp_path / "vectors.bin"
    store = FileStore.open(str(path), os.O_RDWR | os.O_CREAT | os.O_TRUNC)
    yield store
    store.close()


@pytest.fixture()
def fail_allocation(monkeypatch):
    """Make every later buffer allocation run out of memory.

    Patches the ``bytearray`` name seen by the bit vector module, so the
    ``MemoryError`` goes through the module's own allocation path.
    """

    def _no_memory(*args, **kwargs):
        raise MemoryError("simulated")

    def _arm():
        monkeypatch.setattr(bitvector, "bytearray", _no_memory, raising=False)

    return _arm


@pytest.fixture()
def allocation_counter(monkeypatch):
    """Count buffer allocations made by the bit vector module."""
    calls = []
    real = bitvector._allocate

    def _counting(nbytes):
        calls.append(nbytes)
        return real(nbytes)

    monkeypatch.setattr(bitvector, "_allocate", _counting)
    return calls
