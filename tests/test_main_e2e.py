import os
import struct
import pytest

from errors import BitValueError
from serializer import HEADER_FORMAT, HEADER_SIZE


def test_write_and_read_roundtrip(tmp_path, m, capsys):
    store = tmp_path / "out.bv"
    assert m.main(["write", "1010", "110", "-o", str(store)]) == 0
    assert "next offset 36" in capsys.readouterr().out
    assert store.stat().st_size == 2 * (HEADER_SIZE + 1)

    assert m.main(["read", str(store)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["stream 4/4 1010", "stream 4/3 110"]


def test_write_arrays_and_read_with_offset_and_count(tmp_path, m, capsys):
    store = tmp_path / "arr.bv"
    end = m.write_vectors(["111", "0000000001", "01"], str(store), True)
    assert end == 3 * HEADER_SIZE + 1 + 2 + 1

    vectors, offset = m.read_vectors(str(store), HEADER_SIZE + 1, 1)
    assert len(vectors) == 1
    assert offset == 2 * HEADER_SIZE + 1 + 2

    assert m.main(["r", str(store), "--offset", str(offset)]) == 0
    assert capsys.readouterr().out.splitlines() == ["array 2/2 01"]


def test_append_keeps_existing_vectors(tmp_path, m):
    store = tmp_path / "app.bv"
    end = m.write_vectors(["1"], str(store))
    m.write_vectors(["0"], str(store), offset=end, append=True)
    vectors, _ = m.read_vectors(str(store))
    assert [m.describe(v) for v in vectors] == ["stream 1/1 1", "stream 1/1 0"]


def test_write_without_append_truncates(tmp_path, m):
    store = tmp_path / "trunc.bv"
    m.write_vectors(["1010", "1"], str(store))
    m.write_vectors(["1"], str(store))
    assert store.stat().st_size == HEADER_SIZE + 1


def test_write_invalid_bits_reports_error(tmp_path, m, capsys):
    store = tmp_path / "bad.bv"
    assert m.main(["write", "10x1", "-o", str(store)]) == 1
    assert capsys.readouterr().out.startswith("[!] Invalid bit string")
    assert not store.exists()

    assert m.main(["write", "--array", "", "-o", str(store)]) == 1


def test_read_missing_store_reports_error(tmp_path, m, capsys):
    assert m.main(["read", str(tmp_path / "nope.bv")]) == 1
    assert "[!] Store file not found" in capsys.readouterr().out


def test_read_truncated_store_reports_error(tmp_path, m, capsys):
    store = tmp_path / "short.bv"
    store.write_bytes(struct.pack(HEADER_FORMAT, 1, 16, 16) + b"\x01")
    assert m.main(["read", str(store)]) == 1
    assert "[!] Could not read store" in capsys.readouterr().out

    with pytest.raises(OSError):
        m.read_vectors(str(store))


def test_append_without_offset_writes_after_existing_data(tmp_path, m, capsys):
    store = tmp_path / "grow.bv"
    assert m.main(["write", "1010", "-o", str(store)]) == 0
    assert m.main(["write", "011", "-o", str(store), "--append"]) == 0
    out = capsys.readouterr().out
    assert "next offset 36" in out

    assert m.main(["read", str(store)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "stream 4/4 1010", "stream 4/3 011",
    ]


def test_write_into_missing_directory_reports_error(tmp_path, m, capsys):
    target = tmp_path / "no" / "such" / "dir" / "x.bv"
    assert m.main(["write", "1", "-o", str(target)]) == 1
    assert capsys.readouterr().out.startswith(
        f"[!] Could not write store {target}"
    )
    assert not target.exists()


def test_write_negative_offset_exits_with_usage_error(tmp_path, m):
    store = tmp_path / "neg.bv"
    with pytest.raises(SystemExit) as info:
        m.main(["write", "1", "-o", str(store), "--offset", "-1"])
    assert info.value.code == 2
    assert not store.exists()


def test_read_os_error_reports_error(tmp_path, m, capsys, monkeypatch):
    def _denied(path, flags=os.O_RDONLY, mode=0o644):
        raise PermissionError(13, "Permission denied", path)

    monkeypatch.setattr(m.FileStore, "open", _denied)
    store = tmp_path / "locked.bv"
    assert m.main(["read", str(store)]) == 1
    assert capsys.readouterr().out == (
        f"[!] Could not read store {store}: Permission denied\n"
    )


def test_write_vectors_negative_offset_keeps_file(tmp_path, m):
    store = tmp_path / "keep.bv"
    end = m.write_vectors(["1"], str(store))
    with pytest.raises(BitValueError):
        m.write_vectors(["0"], str(store), offset=-1)
    assert store.stat().st_size == end
