import io

import pytest

import pdbdump
from pdbdump.errors import MissingStream, VersionMismatch

import tpi_builder as tb


def type_stream(n = 100):
    b = tb.TypeStreamBuilder()
    for i in range(n):
        b.add(tb.structure("_STRUCT_%d" % i, size = i))
    return b.build()


def write_pdb(tmp_path, streams, page_size = 512):
    path = tmp_path / "test.pdb"
    path.write_bytes(tb.build_msf(streams, page_size))
    return str(path)


def test_read_streams(tmp_path):
    types = type_stream()
    assert len(types) > 3 * 512
    path = write_pdb(tmp_path, [b"", b"info" * 10, types, b"dbi"])

    with pdbdump.parse(path) as pdb:
        assert pdb.page_size == 512
        assert len(pdb.streams) == 4
        assert pdb.read_stream(0) == b""
        assert pdb.read_stream(1) == b"info" * 10
        assert pdb.read_stream(pdbdump.PDB_STREAM_TPI) == types
        assert pdb.read_stream(3) == b"dbi"


def test_stream_file_seek(tmp_path):
    data = bytes(range(256)) * 5
    path = write_pdb(tmp_path, [b"", b"", data])
    with pdbdump.parse(path) as pdb:
        f = pdb.open_stream(2)
        f.seek(510)
        assert f.read(4) == data[510:514]
        assert f.tell() == 514
        f.seek(-2, 2)
        assert f.read() == data[-2:]
        assert f.read(10) == b""
        f.seek(4, 0)
        f.seek(4, 1)
        assert f.read(2) == data[8:10]


def test_missing_stream(tmp_path):
    path = write_pdb(tmp_path, [b"", b""])
    with pdbdump.parse(path) as pdb:
        with pytest.raises(MissingStream):
            pdb.read_stream(pdbdump.PDB_STREAM_TPI)


def test_not_a_pdb(tmp_path):
    path = tmp_path / "junk.pdb"
    path.write_bytes(b"Microsoft C/C++ program database 2.00\r\n\x1aJG\0\0" + b"\0" * 64)
    with pytest.raises(MissingStream):
        pdbdump.parse(str(path))


def test_truncated_file():
    with pytest.raises(MissingStream):
        pdbdump.PDB7(io.BytesIO(tb.MSF_MAGIC[:20]))


def test_load_types(tmp_path):
    b = tb.TypeStreamBuilder()
    foo = b.add(tb.structure("_FOO", size = 8))
    path = write_pdb(tmp_path, [b"", b"", b.build()])

    types = pdbdump.load_types(path)
    assert len(types) == 1
    assert types.record(foo) == b.records[0]


def test_load_types_checks_version(tmp_path):
    path = write_pdb(tmp_path, [b"", b"", tb.TypeStreamBuilder().build(version = 19990903)])
    with pytest.raises(VersionMismatch):
        pdbdump.load_types(path)
