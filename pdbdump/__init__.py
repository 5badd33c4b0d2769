#!/usr/bin/env python

from struct import unpack, calcsize

from pdbdump.errors import MissingStream

PDB_STREAM_TPI = 2  # type info

_PDB7_SIGNATURE = b"Microsoft C/C++ MSF 7.00\r\n\x1ADS\0\0\0"
_PDB7_FMT = "<%dsIIIII" % len(_PDB7_SIGNATURE)
_PDB7_FMT_SIZE = calcsize(_PDB7_FMT)

# Stream size recorded for streams that were deleted
_NIL_STREAM_SIZE = 0xffffffff


def _pages(length, pagesize):
    "Number of pages of pagesize needed to hold length bytes"
    return (length + pagesize - 1) // pagesize


def _unpack(fmt, data, what):
    size = calcsize(fmt)
    if len(data) < size:
        raise MissingStream("%s is truncated (%d of %d bytes)" % (what, len(data), size))
    return unpack(fmt, data[:size])


class StreamFile:
    """A file-like view of one stream, scattered over pages of the PDB."""

    def __init__(self, fp, pages, size = -1, page_size = 0x1000):
        self.fp = fp
        self.pages = pages
        self.page_size = page_size
        self.end = len(pages) * page_size if size == -1 else size
        self.pos = 0

    def read(self, size = -1):
        if size < 0:
            size = self.end - self.pos
        size = min(size, self.end - self.pos)
        if size <= 0:
            return b""
        first = self.pos // self.page_size
        last = (self.pos + size - 1) // self.page_size
        data = b"".join(self._read_page(pn) for pn in self.pages[first:last + 1])
        start = self.pos - first * self.page_size
        self.pos += size
        return data[start:start + size]

    def seek(self, offset, whence = 0):
        base = {0: 0, 1: self.pos, 2: self.end}[whence]
        self.pos = max(0, min(base + offset, self.end))
        return self.pos

    def tell(self):
        return self.pos

    def _read_page(self, pn):
        self.fp.seek(pn * self.page_size)
        return self.fp.read(self.page_size)


def read_directory(data, page_size):
    """Decode the stream directory.

    Returns a list of (size, page numbers) for each stream.
    """
    (num_streams, ) = _unpack("<I", data, "stream directory")
    sizes = _unpack("<%dI" % num_streams, data[4:], "stream directory")
    sizes = [0 if s == _NIL_STREAM_SIZE else s for s in sizes]

    streams = []
    pos = 4 + num_streams * 4
    for i, size in enumerate(sizes):
        count = _pages(size, page_size)
        pages = _unpack("<%dI" % count, data[pos:], "page list of stream %d" % i)
        streams.append((size, pages))
        pos += count * 4
    return streams


class PDB7:
    """A Microsoft PDB file, version 7.

    Only the stream directory is read up front; streams themselves are
    read on request.

    """

    def __init__(self, fp):
        self.fp = fp
        (signature, self.page_size, _, self.num_file_pages, directory_size,
         _) = _unpack(_PDB7_FMT, self.fp.read(_PDB7_FMT_SIZE), "PDB header")

        if signature != _PDB7_SIGNATURE:
            raise MissingStream("Invalid signature for PDB version 7")
        if self.page_size == 0:
            raise MissingStream("PDB page size is 0")

        # The header is followed by the pages holding the directory's page list
        num_directory_pages = _pages(directory_size, self.page_size)
        num_index_pages = _pages(num_directory_pages * 4, self.page_size)
        index_pages = _unpack("<%dI" % num_index_pages, self.fp.read(num_index_pages * 4), "directory index")

        index = StreamFile(self.fp, index_pages, size = num_directory_pages * 4, page_size = self.page_size)
        directory_pages = _unpack("<%dI" % num_directory_pages, index.read(), "directory page list")

        directory = StreamFile(self.fp, directory_pages, size = directory_size, page_size = self.page_size)
        self.streams = read_directory(directory.read(), self.page_size)

    def open_stream(self, index):
        if index >= len(self.streams):
            raise MissingStream("PDB has %d streams, no stream %04d" % (len(self.streams), index))
        size, pages = self.streams[index]
        return StreamFile(self.fp, pages, size = size, page_size = self.page_size)

    def read_stream(self, index):
        return self.open_stream(index).read()

    def close(self):
        self.fp.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def parse(filename):
    "Open a PDB file"
    f = open(filename, 'rb')
    try:
        return PDB7(f)
    except Exception:
        f.close()
        raise


def load_types(filename):
    """Read and decode the TPI stream of the PDB file filename."""
    from pdbdump import tpi
    with parse(filename) as pdb:
        return tpi.parse(pdb.read_stream(PDB_STREAM_TPI))
