#!/usr/bin/env python

from io import BytesIO

from construct import *

from pdbdump.errors import (Malformed, Truncated, UnhandledFieldKind, UnrecognizedExtendedKind, UnterminatedName,
                            Unsupported, VersionMismatch, IndexOutOfBounds)

TPI_STREAM_VERSION_80 = 20040203

# Values at or above LF_NUMERIC are never literals; they name the width of
# the value that follows.
LF_NUMERIC = 0x8000

_numeric_leaves = {
    0x8000: Int8sl,  # LF_CHAR
    0x8001: Int16sl,  # LF_SHORT
    0x8002: Int16ul,  # LF_USHORT
    0x8003: Int32sl,  # LF_LONG
    0x8004: Int32ul,  # LF_ULONG
    0x8009: Int64sl,  # LF_QUADWORD
    0x800a: Int64ul,  # LF_UQUADWORD
}

# Aggregates the compiler had to invent a name for
UNNAMED_SUFFIXES = ("<unnamed-tag>", "<anonymous-tag>", "__unnamed")

AGGREGATE_KINDS = ("LF_STRUCTURE", "LF_CLASS", "LF_UNION")

# Exported from https://github.com/Microsoft/microsoft-pdb/cvinfo.h#L772
# Only the 32-bit type index, zero-terminated name leaves are decoded.
leaf_type = Enum(
    Int16ul,
    LF_VTSHAPE = 0x000a,
    LF_MODIFIER = 0x1001,
    LF_POINTER = 0x1002,
    LF_PROCEDURE = 0x1008,
    LF_MFUNCTION = 0x1009,
    LF_ARGLIST = 0x1201,
    LF_FIELDLIST = 0x1203,
    LF_BITFIELD = 0x1205,
    LF_METHODLIST = 0x1206,
    LF_BCLASS = 0x1400,
    LF_VBCLASS = 0x1401,
    LF_IVBCLASS = 0x1402,
    LF_INDEX = 0x1404,
    LF_VFUNCTAB = 0x1409,
    LF_ENUMERATE = 0x1502,
    LF_ARRAY = 0x1503,
    LF_CLASS = 0x1504,
    LF_STRUCTURE = 0x1505,
    LF_UNION = 0x1506,
    LF_ENUM = 0x1507,
    LF_ALIAS = 0x150a,
    LF_MEMBER = 0x150d,
    LF_STMEMBER = 0x150e,
    LF_METHOD = 0x150f,
    LF_NESTTYPE = 0x1510,
    LF_ONEMETHOD = 0x1511,
    LF_FUNC_ID = 0x1601,
    LF_MFUNC_ID = 0x1602,
    LF_BUILDINFO = 0x1603,
    LF_SUBSTR_LIST = 0x1604,
    LF_STRING_ID = 0x1605,
    LF_UDT_SRC_LINE = 0x1606,
    LF_UDT_MOD_SRC_LINE = 0x1607,
    LF_CHAR = 0x8000,
    LF_SHORT = 0x8001,
    LF_USHORT = 0x8002,
    LF_LONG = 0x8003,
    LF_ULONG = 0x8004,
    LF_QUADWORD = 0x8009,
    LF_UQUADWORD = 0x800a,
)

### CodeView bitfields
# NOTE: Construct assumes big-endian
# ordering for BitStructs
CV_property = "prop" / BitStruct(
    "fwdref" / Flag,
    "opcast" / Flag,
    "opassign" / Flag,
    "cnested" / Flag,
    "isnested" / Flag,
    "ovlops" / Flag,
    "ctor" / Flag,
    "packed" / Flag,
    "reserved" / BitsInteger(7),
    "scoped" / Flag,
)

CV_modifier = "modifier" / BitStruct(
    Padding(5),
    "unaligned" / Flag,
    "volatile" / Flag,
    "const" / Flag,
    Padding(8),
)

### Fixed record prefixes. Numeric leaves and names that follow them are
### variable-width and are decoded by hand.
lfStructure = "lfStructure" / Struct(
    "count" / Int16ul,
    CV_property,
    "fieldlist" / Int32ul,
    "derived" / Int32ul,
    "vshape" / Int32ul,
    "size" / Int16ul,
)

lfUnion = "lfUnion" / Struct(
    "count" / Int16ul,
    CV_property,
    "fieldlist" / Int32ul,
    "size" / Int16ul,
)

lfEnum = "lfEnum" / Struct(
    "count" / Int16ul,
    CV_property,
    "utype" / Int32ul,
    "fieldlist" / Int32ul,
)

lfPointer = "lfPointer" / Struct(
    "utype" / Int32ul,
    "attr" / Int32ul,
)

lfModifier = "lfModifier" / Struct(
    "modified_type" / Int32ul,
    CV_modifier,
)

lfArray = "lfArray" / Struct(
    "element_type" / Int32ul,
    "index_type" / Int32ul,
    "size" / Int16ul,
)

lfBitfield = "lfBitfield" / Struct(
    "base_type" / Int32ul,
    "length" / Int8ul,
    "position" / Int8ul,
)

lfProcedure = "lfProcedure" / Struct(
    "return_type" / Int32ul,
    "call_conv" / Int8ul,
    "funcattr" / Int8ul,
    "parm_count" / Int16ul,
    "arglist" / Int32ul,
)

lfArgListCount = "lfArgList" / Struct(
    "count" / Int32ul,
)

# FIELDLIST substructures
lfMember = "lfMember" / Struct(
    "leaf_type" / leaf_type,
    "attr" / Int16ul,
    "index" / Int32ul,
    "offset" / Int16ul,
)

lfEnumerate = "lfEnumerate" / Struct(
    "leaf_type" / leaf_type,
    "attr" / Int16ul,
    "value" / Int16ul,
)


### Header structures
def OffCb(name):
    return name / Struct(
        "off" / Int32sl,
        "cb" / Int32sl,
    )


TPI = "TPIHash" / Struct(
    "sn" / Int16ul,
    "sn_aux" / Int16ul,
    "HashKey" / Int32sl,
    "Buckets" / Int32sl,
    OffCb("HashVals"),
    OffCb("TiOff"),
    OffCb("HashAdj"),
)

Header = "TPIHeader" / Struct(
    "version" / Int32ul,
    "hdr_size" / Int32ul,
    "ti_min" / Int32ul,
    "ti_max" / Int32ul,
    "follow_size" / Int32ul,
    TPI,
)

### END PURE CONSTRUCT DATA ###


def parse_prefix(con, data, offset = 0):
    """Parse the fixed-size construct con from data at offset.

    The length is checked up front so that a short record is reported as
    Truncated instead of whatever construct happens to raise.
    """
    size = con.sizeof()
    if offset < 0 or offset + size > len(data):
        raise Truncated("%s needs %d bytes at offset %d, record has %d" % (con.name, size, offset, len(data)))
    return con.parse(data[offset:offset + size])


def read_numeric(probe, data, offset = 0):
    """Decode a numeric leaf.

    probe: the 16-bit value stored where the number belongs
    data: the bytes of the (sub-)record
    offset: where the extended value would start, i.e. just after probe

    Returns (value, number of bytes consumed after probe).
    """
    if probe < LF_NUMERIC:
        return probe, 0
    try:
        con = _numeric_leaves[probe]
    except KeyError:
        raise UnrecognizedExtendedKind("unrecognized numeric leaf 0x%04x" % probe)
    size = con.sizeof()
    if offset + size > len(data):
        raise Truncated("numeric leaf 0x%04x needs %d bytes at offset %d" % (probe, size, offset))
    return con.parse(data[offset:offset + size]), size


def read_name(data, offset):
    "Read a NUL-terminated name, returning it and the offset just past the NUL."
    end = data.find(b"\0", offset)
    if end == -1:
        raise UnterminatedName("name at offset %d is not terminated" % offset)
    return data[offset:end].decode("utf8", "replace"), end + 1


def is_unnamed(name):
    return name.endswith(UNNAMED_SUFFIXES)


def record_kind(data):
    if len(data) < 2:
        raise Truncated("record of %d bytes has no leaf type" % len(data))
    return leaf_type.parse(data[:2])


def _align(n):
    return (n + 3) & ~3


def iter_fields(record):
    """Walk the sub-records of an LF_FIELDLIST record.

    Yields one Container per member or enumerator. Each carries the decoded
    fields and, in data, the exact (padded) bytes of that sub-record. The
    walk keeps no state, so walking the same record again yields the same
    sequence.
    """
    kind = record_kind(record)
    if kind != "LF_FIELDLIST":
        raise Malformed("expected LF_FIELDLIST, got %s" % kind)

    data = record[2:]
    pos = 0
    while pos < len(data):
        if len(data) - pos < 2:
            raise Truncated("%d stray bytes at the end of field list" % (len(data) - pos))
        kind = leaf_type.parse(data[pos:pos + 2])
        if kind == "LF_MEMBER":
            prefix = parse_prefix(lfMember, data, pos)
            value_pos = pos + lfMember.sizeof()
            offset, used = read_numeric(prefix.offset, data, value_pos)
            field = Container(leaf_type = kind, attr = prefix.attr, index = prefix.index, offset = offset)
        elif kind == "LF_ENUMERATE":
            prefix = parse_prefix(lfEnumerate, data, pos)
            value_pos = pos + lfEnumerate.sizeof()
            value, used = read_numeric(prefix.value, data, value_pos)
            field = Container(leaf_type = kind, attr = prefix.attr, value = value)
        else:
            raise UnhandledFieldKind("unhandled field list entry %s" % kind)

        field.name, end = read_name(data, value_pos + used)
        end = min(pos + _align(end - pos), len(data))
        field.data = data[pos:end]
        yield field
        pos = end


### Record decoders. Each takes the whole record (leaf type included).
def _parse_structure(kind, data):
    prefix = parse_prefix(lfStructure, data, 2)
    pos = 2 + lfStructure.sizeof()
    size, used = read_numeric(prefix.size, data, pos)
    name, _ = read_name(data, pos + used)
    return Container(
        leaf_type = kind,
        count = prefix.count,
        prop = prefix.prop,
        fieldlist = prefix.fieldlist,
        derived = prefix.derived,
        vshape = prefix.vshape,
        size = size,
        name = name)


def _parse_union(kind, data):
    prefix = parse_prefix(lfUnion, data, 2)
    pos = 2 + lfUnion.sizeof()
    size, used = read_numeric(prefix.size, data, pos)
    name, _ = read_name(data, pos + used)
    return Container(
        leaf_type = kind, count = prefix.count, prop = prefix.prop, fieldlist = prefix.fieldlist, size = size, name = name)


def _parse_enum(kind, data):
    prefix = parse_prefix(lfEnum, data, 2)
    name, _ = read_name(data, 2 + lfEnum.sizeof())
    return Container(
        leaf_type = kind,
        count = prefix.count,
        prop = prefix.prop,
        utype = prefix.utype,
        fieldlist = prefix.fieldlist,
        name = name)


def _parse_pointer(kind, data):
    prefix = parse_prefix(lfPointer, data, 2)
    attr = prefix.attr
    return Container(
        leaf_type = kind,
        utype = prefix.utype,
        attr = attr,
        ptrtype = attr & 0x1f,
        mode = (attr >> 5) & 0x7,
        size = (attr >> 13) & 0x3f)


def _parse_modifier(kind, data):
    prefix = parse_prefix(lfModifier, data, 2)
    return Container(leaf_type = kind, modified_type = prefix.modified_type, modifier = prefix.modifier)


def _parse_array(kind, data):
    prefix = parse_prefix(lfArray, data, 2)
    if prefix.size >= LF_NUMERIC:
        raise Unsupported("array length uses numeric leaf 0x%04x" % prefix.size)
    return Container(
        leaf_type = kind, element_type = prefix.element_type, index_type = prefix.index_type, size = prefix.size)


def _parse_bitfield(kind, data):
    prefix = parse_prefix(lfBitfield, data, 2)
    return Container(leaf_type = kind, base_type = prefix.base_type, length = prefix.length, position = prefix.position)


def _parse_procedure(kind, data):
    prefix = parse_prefix(lfProcedure, data, 2)
    return Container(
        leaf_type = kind,
        return_type = prefix.return_type,
        call_conv = prefix.call_conv,
        parm_count = prefix.parm_count,
        arglist = prefix.arglist)


def _parse_arglist(kind, data):
    count = parse_prefix(lfArgListCount, data, 2).count
    args = Array(count, Int32ul)
    return Container(leaf_type = kind, count = count, arg_type = parse_prefix(args, data, 2 + lfArgListCount.sizeof()))


_record_parsers = {
    "LF_STRUCTURE": _parse_structure,
    "LF_CLASS": _parse_structure,
    "LF_UNION": _parse_union,
    "LF_ENUM": _parse_enum,
    "LF_POINTER": _parse_pointer,
    "LF_MODIFIER": _parse_modifier,
    "LF_ARRAY": _parse_array,
    "LF_BITFIELD": _parse_bitfield,
    "LF_PROCEDURE": _parse_procedure,
    "LF_ARGLIST": _parse_arglist,
}


def parse_type(record):
    """Decode one type record into a Container.

    Kinds without a decoder come back with only their leaf_type set.
    """
    kind = record_kind(record)
    try:
        parser = _record_parsers[kind]
    except KeyError:
        return Container(leaf_type = kind)
    return parser(kind, record)


def split_records(blob, count):
    """Split the type record blob into count length-prefixed records."""
    records = []
    pos = 0
    while pos < len(blob):
        if pos + 2 > len(blob):
            raise Truncated("record %d: length prefix runs past end of stream" % len(records))
        length = Int16ul.parse(blob[pos:pos + 2])
        pos += 2
        if pos + length > len(blob):
            raise Truncated("record %d: %d bytes declared, %d left" % (len(records), length, len(blob) - pos))
        records.append(blob[pos:pos + length])
        pos += length
    if len(records) != count:
        raise Malformed("header declares %d type records, stream holds %d" % (count, len(records)))
    return tuple(records)


class TypeStream:
    """The decoded TPI stream: its header and the raw record of each type index.

    The record table is built once and never modified.
    """

    def __init__(self, header, records):
        self.header = header
        self.ti_min = header.ti_min
        self.ti_max = header.ti_max
        self.records = records

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return zip(range(self.ti_min, self.ti_max), self.records)

    def is_builtin(self, ti):
        return ti < self.ti_min

    def record(self, ti):
        if not self.ti_min <= ti < self.ti_max:
            raise IndexOutOfBounds("type index 0x%x outside [0x%x, 0x%x)" % (ti, self.ti_min, self.ti_max))
        return self.records[ti - self.ti_min]


def parse_stream(fp):
    """Parse a TPI stream.

    fp: a file-like object that holds the type data to be parsed. Must
        support seeking.

    """
    hdr = fp.read(Header.sizeof())
    if len(hdr) < Header.sizeof():
        raise Truncated("TPI header needs %d bytes, stream has %d" % (Header.sizeof(), len(hdr)))
    header = Header.parse(hdr)

    if header.version != TPI_STREAM_VERSION_80:
        raise VersionMismatch("type stream version was %d, expected %d" % (header.version, TPI_STREAM_VERSION_80))
    if header.ti_max < header.ti_min:
        raise Malformed("type index range [0x%x, 0x%x) is empty" % (header.ti_min, header.ti_max))

    fp.seek(header.hdr_size)
    blob = fp.read(header.follow_size)
    if len(blob) != header.follow_size:
        raise Truncated("header declares %d bytes of type records, stream has %d" % (header.follow_size, len(blob)))

    return TypeStream(header, split_records(blob, header.ti_max - header.ti_min))


def parse(data):
    return parse_stream(BytesIO(data))
