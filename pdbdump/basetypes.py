"""Builtin types.

Type indices below the first record index encode primitive types directly:
the low byte picks the primitive, bits 8-11 say whether (and how) it is
pointed to.
"""

from pdbdump.errors import UnhandledLeafKind

T_NOTYPE = 0x0000

# Pointer modes in bits 8-11 of a builtin type index
_direct = 0x0
_near32 = 0x4
_near64 = 0x6

_pointer_sizes = {
    _near32: 4,
    _near64: 8,
}

# Exported from https://github.com/Microsoft/microsoft-pdb/cvinfo.h#L335
# primitive code: (name, size in bytes)
base_types = {
    0x03: ("void", None),  # T_VOID
    0x08: ("HRESULT", 4),  # T_HRESULT
    0x10: ("signed char", 1),  # T_CHAR
    0x11: ("short", 2),  # T_SHORT
    0x12: ("long", 4),  # T_LONG
    0x13: ("long long", 8),  # T_QUAD
    0x14: ("__int128", 16),  # T_OCT
    0x20: ("unsigned char", 1),  # T_UCHAR
    0x21: ("unsigned short", 2),  # T_USHORT
    0x22: ("unsigned long", 4),  # T_ULONG
    0x23: ("unsigned long long", 8),  # T_UQUAD
    0x24: ("unsigned __int128", 16),  # T_UOCT
    0x30: ("bool", 1),  # T_BOOL08
    0x40: ("float", 4),  # T_REAL32
    0x41: ("double", 8),  # T_REAL64
    0x42: ("long double", 10),  # T_REAL80
    0x68: ("int8_t", 1),  # T_INT1
    0x69: ("uint8_t", 1),  # T_UINT1
    0x70: ("char", 1),  # T_RCHAR
    0x71: ("wchar_t", 2),  # T_WCHAR
    0x72: ("int16_t", 2),  # T_INT2
    0x73: ("uint16_t", 2),  # T_UINT2
    0x74: ("int", 4),  # T_INT4
    0x75: ("unsigned int", 4),  # T_UINT4
    0x76: ("int64_t", 8),  # T_INT8
    0x77: ("uint64_t", 8),  # T_UINT8
    0x7a: ("char16_t", 2),  # T_CHAR16
    0x7b: ("char32_t", 4),  # T_CHAR32
    0x7c: ("char8_t", 1),  # T_CHAR8
}


def _split(ti):
    mode = (ti >> 8) & 0xf
    code = ti & 0xff
    if ti > 0xfff or code not in base_types or (mode != _direct and mode not in _pointer_sizes):
        raise UnhandledLeafKind("unhandled builtin type 0x%x" % ti)
    return mode, code


def type_name(ti):
    mode, code = _split(ti)
    name = base_types[code][0]
    if mode != _direct:
        name += "*"
    return name


def type_size(ti):
    mode, code = _split(ti)
    if mode != _direct:
        return _pointer_sizes[mode]
    size = base_types[code][1]
    if size is None:
        raise UnhandledLeafKind("builtin type 0x%x has no size" % ti)
    return size
