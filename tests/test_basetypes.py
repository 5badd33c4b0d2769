import pytest

from pdbdump import basetypes
from pdbdump.errors import UnhandledLeafKind

builtin_data = [
    (0x0010, "signed char", 1),
    (0x0011, "short", 2),
    (0x0012, "long", 4),
    (0x0013, "long long", 8),
    (0x0020, "unsigned char", 1),
    (0x0021, "unsigned short", 2),
    (0x0022, "unsigned long", 4),
    (0x0023, "unsigned long long", 8),
    (0x0030, "bool", 1),
    (0x0040, "float", 4),
    (0x0041, "double", 8),
    (0x0070, "char", 1),
    (0x0071, "wchar_t", 2),
    (0x0074, "int", 4),
    (0x0075, "unsigned int", 4),
    (0x0076, "int64_t", 8),
    (0x0077, "uint64_t", 8),
]


@pytest.mark.parametrize("ti,name,size", builtin_data)
def test_builtin_table(ti, name, size):
    assert basetypes.type_name(ti) == name
    assert basetypes.type_size(ti) == size


@pytest.mark.parametrize("ti,name,size", [
    (0x0403, "void*", 4),
    (0x0603, "void*", 8),
    (0x0470, "char*", 4),
    (0x0621, "unsigned short*", 8),
])
def test_builtin_pointers(ti, name, size):
    assert basetypes.type_name(ti) == name
    assert basetypes.type_size(ti) == size


def test_void_has_no_size():
    assert basetypes.type_name(0x0003) == "void"
    with pytest.raises(UnhandledLeafKind):
        basetypes.type_size(0x0003)


@pytest.mark.parametrize("ti", [0x0000, 0x00ff, 0x0103, 0x0203, 0x0503, 0x0774])
def test_unknown_builtins(ti):
    with pytest.raises(UnhandledLeafKind):
        basetypes.type_name(ti)
    with pytest.raises(UnhandledLeafKind):
        basetypes.type_size(ti)
