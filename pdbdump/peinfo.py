import ntpath
from collections import namedtuple

from construct import *
from pefile import PE, DEBUG_TYPE, DIRECTORY_ENTRY

from pdbdump.errors import InvalidCodeViewError, PENoDebugDirectoryEntriesError


def GUID(name):
    return name / Struct(
        "Data1" / Int32ul,
        "Data2" / Int16ul,
        "Data3" / Int16ul,
        "Data4" / Bytes(8),
    )


CV_RSDS_HEADER = "CV_RSDS" / Struct(
    "Signature" / Const(b"RSDS", Bytes(4)),
    "GUID" / Bytes(16),
    "Age" / Int32ul,
    "Filename" / CString(encoding = "utf8"),
)

PdbIdentity = namedtuple("PdbIdentity", ["signature", "age", "file_name"])


def is_pe_image(filename):
    with open(filename, 'rb') as f:
        return f.read(2) == b"MZ"


def get_debug_data(pe, type = DEBUG_TYPE[u'IMAGE_DEBUG_TYPE_CODEVIEW']):
    retval = None
    if not hasattr(pe, u'DIRECTORY_ENTRY_DEBUG'):
        # fast loaded - load directory
        pe.parse_data_directories([DIRECTORY_ENTRY[u'IMAGE_DIRECTORY_ENTRY_DEBUG']])
    if not hasattr(pe, u'DIRECTORY_ENTRY_DEBUG'):
        raise PENoDebugDirectoryEntriesError("image has no debug directory")
    for entry in pe.DIRECTORY_ENTRY_DEBUG:
        off = entry.struct.PointerToRawData
        size = entry.struct.SizeOfData
        if entry.struct.Type == type:
            retval = pe.__data__[off:off + size]
            break
    return retval


def get_rsds(dbgdata):
    """
        Parse the RSDS header using construct.
        Parameter:
            * (bytes) dbgdata, the raw bytes of the CodeView debug entry
        Return :
            * (PdbIdentity) the GUID as stored, the age and the pdb filename
    """
    if dbgdata is None or dbgdata[:4] != b'RSDS':
        raise InvalidCodeViewError(u'Invalid CodeView signature: [%s]' % (dbgdata[:4] if dbgdata else None))
    try:
        dbg = CV_RSDS_HEADER.parse(dbgdata)
    except ConstructError as e:
        raise InvalidCodeViewError(u'Malformed RSDS record: %s' % e)
    return PdbIdentity(dbg.GUID, dbg.Age, ntpath.basename(dbg.Filename))


def resolve_pdb(image):
    """
        Find which PDB goes with a PE image.
        Parameter:
            * (str or bytes) image, a path to the PE or its contents
        Return :
            * (PdbIdentity) signature, age and file name of the PDB
    """
    if isinstance(image, bytes):
        pe = PE(data = image, fast_load = True)
    else:
        pe = PE(image, fast_load = True)
    try:
        return get_rsds(get_debug_data(pe))
    finally:
        pe.close()
