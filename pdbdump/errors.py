class PDBDumpError(Exception):
    pass


class MissingStream(PDBDumpError):
    pass


class PENoDebugDirectoryEntriesError(PDBDumpError):
    pass


class InvalidCodeViewError(PDBDumpError):
    pass


class SymbolServerError(PDBDumpError):
    pass


class TypeDecodeError(PDBDumpError):
    """Base class for everything that can go wrong while decoding type records.

    Raised for a single record, these are recovered from by the driver; raised
    while loading the stream itself they are fatal.
    """


class VersionMismatch(TypeDecodeError):
    pass


class Truncated(TypeDecodeError):
    pass


class UnrecognizedExtendedKind(TypeDecodeError):
    pass


class UnhandledFieldKind(TypeDecodeError):
    pass


class UnterminatedName(TypeDecodeError):
    pass


class IndexOutOfBounds(TypeDecodeError):
    pass


class UnresolvedForwardRef(TypeDecodeError):
    pass


class UnhandledLeafKind(TypeDecodeError):
    pass


class Unsupported(TypeDecodeError):
    pass


class Malformed(TypeDecodeError):
    pass
