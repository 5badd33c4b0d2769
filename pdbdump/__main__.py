#!/usr/bin/env python
import argparse
import sys

from pefile import PEFormatError

from pdbdump import load_types
from pdbdump.errors import PDBDumpError
from pdbdump.logger import getlogger
from pdbdump.peinfo import is_pe_image, resolve_pdb
from pdbdump.printer import dump_types
from pdbdump.symsrv import obtain

"""
pdbdump ntkrnlmp.pdb > ntkrnlmp.h
pdbdump C:\\Windows\\System32\\ntoskrnl.exe > ntkrnlmp.h
"""

logger = getlogger("pdbdump")


def find_pdb(filename):
    "filename itself if it is a PDB, else the PDB of the PE image it names"
    if not is_pe_image(filename):
        return filename
    ident = resolve_pdb(filename)
    logger.info("%s uses %s", filename, ident.file_name)
    return obtain(ident.file_name, ident.signature, ident.age)


def main(argv = None):
    parser = argparse.ArgumentParser(
        prog = "pdbdump", description = "Print the structs, unions and enums of a PDB as C declarations.")
    parser.add_argument("filename", help = "PDB file, or a PE image whose PDB should be fetched")
    args = parser.parse_args(argv)

    try:
        tpi = load_types(find_pdb(args.filename))
        result = dump_types(tpi, sys.stdout)
    except (PDBDumpError, PEFormatError, OSError) as e:
        logger.error("%s", e)
        return 1

    if result.failed and not result.printed:
        logger.error("none of the %d types could be printed", result.failed)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
