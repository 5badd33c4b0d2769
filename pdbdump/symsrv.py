"""Fetch PDBs from a symbol server, keeping a local cache.

Files are stored the way symbol servers lay them out:
<cache root>/pdb/<file name>/<GUID><age>/<file name>
"""

import binascii
import os
import tempfile
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from tqdm import tqdm

from pdbdump import config
from pdbdump.errors import SymbolServerError
from pdbdump.logger import getlogger
from pdbdump.peinfo import GUID

logger = getlogger("SymSrv")

_guid = GUID("GUID")


def cache_key(signature, age):
    """GUID and age in the form symbol servers index them by.

    The first three GUID fields are stored little-endian, but are written
    out as numbers, so they get byte-swapped relative to the raw signature.
    """
    guid = _guid.parse(signature)
    return u"%08X%04X%04X%s%X" % (guid.Data1, guid.Data2, guid.Data3, binascii.hexlify(
        guid.Data4).decode('ascii').upper(), age)


def cache_path(file_name, signature, age, root = None):
    if root is None:
        root = config.cache_root()
    return os.path.join(root, "pdb", file_name, cache_key(signature, age), file_name)


def download_file(url, outfile):
    """Download url to outfile, going through a temporary file so that an
    interrupted download never leaves a partial PDB in the cache."""
    logger.info("Trying %s", url)
    request = Request(url, headers = {"User-Agent": config.USER_AGENT})
    try:
        response = urlopen(request, timeout = config.HTTP_TIMEOUT)
    except HTTPError as e:
        raise SymbolServerError("HTTP error %u fetching %s" % (e.code, url))
    except URLError as e:
        raise SymbolServerError("could not fetch %s: %s" % (url, e.reason))

    with response:
        status = getattr(response, "status", 200)
        if not 200 <= status < 300:
            raise SymbolServerError("HTTP error %u fetching %s" % (status, url))

        directory = os.path.dirname(outfile)
        os.makedirs(directory, exist_ok = True)
        length = response.headers.get("Content-Length")
        progress = tqdm(
            total = int(length) if length else None, unit = "B", unit_scale = True,
            desc = os.path.basename(outfile), disable = None)
        fd, tmpname = tempfile.mkstemp(dir = directory, suffix = ".part")
        try:
            with os.fdopen(fd, "wb") as f, progress:
                while True:
                    chunk = response.read(config.DOWNLOAD_CHUNK)
                    if not chunk:
                        break
                    f.write(chunk)
                    progress.update(len(chunk))
            os.replace(tmpname, outfile)
        except BaseException:
            os.unlink(tmpname)
            raise

    logger.info("Saved symbols to %s", outfile)
    return outfile


def obtain(file_name, signature, age, root = None):
    """Path to a local copy of the PDB, downloading it if it isn't cached yet."""
    outfile = cache_path(file_name, signature, age, root)
    if os.path.isfile(outfile):
        logger.info("Using cached %s", outfile)
        return outfile

    key = cache_key(signature, age)
    error = None
    for sym_url in config.SYM_URLS:
        url = "%s/%s/%s/%s" % (sym_url, file_name, key, file_name)
        try:
            return download_file(url, outfile)
        except SymbolServerError as e:
            logger.warning("%s", e)
            error = e
    raise error or SymbolServerError("no symbol servers configured")
