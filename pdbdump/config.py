import os

# for the declaration printer
INDENT = " " * 4
MAX_TYPE_DEPTH = 64

# for the symbol server client
SYM_URLS = ['https://msdl.microsoft.com/download/symbols']
USER_AGENT = "Microsoft-Symbol-Server/6.11.0001.404"
HTTP_TIMEOUT = 60
DOWNLOAD_CHUNK = 0x10000


def cache_root():
    root = os.environ.get("XDG_CACHE_HOME")
    if root:
        return root
    return os.path.join(os.path.expanduser("~"), ".cache")
