import io
import os
from urllib.error import HTTPError, URLError

import pytest

from pdbdump import config, symsrv
from pdbdump.errors import SymbolServerError

GUID = bytes.fromhex("4f5c2b6a1d3e7f40a1b2c3d4e5f60718")
KEY = "6A2B5C4F3E1D407FA1B2C3D4E5F607183"


class FakeResponse(io.BytesIO):
    status = 200

    def __init__(self, data):
        super(FakeResponse, self).__init__(data)
        self.headers = {"Content-Length": str(len(data))}


def test_cache_key():
    assert symsrv.cache_key(GUID, 3) == KEY
    assert symsrv.cache_key(GUID, 0x1f) == KEY[:-1] + "1F"


def test_cache_path(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert symsrv.cache_path("ntkrnlmp.pdb", GUID, 3) == os.path.join(
        str(tmp_path), "pdb", "ntkrnlmp.pdb", KEY, "ntkrnlmp.pdb")
    assert symsrv.cache_path("a.pdb", GUID, 3, root = "/x") == os.path.join("/x", "pdb", "a.pdb", KEY, "a.pdb")


def test_cache_root_default(monkeypatch):
    monkeypatch.delenv("XDG_CACHE_HOME", raising = False)
    assert config.cache_root() == os.path.join(os.path.expanduser("~"), ".cache")


def test_obtain_cached(monkeypatch, tmp_path):
    path = symsrv.cache_path("ntkrnlmp.pdb", GUID, 3, root = str(tmp_path))
    os.makedirs(os.path.dirname(path))
    with open(path, "wb") as f:
        f.write(b"cached")

    def no_network(*args, **kwargs):
        raise AssertionError("should not download")

    monkeypatch.setattr(symsrv, "urlopen", no_network)
    assert symsrv.obtain("ntkrnlmp.pdb", GUID, 3, root = str(tmp_path)) == path


def test_obtain_downloads(monkeypatch, tmp_path):
    requests = []

    def fake_urlopen(request, timeout = None):
        requests.append(request)
        return FakeResponse(b"pdb contents")

    monkeypatch.setattr(symsrv, "urlopen", fake_urlopen)
    monkeypatch.setattr(config, "SYM_URLS", ["https://symbols.example"])
    monkeypatch.setattr(config, "DOWNLOAD_CHUNK", 4)

    path = symsrv.obtain("ntkrnlmp.pdb", GUID, 3, root = str(tmp_path))
    assert path == symsrv.cache_path("ntkrnlmp.pdb", GUID, 3, root = str(tmp_path))
    with open(path, "rb") as f:
        assert f.read() == b"pdb contents"
    assert os.listdir(os.path.dirname(path)) == ["ntkrnlmp.pdb"]

    assert len(requests) == 1
    assert requests[0].full_url == "https://symbols.example/ntkrnlmp.pdb/%s/ntkrnlmp.pdb" % KEY
    assert requests[0].get_header("User-agent") == config.USER_AGENT


def test_obtain_falls_back_to_next_server(monkeypatch, tmp_path):
    urls = []

    def fake_urlopen(request, timeout = None):
        urls.append(request.full_url)
        if request.full_url.startswith("https://first"):
            raise HTTPError(request.full_url, 404, "Not Found", {}, None)
        return FakeResponse(b"second")

    monkeypatch.setattr(symsrv, "urlopen", fake_urlopen)
    monkeypatch.setattr(config, "SYM_URLS", ["https://first", "https://second"])

    path = symsrv.obtain("a.pdb", GUID, 1, root = str(tmp_path))
    assert len(urls) == 2
    with open(path, "rb") as f:
        assert f.read() == b"second"


@pytest.mark.parametrize("failure", [
    HTTPError("https://x", 404, "Not Found", {}, None),
    URLError("name resolution failed"),
])
def test_obtain_fails(monkeypatch, tmp_path, failure):

    def fake_urlopen(request, timeout = None):
        raise failure

    monkeypatch.setattr(symsrv, "urlopen", fake_urlopen)
    monkeypatch.setattr(config, "SYM_URLS", ["https://x"])

    with pytest.raises(SymbolServerError):
        symsrv.obtain("a.pdb", GUID, 1, root = str(tmp_path))
    assert not os.path.exists(symsrv.cache_path("a.pdb", GUID, 1, root = str(tmp_path)))


def test_download_bad_status(monkeypatch, tmp_path):
    response = FakeResponse(b"<html>")
    response.status = 500
    monkeypatch.setattr(symsrv, "urlopen", lambda request, timeout = None: response)

    outfile = str(tmp_path / "sym" / "a.pdb")
    with pytest.raises(SymbolServerError):
        symsrv.download_file("https://x/a.pdb", outfile)
    assert not os.path.exists(outfile)


def test_no_servers(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "SYM_URLS", [])
    with pytest.raises(SymbolServerError):
        symsrv.obtain("a.pdb", GUID, 1, root = str(tmp_path))
