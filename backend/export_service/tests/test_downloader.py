import httpx
import pytest

from export_service.exceptions import ExportDownloadError, ExportWriteError, InvalidExportUrlError
from export_service.service.downloader import ExportDownloader, extract_export_filename

from conftest import EXPORT_BYTES, EXPORT_FILENAME, EXPORT_URL, serve_export


class _BrokenStream(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"partial bytes"
        raise httpx.ReadError("connection reset by peer")


def _downloader(exports_dir, transport):
    return ExportDownloader(
        exports_dir=exports_dir,
        exports_base_url="http://backend.test/public/exports",
        chunk_size=1024,
        transport=transport,
    )


def test_extract_filename_uses_last_path_segment():
    assert extract_export_filename(EXPORT_URL) == EXPORT_FILENAME


def test_extract_filename_decodes_percent_escapes():
    assert extract_export_filename("https://host/a/my%20design.png") == "my design.png"


def test_extract_filename_keeps_backslashes():
    assert extract_export_filename("https://host/a/draft%5Cfinal.png") == "draft\\final.png"


@pytest.mark.parametrize(
    "url",
    [
        "https://export.example.com",
        "https://export.example.com/",
        "https://export.example.com/designs/",
        "https://export.example.com/designs/..",
        "https://export.example.com/a%2F..%2Fetc",
        "not a url",
        "ftp://export.example.com/file.png",
    ],
)
def test_extract_filename_rejects_urls_without_usable_segment(url):
    with pytest.raises(InvalidExportUrlError):
        extract_export_filename(url)


def test_public_url_quotes_filename(exports_dir):
    downloader = _downloader(exports_dir, serve_export())
    assert downloader.public_url_for("my design.png") == "http://backend.test/public/exports/my%20design.png"


@pytest.mark.asyncio
async def test_download_writes_exact_bytes(exports_dir):
    downloader = _downloader(exports_dir, serve_export())

    export = await downloader.download(EXPORT_URL)

    assert export.filename == EXPORT_FILENAME
    assert export.path == exports_dir / EXPORT_FILENAME
    assert export.path.read_bytes() == EXPORT_BYTES
    assert export.bytes_written == len(EXPORT_BYTES)
    assert export.public_url == f"http://backend.test/public/exports/{EXPORT_FILENAME}"
    assert [p.name for p in exports_dir.iterdir()] == [EXPORT_FILENAME]


@pytest.mark.asyncio
async def test_download_with_long_filename(exports_dir):
    filename = "a" * 240 + ".png"
    downloader = _downloader(exports_dir, serve_export())

    export = await downloader.download(f"https://export.example.com/x/{filename}")

    assert export.filename == filename
    assert (exports_dir / filename).read_bytes() == EXPORT_BYTES
    assert [p.name for p in exports_dir.iterdir()] == [filename]


@pytest.mark.asyncio
async def test_download_keeps_backslash_in_filename(exports_dir):
    downloader = _downloader(exports_dir, serve_export())

    export = await downloader.download("https://export.example.com/x/draft%5Cfinal.png")

    assert export.path == exports_dir / "draft\\final.png"
    assert export.path.read_bytes() == EXPORT_BYTES
    assert export.public_url == "http://backend.test/public/exports/draft%5Cfinal.png"


@pytest.mark.asyncio
async def test_download_replaces_previous_copy(exports_dir):
    exports_dir.mkdir(parents=True)
    (exports_dir / EXPORT_FILENAME).write_bytes(b"old export")
    downloader = _downloader(exports_dir, serve_export(body=b"new export"))

    await downloader.download(EXPORT_URL)

    assert (exports_dir / EXPORT_FILENAME).read_bytes() == b"new export"


@pytest.mark.asyncio
async def test_non_200_status_leaves_no_file(exports_dir):
    downloader = _downloader(exports_dir, serve_export(body=b"<Error>AccessDenied</Error>", status_code=403))

    with pytest.raises(ExportDownloadError) as excinfo:
        await downloader.download(EXPORT_URL)

    assert excinfo.value.status_code == 403
    assert "403" in str(excinfo.value)
    assert list(exports_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_redirect_is_not_followed(exports_dir):
    def handler(request):
        return httpx.Response(302, headers={"Location": "https://elsewhere.example.com/x.png"})

    downloader = _downloader(exports_dir, httpx.MockTransport(handler))

    with pytest.raises(ExportDownloadError):
        await downloader.download(EXPORT_URL)
    assert list(exports_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_connection_error_is_reported(exports_dir):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    downloader = _downloader(exports_dir, httpx.MockTransport(handler))

    with pytest.raises(ExportDownloadError, match="connection refused"):
        await downloader.download(EXPORT_URL)
    assert list(exports_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_interrupted_transfer_removes_partial_file(exports_dir):
    exports_dir.mkdir(parents=True)
    (exports_dir / "other.png").write_bytes(b"keep me")

    def handler(request):
        return httpx.Response(200, stream=_BrokenStream())

    downloader = _downloader(exports_dir, httpx.MockTransport(handler))

    with pytest.raises(ExportDownloadError):
        await downloader.download(EXPORT_URL)
    assert [p.name for p in exports_dir.iterdir()] == ["other.png"]


@pytest.mark.asyncio
async def test_write_failure_removes_partial_file(exports_dir):
    # A directory squatting on the destination name makes the final move fail
    (exports_dir / EXPORT_FILENAME).mkdir(parents=True)
    downloader = _downloader(exports_dir, serve_export())

    with pytest.raises(ExportWriteError):
        await downloader.download(EXPORT_URL)
    assert [p.name for p in exports_dir.iterdir()] == [EXPORT_FILENAME]
    assert (exports_dir / EXPORT_FILENAME).is_dir()


@pytest.mark.asyncio
async def test_invalid_url_fails_before_any_request(exports_dir):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=b"x")

    downloader = _downloader(exports_dir, httpx.MockTransport(handler))

    with pytest.raises(InvalidExportUrlError, match="Could not extract filename"):
        await downloader.download("https://export.example.com")
    assert requests == []
