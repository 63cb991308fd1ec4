import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

import httpx

from ..config import settings
from ..exceptions import ExportDownloadError, ExportWriteError, InvalidExportUrlError

logger = logging.getLogger(settings.SERVICE_NAME + ".downloader")


@dataclass(frozen=True)
class DownloadedExport:
    """A design export stored in the local exports directory."""

    filename: str
    path: Path
    public_url: str
    bytes_written: int


def extract_export_filename(url: str) -> str:
    """
    Derive the local filename of an export from the last segment of its URL path.

    e.g. ``https://export.example.com/aaa/bbb/1/2/3333-838106404244599455.png?sig=x``
    gives ``3333-838106404244599455.png``.

    Raises:
        InvalidExportUrlError: if the URL is not an absolute http(s) URL or its
            path has no usable final segment.
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidExportUrlError(f"Invalid export URL: {url}", url)

    filename = unquote(parts.path.split("/")[-1])
    if filename in ("", ".", "..") or "/" in filename or "\x00" in filename:
        raise InvalidExportUrlError("Could not extract filename from export URL", url)
    return filename


class ExportDownloader:
    """
    Streams exported designs from the design tool into the exports directory.

    There is no retry, no timeout and no locking: two downloads of the same
    filename race and the last one to finish wins.
    """

    def __init__(
        self,
        exports_dir: Optional[Path] = None,
        exports_base_url: Optional[str] = None,
        chunk_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.exports_dir = Path(exports_dir) if exports_dir else settings.get_exports_dir()
        self.exports_base_url = (exports_base_url or settings.get_exports_base_url()).rstrip("/")
        self.chunk_size = chunk_size or settings.DOWNLOAD_CHUNK_SIZE
        self.transport = transport

    def public_url_for(self, filename: str) -> str:
        return f"{self.exports_base_url}/{quote(filename)}"

    def ensure_exports_dir(self) -> Path:
        """Create the exports directory (and its parents) if it does not exist yet."""
        if not self.exports_dir.exists():
            logger.info(f"Creating exports directory: {self.exports_dir}")
        try:
            self.exports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExportWriteError(
                f"Could not create exports directory: {e}", {"path": str(self.exports_dir)}
            ) from e
        return self.exports_dir

    async def download(self, url: str) -> DownloadedExport:
        """
        Download `url` into the exports directory.

        The destination file only appears once the whole body has been written;
        on any failure nothing is left behind in the exports directory.

        Raises:
            InvalidExportUrlError: no filename can be derived from the URL.
            ExportDownloadError: non-200 response or transport failure.
            ExportWriteError: the file could not be written.
        """
        filename = extract_export_filename(url)
        destination = self.ensure_exports_dir() / filename
        public_url = self.public_url_for(filename)
        logger.info(f"Downloading export {url} -> {destination} (public URL {public_url})")

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=None) as client:
                async with client.stream("GET", url) as response:
                    logger.info(f"Download response status: {response.status_code}")
                    if response.status_code != 200:
                        raise ExportDownloadError(
                            f"Failed to download: {response.status_code}", url, response.status_code
                        )
                    bytes_written = await self._stream_to_disk(response, destination)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error downloading {url}: {e}")
            raise ExportDownloadError(f"Failed to download: {e}", url) from e

        logger.info(f"Successfully downloaded {filename} ({bytes_written} bytes)")
        return DownloadedExport(
            filename=filename,
            path=destination,
            public_url=public_url,
            bytes_written=bytes_written,
        )

    async def _stream_to_disk(self, response: httpx.Response, destination: Path) -> int:
        """Write the response body to a temporary file, then move it onto `destination`."""
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=".export-",
                suffix=".part",
                dir=str(destination.parent),
            )
        except OSError as e:
            raise ExportWriteError(f"Error writing file: {e}", {"path": str(destination)}) from e
        tmp_path = Path(tmp_name)

        bytes_written = 0
        try:
            with os.fdopen(fd, "wb") as file_handle:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    file_handle.write(chunk)
                    bytes_written += len(chunk)
                file_handle.flush()
                os.fsync(file_handle.fileno())
            # mkstemp creates owner-only files, exports are public
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, destination)
        except OSError as e:
            logger.error(f"Error writing file {destination}: {e}")
            raise ExportWriteError(f"Error writing file: {e}", {"path": str(destination)}) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
                logger.debug(f"Removed partial download {tmp_path}")

        return bytes_written


_downloader_instance: Optional[ExportDownloader] = None


def get_export_downloader() -> ExportDownloader:
    """Get the shared ExportDownloader configured from settings."""
    global _downloader_instance
    if _downloader_instance is None:
        _downloader_instance = ExportDownloader()
    return _downloader_instance
