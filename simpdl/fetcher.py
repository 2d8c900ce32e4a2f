"""Downloads and installs the yt-dlp executable."""
import os
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiohttp
import aiofiles

from .constants import REQUEST_HEADERS, FETCH_CHUNK_SIZE, INSTALL_ATTEMPTS, INSTALL_RETRY_DELAY
from .exceptions import FetchError
from .platform_profile import PlatformProfile, current_platform
from .retry import RetryPolicy
from .sinks import ProgressSink, discard_progress


@dataclass
class InstallResult:
    """
    Outcome of a successful fetch.

    Attributes:
        path: Where the executable now lives.
        chmod_error: Set when the file was installed but could not be marked
            executable; callers should show it as a warning.
    """
    path: Path
    chmod_error: Optional[OSError] = None


class BinaryFetcher:
    """Streams the yt-dlp release asset to disk and moves it into place."""

    def __init__(self, platform: Optional[PlatformProfile] = None,
                 install_policy: Optional[RetryPolicy] = None,
                 chunk_size: int = FETCH_CHUNK_SIZE):
        """
        Initializes the BinaryFetcher.

        Args:
            platform: OS profile deciding the file name, default URL and chmod.
            install_policy: Retry policy for moving the download into place.
            chunk_size: Bytes read from the response per progress report.
        """
        self.platform = platform or current_platform()
        self.install_policy = install_policy or RetryPolicy(max_attempts=INSTALL_ATTEMPTS, delay=INSTALL_RETRY_DELAY)
        self.chunk_size = chunk_size
        self.logger = logging.getLogger(__name__)

    def resolve_url(self, source_url: str = '') -> str:
        """Returns `source_url` when set, otherwise the latest release for this OS."""
        return source_url.strip() or self.platform.default_url

    async def fetch(self, dest_dir: Path, proxy: str = '', source_url: str = '',
                    on_progress: ProgressSink = discard_progress) -> InstallResult:
        """
        Downloads yt-dlp into `dest_dir` and returns where it was installed.

        Args:
            dest_dir: Install directory; created if missing.
            proxy: HTTP(S) proxy URL, or '' for a direct connection.
            source_url: Download URL overriding the default release asset.
            on_progress: Called after every chunk with (received, total);
                total is -1 when the server does not send a Content-Length.

        Returns:
            An InstallResult.

        Raises:
            FetchError: On network errors, a non-2xx response, disk errors, or
                when the file could not be moved into place. No temporary file
                is left behind.
        """
        dest_dir = Path(dest_dir)
        url = self.resolve_url(source_url)
        final_path = dest_dir / self.platform.executable_name
        tmp_path = final_path.with_name(final_path.name + '.tmp')

        try:
            await asyncio.to_thread(dest_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise FetchError(f"Cannot create {dest_dir}: {e}") from e

        if proxy and '://' not in proxy:
            self.logger.warning(f"Ignoring download proxy '{proxy}': not a URL. Connecting directly.")
            proxy = ''
        self.logger.info(f"Downloading yt-dlp from {url}" + (f" via proxy {proxy}" if proxy else ""))
        downloaded = False
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, headers=REQUEST_HEADERS, proxy=proxy or None,
                                       timeout=aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=60)) as r:
                    if not 200 <= r.status < 300:
                        raise FetchError(f"Download failed: HTTP {r.status} {r.reason or ''}".strip(), status=r.status)
                    total = r.content_length if r.content_length is not None else -1
                    await self._stream_to_file(r, tmp_path, total, on_progress)
            downloaded = True
        except FetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise FetchError(f"Download failed: {str(e) or type(e).__name__}") from e
        finally:
            if not downloaded:
                await self._remove_quietly(tmp_path)

        await self._install(tmp_path, final_path)

        result = InstallResult(final_path)
        if self.platform.needs_chmod:
            try:
                await asyncio.to_thread(final_path.chmod, 0o755)
            except OSError as e:
                self.logger.warning(f"Installed {final_path} but could not mark it executable: {e}")
                result.chmod_error = e
        self.logger.info(f"yt-dlp installed at {final_path}")
        return result

    async def _stream_to_file(self, response: aiohttp.ClientResponse, tmp_path: Path,
                              total: int, on_progress: ProgressSink):
        """Writes the response body to `tmp_path`; the file is closed on return."""
        received = 0
        async with aiofiles.open(tmp_path, 'wb') as f_out:
            async for chunk in response.content.iter_chunked(self.chunk_size):
                await f_out.write(chunk)
                received += len(chunk)
                on_progress(received, total)
        self.logger.debug(f"Received {received} bytes into {tmp_path}")

    async def _install(self, tmp_path: Path, final_path: Path):
        """Moves the finished download over `final_path`, retrying while the target is locked."""
        async def move():
            await asyncio.to_thread(os.replace, tmp_path, final_path)

        async def clear_target(error: BaseException):
            # A running yt-dlp or a virus scanner can hold the old binary open.
            if await asyncio.to_thread(final_path.exists):
                self.logger.info(f"Removing existing {final_path} before retrying: {error}")
                await self._remove_quietly(final_path)

        async def give_up(error: BaseException):
            await self._remove_quietly(tmp_path)

        try:
            await self.install_policy.run(move, before_retry=clear_target, on_give_up=give_up)
        except OSError as e:
            raise FetchError(f"Could not install {final_path}: {e}") from e

    async def _remove_quietly(self, path: Path):
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Could not remove {path}: {e}")
