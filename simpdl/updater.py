"""Runs yt-dlp's own maintenance commands: self-update and version query."""
import os
import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from .exceptions import UpdateError
from .platform_profile import PlatformProfile, current_platform
from .runner import decode_line

PROXY_ENV_VARS = ('HTTP_PROXY', 'HTTPS_PROXY', 'http_proxy', 'https_proxy')

VERSION_NOT_FOUND = "Not found"
VERSION_CANNOT_EXECUTE = "Cannot execute"
VERSION_TIMED_OUT = "Version check timed out"
VERSION_UNKNOWN = "Unknown"

# Results of get_version() that mean the binary did not run successfully.
VERSION_PROBE_FAILURES = frozenset({VERSION_NOT_FOUND, VERSION_CANNOT_EXECUTE, VERSION_TIMED_OUT})


def proxy_environment(proxy: str, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Returns a copy of `base` (default: os.environ) with all proxy variables set to `proxy`."""
    env = dict(os.environ if base is None else base)
    if proxy:
        for name in PROXY_ENV_VARS:
            env[name] = proxy
    return env


class ToolUpdater:
    """Updates yt-dlp in place and reports its version."""

    def __init__(self, platform: Optional[PlatformProfile] = None, version_timeout: float = 15):
        """
        Initializes the ToolUpdater.

        Args:
            platform: OS profile for window flags and output decoders.
            version_timeout: Seconds to wait for `--version` before giving up.
        """
        self.platform = platform or current_platform()
        self.version_timeout = version_timeout
        self.logger = logging.getLogger(__name__)

    def _decode(self, data: bytes) -> str:
        return '\n'.join(decode_line(line, self.platform.legacy_encodings) for line in data.splitlines())

    async def update(self, exe_path: Path, proxy: str = '') -> str:
        """
        Runs `yt-dlp --update` and returns its combined stdout/stderr text.

        Args:
            exe_path: The yt-dlp executable to update.
            proxy: Proxy URL exported to the child as HTTP(S)_PROXY, or ''.

        Raises:
            UpdateError: If yt-dlp could not be started or exited with an
                error. `output` carries the captured text either way.
        """
        self.logger.info(f"Updating yt-dlp at {exe_path}")
        try:
            process = await asyncio.create_subprocess_exec(
                str(exe_path), '--update',
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=proxy_environment(proxy),
                **self.platform.subprocess_kwargs()
            )
            output_bytes, _ = await process.communicate()
        except OSError as e:
            self.logger.error(f"Could not run {exe_path}: {e}")
            raise UpdateError(f"Could not run yt-dlp: {e}") from e

        output = self._decode(output_bytes)
        if process.returncode != 0:
            self.logger.error(f"yt-dlp update failed with status {process.returncode}")
            raise UpdateError(f"yt-dlp update exited with status {process.returncode}",
                              output=output, exit_code=process.returncode)
        self.logger.info("yt-dlp update finished.")
        return output

    async def get_version(self, exe_path: Optional[Path]) -> str:
        """Asynchronously returns the version of yt-dlp by running it with '--version'."""
        if not exe_path or not exe_path.exists():
            return VERSION_NOT_FOUND
        try:
            process = await asyncio.create_subprocess_exec(
                str(exe_path), '--version',
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **self.platform.subprocess_kwargs()
            )
            try:
                stdout_bytes, _ = await asyncio.wait_for(process.communicate(), timeout=self.version_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return VERSION_TIMED_OUT
        except OSError:
            return VERSION_CANNOT_EXECUTE

        if process.returncode != 0:
            return VERSION_CANNOT_EXECUTE
        lines = self._decode(stdout_bytes).strip().splitlines()
        return lines[0] if lines else VERSION_UNKNOWN
