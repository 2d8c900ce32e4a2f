"""Checks GitHub for newer releases of this application."""
import json
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests
from packaging.version import parse, InvalidVersion

from .constants import GITHUB_API_LATEST_RELEASE, REQUEST_HEADERS, REQUEST_TIMEOUTS
from ._version import __version__, __repository__


@dataclass
class ReleaseInfo:
    version: str
    url: str


def release_api_url(repository: str) -> Optional[str]:
    """Returns the "latest release" API endpoint for a github.com project URL, else None."""
    parsed = urlparse(repository.strip())
    if parsed.scheme not in ('http', 'https') or parsed.netloc.lower() not in ('github.com', 'www.github.com'):
        return None
    parts = [p for p in parsed.path.split('/') if p]
    if len(parts) < 2:
        return None
    repo = parts[1][:-4] if parts[1].endswith('.git') else parts[1]
    return GITHUB_API_LATEST_RELEASE.format(owner=parts[0], repo=repo)


class AppUpdater:
    """Checks for new application versions on GitHub."""

    def __init__(self, current_version: str = __version__, repository: str = __repository__):
        """
        Initializes the AppUpdater.

        Args:
            current_version: The running version to compare against.
            repository: The project's GitHub URL; without one no check is made.
        """
        self.current_version = current_version
        self.api_url = release_api_url(repository)
        self.logger = logging.getLogger(__name__)

    async def check_for_updates(self) -> Optional[ReleaseInfo]:
        """Runs the blocking check in a worker thread; returns the newer release, if any."""
        if not self.api_url:
            self.logger.debug("No GitHub repository configured; skipping the release check.")
            return None
        return await asyncio.to_thread(self._perform_check)

    def _perform_check(self) -> Optional[ReleaseInfo]:
        """
        Fetches the latest release info from GitHub and compares versions.

        Network errors, parsing errors and unexpected API responses are logged
        and reported as "no update".
        """
        self.logger.info("Checking for application updates...")
        latest_version_str = ""
        try:
            response = requests.get(self.api_url, headers=REQUEST_HEADERS, timeout=REQUEST_TIMEOUTS)
            response.raise_for_status()

            data = response.json()
            if not isinstance(data, dict):
                self.logger.warning(f"Unexpected API response type: {type(data)}")
                return None

            latest_version_str = data.get('tag_name') or ''
            release_url = data.get('html_url')
            if not latest_version_str or not release_url:
                self.logger.warning("Could not find version tag or URL in API response.")
                return None

            # Tags are usually written as v1.2.3
            if latest_version_str.startswith('v'):
                latest_version_str = latest_version_str[1:]

            current_version = parse(self.current_version)
            latest_version = parse(latest_version_str)
            self.logger.info(f"Current version: {current_version}, Latest version found: {latest_version}")

            if latest_version > current_version:
                self.logger.info(f"New version available: {latest_version}")
                return ReleaseInfo(str(latest_version), release_url)
        except requests.exceptions.RequestException as e:
            status_code = f" (Status: {e.response.status_code})" if getattr(e, 'response', None) is not None else ""
            self.logger.warning(f"Failed to check for updates (network error): {e}{status_code}")
        except (InvalidVersion, TypeError, json.JSONDecodeError, ValueError) as e:
            self.logger.warning(f"Could not parse API response from GitHub: {e}")
            if latest_version_str:
                self.logger.warning(f"Version string was: '{latest_version_str}'")
        return None
