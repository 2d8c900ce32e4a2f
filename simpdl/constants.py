"""
Defines application-wide constants, paths, and utility functions.

This module centralizes configuration for paths, URLs, and file names,
adapting to whether the application is running from source or as a frozen executable.
"""

import sys
from pathlib import Path

# --- Application Path and Configuration Setup ---
if getattr(sys, 'frozen', False):
    # If the application is run as a bundle, the PyInstaller bootloader
    # sets the app path to the executable's directory.
    APP_PATH = Path(sys.executable).parent
else:
    # In development, the app path is the project root (parent of 'simpdl').
    APP_PATH = Path(__file__).resolve().parent.parent

# The application is portable: settings, yt-dlp and logs live next to it.
INI_FILE_NAME = 'yt-dlp-simpgo.ini'
YTDLP_CONF_NAME = 'yt-dlp.conf'
INI_FILE: Path = APP_PATH / INI_FILE_NAME
YTDLP_CONF_FILE: Path = APP_PATH / YTDLP_CONF_NAME
LOG_DIR: Path = APP_PATH / 'logs'
DEFAULT_OUTPUT_DIR = 'downloads'

def resource_path(relative_path: str) -> Path:
    """
    Get absolute path to a bundled resource, works for dev and for PyInstaller.

    Args:
        relative_path: The path to the resource relative to the package directory.

    Returns:
        An absolute Path object to the resource.
    """
    try:
        # PyInstaller creates a temp folder and stores path in _MEIPASS
        base_path = Path(sys._MEIPASS) / 'simpdl'  # type: ignore
    except AttributeError:
        base_path = Path(__file__).resolve().parent
    return base_path / relative_path

def read_template(name: str) -> str:
    """Returns the text of a bundled template from `res/`, or '' if it is not shipped."""
    try:
        return resource_path(f'res/{name}').read_text(encoding='utf-8')
    except OSError:
        return ''

# --- Constants ---
YT_DLP_RELEASE_BASE = 'https://github.com/yt-dlp/yt-dlp/releases/latest/download/'
YT_DLP_URLS = {
    'win32': YT_DLP_RELEASE_BASE + 'yt-dlp.exe',
    'linux': YT_DLP_RELEASE_BASE + 'yt-dlp',
    'darwin': YT_DLP_RELEASE_BASE + 'yt-dlp_macos'
}
REQUEST_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
}
REQUEST_TIMEOUTS = (10, 60)  # (connect_timeout, read_timeout)
FETCH_CHUNK_SIZE = 32 * 1024
INSTALL_ATTEMPTS = 6
INSTALL_RETRY_DELAY = 0.2  # seconds

# yt-dlp output naming, joined to the resolved output directory.
OUTPUT_TEMPLATE = '%(title)s.%(ext)s'
# Per-stream buffer limit for the child's output readers.
STREAM_READ_LIMIT = 1024 * 1024

# --- Application Update Checker ---
GITHUB_API_LATEST_RELEASE = 'https://api.github.com/repos/{owner}/{repo}/releases/latest'
