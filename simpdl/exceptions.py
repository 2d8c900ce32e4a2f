"""
Defines custom exceptions used throughout the application.

These exceptions allow for more specific error handling than built-in exceptions.
"""

from typing import Optional


class SimpDlError(Exception):
    """Base class for all application errors."""
    pass

class ConfigError(SimpDlError):
    """Custom exception for configuration bootstrap failures."""
    pass

class ConfigParseError(ConfigError):
    """The settings file exists but could not be read or parsed."""
    pass

class ConfigWriteError(ConfigError):
    """A settings, template, or output directory write failed."""
    pass

class FetchError(SimpDlError):
    """Custom exception for yt-dlp binary download and install failures."""
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

class AlreadyRunningError(SimpDlError):
    """A download is already in progress; the new request was rejected."""
    pass

class RunError(SimpDlError):
    """Custom exception for a yt-dlp run that failed to start or exited non-zero."""
    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code

class UpdateError(SimpDlError):
    """yt-dlp self-update failed. `output` holds the captured diagnostic text."""
    def __init__(self, message: str, output: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code
