"""
Defines the data class for the yt-dlp executable in use.
"""

from dataclasses import dataclass
from pathlib import Path

@dataclass
class ToolBinary:
    """
    A yt-dlp executable the application can run.

    Attributes:
        path: Absolute path to the executable.
        update_capable: Whether the binary is known to work, so `--update`
            may be offered.
        version: The version string reported by `--version`, once known.
    """
    path: Path
    update_capable: bool = False
    version: str = "Unknown"
