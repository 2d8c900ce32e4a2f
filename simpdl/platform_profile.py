"""
Per-OS behaviour for running and installing yt-dlp.

Everything that differs between operating systems (executable name, release
asset, console window suppression, legacy output encodings, whether the
binary needs an executable bit) is collected in one `PlatformProfile`,
selected once at startup with `current_platform()`.
"""

import sys
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Any, Tuple

from .constants import YT_DLP_URLS


@dataclass(frozen=True)
class PlatformProfile:
    """
    Describes how yt-dlp is named, fetched and started on one OS family.

    Attributes:
        name: The `sys.platform` family this profile was built for.
        executable_name: File name of the yt-dlp binary in the install directory.
        default_url: Latest-release download asset for this OS.
        creation_flags: Flags passed to the child process (hides the console on Windows).
        legacy_encodings: Decoders tried, in order, for output that is not valid UTF-8.
        needs_chmod: Whether a freshly installed binary must be marked executable.
    """
    name: str
    executable_name: str
    default_url: str
    creation_flags: int = 0
    legacy_encodings: Tuple[str, ...] = field(default_factory=tuple)
    needs_chmod: bool = True

    @property
    def is_windows(self) -> bool:
        return self.name == 'win32'

    def subprocess_kwargs(self) -> Dict[str, Any]:
        """Extra keyword arguments for `asyncio.create_subprocess_exec`."""
        if self.is_windows:
            return {'creationflags': self.creation_flags}
        return {}


def windows_profile() -> PlatformProfile:
    # Console programs on Chinese-locale Windows often write GBK rather than UTF-8.
    return PlatformProfile(
        name='win32',
        executable_name='yt-dlp.exe',
        default_url=YT_DLP_URLS['win32'],
        creation_flags=getattr(subprocess, 'CREATE_NO_WINDOW', 0),
        legacy_encodings=('gbk', 'gb18030'),
        needs_chmod=False,
    )


def posix_profile(platform: str) -> PlatformProfile:
    return PlatformProfile(
        name=platform,
        executable_name='yt-dlp',
        default_url=YT_DLP_URLS.get(platform, YT_DLP_URLS['linux']),
    )


def current_platform() -> PlatformProfile:
    """Returns the profile for the running interpreter's OS family."""
    if sys.platform == 'win32':
        return windows_profile()
    return posix_profile(sys.platform)
