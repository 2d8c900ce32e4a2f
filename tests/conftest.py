import stat
from pathlib import Path
from typing import Dict, List

import pytest

from simpdl.platform_profile import PlatformProfile, posix_profile


@pytest.fixture
def platform() -> PlatformProfile:
    return posix_profile('linux')


@pytest.fixture
def make_tool(tmp_path):
    """Writes a fake yt-dlp shell script and returns its path."""
    def _make(body: str, name: str = 'yt-dlp', directory: Path = None) -> Path:
        directory = directory or tmp_path / 'bin'
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text('#!/bin/sh\n' + body + '\n', encoding='utf-8')
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
    return _make


class FakeView:
    """Records what the controller asks the window to show."""
    def __init__(self):
        self.log: List[str] = []
        self.messages: List[Dict[str, str]] = []
        self.statuses: List[str] = []
        self.busy: List[bool] = []
        self.tool_ready = None
        self.output_dir = None
        self.update_offers = []

    def append_log(self, text: str):
        self.log.append(text)

    def rewrite_last_log(self, text: str):
        self.log[-1] = text

    def set_status(self, text: str):
        self.statuses.append(text)

    def set_output_dir(self, text: str):
        self.output_dir = text

    def set_tool_ready(self, ready: bool):
        self.tool_ready = ready

    def set_busy(self, busy: bool):
        self.busy.append(busy)

    async def show_message(self, data: Dict[str, str]):
        self.messages.append(data)

    async def show_update_dialog(self, version: str, url: str):
        self.update_offers.append((version, url))


@pytest.fixture
def view() -> FakeView:
    return FakeView()
