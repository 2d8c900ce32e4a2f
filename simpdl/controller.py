"""
Defines the main AppController class, which orchestrates the application's logic.

The controller is independent of the widget toolkit. It talks to a view object
that provides:

* ``append_log(text)`` / ``rewrite_last_log(text)``: the log area,
* ``set_status(text)``, ``set_output_dir(text)``, ``set_tool_ready(ready)``,
  ``set_busy(busy)``: plain state updates,
* ``async show_message(data)`` with ``type``/``title``/``message`` keys,
* ``async show_update_dialog(version, url)``.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError

from ._version import __version__, __repository__
from .app_updater import AppUpdater
from .config import ConfigManager, Settings, SettingsForm, relativize_output_dir, resolve_output_dir
from .constants import APP_PATH
from .exceptions import AlreadyRunningError, ConfigError, FetchError, RunError, UpdateError
from .fetcher import BinaryFetcher
from .runner import ProcessRunner
from .tool import ToolBinary
from .updater import ToolUpdater, VERSION_PROBE_FAILURES


class ProgressFormatter:
    """
    Turns fetch progress into log text, skipping reports that would not change it.

    With a known size one line per percent is produced; with an unknown size
    each new byte count is reported.
    """
    def __init__(self, label: str = "Downloading yt-dlp"):
        self.label = label
        self._last_key = None

    def format(self, received: int, total: int) -> Optional[str]:
        if total > 0:
            percent = int(received * 100 / total)
            key = ('percent', percent)
            text = f"{self.label}: {percent}% ({received}/{total})"
        else:
            key = ('bytes', received)
            text = f"{self.label}: {received} bytes"
        if key == self._last_key:
            return None
        self._last_key = key
        return text


class AppController:
    """The central controller for the application's business logic."""

    def __init__(self, config_manager: ConfigManager, settings: Settings,
                 install_dir: Path = APP_PATH,
                 fetcher: Optional[BinaryFetcher] = None,
                 runner: Optional[ProcessRunner] = None,
                 updater: Optional[ToolUpdater] = None,
                 app_updater: Optional[AppUpdater] = None):
        """
        Initializes the AppController.

        Args:
            config_manager: The manager for handling configuration persistence.
            settings: The settings returned by the bootstrap.
            install_dir: Where yt-dlp is installed and relative paths start from.
        """
        self.config_manager = config_manager
        self.settings = settings
        self.install_dir = Path(install_dir)
        self.logger = logging.getLogger(__name__)
        self.view = None  # Will be set by the GUI application

        self.tool: Optional[ToolBinary] = None
        self.is_fetching: bool = False
        self.is_updating: bool = False

        self.fetcher = fetcher or BinaryFetcher()
        self.runner = runner or ProcessRunner(self.install_dir)
        self.updater = updater or ToolUpdater()
        self.app_updater = app_updater or AppUpdater()

    def set_view(self, view):
        """Sets the view instance used for callbacks."""
        self.view = view

    @property
    def is_downloading(self) -> bool:
        return self.runner.is_running

    @property
    def output_path(self) -> Path:
        return resolve_output_dir(self.settings.output_dir, self.install_dir)

    async def run_startup_checks(self):
        """Finds yt-dlp and checks for a newer application release."""
        path = await asyncio.to_thread(self.runner.locate)
        if path:
            await self._use_binary(path)
        else:
            self.logger.info("yt-dlp not found in install directory or PATH.")
            self.view.set_tool_ready(False)
            self.view.append_log("yt-dlp was not found. Use 'Download yt-dlp' to fetch it.")

        release = await self.app_updater.check_for_updates()
        if release:
            await self.view.show_update_dialog(release.version, release.url)

    async def _use_binary(self, path: Path):
        version = await self.updater.get_version(path)
        # Only a binary that answered --version is offered the self-update.
        self.tool = ToolBinary(Path(path), update_capable=version not in VERSION_PROBE_FAILURES, version=version)
        if not self.tool.update_capable:
            self.logger.warning(f"yt-dlp at {path} did not report a version: {version}")
        self.logger.info(f"Using yt-dlp {version} at {path}")
        self.view.set_tool_ready(True)
        self.view.set_status(f"yt-dlp {version}")

    def _on_complete(self, ok: bool, message: str):
        """Shows the final status of a download, fetch or update."""
        self.view.set_status(message)
        if ok:
            self.logger.info(message)
        else:
            self.logger.error(message)

    async def start_download(self, url: str):
        """Validates conditions and runs one yt-dlp download."""
        url = url.strip()
        if not url:
            await self.view.show_message({'type': 'warning', 'title': 'Input Error', 'message': 'Please enter a valid URL.'})
            return
        if not self.tool:
            await self.view.show_message({'type': 'error', 'title': 'Error', 'message': 'Cannot start: yt-dlp is not available.'})
            return
        if self.is_updating:
            await self.view.show_message({'type': 'info', 'title': 'Busy', 'message': 'yt-dlp is being updated. Try again when it has finished.'})
            return
        if self.runner.is_running:
            await self.view.show_message({'type': 'info', 'title': 'Busy', 'message': 'A download is already in progress.'})
            return

        try:
            self.view.set_busy(True)
            self.view.append_log(f"Starting download: {url}")
            await self.runner.run(self.tool.path, self.settings.output_dir, url, self.view.append_log)
        except AlreadyRunningError as e:
            await self.view.show_message({'type': 'info', 'title': 'Busy', 'message': str(e)})
            return
        except RunError as e:
            self._on_complete(False, f"Download failed: {e}")
            await self.view.show_message({'type': 'error', 'title': 'Download Failed', 'message': str(e)})
            return
        finally:
            self.view.set_busy(self.runner.is_running)
        self._on_complete(True, "Download complete")

    async def install_yt_dlp(self):
        """Downloads yt-dlp into the install directory and switches to it."""
        if self.is_fetching:
            return
        self.is_fetching = True
        self.view.set_busy(True)
        try:
            self.view.append_log(f"Downloading yt-dlp to: {self.install_dir}")
            self.view.append_log("")
            formatter = ProgressFormatter()

            def on_progress(received: int, total: int):
                text = formatter.format(received, total)
                if text:
                    self.view.rewrite_last_log(text)

            try:
                result = await self.fetcher.fetch(self.install_dir, self.settings.download_proxy,
                                                  self.settings.yt_dlp_url, on_progress)
            except FetchError as e:
                self.view.append_log(f"Downloading yt-dlp failed: {e}")
                self._on_complete(False, "Downloading yt-dlp failed")
                await self.view.show_message({'type': 'error', 'title': 'Download Failed', 'message': str(e)})
                return

            self.view.append_log(f"Downloaded: {result.path}")
            if result.chmod_error:
                self.view.append_log(f"Warning: could not mark yt-dlp as executable: {result.chmod_error}")
                await self.view.show_message({'type': 'warning', 'title': 'Warning',
                                              'message': f"yt-dlp was saved but is not executable yet:\n{result.chmod_error}"})
            await self._use_binary(result.path)
            self._on_complete(True, "yt-dlp downloaded")
        finally:
            self.is_fetching = False
            self.view.set_busy(self.runner.is_running)

    async def update_yt_dlp(self):
        """Runs yt-dlp's self-update and shows its output."""
        if not self.tool:
            await self.view.show_message({'type': 'error', 'title': 'Error', 'message': 'yt-dlp is not available.'})
            return
        if not self.tool.update_capable:
            await self.view.show_message({'type': 'error', 'title': 'Error',
                                          'message': f"yt-dlp cannot update itself ({self.tool.version}). Download it again instead."})
            return
        if self.is_updating:
            return
        if self.runner.is_running:
            await self.view.show_message({'type': 'info', 'title': 'Busy', 'message': 'Wait for the current download to finish before updating.'})
            return

        self.is_updating = True
        self.view.set_busy(True)
        try:
            self.view.append_log(f"Updating yt-dlp: {self.tool.path}")
            try:
                output = await self.updater.update(self.tool.path, self.settings.download_proxy)
            except UpdateError as e:
                self.view.append_log(f"Update failed: {e}")
                if e.output:
                    self.view.append_log(e.output)
                self._on_complete(False, "yt-dlp update failed")
                await self.view.show_message({'type': 'error', 'title': 'Update Failed', 'message': str(e)})
                return
            self.view.append_log("Update complete")
            if output:
                self.view.append_log(output)
            self.tool.version = await self.updater.get_version(self.tool.path)
            self.tool.update_capable = self.tool.version not in VERSION_PROBE_FAILURES
            self._on_complete(True, f"yt-dlp {self.tool.version}")
        finally:
            self.is_updating = False
            self.view.set_busy(self.runner.is_running)

    def set_output_dir(self, chosen: str) -> Tuple[bool, str]:
        """
        Stores a newly chosen download folder.

        Folders under the install directory are saved relative to it. The
        folder is created and the settings file rewritten immediately.
        """
        output_dir = relativize_output_dir(chosen, self.install_dir)
        try:
            resolve_output_dir(output_dir, self.install_dir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return False, f"Cannot create directory:\n{e}"
        ok, message = self._save_settings(output_dir=output_dir)
        if ok:
            self.view.set_output_dir(output_dir)
        return ok, message

    def set_download_proxy(self, proxy: str) -> Tuple[bool, str]:
        return self._save_settings(download_proxy=proxy)

    def set_yt_dlp_url(self, url: str) -> Tuple[bool, str]:
        return self._save_settings(yt_dlp_url=url)

    def _save_settings(self, **changes) -> Tuple[bool, str]:
        """
        Validates the changed fields and saves the settings.

        Only the fields being changed are checked, so a value the user wrote
        into the file by hand does not block unrelated edits.
        """
        try:
            form = SettingsForm(**changes)
            new_settings = self.settings.model_copy(update=form.model_dump(include=set(changes)))
            self.config_manager.save(new_settings)
        except ValidationError as e:
            error_details = e.errors()[0]
            field, msg = error_details['loc'][0], error_details['msg']
            return False, f"Error in field '{field}': {msg}"
        except ConfigError as e:
            self.logger.error(str(e))
            return False, str(e)
        self.settings = new_settings
        return True, "Settings have been saved."

    def about_text(self) -> str:
        text = f"yt-dlp-simpgo {__version__}\n\nA simple graphical front-end for yt-dlp."
        if __repository__:
            text += f"\n\nProject: {__repository__}"
        return text
