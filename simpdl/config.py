"""
Manages loading, saving, and bootstrapping the application configuration.

The settings record is a Pydantic model (`Settings`); `ConfigManager` persists
it as an INI file with a single `[app]` section and seeds the companion
`yt-dlp.conf` that yt-dlp reads on its own.
"""

import os
import logging
import configparser
from pathlib import Path
from typing import Optional, Tuple, Union

from pydantic import BaseModel, field_validator, ValidationError

from .constants import (
    APP_PATH, INI_FILE, YTDLP_CONF_FILE, INI_FILE_NAME, YTDLP_CONF_NAME, read_template
)
from .exceptions import ConfigParseError, ConfigWriteError

APP_SECTION = 'app'
UTF8_BOM = b'\xef\xbb\xbf'


class Settings(BaseModel):
    """
    Defines the persisted program settings.

    `output_dir` may be relative; it is resolved against the install directory
    with `resolve_output_dir` before use. Empty strings mean "not configured".
    """
    output_dir: str = ''
    download_proxy: str = ''
    yt_dlp_url: str = ''

    @field_validator('output_dir', 'download_proxy', 'yt_dlp_url', mode='before')
    @classmethod
    def strip_value(cls, value: Optional[str]) -> str:
        """Treats None as unset and drops surrounding whitespace."""
        if value is None:
            return ''
        return str(value).strip()


class SettingsForm(Settings):
    """
    Settings as typed into the settings window.

    Stricter than `Settings`: a proxy or source URL entered by the user must
    carry a scheme. Files are still loaded as written; a proxy there that is
    not a URL is ignored when downloading.
    """

    @field_validator('download_proxy', 'yt_dlp_url')
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensures a configured proxy or source URL carries a scheme."""
        if value and '://' not in value:
            raise ValueError(f"'{value}' is not a URL (expected e.g. http://host:port).")
        return value


def resolve_output_dir(output_dir: Union[str, Path], base_dir: Path) -> Path:
    """Returns `output_dir` as an absolute path, relative values taken from `base_dir`."""
    path = Path(output_dir)
    if not path.is_absolute():
        path = base_dir / path
    return path


def relativize_output_dir(chosen: Union[str, Path], base_dir: Path) -> str:
    """
    Returns the form of a user-chosen folder to store in the settings file.

    Folders inside `base_dir` are stored relative to it so the installation
    stays portable; anything else is stored as given.
    """
    chosen_path = Path(chosen)
    try:
        rel = os.path.relpath(chosen_path, base_dir)
    except ValueError:
        # Different drives on Windows.
        return str(chosen_path)
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return str(chosen_path)
    return rel


class ConfigManager:
    """Handles loading, saving and first-run bootstrapping of the settings files."""
    def __init__(self, ini_path: Path = INI_FILE, tool_conf_path: Path = YTDLP_CONF_FILE,
                 base_dir: Path = APP_PATH, settings_template: Optional[str] = None,
                 tool_conf_template: Optional[str] = None):
        """
        Initializes the ConfigManager.

        Args:
            ini_path: The path to the settings file.
            tool_conf_path: The path to the yt-dlp configuration file.
            base_dir: Directory that relative output directories are resolved against.
            settings_template: Default settings file text; None loads the bundled one.
            tool_conf_template: Default yt-dlp.conf text; None loads the bundled one.
        """
        self.ini_path = Path(ini_path)
        self.tool_conf_path = Path(tool_conf_path)
        self.base_dir = Path(base_dir)
        self.settings_template = read_template(INI_FILE_NAME) if settings_template is None else settings_template
        self.tool_conf_template = read_template(YTDLP_CONF_NAME) if tool_conf_template is None else tool_conf_template
        self.logger = logging.getLogger(__name__)

    def load(self) -> Optional[Settings]:
        """
        Loads the settings file.

        Returns:
            None if the file does not exist, otherwise the parsed Settings.
            Keys that are absent read as empty strings; unknown keys are ignored.

        Raises:
            ConfigParseError: If the file cannot be read, parsed or validated.
        """
        if not self.ini_path.exists():
            return None

        parser = configparser.ConfigParser(interpolation=None)
        try:
            # utf-8-sig tolerates files saved with a BOM by Windows editors.
            with open(self.ini_path, 'r', encoding='utf-8-sig') as f:
                parser.read_file(f)
        except (configparser.Error, UnicodeDecodeError, OSError) as e:
            raise ConfigParseError(f"Could not load {self.ini_path}: {e}") from e

        section = parser[APP_SECTION] if parser.has_section(APP_SECTION) else {}
        try:
            return Settings(
                output_dir=section.get('output_dir', ''),
                download_proxy=section.get('download_proxy', ''),
                yt_dlp_url=section.get('yt_dlp_url', ''),
            )
        except ValidationError as e:
            raise ConfigParseError(f"Invalid value in {self.ini_path}: {e.errors()[0]['msg']}") from e

    def save(self, settings: Settings):
        """
        Writes all settings to the settings file, replacing its contents.

        Raises:
            ConfigWriteError: If the file cannot be written.
        """
        parser = configparser.ConfigParser(interpolation=None)
        parser[APP_SECTION] = {
            'output_dir': settings.output_dir,
            'download_proxy': settings.download_proxy,
            'yt_dlp_url': settings.yt_dlp_url,
        }
        try:
            with open(self.ini_path, 'w', encoding='utf-8') as f:
                parser.write(f)
        except OSError as e:
            raise ConfigWriteError(f"Could not save {self.ini_path}: {e}") from e
        self.logger.debug(f"Settings saved to {self.ini_path}")

    def ensure_defaults(self, fallback_output_dir: str) -> Tuple[Settings, str]:
        """
        Makes sure both configuration files and the output directory exist.

        Safe to call on every start; files that already exist are left untouched.

        Args:
            fallback_output_dir: Output directory used when the settings file
                does not name one.

        Returns:
            The effective Settings and its output directory (as stored, possibly relative).

        Raises:
            ConfigParseError: If an existing or freshly seeded settings file cannot be read.
            ConfigWriteError: If a file or the output directory cannot be created.
        """
        if not self.tool_conf_path.exists() and self.tool_conf_template:
            self.logger.info(f"Writing default yt-dlp configuration to {self.tool_conf_path}")
            try:
                self.tool_conf_path.write_bytes(UTF8_BOM + self.tool_conf_template.encode('utf-8'))
            except OSError as e:
                raise ConfigWriteError(f"Could not write default yt-dlp configuration: {e}") from e

        if self.ini_path.exists():
            loaded = self.load()
        elif self.settings_template:
            self.logger.info(f"Settings file not found. Creating {self.ini_path} from template.")
            try:
                self.ini_path.write_text(self.settings_template, encoding='utf-8')
            except OSError as e:
                raise ConfigWriteError(f"Could not write default settings: {e}") from e
            loaded = self.load()
        else:
            self.logger.info(f"Settings file not found. Creating {self.ini_path} with defaults.")
            loaded = Settings(output_dir=fallback_output_dir)
            self.save(loaded)

        assert loaded is not None
        output_dir = loaded.output_dir or fallback_output_dir
        settings = loaded.model_copy(update={'output_dir': output_dir})

        resolved = resolve_output_dir(output_dir, self.base_dir)
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigWriteError(f"Could not create output directory {resolved}: {e}") from e
        return settings, output_dir
