from pathlib import Path

import pytest
from pydantic import ValidationError

from simpdl.config import (
    ConfigManager, Settings, SettingsForm, UTF8_BOM, relativize_output_dir, resolve_output_dir
)
from simpdl.exceptions import ConfigParseError, ConfigWriteError

SETTINGS_TEMPLATE = "[app]\noutput_dir =\ndownload_proxy =\nyt_dlp_url =\n"
TOOL_CONF_TEMPLATE = "-f bv*+ba/b\n# 中文注释\n"


def make_manager(tmp_path: Path, settings_template=SETTINGS_TEMPLATE, tool_conf_template=TOOL_CONF_TEMPLATE) -> ConfigManager:
    return ConfigManager(
        ini_path=tmp_path / 'settings.ini',
        tool_conf_path=tmp_path / 'yt-dlp.conf',
        base_dir=tmp_path,
        settings_template=settings_template,
        tool_conf_template=tool_conf_template,
    )


def test_load_missing_file_returns_none(tmp_path):
    assert make_manager(tmp_path).load() is None


def test_load_missing_keys_reads_as_empty(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("[app]\noutput_dir = ./videos\nsomething_else = 1\n", encoding='utf-8')

    settings = manager.load()

    assert settings == Settings(output_dir='./videos', download_proxy='', yt_dlp_url='')


def test_load_without_app_section_is_all_empty(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("[other]\noutput_dir = x\n", encoding='utf-8')

    assert manager.load() == Settings()


def test_load_accepts_bom_and_percent_signs(tmp_path):
    manager = make_manager(tmp_path)
    content = "[app]\noutput_dir = 下载\nyt_dlp_url = https://example.com/yt%2Ddlp\n"
    manager.ini_path.write_bytes(UTF8_BOM + content.encode('utf-8'))

    settings = manager.load()

    assert settings.output_dir == '下载'
    assert settings.yt_dlp_url == 'https://example.com/yt%2Ddlp'


def test_load_malformed_file_raises(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("this is not an ini file\n", encoding='utf-8')

    with pytest.raises(ConfigParseError):
        manager.load()


def test_load_keeps_proxy_without_scheme_as_written(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("[app]\noutput_dir = mine\ndownload_proxy = 127.0.0.1:7890\n"
                                "yt_dlp_url = https://mirror.example/yt-dlp\n", encoding='utf-8')

    settings, output_dir = manager.ensure_defaults('./out')

    assert output_dir == 'mine'
    assert settings.download_proxy == '127.0.0.1:7890'
    assert settings.yt_dlp_url == 'https://mirror.example/yt-dlp'


def test_settings_form_requires_a_scheme():
    with pytest.raises(ValidationError) as excinfo:
        SettingsForm(download_proxy='127.0.0.1:7890')

    assert excinfo.value.errors()[0]['loc'] == ('download_proxy',)
    assert SettingsForm(download_proxy='socks5://127.0.0.1:1080').download_proxy == 'socks5://127.0.0.1:1080'


def test_save_then_load(tmp_path):
    manager = make_manager(tmp_path)
    settings = Settings(output_dir='/data/videos', download_proxy='http://127.0.0.1:7890',
                        yt_dlp_url='https://mirror.example/yt-dlp')

    manager.save(settings)

    assert manager.load() == settings


def test_save_to_missing_directory_raises(tmp_path):
    manager = ConfigManager(ini_path=tmp_path / 'missing' / 'settings.ini', tool_conf_path=tmp_path / 'yt-dlp.conf',
                            base_dir=tmp_path, settings_template='', tool_conf_template='')

    with pytest.raises(ConfigWriteError):
        manager.save(Settings())


def test_ensure_defaults_with_template(tmp_path):
    manager = make_manager(tmp_path)

    settings, output_dir = manager.ensure_defaults('./out')

    assert output_dir == './out'
    assert (settings.output_dir, settings.download_proxy, settings.yt_dlp_url) == ('./out', '', '')
    assert manager.ini_path.read_text(encoding='utf-8') == SETTINGS_TEMPLATE
    assert manager.tool_conf_path.read_bytes() == UTF8_BOM + TOOL_CONF_TEMPLATE.encode('utf-8')
    assert (tmp_path / 'out').is_dir()


def test_ensure_defaults_without_template_writes_minimal_settings(tmp_path):
    manager = make_manager(tmp_path, settings_template='')

    settings, output_dir = manager.ensure_defaults('./out')

    assert output_dir == './out'
    assert manager.load() == Settings(output_dir='./out')
    assert (tmp_path / 'out').is_dir()


def test_ensure_defaults_prefers_configured_output_dir(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("[app]\noutput_dir = mine\ndownload_proxy = http://proxy:3128\n", encoding='utf-8')

    settings, output_dir = manager.ensure_defaults('./out')

    assert output_dir == 'mine'
    assert settings.download_proxy == 'http://proxy:3128'
    assert (tmp_path / 'mine').is_dir()
    assert not (tmp_path / 'out').exists()


def test_ensure_defaults_is_idempotent(tmp_path):
    manager = make_manager(tmp_path)
    manager.ensure_defaults('./out')
    ini_before = manager.ini_path.read_bytes()
    conf_before = manager.tool_conf_path.read_bytes()

    manager.ensure_defaults('./out')

    assert manager.ini_path.read_bytes() == ini_before
    assert manager.tool_conf_path.read_bytes() == conf_before


def test_ensure_defaults_keeps_existing_tool_conf(tmp_path):
    manager = make_manager(tmp_path)
    manager.tool_conf_path.write_text("--no-playlist\n", encoding='utf-8')

    manager.ensure_defaults('./out')

    assert manager.tool_conf_path.read_text(encoding='utf-8') == "--no-playlist\n"


def test_ensure_defaults_malformed_settings_raises(tmp_path):
    manager = make_manager(tmp_path)
    manager.ini_path.write_text("garbage", encoding='utf-8')

    with pytest.raises(ConfigParseError):
        manager.ensure_defaults('./out')


def test_ensure_defaults_tool_conf_write_failure(tmp_path):
    manager = ConfigManager(ini_path=tmp_path / 'settings.ini', tool_conf_path=tmp_path / 'nope' / 'yt-dlp.conf',
                            base_dir=tmp_path, settings_template=SETTINGS_TEMPLATE, tool_conf_template=TOOL_CONF_TEMPLATE)

    with pytest.raises(ConfigWriteError):
        manager.ensure_defaults('./out')


def test_ensure_defaults_output_dir_creation_failure(tmp_path):
    (tmp_path / 'blocker').write_text('a file, not a folder')
    manager = make_manager(tmp_path)

    with pytest.raises(ConfigWriteError):
        manager.ensure_defaults('blocker/out')


def test_resolve_output_dir(tmp_path):
    assert resolve_output_dir('videos', tmp_path) == tmp_path / 'videos'
    assert resolve_output_dir(tmp_path / 'abs', Path('/elsewhere')) == tmp_path / 'abs'


def test_relativize_output_dir(tmp_path):
    assert relativize_output_dir(tmp_path / 'downloads' / 'music', tmp_path) == str(Path('downloads') / 'music')
    outside = tmp_path.parent / 'outside'
    assert relativize_output_dir(outside, tmp_path) == str(outside)
