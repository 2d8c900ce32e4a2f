import sys
import asyncio

import pytest

from simpdl.exceptions import AlreadyRunningError, RunError
from simpdl.runner import ProcessRunner, RunState, decode_line

posix_only = pytest.mark.skipif(sys.platform == 'win32', reason="fake yt-dlp is a POSIX shell script")


def test_decode_line_passes_utf8_through():
    assert decode_line('[download] 进度 50%\n'.encode('utf-8'), ('gbk', 'gb18030')) == '[download] 进度 50%'


def test_decode_line_falls_back_to_legacy_encoding():
    raw = '下载完成\r\n'.encode('gbk')

    assert decode_line(raw, ('gbk', 'gb18030')) == '下载完成'


def test_decode_line_uses_second_legacy_encoding():
    # Emoji only exist in GB18030's four-byte range, which GBK rejects.
    raw = '完成 😀\n'.encode('gb18030')

    assert decode_line(raw, ('gbk', 'gb18030')) == '完成 😀'


def test_decode_line_without_legacy_encodings_keeps_bytes():
    raw = b'caf\xe9\n'

    text = decode_line(raw)

    assert text.encode('utf-8', 'surrogateescape') == b'caf\xe9'


@pytest.mark.parametrize('raw', [b'line\n', b'line\r\n', b'line\r\r\n', b'line'])
def test_decode_line_strips_terminators(raw):
    assert decode_line(raw) == 'line'


def test_locate_prefers_install_dir(tmp_path, platform, make_tool):
    local = make_tool('exit 0', directory=tmp_path)

    assert ProcessRunner(tmp_path, platform).locate() == local


def test_locate_searches_path(tmp_path, platform, make_tool, monkeypatch):
    on_path = make_tool('exit 0', directory=tmp_path / 'path-bin')
    monkeypatch.setenv('PATH', str(on_path.parent))

    assert ProcessRunner(tmp_path / 'install', platform).locate() == on_path


def test_locate_returns_none_when_missing(tmp_path, platform, monkeypatch):
    monkeypatch.setenv('PATH', str(tmp_path / 'empty'))

    assert ProcessRunner(tmp_path, platform).locate() is None


def test_build_command_resolves_relative_output_dir(tmp_path, platform):
    runner = ProcessRunner(tmp_path, platform)

    command = runner.build_command(tmp_path / 'yt-dlp', 'downloads', 'https://example.com/v')

    assert command == [str(tmp_path / 'yt-dlp'), '-o', str(tmp_path / 'downloads' / '%(title)s.%(ext)s'),
                       'https://example.com/v']


@posix_only
async def test_run_streams_both_outputs_in_order(tmp_path, platform, make_tool):
    tool = make_tool('\n'.join([
        'echo "out 1"',
        'echo "err 1" >&2',
        'echo "out 2"',
        'echo "err 2" >&2',
        'printf "args: %s %s %s" "$1" "$2" "$3"',
    ]))
    lines = []

    await ProcessRunner(tmp_path, platform).run(tool, 'downloads', 'https://example.com/v', lines.append)

    stdout_lines = [line for line in lines if line.startswith('out')]
    stderr_lines = [line for line in lines if line.startswith('err')]
    assert stdout_lines == ['out 1', 'out 2']
    assert stderr_lines == ['err 1', 'err 2']
    template = tmp_path / 'downloads' / '%(title)s.%(ext)s'
    assert f'args: -o {template} https://example.com/v' in lines
    assert lines[-1] == 'Download complete'
    assert not any(line.endswith(('\n', '\r')) for line in lines)


@posix_only
async def test_run_failure_raises_with_tool_error(tmp_path, platform, make_tool):
    tool = make_tool('echo "ERROR: Unsupported URL: nope" >&2\nexit 1')
    lines = []
    runner = ProcessRunner(tmp_path, platform)

    with pytest.raises(RunError) as excinfo:
        await runner.run(tool, 'downloads', 'nope', lines.append)

    assert excinfo.value.exit_code == 1
    assert str(excinfo.value) == 'Unsupported URL: nope'
    assert lines[-1] == 'Download failed: Unsupported URL: nope'
    assert runner.state is RunState.IDLE


@posix_only
async def test_run_failure_without_error_line(tmp_path, platform, make_tool):
    tool = make_tool('exit 2')
    runner = ProcessRunner(tmp_path, platform)

    with pytest.raises(RunError) as excinfo:
        await runner.run(tool, 'downloads', 'url', lambda line: None)

    assert excinfo.value.exit_code == 2
    assert runner.state is RunState.IDLE


async def test_run_start_failure_clears_state(tmp_path, platform):
    runner = ProcessRunner(tmp_path, platform)

    with pytest.raises(RunError):
        await runner.run(tmp_path / 'missing-yt-dlp', 'downloads', 'url', lambda line: None)

    assert runner.state is RunState.IDLE


@posix_only
async def test_second_run_is_rejected_while_first_is_active(tmp_path, platform, make_tool):
    marker = tmp_path / 'starts'
    tool = make_tool(f'echo started >> "{marker}"\nsleep 1\necho done')
    runner = ProcessRunner(tmp_path, platform)
    first = asyncio.create_task(runner.run(tool, 'downloads', 'url', lambda line: None))
    while not runner.is_running:
        await asyncio.sleep(0.01)

    with pytest.raises(AlreadyRunningError):
        await runner.run(tool, 'downloads', 'url', lambda line: None)

    await first
    assert marker.read_text().splitlines() == ['started']
    assert runner.state is RunState.IDLE


@posix_only
async def test_run_can_start_again_after_finishing(tmp_path, platform, make_tool):
    tool = make_tool('echo ok')
    runner = ProcessRunner(tmp_path, platform)

    await runner.run(tool, 'downloads', 'url', lambda line: None)
    await runner.run(tool, 'downloads', 'url', lambda line: None)

    assert runner.state is RunState.IDLE


@posix_only
async def test_run_decodes_legacy_output(tmp_path, make_tool):
    from simpdl.platform_profile import PlatformProfile
    profile = PlatformProfile(name='linux', executable_name='yt-dlp', default_url='', legacy_encodings=('gbk', 'gb18030'))
    # "下载" in GBK, written as octal escapes for a portable printf.
    tool = make_tool("printf '\\317\\302\\324\\330\\n'")
    lines = []

    await ProcessRunner(tmp_path, profile).run(tool, 'downloads', 'url', lines.append)

    assert '下载' in lines


@posix_only
@pytest.mark.parametrize('terminator', ['\\n', '\\r\\n'])
async def test_run_splits_overlong_line(tmp_path, platform, make_tool, monkeypatch, terminator):
    from simpdl import runner as runner_module
    monkeypatch.setattr(runner_module, 'STREAM_READ_LIMIT', 64)
    tool = make_tool(f"printf '%0300d{terminator}' 0\necho\necho after")
    lines = []

    await ProcessRunner(tmp_path, platform).run(tool, 'downloads', 'url', lines.append)

    pieces = [line for line in lines if line and set(line) == {'0'}]
    assert ''.join(pieces) == '0' * 300
    # Only the deliberate empty line from `echo` is delivered, not the long line's terminator.
    assert lines.count('') == 1
    assert lines[lines.index('') + 1] == 'after'
