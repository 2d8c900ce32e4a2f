"""Finds yt-dlp and runs one download at a time, streaming its output line by line."""
import asyncio
import enum
import shutil
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from .config import resolve_output_dir
from .constants import APP_PATH, OUTPUT_TEMPLATE, STREAM_READ_LIMIT
from .exceptions import AlreadyRunningError, RunError
from .platform_profile import PlatformProfile, current_platform
from .sinks import LineSink


class RunState(enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'


def decode_line(raw: bytes, legacy_encodings: Sequence[str] = ()) -> str:
    """
    Decodes one line of child output and strips its line terminator.

    UTF-8 is tried first, then each legacy encoding in order. If none of them
    fits, the bytes are kept as-is through the `surrogateescape` handler.
    """
    for encoding in ('utf-8', *legacy_encodings):
        try:
            text = raw.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    else:
        text = raw.decode('utf-8', 'surrogateescape')
    return text.rstrip('\r\n')


class ProcessRunner:
    """Runs yt-dlp downloads, allowing only one at a time."""

    def __init__(self, install_dir: Path = APP_PATH, platform: Optional[PlatformProfile] = None):
        """
        Initializes the ProcessRunner.

        Args:
            install_dir: Where a locally managed yt-dlp lives; relative output
                directories are resolved against it too.
            platform: OS profile for the executable name, window flags and decoders.
        """
        self.install_dir = Path(install_dir)
        self.platform = platform or current_platform()
        self.logger = logging.getLogger(__name__)
        self._state = RunState.IDLE
        self._state_lock = asyncio.Lock()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is RunState.RUNNING

    def locate(self) -> Optional[Path]:
        """Finds the yt-dlp executable, preferring the one in the install directory."""
        local_path = self.install_dir / self.platform.executable_name
        if local_path.is_file():
            return local_path
        path_in_system = shutil.which(self.platform.executable_name)
        return Path(path_in_system) if path_in_system else None

    def build_command(self, exe_path: Path, output_dir: Union[str, Path], target_url: str) -> list:
        """Builds the yt-dlp command line for one download."""
        output_path = resolve_output_dir(output_dir, self.install_dir)
        return [str(exe_path), '-o', str(output_path / OUTPUT_TEMPLATE), target_url]

    async def _acquire(self):
        async with self._state_lock:
            if self._state is RunState.RUNNING:
                raise AlreadyRunningError("A download is already in progress.")
            self._state = RunState.RUNNING

    async def _release(self):
        async with self._state_lock:
            self._state = RunState.IDLE

    async def run(self, exe_path: Path, output_dir: Union[str, Path], target_url: str, on_line: LineSink):
        """
        Downloads `target_url` with yt-dlp into `output_dir`.

        Every line yt-dlp writes to stdout or stderr is passed to `on_line` as
        it arrives. Returns once the process has exited successfully.

        Raises:
            AlreadyRunningError: If another download has not finished yet.
                Nothing is started in that case.
            RunError: If yt-dlp could not be started or exited with an error.
        """
        await self._acquire()
        try:
            await self._run_process(Path(exe_path), output_dir, target_url, on_line)
        finally:
            await self._release()

    async def _run_process(self, exe_path: Path, output_dir: Union[str, Path], target_url: str, on_line: LineSink):
        command = self.build_command(exe_path, output_dir, target_url)
        on_line(f"Saving to: {resolve_output_dir(output_dir, self.install_dir)}")
        self.logger.info(f"Starting: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(exe_path.parent),
                limit=STREAM_READ_LIMIT,
                **self.platform.subprocess_kwargs()
            )
        except OSError as e:
            self.logger.error(f"Could not start {exe_path}: {e}")
            on_line(f"Failed to start yt-dlp: {e}")
            raise RunError(f"Failed to start yt-dlp: {e}") from e

        assert process.stdout is not None and process.stderr is not None
        errors: list = []

        def deliver(text: str):
            if text.startswith('ERROR:'):
                errors.append(text[6:].strip())
            on_line(text)

        # Both pipes must reach EOF before wait(), or buffered output is lost.
        await asyncio.gather(
            self._read_stream(process.stdout, deliver),
            self._read_stream(process.stderr, deliver),
        )
        return_code = await process.wait()

        if return_code != 0:
            detail = errors[-1] if errors else f"yt-dlp exited with status {return_code}"
            self.logger.error(f"Download of {target_url} failed ({return_code}): {detail}")
            on_line(f"Download failed: {detail}")
            raise RunError(detail, exit_code=return_code)

        self.logger.info(f"Download of {target_url} finished.")
        on_line("Download complete")

    async def _read_stream(self, stream: asyncio.StreamReader, on_line: LineSink):
        """Reads `stream` to EOF, delivering each decoded line in order."""
        encodings = self.platform.legacy_encodings
        split_line = False
        while True:
            try:
                raw = await stream.readuntil(b'\n')
            except asyncio.IncompleteReadError as e:
                # EOF; whatever is left is a final unterminated line.
                if e.partial:
                    on_line(decode_line(e.partial, encodings))
                break
            except asyncio.LimitOverrunError as e:
                # No newline within the buffer limit; hand over what is buffered.
                raw = await stream.read(e.consumed)
                split_line = True
                on_line(decode_line(raw, encodings))
                continue
            except (OSError, ValueError) as e:
                self.logger.error(f"Error reading process output: {e}")
                on_line(f"Error reading process output: {e}")
                break
            if split_line and not raw.rstrip(b'\r\n'):
                # Terminator of a line already delivered in pieces.
                split_line = False
                continue
            split_line = False
            on_line(decode_line(raw, encodings))
