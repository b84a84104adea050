"""Audio extraction module using ffmpeg."""

import asyncio
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional
import logging
import re

import ffmpeg

from ..exceptions import (
    FilesystemError,
    ProcessExecutionError,
    ProcessSpawnError,
    TaskCancelledError,
)
from ..models.config import ExtractionConfig
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_FORMATS = {
    ".mp4", ".mkv", ".avi", ".mov", ".webm", ".flv", ".wmv", ".m4v", ".mpg", ".mpeg",
}

# key=value lines written by ``-progress``; kept out of the diagnostic tail
_PROGRESS_LINE = re.compile(r"^[a-z_0-9]+=\S*$")


def parse_progress(line: str, duration: float) -> Optional[float]:
    """Turn an ffmpeg ``out_time_ms=`` line into a 0-100 percentage."""
    if not line.startswith("out_time_ms=") or duration <= 0:
        return None
    try:
        # Despite the name, ffmpeg reports microseconds here
        micros = int(line[len("out_time_ms="):])
    except ValueError:
        return None
    return max(0.0, min(100.0, micros / 1_000_000 / duration * 100))


class AudioExtractor:
    """Extract a speech-ready WAV track from a video with an ffmpeg subprocess."""

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        """Build the ffmpeg argument list (16 kHz mono 16-bit PCM by default)."""
        output_kwargs = {
            "vn": None,
            "acodec": self.config.codec,
            "ar": self.config.sample_rate,
            "ac": self.config.channels,
        }
        if self.config.report_progress:
            output_kwargs["progress"] = "pipe:2"

        stream = ffmpeg.input(str(input_path))
        stream = ffmpeg.output(stream, str(output_path), **output_kwargs)
        # No carriage-return stats line, so output stays line oriented
        stream = stream.global_args("-hide_banner", "-nostats")
        stream = ffmpeg.overwrite_output(stream)
        return ffmpeg.compile(stream, cmd=self.config.ffmpeg_binary)

    async def probe_duration(self, input_path: Path) -> Optional[float]:
        """Get media duration in seconds, or None when ffprobe cannot tell."""
        try:
            probe = await asyncio.to_thread(
                ffmpeg.probe, str(input_path), cmd=self.config.ffprobe_binary
            )
            return float(probe["format"]["duration"])
        except (ffmpeg.Error, OSError, KeyError, ValueError) as e:
            logger.debug(f"Could not get duration of {input_path.name}: {e}")
            return None

    async def extract(
        self,
        input_path: Path,
        scratch_dir: Path,
        on_progress: Optional[Callable[[float], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """
        Extract audio from a video file.

        Args:
            input_path: Source media file.
            scratch_dir: Task-scoped scratch directory for the WAV file.
            on_progress: Receives percentages while ffmpeg runs.
            cancel_token: Kills ffmpeg when cancelled.

        Returns:
            Path to the extracted WAV file.

        Raises:
            FilesystemError: Input missing or scratch dir not writable.
            ProcessSpawnError: ffmpeg could not be launched.
            ProcessExecutionError: ffmpeg exited with a non-zero code.
            TaskCancelledError: Cancelled while ffmpeg was running.
        """
        input_path = Path(input_path)
        if not input_path.exists():
            raise FilesystemError(f"Input file not found: {input_path}")

        try:
            scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create scratch directory {scratch_dir}: {e}")

        output_path = scratch_dir / f"{input_path.stem}.wav"

        duration = None
        if self.config.report_progress and on_progress:
            duration = await self.probe_duration(input_path)

        args = self.build_command(input_path, output_path)
        logger.info(f"Extracting audio from {input_path.name}...")
        logger.debug(f"Running: {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to launch {self.config.ffmpeg_binary}: {e}")

        tail: deque = deque(maxlen=self.config.stderr_tail_lines)

        async def pump() -> int:
            assert process.stdout is not None
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                if _PROGRESS_LINE.match(line):
                    if duration and on_progress:
                        progress = parse_progress(line, duration)
                        if progress is not None:
                            on_progress(progress)
                    continue
                tail.append(line)
            return await process.wait()

        runner = asyncio.ensure_future(pump())
        try:
            if cancel_token is None:
                exit_code = await runner
            else:
                waiter = asyncio.ensure_future(cancel_token.wait())
                try:
                    await asyncio.wait({runner, waiter}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    waiter.cancel()
                if not runner.done():
                    await self._kill(process)
                    runner.cancel()
                    raise TaskCancelledError(cancel_token.reason or "Task cancelled")
                exit_code = runner.result()
        except asyncio.CancelledError:
            await self._kill(process)
            runner.cancel()
            raise

        if exit_code != 0:
            raise ProcessExecutionError(exit_code, "\n".join(tail))

        logger.info(f"Audio extracted: {output_path}")
        return output_path

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
