"""Shared fakes for the test suite: event recorder, fake clock, fake ffmpeg, mock services."""

import asyncio
import os
import stat
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx

from subtitle_batch.core.events import Event
from subtitle_batch.exceptions import ProcessExecutionError
from subtitle_batch.models.config import BatchConfig, ExtractionConfig, RetryPolicy, TranscriptionConfig

SAMPLE_SRT = """1
00:00:01,000 --> 00:00:02,500
Hello world

2
00:00:03,000 --> 00:00:04,000
Second line
"""

TRANSLATED_SRT = """1
00:00:01,000 --> 00:00:02,500
Hola mundo

2
00:00:03,000 --> 00:00:04,000
Segunda linea
"""


class RecordingSink:
    """Event sink that keeps every event in order."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def names(self, task_id: Optional[str] = None) -> List[str]:
        return [e.name for e in self.events if task_id is None or e.task_id == task_id]

    def of(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]


class FakeClock:
    """Replacement for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    @property
    def elapsed(self) -> float:
        return sum(self.delays)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def write_fake_ffmpeg(
    directory: Path,
    exit_code: int = 0,
    stderr_lines: tuple = (),
    hold_seconds: float = 0.0,
) -> Path:
    """
    Write a shell script that behaves like ffmpeg for the extraction step.

    With ``hold_seconds`` the script never produces output and just hangs.
    """
    lines = ["#!/bin/sh"]
    for text in stderr_lines:
        lines.append(f"echo '{text}' >&2")
    if hold_seconds:
        # exec so that killing the script kills the sleep too
        lines.append(f"exec sleep {hold_seconds}")
    if exit_code == 0:
        lines.append('for a in "$@"; do case "$a" in *.wav) out="$a";; esac; done')
        lines.append('printf "RIFFfakewav" > "$out"')
    lines.append(f"exit {exit_code}")

    script = Path(directory) / f"fake-ffmpeg-{exit_code}"
    script.write_text("\n".join(lines) + "\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def make_batch_config(root: Path, ffmpeg_binary: str = "ffmpeg", **overrides) -> BatchConfig:
    """Batch config rooted in a temp dir, with fast polling and no probing."""
    root = Path(root)
    kwargs = dict(
        output_dir=root / "out",
        scratch_dir=root / "scratch",
        log_dir=root / "logs",
        extraction=ExtractionConfig(ffmpeg_binary=ffmpeg_binary, report_progress=False),
        transcription=TranscriptionConfig(poll_interval=3.0, max_poll_attempts=600),
        retry=RetryPolicy(max_attempts=3, initial_delay=1.0, backoff_multiplier=2.0),
    )
    kwargs.update(overrides)
    return BatchConfig(**kwargs)


def make_inputs(directory: Path, names: List[str]) -> List[Path]:
    paths = []
    for name in names:
        path = Path(directory) / name
        path.write_bytes(b"not really a video")
        paths.append(path)
    return paths


class FakeServices:
    """
    Mock transport answering like the transcription relay and translation server.

    Per-job status sequences are consumed one poll at a time; the last status
    repeats once the sequence runs out.
    """

    def __init__(
        self,
        statuses: Optional[List[str]] = None,
        transcript: str = SAMPLE_SRT,
        translated: str = TRANSLATED_SRT,
        translate_status: int = 200,
        translate_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.statuses = statuses or ["processing", "completed"]
        self.transcript = transcript
        self.translated = translated
        self.translate_status = translate_status
        self.translate_handler = translate_handler
        self.requests: List[httpx.Request] = []
        self._jobs = 0
        self._polls: Dict[str, int] = {}

    def count(self, method: str, path_suffix: str) -> int:
        return sum(
            1 for r in self.requests if r.method == method and r.url.path.endswith(path_suffix)
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/translate"):
            if self.translate_handler is not None:
                return self.translate_handler(request)
            if self.translate_status != 200:
                return httpx.Response(self.translate_status, json={"error": "translator down"})
            return httpx.Response(
                200, json={"translated_srt": self.translated, "entry_count": 2}
            )

        if request.method == "POST" and path.endswith("/transcriptions"):
            self._jobs += 1
            return httpx.Response(200, json={"job_id": f"job-{self._jobs}"})

        if path.endswith("/srt"):
            return httpx.Response(200, text=self.transcript)

        if request.method == "GET" and "/transcriptions/" in path:
            job_id = path.rsplit("/", 1)[-1]
            index = self._polls.get(job_id, 0)
            self._polls[job_id] = index + 1
            status = self.statuses[min(index, len(self.statuses) - 1)]
            return httpx.Response(200, json={"status": status, "progress": 50})

        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def skip_without_sh() -> bool:
    return not os.path.exists("/bin/sh")


class FakeExtractor:
    """Stands in for AudioExtractor; inputs whose name contains ``bad`` fail like ffmpeg."""

    def __init__(self, hold: float = 0.02) -> None:
        self.hold = hold
        self.calls: List[Path] = []

    async def extract(self, input_path, scratch_dir, on_progress=None, cancel_token=None):
        self.calls.append(Path(input_path))
        await asyncio.sleep(self.hold)
        if on_progress:
            on_progress(100.0)
        if "bad" in Path(input_path).name:
            raise ProcessExecutionError(1, "Invalid data found when processing input")
        Path(scratch_dir).mkdir(parents=True, exist_ok=True)
        audio = Path(scratch_dir) / f"{Path(input_path).stem}.wav"
        audio.write_bytes(b"RIFFfakewav")
        return audio
