import asyncio
import tempfile
import unittest
from pathlib import Path

import httpx

from subtitle_batch.core.audio import AudioExtractor
from subtitle_batch.core.cancellation import CancellationToken
from subtitle_batch.core.events import (
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_LOG,
    TASK_STARTED,
    TRANSCRIPTION_STARTED,
    TRANSLATION_COMPLETE,
)
from subtitle_batch.core.pipeline import TaskPipeline
from subtitle_batch.core.task_log import TaskLogger
from subtitle_batch.core.transcription import TranscriptionClient
from subtitle_batch.core.translation import TranslationClient
from subtitle_batch.models.task import LogCategory, Stage, Task, Workflow

from support import (
    SAMPLE_SRT,
    TRANSLATED_SRT,
    FakeClock,
    FakeExtractor,
    FakeServices,
    RecordingSink,
    make_batch_config,
    skip_without_sh,
    write_fake_ffmpeg,
)


class TaskPipelineTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.config = make_batch_config(self.root)
        self.sink = RecordingSink()
        self.task_logger = TaskLogger(self.config.log_dir, self.sink)
        self.clock = FakeClock()
        self.video = self.root / "clip.mp4"
        self.video.write_bytes(b"video")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def _run(self, task, services=None, extractor=None, token=None) -> Task:
        services = services or FakeServices()
        async with services.client() as http:
            pipeline = TaskPipeline(
                task,
                self.config,
                extractor or FakeExtractor(hold=0),
                TranscriptionClient(http, self.config.transcription, self.config.retry, sleep=self.clock),
                TranslationClient(http, self.config.translation, self.config.retry, sleep=self.clock),
                self.task_logger,
                self.sink,
                cancel_token=token,
            )
            return await pipeline.run()

    def _messages(self, task):
        return [e.message for e in self.task_logger.read(task.id)]

    def _lifecycle(self, task):
        return [n for n in self.sink.names(task.id) if n != TASK_LOG]

    @unittest.skipIf(skip_without_sh(), "needs /bin/sh for the fake ffmpeg")
    async def test_video_to_translated_subtitle(self) -> None:
        self.config.extraction.ffmpeg_binary = str(write_fake_ffmpeg(self.root))
        task = Task(input_path=self.video, target_language="es")

        await self._run(task, extractor=AudioExtractor(self.config.extraction))

        self.assertIs(task.stage, Stage.COMPLETED)
        output = self.config.output_dir / "clip_es.srt"
        self.assertEqual(task.output_path, output)
        self.assertEqual(output.read_text(encoding="utf-8"), TRANSLATED_SRT)
        self.assertFalse(task.temp_audio_path.exists())
        self.assertFalse(task.temp_transcript_path.exists())

        lifecycle = self._lifecycle(task)
        self.assertEqual(lifecycle[0], TASK_STARTED)
        self.assertEqual(lifecycle[-1], TASK_COMPLETED)
        self.assertNotIn(TASK_FAILED, lifecycle)
        self.assertLess(lifecycle.index(TRANSCRIPTION_STARTED), lifecycle.index(TRANSLATION_COMPLETE))

        messages = self._messages(task)
        self.assertIn("Stage changed: pending -> extracting", messages)
        self.assertIn("Stage changed: extracting -> transcribing", messages)
        self.assertIn("Stage changed: transcribing -> translating", messages)

    async def test_language_with_spaces_in_output_name(self) -> None:
        task = Task(input_path=self.video, target_language="Chinese Simplified")
        await self._run(task)
        self.assertEqual(task.output_path, self.config.output_dir / "clip_Chinese_Simplified.srt")

    async def test_without_target_language_keeps_transcript(self) -> None:
        task = Task(input_path=self.video)
        services = FakeServices()
        await self._run(task, services=services)

        self.assertIs(task.stage, Stage.COMPLETED)
        self.assertEqual(task.output_path, self.config.output_dir / "clip.srt")
        self.assertEqual(task.output_path.read_text(encoding="utf-8"), SAMPLE_SRT)
        self.assertEqual(services.count("POST", "/translate"), 0)
        self.assertNotIn("Stage changed: transcribing -> translating", self._messages(task))

    async def test_direct_subtitle_translation(self) -> None:
        source = self.root / "episode.srt"
        source.write_text(SAMPLE_SRT, encoding="utf-8")
        task = Task(input_path=source, workflow=Workflow.TRANSLATE, target_language="es")
        extractor = FakeExtractor(hold=0)

        await self._run(task, extractor=extractor)

        self.assertIs(task.stage, Stage.COMPLETED)
        self.assertEqual(task.output_path, self.config.output_dir / "episode_es.srt")
        self.assertEqual(extractor.calls, [])
        self.assertIn("Stage changed: pending -> translating", self._messages(task))

    async def test_direct_translation_needs_language(self) -> None:
        source = self.root / "episode.srt"
        source.write_text(SAMPLE_SRT, encoding="utf-8")
        task = Task(input_path=source, workflow=Workflow.TRANSLATE)

        await self._run(task)

        self.assertIs(task.stage, Stage.FAILED)
        self.assertIn("requires a target language", task.error)

    async def test_extraction_failure(self) -> None:
        bad = self.root / "bad.mp4"
        bad.write_bytes(b"garbage")
        task = Task(input_path=bad, target_language="es")
        services = FakeServices()

        await self._run(task, services=services)

        self.assertIs(task.stage, Stage.FAILED)
        self.assertTrue(task.error.startswith("Audio extraction failed (exit code 1)"))
        self.assertIn("Invalid data found", task.error)
        self.assertEqual(services.requests, [])
        self.assertEqual(self._lifecycle(task)[-1], TASK_FAILED)

        errors = [e for e in self.task_logger.read(task.id) if e.category is LogCategory.ERROR]
        self.assertEqual(errors[-1].message, task.error)

    async def test_transcription_failure_keeps_temp_audio(self) -> None:
        task = Task(input_path=self.video, target_language="es")
        await self._run(task, services=FakeServices(statuses=["error"]))

        self.assertIs(task.stage, Stage.FAILED)
        self.assertTrue(task.error.startswith("Transcription failed"))
        self.assertTrue(task.temp_audio_path.exists())
        self.assertIsNone(task.output_path)

    async def test_translation_outage_still_produces_file(self) -> None:
        task = Task(input_path=self.video, target_language="es")
        await self._run(task, services=FakeServices(translate_status=502))

        self.assertIs(task.stage, Stage.COMPLETED)
        self.assertEqual(task.output_path.read_text(encoding="utf-8"), SAMPLE_SRT)
        complete = [e for e in self.sink.of(TRANSLATION_COMPLETE) if e.task_id == task.id]
        self.assertTrue(complete[0].payload["fell_back"])

    async def test_translation_rejection_falls_back(self) -> None:
        task = Task(input_path=self.video, target_language="xx")
        services = FakeServices(translate_status=422)
        await self._run(task, services=services)

        self.assertIs(task.stage, Stage.COMPLETED)
        self.assertIsNone(task.error)
        self.assertEqual(task.output_path, self.config.output_dir / "clip_xx.srt")
        self.assertEqual(task.output_path.read_text(encoding="utf-8"), SAMPLE_SRT)
        self.assertEqual(services.count("POST", "/translate"), 1)

        complete = self.sink.of(TRANSLATION_COMPLETE)
        self.assertEqual(len(complete), 1)
        self.assertTrue(complete[0].payload["fell_back"])

        errors = [
            e.message
            for e in self.task_logger.read(task.id)
            if e.category is LogCategory.ERROR
        ]
        self.assertEqual(len(errors), 1)
        self.assertIn("Falling back to original SRT", errors[0])
        self.assertIn("422", errors[0])

    async def test_cancel_during_translation_still_fails(self) -> None:
        token = CancellationToken()

        def cancel_then_fail(request: httpx.Request) -> httpx.Response:
            token.cancel("stop")
            return httpx.Response(503, text="busy")

        task = Task(input_path=self.video, target_language="es")
        await self._run(task, services=FakeServices(translate_handler=cancel_then_fail), token=token)

        self.assertIs(task.stage, Stage.FAILED)
        self.assertEqual(task.error, "Task cancelled: stop")
        self.assertFalse((self.config.output_dir / "clip_es.srt").exists())

    async def test_cancel_while_waiting_between_polls(self) -> None:
        self.config.transcription.poll_interval = 30.0
        services = FakeServices(statuses=["processing"])
        token = CancellationToken()
        task = Task(input_path=self.video, target_language="es")

        async with services.client() as http:
            pipeline = TaskPipeline(
                task,
                self.config,
                FakeExtractor(hold=0),
                TranscriptionClient(http, self.config.transcription, self.config.retry),
                TranslationClient(http, self.config.translation, self.config.retry),
                self.task_logger,
                self.sink,
                cancel_token=token,
            )
            asyncio.get_running_loop().call_later(0.1, token.cancel, "stop")
            await asyncio.wait_for(pipeline.run(), timeout=5)
            requests_at_cancel = len(services.requests)
            await asyncio.sleep(0.05)

        self.assertIs(task.stage, Stage.FAILED)
        self.assertEqual(task.error, "Task cancelled: stop")
        self.assertEqual(services.count("GET", "/transcriptions/job-1"), 0)
        self.assertEqual(len(services.requests), requests_at_cancel)
        self.assertTrue(task.temp_audio_path.exists())
        self.assertTrue(any(m.startswith("Keeping temp files") for m in self._messages(task)))

    async def test_cancelled_before_start(self) -> None:
        token = CancellationToken()
        token.cancel("user stop")
        task = Task(input_path=self.video, target_language="es")
        extractor = FakeExtractor(hold=0)

        await self._run(task, extractor=extractor, token=token)

        self.assertIs(task.stage, Stage.FAILED)
        self.assertEqual(task.error, "Task cancelled: user stop")
        self.assertEqual(extractor.calls, [])


if __name__ == "__main__":
    unittest.main()
