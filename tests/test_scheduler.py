import tempfile
import unittest
from pathlib import Path

from subtitle_batch.core.events import BATCH_COMPLETE, TASK_COMPLETED, TASK_FAILED, TASK_STARTED
from subtitle_batch.core.scheduler import Scheduler
from subtitle_batch.core.task_log import TaskLogger
from subtitle_batch.models.task import Stage, TaskBatch

from support import FakeClock, FakeExtractor, FakeServices, RecordingSink, make_batch_config, make_inputs


class SchedulerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.sink = RecordingSink()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def _run(self, names, concurrency_limit=4, services=None, before_run=None):
        config = make_batch_config(self.root, concurrency_limit=concurrency_limit)
        batch = TaskBatch.from_paths(make_inputs(self.root, names), config, target_language="es")
        services = services or FakeServices()

        async with services.client() as http:
            scheduler = Scheduler(
                event_sink=self.sink,
                http_client=http,
                extractor=FakeExtractor(hold=0.05),
                sleep=FakeClock(),
            )
            if before_run:
                before_run(scheduler, batch)
            results = await scheduler.run(batch)
        return scheduler, batch, results

    async def test_never_exceeds_concurrency_limit(self) -> None:
        names = [f"video{i}.mp4" for i in range(6)]
        scheduler, batch, results = await self._run(names, concurrency_limit=4)

        self.assertEqual(scheduler.max_active_observed, 4)
        self.assertEqual(scheduler.active_count, 0)
        self.assertTrue(all(t.stage is Stage.COMPLETED for t in results))
        for task in results:
            self.assertTrue(task.output_path.exists())

    async def test_serial_when_limit_is_one(self) -> None:
        scheduler, _, results = await self._run(["a.mp4", "b.mp4", "c.mp4"], concurrency_limit=1)
        self.assertEqual(scheduler.max_active_observed, 1)
        self.assertEqual(scheduler.completed_count, 3)

    async def test_failed_task_does_not_affect_siblings(self) -> None:
        scheduler, batch, results = await self._run(["a.mp4", "bad.mp4", "c.mp4"])

        by_name = {t.name: t for t in results}
        self.assertIs(by_name["a.mp4"].stage, Stage.COMPLETED)
        self.assertIs(by_name["c.mp4"].stage, Stage.COMPLETED)
        self.assertIs(by_name["bad.mp4"].stage, Stage.FAILED)
        self.assertIn("exit code 1", by_name["bad.mp4"].error)
        self.assertEqual(scheduler.completed_count, 2)
        self.assertEqual(scheduler.failed_count, 1)
        self.assertEqual(scheduler.pending_count, 0)

    async def test_batch_complete_emitted_once_after_all_tasks(self) -> None:
        _, batch, _ = await self._run(["a.mp4", "bad.mp4"])

        names = self.sink.names()
        self.assertEqual(names.count(BATCH_COMPLETE), 1)
        self.assertEqual(names[-1], BATCH_COMPLETE)
        payload = self.sink.of(BATCH_COMPLETE)[0].payload
        self.assertEqual(payload, {"total": 2, "completed": 1, "failed": 1})

    async def test_each_task_has_one_terminal_event(self) -> None:
        _, batch, _ = await self._run(["a.mp4", "bad.mp4", "c.mp4"])

        for task in batch:
            names = self.sink.names(task.id)
            self.assertEqual(names[0], TASK_STARTED)
            terminal = [n for n in names if n in (TASK_COMPLETED, TASK_FAILED)]
            self.assertEqual(len(terminal), 1)

    async def test_logs_written_per_task(self) -> None:
        _, batch, _ = await self._run(["a.mp4", "b.mp4"])

        task_logger = TaskLogger(batch.config.log_dir)
        self.assertEqual(sorted(task_logger.list_task_ids()), sorted(t.id for t in batch))
        for task in batch:
            messages = [e.message for e in task_logger.read(task.id)]
            self.assertTrue(any(m.startswith("Task started") for m in messages))

    async def test_cancel_before_run(self) -> None:
        cancelled = []

        def cancel_first(scheduler, batch):
            cancelled.append(scheduler.cancel(batch.tasks[0].id))

        scheduler, batch, results = await self._run(["a.mp4", "b.mp4"], before_run=cancel_first)

        self.assertEqual(cancelled, [True])
        self.assertIs(results[0].stage, Stage.FAILED)
        self.assertTrue(results[0].error.startswith("Task cancelled"))
        self.assertIs(results[1].stage, Stage.COMPLETED)
        self.assertFalse(scheduler.cancel(results[1].id))

    async def test_cancel_unknown_task_after_run(self) -> None:
        scheduler, batch, results = await self._run(["a.mp4"])
        tokens_before = dict(scheduler._tokens)

        self.assertFalse(scheduler.cancel("no-such-task"))
        self.assertEqual(scheduler._tokens, tokens_before)
        self.assertNotIn("no-such-task", scheduler._tokens)


if __name__ == "__main__":
    unittest.main()
