"""Unit tests for per-job log routing in the unified logger."""

import asyncio
import threading

import pytest

from lingua_scripter.utils.unified_logger import UnifiedLogger, job_log_callback


def quiet_logger():
    return UnifiedLogger(console_output=False, enable_colors=False)


def messages(entries):
    return [entry['message'] for entry in entries]


class TestJobLogCallback:
    """Test that each job only receives its own log entries."""

    def test_entries_inside_scope_only(self):
        logger = quiet_logger()
        received = []

        logger.info("before")
        with job_log_callback(received.append):
            logger.info("during", data={'chapter_id': 'c1'})
        logger.info("after")

        assert messages(received) == ["during"]
        assert received[0]['data'] == {'chapter_id': 'c1'}
        assert received[0]['level'] == "INFO"

    def test_concurrent_threads_keep_logs_apart(self):
        logger = quiet_logger()
        logs = {"a": [], "b": []}
        barrier = threading.Barrier(2)

        def job(name):
            with job_log_callback(logs[name].append):
                barrier.wait()
                logger.info(f"start {name}")
                barrier.wait()
                logger.info(f"end {name}")

        threads = [threading.Thread(target=job, args=(name,)) for name in logs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(2)

        assert messages(logs["a"]) == ["start a", "end a"]
        assert messages(logs["b"]) == ["start b", "end b"]

    @pytest.mark.asyncio
    async def test_tasks_inherit_the_job_callback(self):
        logger = quiet_logger()
        received = []

        async def worker():
            await asyncio.sleep(0)
            logger.warning("from task")

        with job_log_callback(received.append):
            await asyncio.create_task(worker())

        assert messages(received) == ["from task"]

    def test_global_callbacks_still_receive_entries(self):
        web = []
        job = []
        logger = UnifiedLogger(console_output=False, web_callback=web.append)

        with job_log_callback(job.append):
            logger.error("boom")

        assert messages(web) == ["boom"]
        assert messages(job) == ["boom"]
