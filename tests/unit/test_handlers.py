"""Unit tests for the background batch job runner."""

import asyncio

from lingua_scripter.api.batch_state import BatchStateManager
from lingua_scripter.api.handlers import run_batch_async_wrapper, start_batch_job
from lingua_scripter.core.batch.models import BatchRequest, GenerationSettings
from lingua_scripter.core.batch.orchestrator import BatchOrchestrator
from lingua_scripter.core.llm.exceptions import StreamAbortedError
from lingua_scripter.persistence import JsonProjectStore, chapter_inputs
from conftest import FakeProvider


class FakeSocketIO:
    def __init__(self):
        self.emitted = []

    def emit(self, event, payload, namespace=None):
        self.emitted.append((event, payload))


def log_messages(batch):
    return " ".join(entry["message"] if isinstance(entry, dict) else entry for entry in batch["logs"])


def prepare(tmp_path, provider):
    store = JsonProjectStore(str(tmp_path))
    records = asyncio.run(store.add_chapters("novel", [
        {"id": "c1", "originalText": "One"},
        {"id": "c2", "originalText": "Two"},
    ]))
    request = BatchRequest(
        chapters=chapter_inputs(records),
        settings=GenerationSettings(provider="deepseek", api_key="sk", auto_detect_characters=False)
    )

    manager = BatchStateManager()
    manager.create_batch("batch_1", "novel", ["c1", "c2"], {})
    manager.get_orchestrator("novel", lambda: BatchOrchestrator(
        persist_chapter=store.persist_chapter_translation,
        provider_factory=lambda settings: provider
    ))
    return store, manager, {"project_id": "novel", "request": request}


class TestBatchJob:
    """Test running a batch job end to end."""

    def test_completed_job(self, tmp_path):
        provider = FakeProvider(["[CHAPTER_1_START]Un[CHAPTER_1_END]", "[CHAPTER_2_START]Deux[CHAPTER_2_END]"])
        store, manager, job = prepare(tmp_path, provider)
        socketio = FakeSocketIO()

        run_batch_async_wrapper("batch_1", job, manager, store, socketio)

        batch = manager.get_batch("batch_1")
        assert batch["status"] == "completed"
        assert batch["progress"]["completedCount"] == 2
        assert not manager.is_project_busy("novel")

        chapters = asyncio.run(store.get_chapters("novel"))
        assert [c["translatedText"] for c in chapters] == ["Un", "Deux"]

        assert all(event == "batch_update" for event, _ in socketio.emitted)
        assert socketio.emitted[-1][1]["status"] == "completed"
        assert socketio.emitted[-1][1]["batch_id"] == "batch_1"

        # The project's orchestrator is ready for the next batch
        orchestrator = manager.get_orchestrator("novel", lambda: None)
        assert not orchestrator.is_running
        assert orchestrator.progress is None

    def test_failed_job_keeps_saved_chapters(self, tmp_path):
        provider = FakeProvider(["[CHAPTER_1_START]Un[CHAPTER_1_END]"], error=StreamAbortedError("reset"))
        store, manager, job = prepare(tmp_path, provider)

        run_batch_async_wrapper("batch_1", job, manager, store, None)

        batch = manager.get_batch("batch_1")
        assert batch["status"] == "error"
        assert batch["error"] == "reset"
        assert batch["progress"]["chapters"] == [
            {"chapterId": "c1", "status": "completed"},
            {"chapterId": "c2", "status": "error"},
        ]
        chapters = asyncio.run(store.get_chapters("novel"))
        assert chapters[0]["translatedText"] == "Un"
        assert chapters[1]["translatedText"] is None

    def test_concurrent_jobs_keep_their_own_logs(self, tmp_path):
        store = JsonProjectStore(str(tmp_path))
        manager = BatchStateManager()
        jobs = {}
        for project_id, prefix in (("north", "n"), ("south", "s")):
            records = asyncio.run(store.add_chapters(project_id, [
                {"id": f"{prefix}1", "originalText": "One"},
                {"id": f"{prefix}2", "originalText": "Two"},
            ]))
            provider = FakeProvider(["[CHAPTER_1_START]Un[CHAPTER_1_END]", "[CHAPTER_2_START]De"], block_after=1)
            manager.create_batch(f"batch_{prefix}", project_id, [f"{prefix}1", f"{prefix}2"], {})
            manager.get_orchestrator(project_id, lambda provider=provider: BatchOrchestrator(
                persist_chapter=store.persist_chapter_translation,
                provider_factory=lambda settings: provider
            ))
            request = BatchRequest(
                chapters=chapter_inputs(records),
                settings=GenerationSettings(provider="deepseek", api_key="sk", auto_detect_characters=False)
            )
            jobs[f"batch_{prefix}"] = {"project_id": project_id, "request": request}

        threads = [start_batch_job(batch_id, job, manager, store, None) for batch_id, job in jobs.items()]
        for _ in range(200):
            if all(manager.get_batch(batch_id)["progress"]["completedCount"] == 1 for batch_id in jobs):
                break
            threads[0].join(0.01)

        for batch_id in jobs:
            manager.request_cancel(batch_id)
        for thread in threads:
            thread.join(2)

        north_logs = log_messages(manager.get_batch("batch_n"))
        south_logs = log_messages(manager.get_batch("batch_s"))
        assert "Chapter n1 translated" in north_logs
        assert "s1" not in north_logs
        assert "Chapter s1 translated" in south_logs
        assert "n1" not in south_logs

    def test_cancelled_from_request_thread(self, tmp_path):
        provider = FakeProvider(["[CHAPTER_1_START]Un[CHAPTER_1_END]", "[CHAPTER_2_START]De"], block_after=2)
        store, manager, job = prepare(tmp_path, provider)

        thread = start_batch_job("batch_1", job, manager, store, None)
        for _ in range(200):
            if manager.get_batch("batch_1")["progress"]["completedCount"] == 1:
                break
            thread.join(0.01)

        assert manager.request_cancel("batch_1")
        thread.join(2)

        assert not thread.is_alive()
        batch = manager.get_batch("batch_1")
        assert batch["status"] == "cancelled"
        assert batch["progress"]["completedCount"] == 1
        assert provider.stream_closed
