"""
Batch job handlers and processing logic
"""
import asyncio
import threading
from datetime import datetime
from typing import Any, Dict

from lingua_scripter.core.batch.models import BatchRequest
from lingua_scripter.core.batch.orchestrator import BatchOrchestrator
from lingua_scripter.core.characters import CharacterExtractor
from lingua_scripter.utils.unified_logger import job_log_callback
from .websocket import emit_batch_update


def run_batch_async_wrapper(batch_id, job, state_manager, store, socketio):
    """
    Wrapper for running a batch in its own event loop

    Args:
        batch_id (str): Batch job ID
        job (dict): ``project_id`` and the prepared ``request`` (BatchRequest)
        state_manager: Batch state manager instance
        store: Project store providing persistence
        socketio: SocketIO instance
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(perform_batch_translation(batch_id, job, state_manager, store, socketio))
    except Exception as e:
        error_msg = f"Uncaught error in batch wrapper {batch_id}: {e}"
        print(error_msg)
        if state_manager.exists(batch_id):
            state_manager.append_log(batch_id, f"[{datetime.now().strftime('%H:%M:%S')}] CRITICAL WRAPPER ERROR: {error_msg}")
            state_manager.finish_batch(batch_id, 'error', error=error_msg)
            emit_batch_update(socketio, batch_id, {'status': 'error', 'error': error_msg}, state_manager)
    finally:
        loop.close()


def _build_orchestrator(store, project_id: str) -> BatchOrchestrator:
    async def add_characters(characters):
        return await store.add_characters(project_id, characters)

    return BatchOrchestrator(
        persist_chapter=store.persist_chapter_translation,
        add_characters=add_characters
    )


async def perform_batch_translation(batch_id: str, job: Dict[str, Any], state_manager, store, socketio):
    """
    Run one batch on the project's orchestrator

    Args:
        batch_id (str): Batch job ID
        job (dict): ``project_id`` and the prepared ``request`` (BatchRequest)
        state_manager: Batch state manager instance
        store: Project store providing persistence
        socketio: SocketIO instance
    """
    project_id = job['project_id']
    request: BatchRequest = job['request']

    def log_callback(log_entry):
        state_manager.append_log(batch_id, log_entry)

    with job_log_callback(log_callback):
        orchestrator = state_manager.get_orchestrator(
            project_id, lambda: _build_orchestrator(store, project_id)
        )
        orchestrator.batch_id = batch_id
        orchestrator.extract_characters = CharacterExtractor.from_settings(request.settings)

        def on_update(update):
            data = update.to_dict()
            state_manager.apply_progress(batch_id, data)
            emit_batch_update(socketio, batch_id, data, state_manager)

        unsubscribe = orchestrator.subscribe(on_update)
        state_manager.register_runner(batch_id, orchestrator, asyncio.get_running_loop())
        state_manager.mark_running(batch_id)
        emit_batch_update(socketio, batch_id, {'status': 'running'}, state_manager)

        try:
            async for _ in orchestrator.run(request):
                # Cancellation requested before the runner was registered
                if state_manager.is_cancel_requested(batch_id) and orchestrator.is_running:
                    orchestrator.cancel()

            progress = orchestrator.progress.to_dict()
            state_manager.finish_batch(batch_id, orchestrator.state.value, progress,
                                       error=orchestrator.progress.error)
            emit_batch_update(socketio, batch_id, {
                'status': orchestrator.state.value,
                'progress': progress
            }, state_manager)
        finally:
            unsubscribe()
            if not orchestrator.is_running:
                orchestrator.acknowledge()


def start_batch_job(batch_id, job, state_manager, store, socketio):
    """
    Start a batch job in a separate thread

    Args:
        batch_id (str): Batch job ID
        job (dict): ``project_id`` and the prepared ``request`` (BatchRequest)
        state_manager: Batch state manager instance
        store: Project store providing persistence
        socketio: SocketIO instance
    """
    thread = threading.Thread(
        target=run_batch_async_wrapper,
        args=(batch_id, job, state_manager, store, socketio)
    )
    thread.daemon = True
    thread.start()
    return thread
