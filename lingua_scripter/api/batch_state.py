"""
Thread-safe batch job state management
"""
import threading
import time
import copy
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

ACTIVE_STATUSES = ('queued', 'running')


class BatchStateManager:
    """
    Thread-safe registry of batch jobs.

    Holds one record per batch, the running batch of each project and one
    orchestrator per project. Batches run on worker threads with their own
    event loops, so cancellation is handed to the owning loop.
    """

    def __init__(self):
        self._batches: Dict[str, Dict[str, Any]] = {}
        self._active_projects: Dict[str, str] = {}
        self._orchestrators: Dict[str, Any] = {}
        self._runners: Dict[str, Any] = {}
        self._lock = threading.RLock()  # Use RLock to allow nested locking

    def create_batch(self, batch_id: str, project_id: str, chapter_ids: List[str],
                     config: Dict[str, Any]) -> bool:
        """
        Register a queued batch.

        Returns:
            False when the project already has a queued or running batch
        """
        with self._lock:
            if project_id in self._active_projects:
                return False
            self._active_projects[project_id] = batch_id
            self._batches[batch_id] = {
                'batch_id': batch_id,
                'project_id': project_id,
                'status': 'queued',
                'progress': {
                    'total': len(chapter_ids),
                    'completedCount': 0,
                    'chapters': [{'chapterId': cid, 'status': 'pending'} for cid in chapter_ids],
                    'currentChapterId': None,
                    'streamingText': '',
                    'warnings': {},
                    'error': None,
                    'charactersFound': 0
                },
                'stats': {
                    'start_time': time.time(),
                    'end_time': None
                },
                'logs': [f"[{datetime.now().strftime('%H:%M:%S')}] Batch {batch_id} queued."],
                'config': config,
                'error': None,
                'cancel_requested': False
            }
            return True

    def exists(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._batches

    def get_batch(self, batch_id: str) -> Optional[Dict[str, Any]]:
        """Get batch state safely"""
        with self._lock:
            if batch_id not in self._batches:
                return None
            # Return a deep copy to prevent external modification of nested objects
            return copy.deepcopy(self._batches[batch_id])

    def get_batch_field(self, batch_id: str, field: str, default=None):
        with self._lock:
            if batch_id not in self._batches:
                return default
            return self._batches[batch_id].get(field, default)

    def append_log(self, batch_id: str, log_entry: Any) -> bool:
        """Append a log entry to a batch"""
        with self._lock:
            if batch_id not in self._batches:
                return False
            self._batches[batch_id]['logs'].append(log_entry)
            return True

    def apply_progress(self, batch_id: str, update: Dict[str, Any]) -> bool:
        """
        Fold a ProgressUpdate dict into the batch record.

        Args:
            batch_id: Batch identifier
            update: ``ProgressUpdate.to_dict()`` payload
        """
        with self._lock:
            if batch_id not in self._batches:
                return False
            progress = self._batches[batch_id]['progress']
            chapter_id = update.get('chapterId')
            status = update.get('status')

            for chapter in progress['chapters']:
                if chapter['chapterId'] == chapter_id:
                    chapter['status'] = status
                    break

            if update.get('completedCount') is not None:
                progress['completedCount'] = update['completedCount']

            if status == 'translating':
                progress['currentChapterId'] = chapter_id
                progress['streamingText'] = update.get('streamingText', '')
            elif progress.get('currentChapterId') == chapter_id:
                progress['currentChapterId'] = None
                progress['streamingText'] = ''
            return True

    def mark_running(self, batch_id: str) -> bool:
        with self._lock:
            if batch_id not in self._batches:
                return False
            self._batches[batch_id]['status'] = 'running'
            return True

    def finish_batch(self, batch_id: str, status: str, progress: Optional[Dict[str, Any]] = None,
                     error: Optional[str] = None) -> bool:
        """Record the terminal state and release the project"""
        with self._lock:
            if batch_id not in self._batches:
                return False
            batch = self._batches[batch_id]
            batch['status'] = status
            if progress is not None:
                batch['progress'] = progress
            if error is not None:
                batch['error'] = error
            batch['stats']['end_time'] = time.time()

            project_id = batch['project_id']
            if self._active_projects.get(project_id) == batch_id:
                del self._active_projects[project_id]
            self._runners.pop(batch_id, None)
            return True

    def is_project_busy(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._active_projects

    def get_orchestrator(self, project_id: str, factory: Callable[[], Any]):
        """Return the project's orchestrator, creating it on first use"""
        with self._lock:
            if project_id not in self._orchestrators:
                self._orchestrators[project_id] = factory()
            return self._orchestrators[project_id]

    def register_runner(self, batch_id: str, orchestrator: Any, loop: Any) -> bool:
        """Remember which orchestrator and event loop execute a batch"""
        with self._lock:
            if batch_id not in self._batches:
                return False
            self._runners[batch_id] = (orchestrator, loop)
            return True

    def is_cancel_requested(self, batch_id: str) -> bool:
        return bool(self.get_batch_field(batch_id, 'cancel_requested', False))

    def request_cancel(self, batch_id: str) -> bool:
        """
        Ask a queued or running batch to stop.

        Returns:
            False when the batch does not exist or is already finished
        """
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None or batch['status'] not in ACTIVE_STATUSES:
                return False
            batch['cancel_requested'] = True
            runner = self._runners.get(batch_id)

        if runner is not None:
            orchestrator, loop = runner
            try:
                loop.call_soon_threadsafe(orchestrator.cancel)
            except RuntimeError:
                # Loop already closed: the batch finished in the meantime
                pass
        return True

    def get_batch_summaries(self) -> List[Dict[str, Any]]:
        """Get summaries of all batches for listing"""
        with self._lock:
            summaries = []
            for batch_id, data in self._batches.items():
                summaries.append({
                    'batch_id': batch_id,
                    'project_id': data.get('project_id'),
                    'status': data.get('status'),
                    'completed': data['progress'].get('completedCount', 0),
                    'total': data['progress'].get('total', 0),
                    'start_time': data['stats'].get('start_time')
                })
            return sorted(summaries, key=lambda x: x.get('start_time') or 0, reverse=True)


# Global instance
_state_manager = None


def get_batch_state_manager() -> BatchStateManager:
    """Get the global batch state manager instance"""
    global _state_manager
    if _state_manager is None:
        _state_manager = BatchStateManager()
    return _state_manager
