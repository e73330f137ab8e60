"""
Batch-specific exceptions.
"""


class BatchError(Exception):
    """Base class for batch orchestration errors"""
    pass


class BatchAlreadyRunningError(BatchError):
    """Raised when a batch is started while another one is still running"""
    pass


class PersistenceError(BatchError):
    """
    Raised when a completed chapter could not be stored.

    The orchestrator records it against the chapter and keeps going.
    """

    def __init__(self, chapter_id: str, reason: str):
        super().__init__(f"Failed to save chapter {chapter_id}: {reason}")
        self.chapter_id = chapter_id
        self.reason = reason


class CharacterExtractionError(BatchError):
    """Raised when post-batch character analysis fails or returns invalid JSON"""
    pass
