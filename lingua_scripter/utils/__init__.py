"""
Utility modules

Import helpers directly from their module:

    from lingua_scripter.utils.unified_logger import get_logger, LogType
"""

__all__ = []
