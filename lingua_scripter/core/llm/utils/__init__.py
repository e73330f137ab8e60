"""
Utility modules for LLM providers.
"""

from .sse import parse_sse_line, is_done_line

__all__ = ['parse_sse_line', 'is_done_line']
