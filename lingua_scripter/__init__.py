"""
Lingua Scripter - batch chapter translation with streaming LLM providers
"""

__version__ = "1.0.0"
