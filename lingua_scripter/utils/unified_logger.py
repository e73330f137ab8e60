"""
Unified logging system for Lingua Scripter
Provides consistent logging across CLI, Web and the batch pipeline
"""
import sys
import os
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Optional, Dict, Any, Callable
from enum import Enum


class LogLevel(Enum):
    """Log levels with priority values"""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class LogType(Enum):
    """Types of log messages for special handling"""
    GENERAL = "general"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"
    BATCH_START = "batch_start"
    BATCH_END = "batch_end"
    CHAPTER_PROGRESS = "chapter_progress"
    CHAPTER_COMPLETE = "chapter_complete"
    ERROR_DETAIL = "error_detail"


class Colors:
    """ANSI color codes for terminal output"""
    NO_COLOR = os.environ.get('NO_COLOR') is not None or not sys.stdout.isatty()

    YELLOW = '' if NO_COLOR else '\033[93m'       # Headers
    WHITE = '' if NO_COLOR else '\033[97m'        # Main text
    GRAY = '' if NO_COLOR else '\033[90m'         # Technical info
    ORANGE = '' if NO_COLOR else '\033[38;5;214m' # Input sent to the LLM
    GREEN = '' if NO_COLOR else '\033[92m'        # LLM output
    RED = '' if NO_COLOR else '\033[91m'          # Errors
    ENDC = '' if NO_COLOR else '\033[0m'          # Reset

    @classmethod
    def disable(cls):
        """Disable all colors"""
        cls.YELLOW = cls.WHITE = cls.GRAY = cls.ORANGE = cls.GREEN = cls.RED = cls.ENDC = ''


class UnifiedLogger:
    """
    Unified logger that provides consistent logging across all interfaces
    """

    def __init__(self,
                 name: str = "LinguaScripter",
                 console_output: bool = True,
                 enable_colors: bool = True,
                 min_level: LogLevel = LogLevel.INFO,
                 web_callback: Optional[Callable] = None,
                 storage_callback: Optional[Callable] = None):
        """
        Initialize the unified logger

        Args:
            name: Logger name/identifier
            console_output: Whether to output to console
            enable_colors: Whether to use colored output
            min_level: Minimum log level to display
            web_callback: Callback for web interface (WebSocket emission)
            storage_callback: Callback for storing logs (e.g., in memory)
        """
        self.name = name
        self.console_output = console_output
        self.enable_colors = enable_colors
        self.min_level = min_level
        self.web_callback = web_callback
        self.storage_callback = storage_callback

        self.batch_state = {
            'completed': 0,
            'total': 0,
            'model': '',
            'provider': '',
            'start_time': None,
            'in_progress': False
        }

        if not enable_colors:
            Colors.disable()

    def _format_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _format_console_message(self, level: LogLevel, message: str,
                                log_type: LogType = LogType.GENERAL,
                                data: Optional[Dict[str, Any]] = None) -> str:
        """Format message for console output"""
        timestamp = self._format_timestamp()

        level_colors = {
            LogLevel.DEBUG: Colors.GRAY,
            LogLevel.INFO: Colors.WHITE,
            LogLevel.WARNING: Colors.YELLOW,
            LogLevel.ERROR: Colors.RED,
            LogLevel.CRITICAL: Colors.RED
        }
        color = level_colors.get(level, Colors.WHITE)

        if log_type == LogType.LLM_REQUEST:
            return self._format_llm_request(data or {})
        elif log_type == LogType.LLM_RESPONSE:
            return self._format_llm_response(data or {})
        elif log_type == LogType.BATCH_START:
            return self._format_batch_start(data or {})
        elif log_type == LogType.BATCH_END:
            return self._format_batch_end(message, data or {})
        elif log_type == LogType.CHAPTER_COMPLETE:
            return self._format_chapter_complete(data or {})
        elif log_type == LogType.CHAPTER_PROGRESS:
            # Live streaming text is for web clients only
            return ""
        elif log_type == LogType.ERROR_DETAIL:
            return self._format_error_detail(message, data or {})
        else:
            level_str = f"[{level.name}]" if level != LogLevel.INFO else ""
            return f"{color}[{timestamp}] {level_str} {message}{Colors.ENDC}"

    def _format_llm_request(self, data: Dict[str, Any]) -> str:
        """Format LLM request with full details"""
        output = []

        output.append(f"{Colors.YELLOW}{'=' * 80}{Colors.ENDC}")
        output.append(f"{Colors.YELLOW}[{self._format_timestamp()}] SENDING TO LLM{Colors.ENDC}")

        if 'provider' in data:
            output.append(f"{Colors.GRAY}Provider: {data['provider']}{Colors.ENDC}")
        if 'model' in data:
            output.append(f"{Colors.GRAY}Model: {data['model']}{Colors.ENDC}")

        # Full prompts are only printed in debug mode
        if self.min_level == LogLevel.DEBUG:
            output.append(f"\n{Colors.ORANGE}RAW PROMPT (INPUT):{Colors.ENDC}")
            if data.get('system_prompt'):
                output.append(f"{Colors.GRAY}[SYSTEM]{Colors.ENDC}")
                output.append(f"{Colors.ORANGE}{data['system_prompt']}{Colors.ENDC}")
            if data.get('user_prompt'):
                output.append(f"{Colors.GRAY}[USER]{Colors.ENDC}")
                output.append(f"{Colors.ORANGE}{data['user_prompt']}{Colors.ENDC}")

        return '\n'.join(output)

    def _format_llm_response(self, data: Dict[str, Any]) -> str:
        """Format LLM response summary"""
        output = []

        output.append(f"{Colors.GREEN}[{self._format_timestamp()}] LLM RESPONSE (STREAMING){Colors.ENDC}")
        if 'execution_time' in data:
            output.append(f"{Colors.GRAY}Execution time: {data['execution_time']:.2f} seconds{Colors.ENDC}")
        if 'response_length' in data:
            output.append(f"{Colors.GRAY}Response length: {data['response_length']} characters{Colors.ENDC}")

        if self.min_level == LogLevel.DEBUG and data.get('response'):
            output.append(f"\n{Colors.GREEN}RAW RESPONSE:{Colors.ENDC}")
            output.append(f"{Colors.GREEN}{data['response']}{Colors.ENDC}")

        return '\n'.join(output)

    def _format_batch_start(self, data: Dict[str, Any]) -> str:
        """Format batch start message"""
        self.batch_state.update({
            'completed': 0,
            'total': data.get('total_chapters', 0),
            'model': data.get('model', 'Unknown'),
            'provider': data.get('provider', 'Unknown'),
            'start_time': datetime.now(),
            'in_progress': True
        })

        output = [f"{Colors.YELLOW}BATCH TRANSLATION STARTED{Colors.ENDC}"]
        output.append(f"{Colors.WHITE}Chapters: {self.batch_state['total']}{Colors.ENDC}")
        output.append(f"{Colors.WHITE}Target language: {data.get('target_language', 'Unknown')}{Colors.ENDC}")
        output.append(f"{Colors.GRAY}Provider: {self.batch_state['provider']} / Model: {self.batch_state['model']}{Colors.ENDC}")
        if 'glossary_terms' in data or 'characters' in data:
            output.append(f"{Colors.GRAY}Active glossary terms: {data.get('glossary_terms', 0)}, "
                          f"characters: {data.get('characters', 0)}{Colors.ENDC}")
        return '\n'.join(output)

    def _format_chapter_complete(self, data: Dict[str, Any]) -> str:
        """Format a completed chapter with a small progress bar"""
        completed = data.get('completed', self.batch_state['completed'])
        total = data.get('total', self.batch_state['total'])
        self.batch_state['completed'] = completed
        percentage = (completed / total * 100) if total > 0 else 0

        bar_length = 30
        filled = int(bar_length * percentage / 100)
        bar = '█' * filled + '░' * (bar_length - filled)

        label = f"Chapter {data.get('chapter_index', '?')} ({data.get('chapter_id', '')})"
        if data.get('fallback'):
            label += " [unmarked output]"
        return (f"{Colors.GREEN}[{self._format_timestamp()}] {label} translated{Colors.ENDC}\n"
                f"{Colors.WHITE}[{bar}] {completed}/{total} ({percentage:.1f}%){Colors.ENDC}")

    def _format_batch_end(self, message: str, data: Dict[str, Any]) -> str:
        """Format batch end message"""
        output = [f"\n{Colors.WHITE}BATCH {data.get('state', 'finished').upper()}{Colors.ENDC}"]

        if self.batch_state['start_time']:
            duration = datetime.now() - self.batch_state['start_time']
            output.append(f"{Colors.GRAY}Duration: {duration}{Colors.ENDC}")

        output.append(f"{Colors.WHITE}Completed chapters: {data.get('completed', 0)}/{data.get('total', 0)}{Colors.ENDC}")
        if data.get('failed'):
            output.append(f"{Colors.YELLOW}Failed chapters: {data['failed']}{Colors.ENDC}")
        if data.get('error'):
            output.append(f"{Colors.RED}Error: {data['error']}{Colors.ENDC}")

        self.batch_state['in_progress'] = False
        return '\n'.join(output)

    def _format_error_detail(self, message: str, data: Dict[str, Any]) -> str:
        """Format detailed error message"""
        output = [f"{Colors.RED}[{self._format_timestamp()}] ERROR: {message}{Colors.ENDC}"]
        if 'details' in data:
            output.append(f"{Colors.RED}Details: {data['details']}{Colors.ENDC}")
        if 'chapter_id' in data:
            output.append(f"{Colors.RED}Chapter: {data['chapter_id']}{Colors.ENDC}")
        return '\n'.join(output)

    def log(self, level: LogLevel, message: str,
            log_type: LogType = LogType.GENERAL,
            data: Optional[Dict[str, Any]] = None):
        """
        Main logging method

        Args:
            level: Log level
            message: Log message
            log_type: Type of log for special formatting
            data: Additional data for the log entry
        """
        if level.value < self.min_level.value:
            return

        if self.console_output:
            try:
                console_msg = self._format_console_message(level, message, log_type, data)
                if console_msg:
                    print(console_msg, flush=True)
            except UnicodeEncodeError:
                # Windows consoles (cp1252) cannot print CJK text
                safe_message = message.encode('ascii', 'replace').decode('ascii')
                print(f"[{self._format_timestamp()}] {safe_message}", flush=True)

        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'level': level.name,
            'type': log_type.value,
            'message': message,
            'data': data or {}
        }

        if self.web_callback:
            self.web_callback(log_entry)

        if self.storage_callback:
            self.storage_callback(log_entry)

        job_callback = _job_log_callback.get()
        if job_callback:
            job_callback(log_entry)

    # Convenience methods
    def debug(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.DEBUG, message, log_type, data)

    def info(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.INFO, message, log_type, data)

    def warning(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.WARNING, message, log_type, data)

    def error(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.ERROR, message, log_type, data)

    def critical(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.CRITICAL, message, log_type, data)


# Global logger instance
_global_logger = None

# Log sink of the job running in the current thread or task
_job_log_callback: ContextVar[Optional[Callable]] = ContextVar("job_log_callback", default=None)


def get_logger(name: str = "LinguaScripter", **kwargs) -> UnifiedLogger:
    """
    Get or create the global logger instance

    Args:
        name: Logger name
        **kwargs: Additional arguments for UnifiedLogger

    Returns:
        UnifiedLogger instance
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = UnifiedLogger(name, **kwargs)
    else:
        # Update callbacks if provided (for multi-job scenarios)
        if 'web_callback' in kwargs:
            _global_logger.web_callback = kwargs['web_callback']
        if 'storage_callback' in kwargs:
            _global_logger.storage_callback = kwargs['storage_callback']
        if 'min_level' in kwargs:
            _global_logger.min_level = kwargs['min_level']
    return _global_logger


def setup_cli_logger(enable_colors: bool = True) -> UnifiedLogger:
    """Setup logger for CLI usage"""
    # Import here to avoid circular dependencies
    from lingua_scripter.config import DEBUG_MODE

    return get_logger(
        console_output=True,
        enable_colors=enable_colors,
        min_level=LogLevel.DEBUG if DEBUG_MODE else LogLevel.INFO
    )


def setup_web_logger(web_callback: Optional[Callable] = None, storage_callback: Optional[Callable] = None) -> UnifiedLogger:
    """Setup logger for web interface usage"""
    from lingua_scripter.config import DEBUG_MODE

    return get_logger(
        console_output=True,  # Also output to console for debugging
        enable_colors=True,
        min_level=LogLevel.DEBUG if DEBUG_MODE else LogLevel.INFO,
        web_callback=web_callback,
        storage_callback=storage_callback
    )


@contextmanager
def job_log_callback(callback: Callable):
    """
    Send the log entries of the current job to ``callback``

    The callback is bound to the current context, so concurrent jobs (each on
    its own thread and event loop) keep their logs apart. Tasks spawned inside
    the block inherit it.

    Example:
        >>> with job_log_callback(lambda entry: logs.append(entry)):
        ...     await orchestrator.start_batch(request)
    """
    token = _job_log_callback.set(callback)
    try:
        yield
    finally:
        _job_log_callback.reset(token)


# === Module-level convenience functions ===

def log(level: LogLevel, message: str,
        log_type: LogType = LogType.GENERAL,
        data: Optional[Dict[str, Any]] = None):
    """Module-level logging function using the global logger."""
    get_logger().log(level, message, log_type, data)


def debug(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    """Log debug message using global logger."""
    log(LogLevel.DEBUG, message, log_type, data)


def info(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    """Log info message using global logger."""
    log(LogLevel.INFO, message, log_type, data)


def warning(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    """Log warning message using global logger."""
    log(LogLevel.WARNING, message, log_type, data)


def error(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    """Log error message using global logger."""
    log(LogLevel.ERROR, message, log_type, data)
