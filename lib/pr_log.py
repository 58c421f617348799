"""
Linux-style pr_* logging with an in-place progress line.

Priority-based message queuing:
- Critical messages (PR_EMERG through PR_ERR) display immediately
- Non-critical messages (PR_WARN through PR_DEBUG) queue while a progress
  line is being redrawn, and flush once the line ends
"""

from colorama import Fore, Style, init
import sys
import threading
from collections import deque
from typing import Dict

init(autoreset=True)


PR_EMERG   = 0
PR_ALERT   = 1
PR_CRIT    = 2
PR_ERR     = 3
PR_WARN    = 4
PR_NOTICE  = 5
PR_INFO    = 6
PR_DEBUG   = 7

_IMMEDIATE_THRESHOLD = PR_ERR

_LEVEL_COLORS: Dict[int, str] = {
    PR_EMERG:  f"{Fore.RED}{Style.BRIGHT}",
    PR_ALERT:  f"{Fore.RED}{Style.BRIGHT}",
    PR_CRIT:   f"{Fore.RED}{Style.BRIGHT}",
    PR_ERR:    f"{Fore.RED}{Style.BRIGHT}",
    PR_WARN:   f"{Fore.YELLOW}{Style.BRIGHT}",
    PR_NOTICE: f"{Fore.CYAN}{Style.BRIGHT}",
    PR_INFO:   Fore.GREEN,
    PR_DEBUG:  Fore.BLUE,
}

_LEVEL_SYMBOLS: Dict[int, str] = {
    PR_EMERG:  "✗",
    PR_ALERT:  "✗",
    PR_CRIT:   "✗",
    PR_ERR:    "✗",
    PR_WARN:   "⚠",
    PR_NOTICE: "ℹ",
    PR_INFO:   "✓",
    PR_DEBUG:  "→",
}

_LEVEL_PREFIXES: Dict[int, str] = {
    PR_EMERG:  "EMERG: ",
    PR_ALERT:  "ALERT: ",
    PR_CRIT:   "CRIT: ",
    PR_ERR:    "",
    PR_WARN:   "",
    PR_NOTICE: "",
    PR_INFO:   "",
    PR_DEBUG:  "",
}

_current_log_level = PR_INFO
_progress_active = False
_progress_lock = threading.Lock()
_queued_messages = deque()


def _format_message(level: int, msg: str) -> str:
    """Format log message with color, symbol, and prefix."""
    color = _LEVEL_COLORS[level]
    symbol = _LEVEL_SYMBOLS[level]
    prefix = _LEVEL_PREFIXES[level]
    return f"{color}{symbol} {prefix}{msg}{Style.RESET_ALL}"


def _should_log(level: int) -> bool:
    return level <= _current_log_level


def _is_immediate(level: int) -> bool:
    return level <= _IMMEDIATE_THRESHOLD


def _display_message(level: int, msg: str):
    print(_format_message(level, msg), file=sys.stderr)


def _flush_queue():
    """Flush queued messages. Caller holds _progress_lock."""
    while _queued_messages:
        level, msg = _queued_messages.popleft()
        _display_message(level, msg)


def _log_message(level: int, msg: str):
    """
    Route message based on priority and progress line state.

    Critical messages (<=PR_ERR): display immediately
    Non-critical messages (>PR_ERR): queue while a progress line is active
    """
    if not _should_log(level):
        return

    with _progress_lock:
        if _is_immediate(level):
            if _progress_active:
                # keep the progress line intact below the error
                print(file=sys.stderr)
            _display_message(level, msg)
        elif _progress_active:
            _queued_messages.append((level, msg))
        else:
            _display_message(level, msg)


class ProgressLine:
    """
    Context manager for a single status line redrawn in place.

    Used for the elapsed recording time. While active, non-critical log
    messages are held back so they do not tear the line; they are flushed
    when the context exits, on exception, or when the object is collected.

    Usage:
        with get_progress_line() as line:
            line.update("Recording 00:00:05")
            pr_info("this will queue")
            pr_err("this displays immediately")
    """

    def __init__(self):
        self._active = False
        self._last_width = 0

    def __enter__(self):
        global _progress_active

        with _progress_lock:
            _progress_active = True
            self._active = True

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        if self._active:
            self.close()

    def close(self):
        """End the line, print a trailing newline and flush queued messages."""
        global _progress_active

        if not self._active:
            return

        with _progress_lock:
            _progress_active = False
            self._active = False
            print(file=sys.stderr, flush=True)
            _flush_queue()

    def is_active(self) -> bool:
        return self._active

    def update(self, text: str):
        """Redraw the line with new text, blanking any leftover characters."""
        if not self._active:
            return

        padding = max(0, self._last_width - len(text))
        with _progress_lock:
            print(f"\r{Fore.WHITE}{text}{' ' * padding}{Style.RESET_ALL}",
                  end='', file=sys.stderr, flush=True)
        self._last_width = len(text)


def pr_emerg(msg: str):
    """Emergency: system unusable - IMMEDIATE display."""
    _log_message(PR_EMERG, msg)


def pr_alert(msg: str):
    """Alert: action required immediately - IMMEDIATE display."""
    _log_message(PR_ALERT, msg)


def pr_crit(msg: str):
    """Critical conditions - IMMEDIATE display."""
    _log_message(PR_CRIT, msg)


def pr_err(msg: str):
    """Error conditions - IMMEDIATE display."""
    _log_message(PR_ERR, msg)


def pr_warn(msg: str):
    """Warning conditions - QUEUED during progress display."""
    _log_message(PR_WARN, msg)


def pr_notice(msg: str):
    """Normal but significant - QUEUED during progress display."""
    _log_message(PR_NOTICE, msg)


def pr_info(msg: str):
    """Informational - QUEUED during progress display."""
    _log_message(PR_INFO, msg)


def pr_debug(msg: str):
    """Debug-level messages - QUEUED during progress display."""
    _log_message(PR_DEBUG, msg)


def set_log_level(level: int):
    """
    Set global log level.

    Args:
        level: Log level (0-7, PR_EMERG through PR_DEBUG)
    """
    global _current_log_level

    if not (PR_EMERG <= level <= PR_DEBUG):
        pr_warn(f"Invalid log level {level}, using PR_INFO")
        _current_log_level = PR_INFO
    else:
        _current_log_level = level


def get_log_level() -> int:
    return _current_log_level


def get_progress_line() -> ProgressLine:
    """
    Get a progress line context manager.

    Returns:
        ProgressLine instance for use with 'with' statement
    """
    return ProgressLine()
