"""Qt-based process control for the screen recorder."""

from .posix_signal_bridge import PosixSignalBridge

__all__ = ['PosixSignalBridge']
