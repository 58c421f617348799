"""
Bridge between POSIX signals and the Qt event loop.

The C-level signal handler writes the signal number into a socket through
Python's wakeup fd; a QSocketNotifier wakes the Qt loop, which turns each
byte into a named channel emission.
"""

import signal
import socket
from typing import Dict, Optional
from PyQt6.QtCore import QObject, QSocketNotifier, pyqtSignal
from lib.pr_log import pr_debug, pr_err


def _ignore(signum, frame):
    """Python-level handler; the real work happens via the wakeup fd."""


class PosixSignalBridge(QObject):
    """
    Emits signal_received(channel_name) for every registered POSIX signal.

    Example:
        bridge = PosixSignalBridge()
        bridge.register_signal(signal.SIGHUP, "stop_recording")
        bridge.signal_received.connect(handle_channel)
    """

    signal_received = pyqtSignal(str)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.channels: Dict[str, int] = {}
        self._channel_by_signal: Dict[int, str] = {}
        self._previous_handlers: Dict[int, object] = {}
        self._previous_wakeup_fd: Optional[int] = None
        self._read_end: Optional[socket.socket] = None
        self._write_end: Optional[socket.socket] = None
        self._notifier: Optional[QSocketNotifier] = None

    def _ensure_wakeup(self) -> bool:
        if self._notifier is not None:
            return True
        try:
            self._read_end, self._write_end = socket.socketpair()
            self._read_end.setblocking(False)
            self._write_end.setblocking(False)
            self._previous_wakeup_fd = signal.set_wakeup_fd(self._write_end.fileno())
        except (OSError, ValueError) as e:
            pr_err(f"Cannot route POSIX signals into the event loop: {e}")
            self._close_sockets()
            return False

        self._notifier = QSocketNotifier(self._read_end.fileno(), QSocketNotifier.Type.Read, self)
        self._notifier.activated.connect(self._drain)
        return True

    def register_signal(self, signal_number: int, channel_name: str) -> bool:
        """
        Route a POSIX signal to a named channel.

        Returns:
            True if registration succeeded, False on error
        """
        if channel_name in self.channels:
            pr_err(f"Signal channel '{channel_name}' already registered")
            return False
        if signal_number in self._channel_by_signal:
            pr_err(f"Signal {signal_number} already routed to '{self._channel_by_signal[signal_number]}'")
            return False
        if not self._ensure_wakeup():
            return False

        try:
            self._previous_handlers[signal_number] = signal.signal(signal_number, _ignore)
        except (OSError, ValueError) as e:
            pr_err(f"Failed to install handler for signal {signal_number}: {e}")
            return False

        self.channels[channel_name] = signal_number
        self._channel_by_signal[signal_number] = channel_name
        pr_debug(f"Signal {signal_number} routed to channel '{channel_name}'")
        return True

    def _drain(self):
        """Read pending signal numbers and emit their channels in order."""
        self._notifier.setEnabled(False)
        try:
            while True:
                try:
                    data = self._read_end.recv(64)
                except (BlockingIOError, InterruptedError):
                    break
                if not data:
                    break
                for signal_number in data:
                    channel_name = self._channel_by_signal.get(signal_number)
                    if channel_name is not None:
                        self.signal_received.emit(channel_name)
        finally:
            self._notifier.setEnabled(True)

    def _close_sockets(self):
        for endpoint in (self._read_end, self._write_end):
            if endpoint is not None:
                endpoint.close()
        self._read_end = None
        self._write_end = None

    def cleanup(self):
        """Restore previous handlers and wakeup fd, release sockets."""
        for signal_number, handler in self._previous_handlers.items():
            try:
                signal.signal(signal_number, handler)
            except (OSError, ValueError, TypeError):
                pass
        self._previous_handlers.clear()
        self.channels.clear()
        self._channel_by_signal.clear()

        if self._notifier is not None:
            self._notifier.setEnabled(False)
            self._notifier = None
            try:
                signal.set_wakeup_fd(self._previous_wakeup_fd if self._previous_wakeup_fd is not None else -1)
            except ValueError:
                pass
        self._close_sockets()
