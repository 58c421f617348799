"""
Capture engine abstractions for the screen recorder.
"""
import threading
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Callable, Optional, Type

from recording_options import RecordingOptions

GRANT_OK = -1
GRANT_CANCELED = 0


class CaptureGrant:
    """
    One-time permission to capture screen content for a single session.

    A grant is usable only while it was approved, has not been consumed by a
    started capture and has not been revoked.
    """

    def __init__(self, result_code: int, target: str):
        self.result_code = result_code
        self.target = target
        self._consumed = False
        self._revoked = False
        self._lock = threading.Lock()

    @property
    def approved(self) -> bool:
        return self.result_code == GRANT_OK

    def is_usable(self) -> bool:
        """Check whether the grant can still start a capture."""
        with self._lock:
            return self.approved and not self._consumed and not self._revoked

    def consume(self) -> bool:
        """
        Mark the grant as used by a started capture.

        Returns:
            True if this call consumed the grant, False if it was not usable
        """
        with self._lock:
            if not self.approved or self._consumed or self._revoked:
                return False
            self._consumed = True
            return True

    def revoke(self) -> None:
        with self._lock:
            self._revoked = True

    @property
    def revoked(self) -> bool:
        return self._revoked

    def __repr__(self) -> str:
        return f"CaptureGrant(result_code={self.result_code}, target={self.target!r})"


StopCallback = Callable[[], None]


class CaptureEngine(ABC):
    """
    Abstract base class for capture engines.

    An engine captures the screen described by a grant and encodes it into
    a writable sink. Engines are single-use: one engine serves exactly one
    recording run and is released afterwards.

    Implementations support context manager protocol for automatic release.
    """

    def __init__(self):
        self._stop_callback: Optional[StopCallback] = None

    @property
    @abstractmethod
    def supports_pause(self) -> bool:
        """Whether pause() actually suspends encoding on this engine."""
        pass

    @abstractmethod
    def initialize(self, grant: CaptureGrant, options: RecordingOptions, sink_path: str) -> bool:
        """
        Prepare encoder and capture surface.

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def begin(self) -> bool:
        """
        Begin capture. Consumes the grant.

        Returns:
            True if capture is running, False otherwise
        """
        pass

    @abstractmethod
    def pause(self) -> None:
        """Suspend encoding. Best-effort; see supports_pause."""
        pass

    @abstractmethod
    def resume(self) -> None:
        pass

    @abstractmethod
    def finalize(self) -> bool:
        """
        Flush the encoder and close the output.

        Returns:
            True if the artifact was written completely, False otherwise
        """
        pass

    @abstractmethod
    def release(self) -> None:
        """
        Release capture surface, encoder and grant.

        Must be idempotent; releasing an already released engine is a no-op.
        """
        pass

    def set_stop_callback(self, callback: Optional[StopCallback]) -> None:
        """
        Register the callback invoked when capture stops outside the
        session's control (grant revoked, capture process gone).

        The callback may run on any thread.
        """
        self._stop_callback = callback

    def _notify_stopped_externally(self) -> None:
        callback = self._stop_callback
        if callback is not None:
            callback()

    def __enter__(self) -> 'CaptureEngine':
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType]
    ) -> None:
        self.release()
