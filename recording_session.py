"""
Recording session lifecycle: start, pause, resume and stop of one capture.

A session is driven from a single control thread (see session_host). Only
elapsed-time and state reads may come from other threads.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from capture_engine import CaptureEngine, CaptureGrant
from output_store import OutputStore
from recording_options import OutputRef, RecordingOptions
from lib.pr_log import pr_debug, pr_err, pr_info, pr_warn


class SessionState(Enum):
    STOPPED = "stopped"
    RECORDING = "recording"
    PAUSED = "paused"


class StartFailure(Enum):
    OUTPUT_CREATE_FAILED = "output_create_failed"
    ENGINE_INIT_FAILED = "engine_init_failed"
    ENGINE_START_FAILED = "engine_start_failed"


class PauseFailure(Enum):
    NOT_RECORDING = "not_recording"


class ResumeFailure(Enum):
    NOT_RECORDING = "not_recording"


class StopStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    ALREADY_STOPPED = "already_stopped"


@dataclass(frozen=True)
class StopOutcome:
    """Result of stopping a session. Stopping itself never fails."""
    status: StopStatus
    output_ref: Optional[OutputRef] = None
    elapsed: float = 0.0

    @classmethod
    def completed(cls, output_ref: OutputRef, elapsed: float) -> 'StopOutcome':
        return cls(StopStatus.COMPLETED, output_ref, elapsed)

    @classmethod
    def failed(cls, elapsed: float) -> 'StopOutcome':
        return cls(StopStatus.FAILED, None, elapsed)

    @classmethod
    def already_stopped(cls) -> 'StopOutcome':
        return cls(StopStatus.ALREADY_STOPPED)

    @property
    def succeeded(self) -> bool:
        return self.status == StopStatus.COMPLETED


EngineFactory = Callable[[], CaptureEngine]


class RecordingSession:
    """
    State machine for a single screen recording.

    Owns one capture engine (created per run from engine_factory) and the
    artifact it writes into. Every failure path leaves the session STOPPED
    with the engine released and no half-written artifact left behind.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        store: OutputStore,
        clock: Callable[[], float] = time.monotonic,
        stop_listener: Optional[Callable[[], None]] = None
    ):
        self._engine_factory = engine_factory
        self._store = store
        self._clock = clock
        self._stop_listener = stop_listener

        self._engine: Optional[CaptureEngine] = None
        self.options: Optional[RecordingOptions] = None
        self.output_ref: Optional[OutputRef] = None

        self._lock = threading.Lock()
        self._state = SessionState.STOPPED
        self._segment_start = 0.0
        self._elapsed = 0.0
        self._capture_suspended = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pause_supported(self) -> bool:
        """Whether the active engine really suspends encoding on pause."""
        return self._engine is not None and self._engine.supports_pause

    @property
    def capture_suspended(self) -> bool:
        """True only while paused on an engine that honoured the pause."""
        return self._state == SessionState.PAUSED and self._capture_suspended

    def elapsed(self) -> float:
        """Recorded time in seconds, excluding paused intervals."""
        with self._lock:
            if self._state == SessionState.RECORDING:
                return self._elapsed + (self._clock() - self._segment_start)
            return self._elapsed

    def start(self, grant: CaptureGrant, options: RecordingOptions) -> Optional[StartFailure]:
        """
        Create the output, set up the engine and begin capturing.

        A redundant start on an active session succeeds without doing
        anything.

        Returns:
            None on success, the StartFailure otherwise
        """
        if self._state != SessionState.STOPPED:
            pr_debug(f"Start ignored, session already {self._state.value}")
            return None

        target = options.output
        try:
            ref = self._store.create(target.location, target.name, target.mime_type)
        except Exception as e:
            pr_err(f"Output store raised during create: {e}")
            ref = None
        if ref is None:
            return StartFailure.OUTPUT_CREATE_FAILED

        self._engine = self._engine_factory()
        self._engine.set_stop_callback(self._stop_listener)

        if not self._engine_step("initialize", self._engine.initialize, grant, options, ref.path):
            self._release_engine()
            self._discard(ref)
            return StartFailure.ENGINE_INIT_FAILED

        if not self._engine_step("begin", self._engine.begin):
            self._release_engine()
            self._discard(ref)
            return StartFailure.ENGINE_START_FAILED

        with self._lock:
            self.options = options
            self.output_ref = ref
            self._segment_start = self._clock()
            self._elapsed = 0.0
            self._capture_suspended = False
            self._state = SessionState.RECORDING

        pr_info(f"Recording to {ref.path}")
        return None

    def pause(self) -> Optional[PauseFailure]:
        if self._state == SessionState.STOPPED:
            return PauseFailure.NOT_RECORDING
        if self._state == SessionState.PAUSED:
            return None

        suspended = False
        if self._engine.supports_pause:
            try:
                self._engine.pause()
                suspended = True
            except Exception as e:
                pr_warn(f"Capture engine failed to pause, capture continues: {e}")
        else:
            pr_warn("Capture engine cannot pause; capture continues while paused")

        with self._lock:
            self._elapsed += self._clock() - self._segment_start
            self._capture_suspended = suspended
            self._state = SessionState.PAUSED

        pr_info("Recording paused")
        return None

    def resume(self) -> Optional[ResumeFailure]:
        if self._state == SessionState.STOPPED:
            return ResumeFailure.NOT_RECORDING
        if self._state == SessionState.RECORDING:
            return None

        if self._capture_suspended:
            try:
                self._engine.resume()
            except Exception as e:
                pr_warn(f"Capture engine failed to resume: {e}")

        with self._lock:
            self._segment_start = self._clock()
            self._capture_suspended = False
            self._state = SessionState.RECORDING

        pr_info("Recording resumed")
        return None

    def stop(self) -> StopOutcome:
        """Finalize the recording. Safe to call in any state."""
        return self._finish("stop requested")

    def on_engine_stopped(self) -> StopOutcome:
        """Handle capture that ended outside the session's control."""
        return self._finish("capture stopped externally")

    def _finish(self, reason: str) -> StopOutcome:
        if self._state == SessionState.STOPPED:
            return StopOutcome.already_stopped()

        pr_debug(f"Finishing recording: {reason}")
        with self._lock:
            if self._state == SessionState.RECORDING:
                self._elapsed += self._clock() - self._segment_start
            elapsed = self._elapsed

        ref = self.output_ref
        finalized = False
        try:
            finalized = self._engine_step("finalize", self._engine.finalize)
        finally:
            self._release_engine()
            with self._lock:
                self._capture_suspended = False
                self._state = SessionState.STOPPED

        if not finalized:
            self._discard(ref)
            pr_err("Recording failed, partial output deleted")
            return StopOutcome.failed(elapsed)

        try:
            marked = self._store.mark_complete(ref)
        except Exception as e:
            pr_err(f"Output store raised during mark_complete: {e}")
            marked = False
        if not marked:
            pr_warn(f"Recording saved but could not be marked complete: {ref.path}")

        pr_info(f"Recording finished: {ref.path}")
        return StopOutcome.completed(ref, elapsed)

    def _engine_step(self, step: str, func, *args) -> bool:
        try:
            return bool(func(*args))
        except Exception as e:
            pr_err(f"Capture engine {step} failed: {e}")
            return False

    def _release_engine(self) -> None:
        engine = self._engine
        self._engine = None
        if engine is None:
            return
        engine.set_stop_callback(None)
        try:
            engine.release()
        except Exception as e:
            pr_warn(f"Capture engine release failed: {e}")

    def _discard(self, ref: Optional[OutputRef]) -> None:
        if ref is None:
            return
        try:
            deleted = self._store.delete(ref)
        except Exception as e:
            pr_err(f"Output store raised during delete: {e}")
            deleted = False
        if not deleted:
            pr_warn(f"Could not delete partial output {ref.uri}")
