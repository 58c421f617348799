"""
Session Host - owns the single recording session and serializes control.

Every action (start, pause, resume, stop, delete) and every engine-stop
notification becomes a command on one EventQueue. Commands run one at a
time on the queue's worker thread, so no two transitions ever overlap and
an external stop can never race an explicit one.
"""
import itertools
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from capture_engine import CaptureGrant
from lib.event_queue import EventQueue
from lib.pr_log import pr_debug, pr_err, pr_info, pr_notice, pr_warn
from output_store import OutputStore
from preference_source import PreferenceSource
from recording_options import OutputRef, RecordingOptions
from recording_session import (
    EngineFactory,
    PauseFailure,
    RecordingSession,
    ResumeFailure,
    SessionState,
    StartFailure,
    StopOutcome,
)


class HostAction(Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    DELETE = "delete"
    ENGINE_STOPPED = "engine_stopped"


@dataclass(frozen=True)
class HostCommand:
    action: HostAction
    grant: Optional[CaptureGrant] = None
    options: Optional[RecordingOptions] = None
    output_ref: Optional[OutputRef] = None
    session_id: Optional[int] = None


class SessionEventKind(Enum):
    STARTED = "started"
    START_FAILED = "start_failed"
    PAUSED = "paused"
    PAUSE_UNSUPPORTED = "pause_unsupported"
    RESUMED = "resumed"
    STOPPED = "stopped"
    EXTERNALLY_STOPPED = "externally_stopped"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"


@dataclass(frozen=True)
class SessionEvent:
    """Notification published to host observers."""
    kind: SessionEventKind
    state: SessionState
    failure: Optional[StartFailure] = None
    outcome: Optional[StopOutcome] = None
    output_ref: Optional[OutputRef] = None


Observer = Callable[[SessionEvent], None]


class SessionHost:
    """
    Long-running owner of the recording session.

    Holds at most one RecordingSession. The session is created on start and
    dropped on stop, whether the stop succeeded or not.

    Observers are called on the host's worker thread; they must not wait on
    futures returned by the host.
    """

    def __init__(
        self,
        store: OutputStore,
        engine_factory: EngineFactory,
        preference_source: Optional[PreferenceSource] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.engine_factory = engine_factory
        self.preference_source = preference_source
        self._clock = clock

        self._session: Optional[RecordingSession] = None
        self._session_id: Optional[int] = None
        self._session_ids = itertools.count(1)
        self._observers: List[Observer] = []

        self._queue = EventQueue(self._dispatch, name="SessionHost")
        self._handlers = {
            HostAction.START: self._handle_start,
            HostAction.PAUSE: self._handle_pause,
            HostAction.RESUME: self._handle_resume,
            HostAction.STOP: self._handle_stop,
            HostAction.DELETE: self._handle_delete,
            HostAction.ENGINE_STOPPED: self._handle_engine_stopped,
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def open(self) -> None:
        """Start the control thread."""
        self._queue.start()

    def close(self, timeout: float = 15.0) -> None:
        """Stop any active recording, then shut the control thread down."""
        if self._queue.is_running() and not self._queue.on_worker_thread():
            if self.state != SessionState.STOPPED:
                pr_notice("Stopping active recording before exit")
                try:
                    self.submit_stop().result(timeout=timeout)
                except Exception as e:
                    pr_err(f"Stop during shutdown failed: {e}")
        self._queue.shutdown(timeout=timeout)

    def __enter__(self) -> 'SessionHost':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Observation
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        session = self._session
        if session is None:
            return SessionState.STOPPED
        return session.state

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    def elapsed(self) -> float:
        session = self._session
        if session is None:
            return 0.0
        return session.elapsed()

    def add_observer(self, observer: Observer) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # ------------------------------------------------------------------ #
    # Control surface
    # ------------------------------------------------------------------ #
    def submit_start(self, grant: CaptureGrant, options: Optional[RecordingOptions] = None) -> Future:
        return self._queue.enqueue(HostCommand(HostAction.START, grant=grant, options=options))

    def submit_pause(self) -> Future:
        return self._queue.enqueue(HostCommand(HostAction.PAUSE))

    def submit_resume(self) -> Future:
        return self._queue.enqueue(HostCommand(HostAction.RESUME))

    def submit_stop(self) -> Future:
        return self._queue.enqueue(HostCommand(HostAction.STOP))

    def submit_delete(self, output_ref: OutputRef) -> Future:
        return self._queue.enqueue(HostCommand(HostAction.DELETE, output_ref=output_ref))

    def start(self, grant: CaptureGrant, options: Optional[RecordingOptions] = None,
              timeout: Optional[float] = None) -> Optional[StartFailure]:
        return self.submit_start(grant, options).result(timeout=timeout)

    def pause(self, timeout: Optional[float] = None) -> Optional[PauseFailure]:
        return self.submit_pause().result(timeout=timeout)

    def resume(self, timeout: Optional[float] = None) -> Optional[ResumeFailure]:
        return self.submit_resume().result(timeout=timeout)

    def stop(self, timeout: Optional[float] = None) -> StopOutcome:
        return self.submit_stop().result(timeout=timeout)

    def delete(self, output_ref: OutputRef, timeout: Optional[float] = None) -> bool:
        return self.submit_delete(output_ref).result(timeout=timeout)

    def notify_engine_stopped(self, session_id: int) -> Future:
        """
        Report that the engine of session_id stopped on its own.

        Safe to call from any thread; the stop is handled on the control
        thread like every other action.
        """
        pr_debug(f"Engine stop reported for session {session_id}")
        return self._queue.enqueue(HostCommand(HostAction.ENGINE_STOPPED, session_id=session_id))

    # ------------------------------------------------------------------ #
    # Command handling (control thread only)
    # ------------------------------------------------------------------ #
    def _dispatch(self, command: HostCommand) -> Any:
        return self._handlers[command.action](command)

    def _handle_start(self, command: HostCommand) -> Optional[StartFailure]:
        if self._session is not None and self._session.state != SessionState.STOPPED:
            pr_debug("Already recording, ignoring start")
            return None

        options = command.options
        if options is None:
            try:
                options = self.preference_source.generate_options()
            except (ValueError, AttributeError) as e:
                pr_err(f"Cannot build recording options: {e}")
                self._publish(SessionEventKind.START_FAILED, failure=StartFailure.OUTPUT_CREATE_FAILED)
                return StartFailure.OUTPUT_CREATE_FAILED

        session_id = next(self._session_ids)
        session = RecordingSession(
            self.engine_factory,
            self.store,
            clock=self._clock,
            stop_listener=lambda: self.notify_engine_stopped(session_id)
        )

        failure = session.start(command.grant, options)
        if failure is not None:
            pr_err(f"Recording could not start: {failure.value}")
            self._publish(SessionEventKind.START_FAILED, failure=failure)
            return failure

        self._session = session
        self._session_id = session_id
        self._publish(SessionEventKind.STARTED, output_ref=session.output_ref)
        return None

    def _handle_pause(self, command: HostCommand) -> Optional[PauseFailure]:
        session = self._session
        if session is None:
            return PauseFailure.NOT_RECORDING

        was_recording = session.state == SessionState.RECORDING
        failure = session.pause()
        if failure is None and was_recording:
            self._publish(SessionEventKind.PAUSED)
            if not session.capture_suspended:
                self._publish(SessionEventKind.PAUSE_UNSUPPORTED)
        return failure

    def _handle_resume(self, command: HostCommand) -> Optional[ResumeFailure]:
        session = self._session
        if session is None:
            return ResumeFailure.NOT_RECORDING

        was_paused = session.state == SessionState.PAUSED
        failure = session.resume()
        if failure is None and was_paused:
            self._publish(SessionEventKind.RESUMED)
        return failure

    def _handle_stop(self, command: HostCommand) -> StopOutcome:
        session = self._session
        if session is None:
            return StopOutcome.already_stopped()

        try:
            outcome = session.stop()
        finally:
            self._drop_session()
        self._publish(SessionEventKind.STOPPED, outcome=outcome, output_ref=outcome.output_ref)
        return outcome

    def _handle_engine_stopped(self, command: HostCommand) -> StopOutcome:
        session = self._session
        if session is None or command.session_id != self._session_id:
            pr_debug(f"Ignoring engine stop for inactive session {command.session_id}")
            return StopOutcome.already_stopped()

        pr_warn("Capture stopped outside the recorder, finishing recording")
        try:
            outcome = session.on_engine_stopped()
        finally:
            self._drop_session()
        self._publish(SessionEventKind.EXTERNALLY_STOPPED, outcome=outcome, output_ref=outcome.output_ref)
        return outcome

    def _handle_delete(self, command: HostCommand) -> bool:
        ref = command.output_ref
        session = self._session
        active = session.output_ref if session is not None else None
        if active is not None and (active.uri, active.backend) == (ref.uri, ref.backend):
            pr_warn("Refusing to delete the recording in progress")
            self._publish(SessionEventKind.DELETE_FAILED, output_ref=ref)
            return False

        try:
            deleted = self.store.delete(ref)
        except Exception as e:
            pr_err(f"Delete failed: {e}")
            deleted = False

        if deleted:
            pr_info(f"Deleted {ref.path}")
            self._publish(SessionEventKind.DELETED, output_ref=ref)
        else:
            self._publish(SessionEventKind.DELETE_FAILED, output_ref=ref)
        return deleted

    def _drop_session(self) -> None:
        self._session = None
        self._session_id = None

    def _publish(self, kind: SessionEventKind, **fields) -> None:
        event = SessionEvent(kind=kind, state=self.state, **fields)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as e:
                pr_err(f"Session observer failed on {kind.value}: {e}")
