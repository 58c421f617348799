"""
Main screen recorder application wiring the session host to its inputs.
"""
import os
import traceback
from PyQt6.QtCore import QTimer
from capture_engine import CaptureGrant, GRANT_OK
from config_manager import ConfigManager
from ffmpeg_capture_engine import FFmpegCaptureEngine
from input_coordinator import InputCoordinator
from output_store import create_output_store
from preference_source import PreferenceSource
from recording_session import SessionState, StopStatus
from session_host import SessionEvent, SessionEventKind, SessionHost
from lib.pr_log import (
    get_progress_line, pr_err, pr_notice, pr_info, pr_debug,
    set_log_level, PR_DEBUG, PR_INFO
)

PROGRESS_INTERVAL_MS = 500


def format_elapsed(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    total = int(max(0.0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class RecorderApp:
    """Main screen recorder application orchestrator."""

    def __init__(self):
        self.config_manager = ConfigManager()
        self.config = None

        self.store = None
        self.preference_source = None
        self.session_host = None
        self.input_coordinator = None

        self.last_output = None
        self._progress_line = None
        self._progress_timer = None

    def request_capture_grant(self) -> CaptureGrant:
        """Issue a fresh single-use grant for the configured screen."""
        return CaptureGrant(GRANT_OK, self.config.capture_target)

    def request_start(self):
        """Ask the host to start a recording with a new grant."""
        return self.session_host.submit_start(self.request_capture_grant())

    def create_engine(self):
        return FFmpegCaptureEngine(self.config)

    def _on_session_event(self, event: SessionEvent):
        """Report host events. Runs on the host's control thread."""
        kind = event.kind
        if kind == SessionEventKind.STARTED:
            pr_notice(f"Recording started → {event.output_ref.path}")
        elif kind == SessionEventKind.START_FAILED:
            pr_err(f"Recording could not start ({event.failure.value})")
        elif kind == SessionEventKind.PAUSE_UNSUPPORTED:
            # must not wait behind the progress line, capture is still running
            pr_err("This capture engine cannot pause; the screen is still being recorded")
        elif kind in (SessionEventKind.STOPPED, SessionEventKind.EXTERNALLY_STOPPED):
            outcome = event.outcome
            if outcome.status == StopStatus.COMPLETED:
                self.last_output = outcome.output_ref
                pr_notice(f"Saved {outcome.output_ref.path} ({format_elapsed(outcome.elapsed)})")
            elif outcome.status == StopStatus.FAILED:
                pr_err("Recording failed and was discarded")
        elif kind == SessionEventKind.DELETED:
            pr_info(f"Deleted {event.output_ref.path}")
        else:
            pr_debug(f"Session event: {kind.value}")

    def _capture_suspended(self) -> bool:
        session = self.session_host.session
        return session is not None and session.capture_suspended

    def _refresh_progress(self):
        """Redraw the elapsed-time line from the Qt thread."""
        state = self.session_host.state
        if state == SessionState.STOPPED:
            if self._progress_line is not None:
                self._progress_line.close()
                self._progress_line = None
            return

        if self._progress_line is None:
            self._progress_line = get_progress_line().__enter__()
        if state == SessionState.RECORDING:
            marker = "● REC"
        elif self._capture_suspended():
            marker = "❚❚ PAUSED"
        else:
            marker = "❚❚ PAUSED (still capturing)"
        self._progress_line.update(f"{marker} {format_elapsed(self.session_host.elapsed())}")

    def initialize(self, argv=None):
        """Initialize all components."""
        if not self.config_manager.parse_configuration(argv):
            return False
        self.config = self.config_manager

        set_log_level(PR_DEBUG if self.config.debug_enabled else PR_INFO)

        try:
            self.store = create_output_store(self.config)
        except ValueError as e:
            pr_err(f"{e}")
            return False

        self.preference_source = PreferenceSource(self.config)
        self.session_host = SessionHost(
            self.store,
            self.create_engine,
            self.preference_source
        )
        self.session_host.add_observer(self._on_session_event)
        self.session_host.open()

        self.input_coordinator = InputCoordinator(self.config, self.session_host, self)
        if not self.input_coordinator.setup_trigger_keys():
            return False
        self.input_coordinator.setup_signal_handlers()
        return True

    def _display_configuration(self):
        """Display startup configuration."""
        options_source = self.preference_source
        pr_notice("--- Configuration ---")
        pr_info(f"Storage:       {self.config.storage_backend}")
        if self.config.storage_backend == 'media':
            pr_info(f"Media root:    {os.path.join(self.config.media_root, self.config.relative_path)}")
        else:
            pr_info(f"Save location: {self.config.save_location}")
        pr_info(f"Resolution:    {options_source.resolution()} @ {self.config.fps} fps")
        pr_info(f"Encoder:       {options_source.video_encoder().value}, {self.config.video_bitrate} bps")
        if self.config.record_audio:
            pr_info(f"Audio:         {self.config.audio_source}, {self.config.audio_sampling_rate} Hz")
        else:
            pr_info("Audio:         off")
        pr_info(f"Capture:       {self.config.capture_target} via {self.config.ffmpeg_binary}")
        pr_notice("--------------------")

    def _display_controls(self):
        pid = os.getpid()
        pr_notice("Controls:")
        pr_info(f"  kill -USR1 {pid} → start / stop recording")
        pr_info(f"  kill -USR2 {pid} → pause / resume")
        pr_info(f"  kill -HUP  {pid} → stop recording")
        if self.input_coordinator.trigger_key is not None:
            pr_info(f"  '{self.config.trigger_key_name}' → start / stop recording")
        if self.input_coordinator.pause_key is not None:
            pr_info(f"  '{self.config.pause_key_name}' → pause / resume")
        pr_notice("Press Ctrl+C to exit.")

    def run(self, argv=None):
        """Main application loop."""
        if not self.initialize(argv):
            self.cleanup()
            return 1

        self._display_configuration()
        self._display_controls()

        exit_code = 0
        try:
            self.input_coordinator.start_keyboard_listener()

            self._progress_timer = QTimer()
            self._progress_timer.timeout.connect(self._refresh_progress)
            self._progress_timer.start(PROGRESS_INTERVAL_MS)

            pr_debug("Starting Qt event loop")
            self.input_coordinator.qt_app.exec()
        except Exception as e:
            pr_err(f"An unexpected error occurred in main execution: {e}")
            traceback.print_exc()
            exit_code = 1
        finally:
            self.cleanup()
        return exit_code

    def cleanup(self):
        """Clean up resources. Any active recording is stopped and saved."""
        if self._progress_timer is not None:
            self._progress_timer.stop()
        if self._progress_line is not None:
            self._progress_line.close()
            self._progress_line = None
        if self.input_coordinator:
            self.input_coordinator.cleanup()
        if self.session_host:
            self.session_host.close()
        pr_info("Exited.")
