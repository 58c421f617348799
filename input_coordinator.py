"""
Input Coordinator - Maps POSIX signals and trigger keys to session host actions.
"""
import sys
import signal
import traceback
from pynput import keyboard
from PyQt6.QtCore import QCoreApplication
from recording_session import SessionState
from ui import PosixSignalBridge
from lib.pr_log import pr_err, pr_debug, pr_warn, pr_notice, pr_info


SIGNAL_CHANNELS = [
    (signal.SIGUSR1, "toggle_recording"),
    (signal.SIGUSR2, "toggle_pause"),
    (signal.SIGHUP, "stop_recording"),
    (signal.SIGINT, "interrupt"),
    (signal.SIGTERM, "interrupt"),
]


def parse_key(key_name):
    """
    Resolve a key name to a pynput key.

    Returns:
        The key, None when disabled, or raises ValueError for unknown names
    """
    if key_name is None or str(key_name).lower() in ("", "none", "disabled", "off"):
        return None
    try:
        return getattr(keyboard.Key, key_name)
    except AttributeError:
        if len(key_name) == 1:
            return keyboard.KeyCode.from_char(key_name)
    raise ValueError(f"Invalid key '{key_name}'. Use names like 'f9', 'pause', 'scroll_lock', or single characters.")


class InputCoordinator:
    """Coordinates input from POSIX signals and keyboard trigger keys."""

    def __init__(self, config, session_host, app):
        self.config = config
        self.session_host = session_host
        self.app = app

        self.trigger_key = None
        self.pause_key = None
        self.keyboard_listener = None
        self.qt_app = None
        self.signal_bridge = None

    def setup_trigger_keys(self):
        """Resolve the configured trigger and pause keys."""
        try:
            self.trigger_key = parse_key(self.config.trigger_key_name)
            self.pause_key = parse_key(self.config.pause_key_name)
        except ValueError as e:
            pr_err(f"{e}")
            return False

        if self.trigger_key is not None and self.trigger_key == self.pause_key:
            pr_err("Trigger key and pause key must differ")
            return False
        return True

    def setup_signal_handlers(self):
        """Setup POSIX signal handlers via the Qt bridge."""
        self.qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv)
        pr_debug("Qt core application initialized")

        try:
            self.signal_bridge = PosixSignalBridge()
            for signal_number, channel_name in SIGNAL_CHANNELS:
                self.signal_bridge.register_signal(signal_number, channel_name)
            self.signal_bridge.signal_received.connect(self._handle_signal_channel)
            pr_debug("Signal bridge initialized")
        except Exception as e:
            pr_warn(f"Signal bridge initialization failed: {e}")
            traceback.print_exc()
            self.signal_bridge = None

    def start_keyboard_listener(self):
        """Start the keyboard listener if any key is configured."""
        if not self.is_trigger_enabled():
            return None

        def safe_on_press(key):
            try:
                self.on_press(key)
            except Exception as e:
                pr_err(f"Error in on_press: {e}")

        self.keyboard_listener = keyboard.Listener(on_press=safe_on_press)
        self.keyboard_listener.start()
        pr_debug("Keyboard listener started")
        return self.keyboard_listener

    def is_trigger_enabled(self):
        return self.trigger_key is not None or self.pause_key is not None

    def on_press(self, key):
        """Handle key press events from the listener thread."""
        if self.trigger_key is not None and key == self.trigger_key:
            pr_debug("Trigger key pressed")
            self.toggle_recording()
        elif self.pause_key is not None and key == self.pause_key:
            pr_debug("Pause key pressed")
            self.toggle_pause()

    def toggle_recording(self):
        """Start when stopped, stop otherwise. Redundant toggles are harmless."""
        if self.session_host.state == SessionState.STOPPED:
            self.app.request_start()
        else:
            self.session_host.submit_stop()

    def toggle_pause(self):
        state = self.session_host.state
        if state == SessionState.RECORDING:
            self.session_host.submit_pause()
        elif state == SessionState.PAUSED:
            self.session_host.submit_resume()
        else:
            pr_info("Not recording, nothing to pause")

    def _handle_signal_channel(self, channel_name: str):
        """Handle signal received via bridge channel."""
        pr_debug(f"Signal channel received: {channel_name}")
        try:
            if channel_name == "toggle_recording":
                self.toggle_recording()
            elif channel_name == "toggle_pause":
                self.toggle_pause()
            elif channel_name == "stop_recording":
                if self.session_host.state != SessionState.STOPPED:
                    pr_info("Stopping recording...")
                    self.session_host.submit_stop()
            elif channel_name == "interrupt":
                pr_notice("Interrupt received. Exiting.")
                if self.qt_app:
                    self.qt_app.quit()
        except Exception as e:
            pr_err(f"Error handling signal channel '{channel_name}': {e}")
            traceback.print_exc()

    def cleanup(self):
        """Clean up input handling resources."""
        if self.signal_bridge:
            self.signal_bridge.cleanup()
        if self.keyboard_listener and self.keyboard_listener.is_alive():
            pr_debug("Stopping keyboard listener")
            self.keyboard_listener.stop()
