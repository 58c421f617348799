"""FFmpeg screen capture engine implementation."""

import os
import shutil
import signal
import subprocess
import sys
import threading
from collections import deque
from typing import List, Optional

from capture_engine import CaptureEngine, CaptureGrant
from recording_options import AudioEncoder, AudioSourceKind, RecordingOptions, VideoEncoder
from lib.pr_log import pr_debug, pr_emerg, pr_err, pr_info, pr_warn


class FFmpegCaptureEngine(CaptureEngine):
    """Captures the screen by driving an external ffmpeg process."""

    VIDEO_CODECS = {
        VideoEncoder.DEFAULT: "libx264",
        VideoEncoder.H264: "libx264",
        VideoEncoder.HEVC: "libx265",
        VideoEncoder.VP8: "libvpx",
    }

    AUDIO_CODECS = {
        AudioEncoder.AAC: "aac",
        AudioEncoder.OPUS: "libopus",
    }

    STDERR_TAIL_LINES = 20

    def __init__(self, config, platform: str = sys.platform, popen=subprocess.Popen):
        super().__init__()
        self.config = config
        self.platform = platform
        self._popen = popen

        self._command: Optional[List[str]] = None
        self._grant: Optional[CaptureGrant] = None
        self._process: Optional[subprocess.Popen] = None
        self._watcher: Optional[threading.Thread] = None
        self._stderr_tail: deque = deque(maxlen=self.STDERR_TAIL_LINES)
        self._paused = False
        self._finalizing = False
        self._released = False

    @property
    def supports_pause(self) -> bool:
        # suspending the ffmpeg process needs job-control signals
        return not self.platform.startswith("win") and hasattr(signal, "SIGSTOP")

    @property
    def command(self) -> Optional[List[str]]:
        return self._command

    def _video_input(self, grant: CaptureGrant, fps: int) -> List[str]:
        if self.platform.startswith("linux") or self.platform.startswith("freebsd"):
            return ["-f", "x11grab", "-framerate", str(fps), "-i", grant.target]
        if self.platform == "darwin":
            return ["-f", "avfoundation", "-capture_cursor", "1",
                    "-framerate", str(fps), "-i", f"{grant.target}:none"]
        if self.platform == "win32":
            return ["-f", "gdigrab", "-framerate", str(fps), "-i", grant.target]
        raise ValueError(f"Screen capture is not supported on platform '{self.platform}'")

    def _audio_input(self, source: AudioSourceKind) -> List[str]:
        device = self.config.audio_device
        if self.platform.startswith("linux") or self.platform.startswith("freebsd"):
            if not device:
                device = "default.monitor" if source == AudioSourceKind.SYSTEM else "default"
            return ["-f", "pulse", "-i", device]
        if self.platform == "darwin":
            return ["-f", "avfoundation", "-i", f":{device or '0'}"]
        if self.platform == "win32":
            if not device:
                raise ValueError("Audio capture on Windows needs --audio-device")
            return ["-f", "dshow", "-i", f"audio={device}"]
        raise ValueError(f"Audio capture is not supported on platform '{self.platform}'")

    def build_command(self, binary: str, grant: CaptureGrant, options: RecordingOptions, sink_path: str) -> List[str]:
        """
        Build the ffmpeg command line for a capture.

        Raises:
            ValueError: if the options cannot be expressed on this platform
        """
        video = options.video
        command = [binary, "-hide_banner", "-loglevel", "error", "-y"]
        command += self._video_input(grant, video.fps)

        audio = options.audio
        if audio.enabled:
            command += self._audio_input(audio.source)

        command += [
            "-vf", f"scale={video.resolution.width}:{video.resolution.height}",
            "-c:v", self.VIDEO_CODECS[video.encoder],
            "-b:v", str(video.bitrate),
            "-r", str(video.fps),
            "-pix_fmt", "yuv420p",
        ]

        if audio.enabled:
            command += [
                "-c:a", self.AUDIO_CODECS[audio.encoder],
                "-b:a", str(audio.bitrate),
                "-ar", str(audio.sampling_rate),
            ]

        command += ["-f", options.container, sink_path]
        return command

    def _encoder_available(self, binary: str, codec: str) -> bool:
        """Ask ffmpeg whether it was built with the codec."""
        try:
            result = subprocess.run(
                [binary, "-hide_banner", "-encoders"],
                capture_output=True, text=True, timeout=5
            )
        except (OSError, subprocess.SubprocessError) as e:
            pr_warn(f"Could not query ffmpeg encoders: {e}")
            return True
        return any(line.split()[1:2] == [codec] for line in result.stdout.splitlines() if line.strip())

    def initialize(self, grant: CaptureGrant, options: RecordingOptions, sink_path: str) -> bool:
        if self._released:
            pr_err("Capture engine already released")
            return False

        if not grant.is_usable():
            pr_err("Capture grant is denied, already used or revoked")
            return False

        binary = shutil.which(self.config.ffmpeg_binary)
        if binary is None:
            pr_emerg(f"ffmpeg binary '{self.config.ffmpeg_binary}' not found on PATH")
            pr_emerg("Install ffmpeg or point --ffmpeg at it.")
            return False

        codec = self.VIDEO_CODECS[options.video.encoder]
        if not self._encoder_available(binary, codec):
            pr_err(f"Video encoder '{codec}' is not available in this ffmpeg build")
            return False

        try:
            with open(sink_path, "ab"):
                pass
        except OSError as e:
            pr_err(f"Output cannot be opened for writing: {e}")
            return False

        try:
            self._command = self.build_command(binary, grant, options, sink_path)
        except ValueError as e:
            pr_err(f"{e}")
            return False

        self._grant = grant
        pr_debug(f"ffmpeg command: {' '.join(self._command)}")
        return True

    def begin(self) -> bool:
        if self._command is None or self._grant is None:
            pr_err("Capture engine not initialized")
            return False

        if not self._grant.consume():
            pr_err("Capture grant is no longer usable")
            return False

        try:
            self._process = self._popen(
                self._command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE
            )
        except OSError as e:
            pr_err(f"Error starting ffmpeg: {e}")
            self._process = None
            return False

        try:
            returncode = self._process.wait(timeout=self.config.startup_grace)
        except subprocess.TimeoutExpired:
            returncode = None

        if returncode is not None:
            try:
                _, stderr = self._process.communicate(timeout=1)
            except (subprocess.SubprocessError, ValueError, OSError):
                stderr = b""
            pr_err(f"ffmpeg exited during startup with status {returncode}")
            for line in (stderr or b"").decode(errors="replace").splitlines()[-self.STDERR_TAIL_LINES:]:
                pr_err(f"  {line}")
            return False

        self._watcher = threading.Thread(
            target=self._watch_process,
            args=(self._process,),
            name="FFmpegWatcher",
            daemon=True
        )
        self._watcher.start()
        pr_info(f"Capture started (pid {self._process.pid})")
        return True

    def _watch_process(self, process: subprocess.Popen) -> None:
        """Drain ffmpeg stderr and report a capture that ends on its own."""
        if process.stderr is not None:
            for raw in iter(process.stderr.readline, b""):
                self._stderr_tail.append(raw.decode(errors="replace").rstrip())
        returncode = process.wait()

        if self._finalizing or self._released:
            return

        pr_warn(f"ffmpeg exited unexpectedly with status {returncode}")
        self._notify_stopped_externally()

    def pause(self) -> None:
        """
        Suspend ffmpeg with SIGSTOP.

        Grab devices timestamp frames from the wall clock, which keeps
        running while the process is stopped. With a fixed output rate ffmpeg
        may fill the suspended span with duplicated frames after SIGCONT, so
        the pause can show up as a frozen segment in the file.
        """
        if not self.supports_pause or self._process is None or self._paused:
            return
        os.kill(self._process.pid, signal.SIGSTOP)
        self._paused = True
        pr_debug("ffmpeg suspended; the paused span may appear as a frozen segment")

    def resume(self) -> None:
        if not self._paused or self._process is None:
            return
        os.kill(self._process.pid, signal.SIGCONT)
        self._paused = False
        pr_debug("ffmpeg resumed")

    def finalize(self) -> bool:
        process = self._process
        if process is None:
            return False

        self._finalizing = True
        if self._paused:
            self.resume()

        if process.poll() is None:
            try:
                # ffmpeg writes the trailer and exits cleanly on 'q'
                process.stdin.write(b"q")
                process.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as e:
                pr_debug(f"Could not send quit to ffmpeg: {e}")

            try:
                process.wait(timeout=self.config.finalize_timeout)
            except subprocess.TimeoutExpired:
                pr_err(f"ffmpeg did not finish within {self.config.finalize_timeout}s")
                return False

        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=1.0)

        if process.returncode != 0:
            pr_err(f"ffmpeg finished with status {process.returncode}")
            for line in self._stderr_tail:
                pr_err(f"  {line}")
            return False
        return True

    def release(self) -> None:
        if self._released:
            return
        self._released = True

        process = self._process
        self._process = None
        if process is not None:
            try:
                if process.poll() is None:
                    if self._paused:
                        os.kill(process.pid, signal.SIGCONT)
                    process.terminate()
                    try:
                        process.wait(timeout=2)
                    except subprocess.TimeoutExpired:
                        process.kill()
                        process.wait()
                    pr_info("Capture process stopped.")
            except OSError as e:
                pr_debug(f"ffmpeg already gone: {e}")
            finally:
                if process.stdin is not None:
                    try:
                        process.stdin.close()
                    except OSError:
                        pass

        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=1.0)
        self._watcher = None
        self._paused = False

        if self._grant is not None:
            self._grant.revoke()

