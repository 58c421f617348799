"""
Builds the immutable RecordingOptions snapshot from current preferences.
"""
from datetime import datetime
from typing import Callable, Tuple

from recording_options import (
    AudioEncoder,
    AudioSourceKind,
    NoAudio,
    OutputTarget,
    RecordAudio,
    RecordingOptions,
    Resolution,
    StorageBackend,
    VideoEncoder,
    VideoOptions,
)

MIME_MP4 = "video/mp4"
MIME_WEBM = "video/webm"


def parse_size(value: str) -> Tuple[int, int]:
    """Parse 'WIDTHxHEIGHT' into a tuple of positive ints."""
    try:
        width_text, height_text = value.lower().split("x", 1)
        width, height = int(width_text), int(height_text)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid size '{value}', expected WIDTHxHEIGHT")
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid size '{value}', dimensions must be positive")
    return width, height


class PreferenceSource:
    """Reads recording preferences from the configuration object."""

    def __init__(self, config, now: Callable[[], datetime] = datetime.now):
        self.config = config
        self._now = now

    @property
    def backend(self) -> StorageBackend:
        return StorageBackend(self.config.storage_backend)

    def filename(self) -> str:
        """Prefix joined with '_' (unless blank or already ending in '_') plus timestamp."""
        prefix = (self.config.filename_prefix or "").strip()
        if prefix and not prefix.endswith("_"):
            prefix += "_"
        return prefix + self._now().strftime(self.config.filename_pattern)

    def video_encoder(self) -> VideoEncoder:
        name = (self.config.video_encoder or "default").strip()
        for encoder in VideoEncoder:
            if encoder.value.lower() == name.lower():
                return encoder
        return VideoEncoder.H264

    def resolution(self) -> Resolution:
        """
        Output size: configured width, height following the display aspect
        ratio, then oriented per preference.
        """
        display_width, display_height = parse_size(self.config.display_size)
        width = self.config.video_width or display_width
        height = int(width * display_height / display_width)
        # most encoders reject odd dimensions
        width -= width % 2
        height -= height % 2

        orientation = self.config.orientation
        if orientation == "portrait":
            width, height = min(width, height), max(width, height)
        elif orientation == "landscape":
            width, height = max(width, height), min(width, height)
        return Resolution(width, height)

    def output_target(self, encoder: VideoEncoder) -> OutputTarget:
        backend = self.backend
        if backend == StorageBackend.MEDIA_INDEX:
            location = self.config.relative_path
        else:
            location = self.config.save_location
        if not location:
            raise ValueError(f"No save location configured for the {backend.value} store")

        mime_type = MIME_WEBM if encoder == VideoEncoder.VP8 else MIME_MP4
        return OutputTarget(
            location=location,
            name=self.filename(),
            mime_type=mime_type,
            backend=backend
        )

    def generate_options(self) -> RecordingOptions:
        """
        Snapshot current preferences.

        Raises:
            ValueError: if preferences cannot describe a recording
        """
        encoder = self.video_encoder()
        video = VideoOptions(
            resolution=self.resolution(),
            encoder=encoder,
            fps=self.config.fps,
            bitrate=self.config.video_bitrate,
            display_dpi=self.config.display_dpi
        )

        if self.config.record_audio:
            audio = RecordAudio(
                source=AudioSourceKind(self.config.audio_source),
                sampling_rate=self.config.audio_sampling_rate,
                encoder=AudioEncoder.OPUS if encoder == VideoEncoder.VP8 else AudioEncoder.AAC,
                bitrate=self.config.audio_bitrate
            )
        else:
            audio = NoAudio()

        return RecordingOptions(video=video, output=self.output_target(encoder), audio=audio)
