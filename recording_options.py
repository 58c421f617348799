"""
Immutable configuration snapshot for a single recording session.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class VideoEncoder(Enum):
    """Video encoders a capture engine may be asked for."""
    DEFAULT = "default"
    H264 = "H264"
    HEVC = "HEVC"
    VP8 = "VP8"


class AudioEncoder(Enum):
    AAC = "aac"
    OPUS = "opus"


class AudioSourceKind(Enum):
    """Where recorded audio comes from."""
    MIC = "mic"
    SYSTEM = "system"


class StorageBackend(Enum):
    """Tag naming the output store variant that produced an artifact."""
    MEDIA_INDEX = "media"
    TREE = "tree"


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class VideoOptions:
    resolution: Resolution
    encoder: VideoEncoder = VideoEncoder.H264
    fps: int = 30
    bitrate: int = 8388608
    display_dpi: int = 96


@dataclass(frozen=True)
class NoAudio:
    """Audio disabled for this session."""

    @property
    def enabled(self) -> bool:
        return False


@dataclass(frozen=True)
class RecordAudio:
    source: AudioSourceKind = AudioSourceKind.MIC
    sampling_rate: int = 44100
    encoder: AudioEncoder = AudioEncoder.AAC
    bitrate: int = 128000

    @property
    def enabled(self) -> bool:
        return True


AudioOptions = Union[NoAudio, RecordAudio]


@dataclass(frozen=True)
class OutputTarget:
    """
    Where and how the session's artifact gets created.

    ``location`` is interpreted by the backend named in ``backend``: a
    relative path inside the media index, or a directory for the tree store.
    """
    location: str
    name: str
    mime_type: str = "video/mp4"
    backend: StorageBackend = StorageBackend.MEDIA_INDEX


@dataclass(frozen=True)
class OutputRef:
    """Reference to an artifact created by an output store."""
    uri: str
    path: str
    backend: StorageBackend


@dataclass(frozen=True)
class RecordingOptions:
    video: VideoOptions
    output: OutputTarget
    audio: AudioOptions = field(default_factory=NoAudio)

    @property
    def container(self) -> str:
        """Container format matching the output mime type."""
        if self.output.mime_type == "video/webm":
            return "webm"
        return "mp4"
