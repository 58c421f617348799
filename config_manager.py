import os
import argparse
from dotenv import load_dotenv
from lib.pr_log import pr_err


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        pr_err(f"Ignoring non-integer {name}={value!r}")
        return default


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigManager:
    """Manages configuration and argument parsing for the screen recorder."""

    ORIENTATIONS = ['auto', 'portrait', 'landscape']
    VIDEO_ENCODERS = ['default', 'H264', 'HEVC', 'VP8']
    STORAGE_BACKENDS = ['media', 'tree']

    def __init__(self):
        # Load environment variables before reading defaults from them
        script_dir = os.path.dirname(__file__)
        dotenv_path = os.path.join(script_dir, '.env')
        load_dotenv(dotenv_path=dotenv_path)

        # Storage
        self.storage_backend = os.getenv('SCREENREC_STORAGE', 'media')
        self.media_root = os.getenv('SCREENREC_MEDIA_ROOT', os.path.join('~', 'Videos'))
        self.relative_path = os.getenv('SCREENREC_RELATIVE_PATH', 'ScreenRecorder')
        self.save_location = os.getenv('SCREENREC_SAVE_LOCATION')

        # File naming
        self.filename_prefix = os.getenv('SCREENREC_FILE_PREFIX', 'REC')
        self.filename_pattern = os.getenv('SCREENREC_FILE_PATTERN', '%Y%m%d_%H%M%S')

        # Video
        self.display_size = os.getenv('SCREENREC_DISPLAY_SIZE', '1920x1080')
        self.video_width = _env_int('SCREENREC_VIDEO_WIDTH', None)
        self.orientation = 'auto'
        self.fps = _env_int('SCREENREC_FPS', 30)
        self.video_bitrate = _env_int('SCREENREC_VIDEO_BITRATE', 8388608)
        self.video_encoder = os.getenv('SCREENREC_VIDEO_ENCODER', 'default')
        self.display_dpi = _env_int('SCREENREC_DPI', 96)

        # Audio
        self.record_audio = _env_bool('SCREENREC_AUDIO', False)
        self.audio_source = 'mic'
        self.audio_device = os.getenv('SCREENREC_AUDIO_DEVICE')
        self.audio_sampling_rate = _env_int('SCREENREC_AUDIO_SAMPLING_RATE', 44100)
        self.audio_bitrate = _env_int('SCREENREC_AUDIO_BITRATE', 128000)

        # Capture engine
        self.ffmpeg_binary = os.getenv('SCREENREC_FFMPEG', 'ffmpeg')
        self.capture_target = os.getenv('DISPLAY') or ':0.0'
        self.startup_grace = 0.5  # seconds
        self.finalize_timeout = 10.0  # seconds

        # Input
        self.trigger_key_name = None
        self.pause_key_name = None

        self.debug_enabled = False

    def setup_argument_parser(self):
        """Setup and return the argument parser."""
        parser = argparse.ArgumentParser(
            description="Screen recorder controlled by POSIX signals or trigger keys.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )

        parser.add_argument(
            "--storage",
            type=str,
            choices=self.STORAGE_BACKENDS,
            default=self.storage_backend,
            dest="storage_backend",
            help="Output backend: 'media' (indexed media library) or 'tree' (plain directory)."
        )
        parser.add_argument(
            "--media-root",
            type=str,
            default=self.media_root,
            help="Root directory of the media library (media backend)."
        )
        parser.add_argument(
            "--relative-path",
            type=str,
            default=self.relative_path,
            help="Folder inside the media library for new recordings (media backend)."
        )
        parser.add_argument(
            "--save-location", "-o",
            type=str,
            default=self.save_location,
            help="Directory for new recordings (tree backend)."
        )
        parser.add_argument(
            "--prefix",
            type=str,
            default=self.filename_prefix,
            dest="filename_prefix",
            help="Filename prefix; '_' is appended unless empty or already present."
        )
        parser.add_argument(
            "--filename-pattern",
            type=str,
            default=self.filename_pattern,
            help="strftime pattern for the timestamp part of the filename."
        )
        parser.add_argument(
            "--display-size",
            type=str,
            default=self.display_size,
            help="Size of the captured display as WIDTHxHEIGHT."
        )
        parser.add_argument(
            "--width",
            type=int,
            default=self.video_width,
            dest="video_width",
            help="Output video width; height follows the display aspect ratio (default: display width)."
        )
        parser.add_argument(
            "--orientation",
            type=str,
            choices=self.ORIENTATIONS,
            default=self.orientation,
            help="Output orientation."
        )
        parser.add_argument(
            "--fps",
            type=int,
            default=self.fps,
            help="Capture frame rate."
        )
        parser.add_argument(
            "--video-bitrate",
            type=int,
            default=self.video_bitrate,
            help="Target video bitrate in bits per second."
        )
        parser.add_argument(
            "--video-encoder",
            type=str,
            choices=self.VIDEO_ENCODERS,
            default=self.video_encoder,
            help="Video encoder."
        )
        parser.add_argument(
            "--dpi",
            type=int,
            default=self.display_dpi,
            dest="display_dpi",
            help="Display density recorded with the options."
        )
        parser.add_argument(
            "--audio",
            action=argparse.BooleanOptionalAction,
            default=self.record_audio,
            dest="record_audio",
            help="Record audio alongside the screen."
        )
        parser.add_argument(
            "--audio-source",
            type=str,
            choices=['mic', 'system'],
            default=self.audio_source,
            help="Audio source when --audio is on."
        )
        parser.add_argument(
            "--audio-device",
            type=str,
            default=self.audio_device,
            help="Platform audio device name (overrides the source default)."
        )
        parser.add_argument(
            "--audio-sampling-rate",
            type=int,
            default=self.audio_sampling_rate,
            help="Audio sampling rate in Hz."
        )
        parser.add_argument(
            "--audio-bitrate",
            type=int,
            default=self.audio_bitrate,
            help="Audio bitrate in bits per second."
        )
        parser.add_argument(
            "--ffmpeg",
            type=str,
            default=self.ffmpeg_binary,
            dest="ffmpeg_binary",
            help="ffmpeg executable used for capture."
        )
        parser.add_argument(
            "--capture-target",
            type=str,
            default=self.capture_target,
            help="Screen to capture (X11 display, avfoundation index, or 'desktop' on Windows)."
        )
        parser.add_argument(
            "--finalize-timeout",
            type=float,
            default=self.finalize_timeout,
            help="Seconds to wait for the encoder to finish writing on stop."
        )
        parser.add_argument(
            "--trigger-key",
            type=str,
            default=None,
            help="Key that toggles recording (e.g. 'f9', 'pause'), or 'none'."
        )
        parser.add_argument(
            "--pause-key",
            type=str,
            default=None,
            help="Key that toggles pause/resume, or 'none'."
        )
        parser.add_argument(
            "-D", "--debug",
            action="count",
            default=0,
            help="Enable debug output."
        )
        return parser

    def _apply_parsed_args(self, args):
        """Apply parsed arguments to instance variables (single point of truth)."""
        self.storage_backend = args.storage_backend
        self.media_root = args.media_root
        self.relative_path = args.relative_path
        self.save_location = args.save_location

        self.filename_prefix = args.filename_prefix
        self.filename_pattern = args.filename_pattern

        self.display_size = args.display_size
        self.video_width = args.video_width
        self.orientation = args.orientation
        self.fps = args.fps
        self.video_bitrate = args.video_bitrate
        self.video_encoder = args.video_encoder
        self.display_dpi = args.display_dpi

        self.record_audio = args.record_audio
        self.audio_source = args.audio_source
        self.audio_device = args.audio_device
        self.audio_sampling_rate = args.audio_sampling_rate
        self.audio_bitrate = args.audio_bitrate

        self.ffmpeg_binary = args.ffmpeg_binary
        self.capture_target = args.capture_target
        self.finalize_timeout = args.finalize_timeout

        self.trigger_key_name = args.trigger_key
        self.pause_key_name = args.pause_key

        self.debug_enabled = args.debug >= 1

    def parse_configuration(self, argv=None):
        """Parse configuration from command line arguments."""
        from preference_source import parse_size

        parser = self.setup_argument_parser()
        args = parser.parse_args(argv)
        self._apply_parsed_args(args)

        if self.storage_backend == 'tree' and not self.save_location:
            parser.print_help()
            pr_err("--save-location is required with --storage tree")
            return False

        try:
            parse_size(self.display_size)
        except ValueError as e:
            parser.print_help()
            pr_err(f"{e}")
            return False

        for name in ('fps', 'video_bitrate', 'audio_sampling_rate', 'audio_bitrate'):
            if getattr(self, name) <= 0:
                parser.print_help()
                pr_err(f"--{name.replace('_', '-')} must be positive")
                return False

        if self.video_width is not None and self.video_width <= 0:
            parser.print_help()
            pr_err("--width must be positive")
            return False

        return True
