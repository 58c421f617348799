"""
Tests for building RecordingOptions from preferences.
"""
import os
import sys
import unittest
from datetime import datetime
from types import SimpleNamespace

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from preference_source import PreferenceSource, parse_size
from recording_options import (
    AudioEncoder, AudioSourceKind, NoAudio, RecordAudio, Resolution, StorageBackend, VideoEncoder
)

FIXED_NOW = datetime(2024, 3, 5, 14, 7, 9)


def make_config(**overrides):
    values = dict(
        storage_backend='media',
        relative_path='ScreenRecorder',
        save_location=None,
        filename_prefix='REC',
        filename_pattern='%Y%m%d_%H%M%S',
        display_size='1920x1080',
        video_width=None,
        orientation='auto',
        fps=30,
        video_bitrate=8388608,
        video_encoder='default',
        display_dpi=96,
        record_audio=False,
        audio_source='mic',
        audio_sampling_rate=44100,
        audio_bitrate=128000,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_source(**overrides):
    return PreferenceSource(make_config(**overrides), now=lambda: FIXED_NOW)


class TestParseSize(unittest.TestCase):

    def test_valid(self):
        self.assertEqual(parse_size('1280x720'), (1280, 720))
        self.assertEqual(parse_size('1280X720'), (1280, 720))

    def test_invalid(self):
        for value in ('1280', 'axb', '0x720', '-5x10', None):
            with self.assertRaises(ValueError):
                parse_size(value)


class TestFilename(unittest.TestCase):

    def test_prefix_gets_separator(self):
        self.assertEqual(make_source().filename(), 'REC_20240305_140709')

    def test_prefix_already_ending_in_underscore(self):
        self.assertEqual(make_source(filename_prefix='cap_').filename(), 'cap_20240305_140709')

    def test_blank_prefix(self):
        self.assertEqual(make_source(filename_prefix='  ').filename(), '20240305_140709')
        self.assertEqual(make_source(filename_prefix=None).filename(), '20240305_140709')


class TestVideo(unittest.TestCase):

    def test_encoder_names(self):
        self.assertEqual(make_source(video_encoder='hevc').video_encoder(), VideoEncoder.HEVC)
        self.assertEqual(make_source(video_encoder='VP8').video_encoder(), VideoEncoder.VP8)
        self.assertEqual(make_source(video_encoder='default').video_encoder(), VideoEncoder.DEFAULT)

    def test_unknown_encoder_falls_back_to_h264(self):
        self.assertEqual(make_source(video_encoder='AV1').video_encoder(), VideoEncoder.H264)

    def test_resolution_follows_display_aspect(self):
        self.assertEqual(make_source().resolution(), Resolution(1920, 1080))
        self.assertEqual(make_source(video_width=1280).resolution(), Resolution(1280, 720))

    def test_resolution_is_even(self):
        resolution = make_source(video_width=1001, display_size='1000x777').resolution()
        self.assertEqual(resolution.width % 2, 0)
        self.assertEqual(resolution.height % 2, 0)

    def test_orientation(self):
        self.assertEqual(make_source(orientation='portrait').resolution(), Resolution(1080, 1920))
        self.assertEqual(make_source(orientation='landscape', display_size='1080x1920').resolution(),
                         Resolution(1920, 1080))


class TestGenerateOptions(unittest.TestCase):

    def test_media_backend_defaults(self):
        options = make_source().generate_options()

        self.assertEqual(options.video.fps, 30)
        self.assertEqual(options.video.bitrate, 8388608)
        self.assertIsInstance(options.audio, NoAudio)
        self.assertEqual(options.output.location, 'ScreenRecorder')
        self.assertEqual(options.output.name, 'REC_20240305_140709')
        self.assertEqual(options.output.mime_type, 'video/mp4')
        self.assertEqual(options.output.backend, StorageBackend.MEDIA_INDEX)
        self.assertEqual(options.container, 'mp4')

    def test_tree_backend_uses_save_location(self):
        options = make_source(storage_backend='tree', save_location='/tmp/out').generate_options()
        self.assertEqual(options.output.location, '/tmp/out')
        self.assertEqual(options.output.backend, StorageBackend.TREE)

    def test_tree_backend_without_location(self):
        with self.assertRaises(ValueError):
            make_source(storage_backend='tree').generate_options()

    def test_vp8_records_webm_with_opus(self):
        options = make_source(video_encoder='VP8', record_audio=True).generate_options()

        self.assertEqual(options.output.mime_type, 'video/webm')
        self.assertEqual(options.container, 'webm')
        self.assertIsInstance(options.audio, RecordAudio)
        self.assertEqual(options.audio.encoder, AudioEncoder.OPUS)

    def test_audio_settings(self):
        options = make_source(record_audio=True, audio_source='system',
                              audio_sampling_rate=48000).generate_options()

        self.assertTrue(options.audio.enabled)
        self.assertEqual(options.audio.source, AudioSourceKind.SYSTEM)
        self.assertEqual(options.audio.sampling_rate, 48000)
        self.assertEqual(options.audio.encoder, AudioEncoder.AAC)


if __name__ == '__main__':
    unittest.main()
