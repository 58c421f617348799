"""
Tests for ConfigManager argument parsing and environment defaults.
"""
import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config_manager import ConfigManager

CLEAN_ENV = {key: value for key, value in os.environ.items() if not key.startswith('SCREENREC_')}


@patch.dict(os.environ, CLEAN_ENV, clear=True)
class TestDefaults(unittest.TestCase):

    def test_defaults(self):
        config = ConfigManager()
        self.assertTrue(config.parse_configuration([]))

        self.assertEqual(config.storage_backend, 'media')
        self.assertEqual(config.relative_path, 'ScreenRecorder')
        self.assertEqual(config.filename_prefix, 'REC')
        self.assertEqual(config.fps, 30)
        self.assertEqual(config.video_bitrate, 8388608)
        self.assertEqual(config.video_encoder, 'default')
        self.assertEqual(config.audio_sampling_rate, 44100)
        self.assertEqual(config.audio_bitrate, 128000)
        self.assertFalse(config.record_audio)
        self.assertFalse(config.debug_enabled)
        self.assertIsNone(config.trigger_key_name)

    def test_environment_overrides(self):
        env = {'SCREENREC_FPS': '60', 'SCREENREC_AUDIO': 'yes', 'SCREENREC_FILE_PREFIX': 'cap'}
        with patch.dict(os.environ, env):
            config = ConfigManager()
        self.assertTrue(config.parse_configuration([]))
        self.assertEqual(config.fps, 60)
        self.assertTrue(config.record_audio)
        self.assertEqual(config.filename_prefix, 'cap')

    def test_bad_environment_integer_ignored(self):
        with patch.dict(os.environ, {'SCREENREC_FPS': 'fast'}):
            config = ConfigManager()
        self.assertEqual(config.fps, 30)


@patch.dict(os.environ, CLEAN_ENV, clear=True)
class TestArguments(unittest.TestCase):

    def test_command_line_values(self):
        config = ConfigManager()
        self.assertTrue(config.parse_configuration([
            '--storage', 'tree', '-o', '/tmp/recordings',
            '--video-encoder', 'VP8', '--fps', '24', '--width', '1280',
            '--audio', '--audio-source', 'system',
            '--trigger-key', 'f9', '-D',
        ]))

        self.assertEqual(config.storage_backend, 'tree')
        self.assertEqual(config.save_location, '/tmp/recordings')
        self.assertEqual(config.video_encoder, 'VP8')
        self.assertEqual(config.fps, 24)
        self.assertEqual(config.video_width, 1280)
        self.assertTrue(config.record_audio)
        self.assertEqual(config.audio_source, 'system')
        self.assertEqual(config.trigger_key_name, 'f9')
        self.assertTrue(config.debug_enabled)

    def test_no_audio_flag(self):
        with patch.dict(os.environ, {'SCREENREC_AUDIO': '1'}):
            config = ConfigManager()
        self.assertTrue(config.parse_configuration(['--no-audio']))
        self.assertFalse(config.record_audio)

    def test_tree_requires_save_location(self):
        config = ConfigManager()
        with patch('sys.stdout'):
            self.assertFalse(config.parse_configuration(['--storage', 'tree']))

    def test_invalid_display_size(self):
        config = ConfigManager()
        with patch('sys.stdout'):
            self.assertFalse(config.parse_configuration(['--display-size', 'wide']))

    def test_non_positive_values(self):
        for argv in (['--fps', '0'], ['--video-bitrate', '-1'], ['--width', '0']):
            config = ConfigManager()
            with patch('sys.stdout'):
                self.assertFalse(config.parse_configuration(argv), argv)

    def test_encoder_choice_enforced(self):
        config = ConfigManager()
        with patch('sys.stderr'), self.assertRaises(SystemExit):
            config.parse_configuration(['--video-encoder', 'AV1'])


if __name__ == '__main__':
    unittest.main()
