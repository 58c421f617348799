"""
Tests for SessionHost command serialization and event publishing.
"""
import dataclasses
import os
import sys
import threading
import unittest
from unittest.mock import Mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mock_capture_engine import EngineFactory, FakeClock, MockOutputStore, make_grant, make_options
from lib.event_queue import QueueShutdownError
from recording_session import PauseFailure, SessionState, StartFailure, StopStatus
from session_host import SessionEventKind, SessionHost

TIMEOUT = 5


class HostTestCase(unittest.TestCase):

    def setUp(self):
        self.factory = EngineFactory()
        self.store = MockOutputStore()
        self.clock = FakeClock()
        self.preferences = Mock()
        self.preferences.generate_options.return_value = make_options()
        self.host = SessionHost(self.store, self.factory, self.preferences, clock=self.clock)
        self.events = []
        self.host.add_observer(self.events.append)
        self.host.open()

    def tearDown(self):
        self.host.close(timeout=TIMEOUT)

    def kinds(self):
        return [event.kind for event in self.events]


class TestHostLifecycle(HostTestCase):

    def test_start_pause_resume_stop(self):
        self.assertIsNone(self.host.start(make_grant(), make_options(), timeout=TIMEOUT))
        self.assertEqual(self.host.state, SessionState.RECORDING)

        self.assertIsNone(self.host.pause(timeout=TIMEOUT))
        self.assertIsNone(self.host.resume(timeout=TIMEOUT))
        outcome = self.host.stop(timeout=TIMEOUT)

        self.assertEqual(outcome.status, StopStatus.COMPLETED)
        self.assertEqual(self.host.state, SessionState.STOPPED)
        self.assertIsNone(self.host.session)
        self.assertEqual(self.kinds(), [
            SessionEventKind.STARTED,
            SessionEventKind.PAUSED,
            SessionEventKind.RESUMED,
            SessionEventKind.STOPPED,
        ])
        self.assertEqual(self.events[-1].state, SessionState.STOPPED)

    def test_start_uses_preferences_when_no_options(self):
        self.host.start(make_grant(), timeout=TIMEOUT)
        self.preferences.generate_options.assert_called_once()
        self.assertEqual(self.host.state, SessionState.RECORDING)

    def test_preference_error_is_start_failure(self):
        self.preferences.generate_options.side_effect = ValueError("no save location")
        failure = self.host.start(make_grant(), timeout=TIMEOUT)

        self.assertEqual(failure, StartFailure.OUTPUT_CREATE_FAILED)
        self.assertEqual(self.kinds(), [SessionEventKind.START_FAILED])
        self.assertEqual(self.factory.engines, [])

    def test_redundant_start_publishes_once(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)

        self.assertEqual(self.kinds(), [SessionEventKind.STARTED])
        self.assertEqual(len(self.factory.engines), 1)

    def test_engine_failure_publishes_start_failed(self):
        self.factory.engine_kwargs['begin_ok'] = False
        failure = self.host.start(make_grant(), make_options(), timeout=TIMEOUT)

        self.assertEqual(failure, StartFailure.ENGINE_START_FAILED)
        self.assertEqual(self.events[0].failure, StartFailure.ENGINE_START_FAILED)
        self.assertEqual(self.host.state, SessionState.STOPPED)

    def test_pause_without_session(self):
        self.assertEqual(self.host.pause(timeout=TIMEOUT), PauseFailure.NOT_RECORDING)
        self.assertEqual(self.host.stop(timeout=TIMEOUT).status, StopStatus.ALREADY_STOPPED)
        self.assertEqual(self.events, [])

    def test_pause_unsupported_is_reported(self):
        self.factory.engine_kwargs['supports_pause'] = False
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.host.pause(timeout=TIMEOUT)

        self.assertEqual(self.kinds()[-2:], [
            SessionEventKind.PAUSED,
            SessionEventKind.PAUSE_UNSUPPORTED,
        ])

    def test_elapsed_follows_clock(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.clock.advance(4)
        self.assertAlmostEqual(self.host.elapsed(), 4)
        self.host.stop(timeout=TIMEOUT)
        self.assertEqual(self.host.elapsed(), 0.0)

    def test_failing_observer_does_not_break_host(self):
        self.host.add_observer(Mock(side_effect=RuntimeError("observer bug")))
        self.assertIsNone(self.host.start(make_grant(), make_options(), timeout=TIMEOUT))
        self.assertEqual(self.kinds(), [SessionEventKind.STARTED])


class TestExternalStop(HostTestCase):

    def test_engine_stop_finishes_session_once(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        engine = self.factory.last

        engine.simulate_external_stop()
        # queued after the engine notification, so it sees the stopped session
        outcome = self.host.stop(timeout=TIMEOUT)

        self.assertEqual(outcome.status, StopStatus.ALREADY_STOPPED)
        self.assertEqual(self.kinds(), [
            SessionEventKind.STARTED,
            SessionEventKind.EXTERNALLY_STOPPED,
        ])
        self.assertEqual(engine.calls.count('finalize'), 1)
        self.assertEqual(engine.release_count, 1)

    def test_stale_engine_stop_is_ignored(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.host.stop(timeout=TIMEOUT)
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)

        outcome = self.host.notify_engine_stopped(1).result(timeout=TIMEOUT)
        self.assertEqual(outcome.status, StopStatus.ALREADY_STOPPED)
        self.assertEqual(self.host.state, SessionState.RECORDING)

    def test_commands_run_on_one_thread(self):
        threads = set()
        self.host.add_observer(lambda event: threads.add(threading.current_thread().name))

        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.factory.last.simulate_external_stop()
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.host.stop(timeout=TIMEOUT)

        self.assertEqual(threads, {"SessionHost-Worker"})


class TestDelete(HostTestCase):

    def test_delete_completed_recording(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        ref = self.host.stop(timeout=TIMEOUT).output_ref

        self.assertTrue(self.host.delete(ref, timeout=TIMEOUT))
        self.assertFalse(self.store.exists(ref))
        self.assertEqual(self.kinds()[-1], SessionEventKind.DELETED)

    def test_delete_refuses_recording_in_progress(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        ref = self.host.session.output_ref

        self.assertFalse(self.host.delete(ref, timeout=TIMEOUT))
        self.assertTrue(self.store.exists(ref))
        self.assertEqual(self.kinds()[-1], SessionEventKind.DELETE_FAILED)

    def test_delete_refuses_in_progress_uri_with_other_path(self):
        self.host.start(make_grant(), make_options(), timeout=TIMEOUT)
        ref = self.host.session.output_ref
        other_path = dataclasses.replace(ref, path="/elsewhere/REC.mp4")

        self.assertFalse(self.host.delete(other_path, timeout=TIMEOUT))
        self.assertTrue(self.store.exists(ref))


class TestClose(unittest.TestCase):

    def test_close_stops_active_recording(self):
        factory = EngineFactory()
        store = MockOutputStore()
        host = SessionHost(store, factory)
        host.open()
        host.start(make_grant(), make_options(), timeout=TIMEOUT)
        ref = host.session.output_ref

        host.close(timeout=TIMEOUT)
        self.assertEqual(store.artifacts[ref.uri], 'complete')
        self.assertEqual(factory.last.release_count, 1)

    def test_submit_after_close_fails(self):
        host = SessionHost(MockOutputStore(), EngineFactory())
        host.open()
        host.close(timeout=TIMEOUT)

        future = host.submit_stop()
        with self.assertRaises(QueueShutdownError):
            future.result(timeout=TIMEOUT)

    def test_context_manager(self):
        factory = EngineFactory()
        with SessionHost(MockOutputStore(), factory) as host:
            host.start(make_grant(), make_options(), timeout=TIMEOUT)
        self.assertEqual(factory.last.calls[-2:], ['finalize', 'release'])


if __name__ == '__main__':
    unittest.main()
