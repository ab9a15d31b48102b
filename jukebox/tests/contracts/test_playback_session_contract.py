"""
Contract tests for PlaybackSession and VolumeRamp.

Covers generation numbering, exactly-once finished notifications, stale
end events, idempotent stop, pause/resume no-ops, output binding, and
volume ramp cancellation.
"""

import threading

import pytest
from unittest.mock import Mock

from jukebox.playback.errors import InvalidArgument, JoinFailed, NoOutputTarget
from jukebox.playback.playback_session import (
    FinishedNotification,
    PlaybackSession,
    SessionState,
    StopReason,
)
from jukebox.playback.volume_ramp import VolumeRamp
from jukebox.tests.contracts.test_doubles import FakeOutput


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def session(fake_output, notifications):
    session = PlaybackSession(fake_output, on_finished=notifications.append, name="test")
    session.bind("voice-1")
    return session


class TestGenerations:
    def test_generations_strictly_increase(self, session):
        generations = [session.start(f"/music/{n}.mp3") for n in range(4)]
        assert generations == sorted(set(generations))
        assert generations[0] == 1
        assert session.generation == generations[-1]

    def test_start_supersedes_live_stream(self, session, fake_output, notifications):
        first = session.start("/music/a.mp3")
        second = session.start("/music/b.mp3")
        assert fake_output.streams[0].stopped
        assert not fake_output.streams[1].stopped
        assert notifications == [FinishedNotification(first, StopReason.SUPERSEDED, "/music/a.mp3")]
        assert session.generation == second
        assert session.current_path == "/music/b.mp3"


class TestFinishedNotifications:
    def test_natural_end_emits_once(self, session, fake_output, notifications):
        generation = session.start("/music/a.mp3")
        stream = fake_output.last_stream
        stream.finish()
        stream.finish()
        assert notifications == [FinishedNotification(generation, StopReason.NATURAL_END, "/music/a.mp3")]
        assert session.state is SessionState.IDLE
        assert not session.is_playing

    def test_end_event_after_explicit_stop_is_dropped(self, session, fake_output, notifications):
        generation = session.start("/music/a.mp3")
        stream = fake_output.last_stream
        assert session.stop(StopReason.CLEARED)
        stream.finish()
        assert [n.reason for n in notifications] == [StopReason.CLEARED]
        assert notifications[0].generation == generation

    def test_stale_end_event_does_not_stop_new_stream(self, session, fake_output, notifications):
        session.start("/music/a.mp3")
        old_stream = fake_output.last_stream
        second = session.start("/music/b.mp3")
        old_stream.finish()
        assert session.is_playing
        assert session.generation == second
        assert [n.reason for n in notifications] == [StopReason.SUPERSEDED]

    def test_stop_is_idempotent(self, session, notifications):
        session.start("/music/a.mp3")
        assert session.stop(StopReason.SUPERSEDED) is True
        assert session.stop(StopReason.SUPERSEDED) is False
        assert len(notifications) == 1

    def test_stop_while_idle_emits_nothing(self, session, notifications):
        assert session.stop(StopReason.CLEARED) is False
        assert notifications == []

    def test_callback_failure_does_not_break_session(self, fake_output):
        callback = Mock(side_effect=RuntimeError("boom"))
        session = PlaybackSession(fake_output, on_finished=callback)
        session.bind("voice-1")
        session.start("/music/a.mp3")
        fake_output.last_stream.finish()
        callback.assert_called_once()
        assert session.state is SessionState.IDLE

    @pytest.mark.parametrize("reason,advances", [
        (StopReason.NATURAL_END, True),
        (StopReason.SUPERSEDED, False),
        (StopReason.CLEARED, False),
        (StopReason.INDEX_DELETED, False),
        (StopReason.LEAVING, False),
    ])
    def test_only_natural_end_advances(self, reason, advances):
        assert reason.advances is advances

    def test_concurrent_end_and_stop_notify_once(self, fake_output):
        for _ in range(50):
            notifications = []
            session = PlaybackSession(fake_output, on_finished=notifications.append)
            session.bind("voice-1")
            session.start("/music/a.mp3")
            stream = fake_output.last_stream
            barrier = threading.Barrier(2)

            def natural_end():
                barrier.wait()
                stream.finish()

            def explicit_stop():
                barrier.wait()
                session.stop(StopReason.SUPERSEDED)

            threads = [threading.Thread(target=natural_end), threading.Thread(target=explicit_stop)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(2.0)
            assert len(notifications) == 1


class TestBinding:
    def test_start_without_output_raises(self, fake_output):
        session = PlaybackSession(fake_output)
        with pytest.raises(NoOutputTarget):
            session.start("/music/a.mp3")
        assert session.generation == 0

    def test_failed_join_leaves_session_untouched(self):
        output = FakeOutput(reject_targets={"locked"})
        fresh = PlaybackSession(output)
        with pytest.raises(JoinFailed):
            fresh.bind("locked")
        assert not fresh.is_bound

    def test_rebinding_same_target_is_a_no_op(self, session, fake_output):
        session.bind("voice-1")
        assert len(fake_output.handles) == 1

    def test_leave_stops_with_leaving(self, session, fake_output, notifications):
        session.start("/music/a.mp3")
        assert session.leave() is True
        assert [n.reason for n in notifications] == [StopReason.LEAVING]
        assert fake_output.handles[0].left
        assert not session.is_bound
        assert session.leave() is False


class TestPauseResume:
    def test_pause_and_resume(self, session, fake_output):
        session.start("/music/a.mp3")
        assert session.pause() is True
        assert session.state is SessionState.PAUSED
        assert session.is_playing
        assert session.resume() is True
        assert session.state is SessionState.PLAYING

    def test_no_ops_in_wrong_state(self, session, fake_output):
        assert session.pause() is False
        assert session.resume() is False
        session.start("/music/a.mp3")
        assert session.resume() is False
        session.pause()
        assert session.pause() is False
        assert fake_output.last_stream.pause_calls == 1


class TestVolume:
    @pytest.mark.parametrize("level", [-0.1, 2.5, 3, float("nan"), "loud", True])
    def test_invalid_levels_rejected(self, session, level):
        session.set_volume(0.5)
        with pytest.raises(InvalidArgument):
            session.set_volume(level)
        assert session.volume == 0.5

    def test_set_volume_applies_to_stream(self, session, fake_output):
        session.start("/music/a.mp3")
        session.set_volume(1.5)
        assert fake_output.last_stream.volume == 1.5
        assert session.volume == 1.5

    def test_ramp_starts_from_local_volume(self, session, fake_output):
        session.start("/music/a.mp3")
        session.set_volume(1.5)
        ramp = session.ramp_volume(0.5, steps=5, step_interval_ms=0)
        assert ramp.base == 1.5
        assert ramp.wait(2.0)
        assert fake_output.last_stream.volumes[-1] == 0.5
        assert session.volume == 0.5

    def test_ramp_while_idle_applies_immediately(self, session):
        assert session.ramp_volume(0.3) is None
        assert session.volume == 0.3

    def test_no_ticks_after_stop(self, session, fake_output):
        session.start("/music/a.mp3")
        stream = fake_output.last_stream
        ramp = session.ramp_volume(2.0, steps=200, step_interval_ms=5)
        session.stop(StopReason.SUPERSEDED)
        assert ramp.cancelled
        assert ramp.wait(2.0)
        count = len(stream.volumes)
        assert ramp.ticks_applied == count
        ramp.wait(0.05)
        assert len(stream.volumes) == count

    def test_new_ramp_cancels_previous(self, session, fake_output):
        session.start("/music/a.mp3")
        first = session.ramp_volume(2.0, steps=200, step_interval_ms=5)
        second = session.ramp_volume(0.0, steps=3, step_interval_ms=0)
        assert first.cancelled
        assert second.wait(2.0)
        assert first.wait(2.0)
        assert fake_output.last_stream.volumes[-1] == 0.0

    def test_ramp_rejects_bad_steps(self, session):
        with pytest.raises(InvalidArgument):
            session.ramp_volume(1.0, steps=0)


class TestVolumeRamp:
    def test_values_end_exactly_on_target(self):
        ramp = VolumeRamp(0.0, 1.0, lambda r, v: True, steps=20)
        values = ramp.values()
        assert len(values) == 20
        assert values[-1] == 1.0
        assert values[0] == pytest.approx(0.05)

    def test_apply_returning_false_stops_ramp(self):
        seen = []

        def apply(ramp, value):
            seen.append(value)
            return len(seen) < 3

        ramp = VolumeRamp(0.0, 1.0, apply, steps=10, step_interval_ms=0)
        ramp.start()
        assert ramp.wait(2.0)
        assert len(seen) == 3
        assert ramp.ticks_applied == 2

    def test_invalid_steps(self):
        with pytest.raises(ValueError):
            VolumeRamp(0.0, 1.0, lambda r, v: True, steps=0)
