"""
Ducking tests: fade down on speech, delayed resume, interruptions.
"""
import pytest

from handsfree.audio.ducking import DuckingCoordinator, DuckingState
from handsfree.audio.playback import AudioPlayback, NullAudioOutput
from handsfree.clock import ManualClock
from handsfree.errors import AudioDeviceUnavailable


def playing_output(volume: float = 0.8) -> NullAudioOutput:
    output = NullAudioOutput(volume=volume)
    output.play("tts://greeting")
    return output


def coordinator(output, enabled=True) -> DuckingCoordinator:
    return DuckingCoordinator(
        output,
        ducking_volume=0.2,
        fade_out_ms=150,
        fade_in_ms=200,
        resume_delay_ms=600,
        enabled=enabled,
    )


class TestDuckingCoordinator:
    def test_fades_down_on_speech(self):
        output = playing_output()
        ducking = coordinator(output)

        ducking.on_vad(True, 0)
        assert ducking.state is DuckingState.DUCKING
        assert output.volume == pytest.approx(0.8)

        ducking.tick(75)
        assert output.volume == pytest.approx(0.5)

        ducking.tick(150)
        assert output.volume == pytest.approx(0.2)
        assert ducking.state is DuckingState.DUCKED
        assert ducking.original_volume == pytest.approx(0.8)

    def test_resumes_after_delay(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)

        ducking.on_vad(False, 1000)
        assert ducking.resume_deadline == 1600

        ducking.tick(1599)
        assert output.volume == pytest.approx(0.2)

        ducking.tick(1600)
        assert ducking.state is DuckingState.RESUMING
        ducking.tick(1700)
        assert output.volume == pytest.approx(0.5)
        ducking.tick(1800)
        assert output.volume == pytest.approx(0.8)
        assert ducking.state is DuckingState.NORMAL
        assert ducking.original_volume is None

    def test_speech_during_hangover_cancels_resume(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)
        ducking.on_vad(False, 1000)

        ducking.on_vad(True, 1300)
        ducking.tick(2000)

        assert ducking.resume_deadline is None
        assert output.volume == pytest.approx(0.2)
        assert ducking.is_ducked

    def test_repeated_silence_does_not_push_deadline(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)

        ducking.on_vad(False, 1000)
        ducking.on_vad(False, 1100)

        assert ducking.resume_deadline == 1600

    def test_speech_while_resuming_ducks_again(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)
        ducking.on_vad(False, 200)
        ducking.tick(800)
        ducking.tick(900)  # halfway back up

        ducking.on_vad(True, 900)
        ducking.tick(1050)

        assert ducking.state is DuckingState.DUCKED
        assert output.volume == pytest.approx(0.2)
        assert ducking.original_volume == pytest.approx(0.8)

    def test_idle_output_is_not_ducked(self):
        output = NullAudioOutput(volume=0.8)
        ducking = coordinator(output)

        ducking.on_vad(True, 0)
        ducking.tick(200)

        assert ducking.state is DuckingState.NORMAL
        assert output.volume == 0.8

    def test_resume_unpauses_playback(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)
        output.pause()

        ducking.resume(500)

        assert not output.is_paused
        assert output.is_playing

    def test_disabled(self):
        output = playing_output()
        ducking = coordinator(output, enabled=False)

        ducking.on_vad(True, 0)
        ducking.tick(500)

        assert output.volume == 0.8
        assert ducking.state is DuckingState.NORMAL

    def test_cancel_clears_pending_resume(self):
        output = playing_output()
        ducking = coordinator(output)
        ducking.on_vad(True, 0)
        ducking.tick(150)
        ducking.on_vad(False, 1000)

        ducking.cancel()
        ducking.tick(5000)

        assert ducking.resume_deadline is None
        assert output.volume == pytest.approx(0.2)


class TestAudioPlayback:
    def test_master_volume_applied(self):
        output = NullAudioOutput(volume=1.0)
        clock = ManualClock()
        playback = AudioPlayback(output, coordinator(output), clock, master_volume=0.9)

        assert output.volume == 0.9
        assert playback.volume == 0.9

    def test_volume_change_while_ducked_applies_on_resume(self):
        output = NullAudioOutput(volume=1.0)
        clock = ManualClock()
        ducking = coordinator(output)
        playback = AudioPlayback(output, ducking, clock, master_volume=0.8)
        playback.play("tts://hello")

        playback.duck()
        clock.advance(150)
        ducking.tick(clock.now_ms())

        playback.volume = 0.6
        assert playback.current_volume == pytest.approx(0.2)

        playback.resume()
        clock.advance(200)
        ducking.tick(clock.now_ms())
        assert playback.current_volume == pytest.approx(0.6)

    def test_resume_after_uses_clock(self):
        output = NullAudioOutput()
        clock = ManualClock(start_ms=1000)
        ducking = coordinator(output)
        playback = AudioPlayback(output, ducking, clock)
        playback.play("tts://hello")
        playback.duck()

        playback.resume_after(300)

        assert ducking.resume_deadline == 1300

    def test_stop_restores_volume(self):
        output = NullAudioOutput()
        clock = ManualClock()
        ducking = coordinator(output)
        playback = AudioPlayback(output, ducking, clock)
        playback.play("tts://hello")
        playback.duck()
        clock.advance(150)
        ducking.tick(clock.now_ms())
        playback.resume_after(300)

        playback.stop()

        assert not playback.is_playing
        assert ducking.resume_deadline is None
        assert ducking.state is DuckingState.NORMAL
        assert playback.current_volume == pytest.approx(0.9)

    def test_stop_during_resume_delay_leaves_next_utterance_loud(self):
        output = NullAudioOutput()
        clock = ManualClock()
        ducking = coordinator(output)
        playback = AudioPlayback(output, ducking, clock)
        playback.play("tts://first")
        ducking.on_vad(True, 0)
        ducking.tick(150)
        ducking.on_vad(False, 500)

        clock.set(700)
        playback.stop()
        clock.set(800)
        playback.play("tts://second")
        for now in range(800, 4800, 100):
            ducking.on_vad(False, now)
            ducking.tick(now)

        assert ducking.state is DuckingState.NORMAL
        assert playback.current_volume == pytest.approx(0.9)

    def test_speech_after_stop_ducks_the_next_utterance(self):
        output = NullAudioOutput()
        clock = ManualClock()
        ducking = coordinator(output)
        playback = AudioPlayback(output, ducking, clock)
        playback.play("tts://first")
        ducking.on_vad(True, 0)
        ducking.tick(150)
        playback.stop()

        playback.play("tts://second")
        ducking.on_vad(True, 200)
        ducking.tick(350)

        assert ducking.state is DuckingState.DUCKED
        assert playback.current_volume == pytest.approx(0.2)
        assert ducking.original_volume == pytest.approx(0.9)

    def test_unavailable_device(self):
        output = NullAudioOutput(available=False)

        with pytest.raises(AudioDeviceUnavailable):
            AudioPlayback(output, coordinator(output), ManualClock())
