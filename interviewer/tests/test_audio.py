"""Tests for the audio turn-taking components."""
import asyncio
from pathlib import Path

import numpy as np
import pytest

from audio.audio_capture import AudioCapture, rms
from audio.audio_player import AudioSink
from audio.dedup import DedupGuard, normalize
from audio.endpointing import EndpointingBuffer
from audio.errors import CaptureUnavailableError, PlaybackBlockedError, PlaybackError
from audio.playback import AudioAsset, Tier
from audio.recognizer import FragmentEvent
from conftest import FAST_TIMING, FakeRecognizer, FakeSink, FakeVoice, make_stack, wait_for


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestNormalize:
    def test_case_and_punctuation(self):
        assert normalize("  Tell me, about IT! ") == "tell me about it"

    def test_arabic_diacritics_and_letter_variants(self):
        assert normalize("مَرْحَباً") == normalize("مرحبا")
        assert normalize("إدارة") == normalize("ادارة")
        assert normalize("ـمرحباـ") == normalize("مرحبا")


class TestDedupGuard:
    def test_echo_of_agent_line_rejected(self):
        guard = DedupGuard()
        guard.note_agent_line("Tell me about a challenge you faced at work.")
        assert not guard.accept("tell me about a challenge you faced at work")

    def test_partial_echo_rejected(self):
        guard = DedupGuard()
        guard.note_agent_line("Great. Tell me about a challenge you faced at work.")
        assert not guard.accept("a challenge you faced")

    def test_short_reply_not_treated_as_echo(self):
        guard = DedupGuard()
        guard.note_agent_line("How are you doing today?")
        assert guard.accept("today")

    def test_duplicate_within_window(self):
        clock = FakeClock()
        guard = DedupGuard(duplicate_window=3.0, clock=clock)
        assert guard.accept("I led a team of five engineers")
        clock.now += 1.0
        assert not guard.accept("I led a team of five engineers")

    def test_duplicate_after_window_accepted(self):
        clock = FakeClock()
        guard = DedupGuard(duplicate_window=3.0, clock=clock)
        assert guard.accept("Yes")
        clock.now += 5.0
        assert guard.accept("Yes")

    def test_empty_rejected(self):
        guard = DedupGuard()
        assert not guard.accept("")
        assert not guard.accept("   ")

    def test_punctuation_only_rejected(self):
        guard = DedupGuard()
        assert not guard.accept("...")
        assert not guard.accept(" ؟ ! ")
        assert guard.accept("Yes.")

    def test_reset_forgets_agent_line(self):
        guard = DedupGuard()
        guard.note_agent_line("Tell me about yourself please")
        guard.reset()
        assert guard.accept("tell me about yourself please")


class TestEndpointingBuffer:
    @pytest.mark.asyncio
    async def test_fragments_joined_after_silence(self):
        utterances = []
        buffer = EndpointingBuffer(utterances.append, silence_timeout=0.05)
        buffer.feed(FragmentEvent("I led a team", is_final=True))
        buffer.feed(FragmentEvent("of five", is_final=False))
        buffer.feed(FragmentEvent("of five engineers", is_final=True))
        assert buffer.live_transcript == "I led a team of five engineers"

        await asyncio.sleep(0.1)
        assert utterances == ["I led a team of five engineers"]
        assert not buffer.has_pending

    @pytest.mark.asyncio
    async def test_each_fragment_restarts_timer(self):
        utterances = []
        buffer = EndpointingBuffer(utterances.append, silence_timeout=0.08)
        buffer.feed(FragmentEvent("first", is_final=True))
        await asyncio.sleep(0.05)
        buffer.feed(FragmentEvent("second", is_final=True))
        await asyncio.sleep(0.05)
        assert utterances == []
        await asyncio.sleep(0.08)
        assert utterances == ["first second"]

    @pytest.mark.asyncio
    async def test_interim_only_never_emits(self):
        utterances = []
        buffer = EndpointingBuffer(utterances.append, silence_timeout=0.02)
        buffer.feed(FragmentEvent("maybe", is_final=False))
        await asyncio.sleep(0.05)
        assert utterances == []
        assert buffer.live_transcript == "maybe"

    @pytest.mark.asyncio
    async def test_clear_discards_pending(self):
        utterances = []
        buffer = EndpointingBuffer(utterances.append, silence_timeout=0.02)
        buffer.feed(FragmentEvent("half a sentence", is_final=True))
        buffer.clear()
        await asyncio.sleep(0.05)
        assert utterances == []


class TestCaptureChannel:
    @pytest.mark.asyncio
    async def test_permission_error_switches_to_text_mode_once(self, stack):
        stack.capture.start()
        stack.recognizer.fail("not-allowed")
        assert stack.capture.text_mode
        assert not stack.capture.is_active
        assert not stack.capture.start()
        stack.recognizer.fail("audio-capture")
        assert [n.category for n in stack.notices.notices] == ["microphone"]

    @pytest.mark.asyncio
    async def test_start_failure_switches_to_text_mode(self):
        s = make_stack(recognizer=FakeRecognizer(start_error=CaptureUnavailableError("no mic")))
        assert not s.capture.start()
        assert s.capture.text_mode
        assert s.notices.was_shown("microphone")

    @pytest.mark.asyncio
    async def test_expected_errors_ignored(self, stack):
        stack.capture.start()
        stack.recognizer.fail("no-speech")
        stack.recognizer.fail("aborted")
        assert not stack.capture.text_mode
        assert stack.notices.notices == []

    @pytest.mark.asyncio
    async def test_unexpected_end_restarts_when_wanted(self, stack):
        stack.capture.wants_capture = lambda: True
        stack.capture.start()
        stack.recognizer.end()
        assert await wait_for(lambda: stack.recognizer.starts == 2)
        assert stack.capture.is_active

    @pytest.mark.asyncio
    async def test_no_restart_after_deliberate_stop(self, stack):
        stack.capture.wants_capture = lambda: True
        stack.capture.start()
        stack.capture.stop()
        stack.recognizer.end()
        await asyncio.sleep(0.05)
        assert stack.recognizer.starts == 1

    @pytest.mark.asyncio
    async def test_fragments_dropped_while_agent_speaks(self, stack):
        received = []
        stack.capture.on_fragment = received.append
        stack.capture.start()
        stack.capture.is_agent_speaking = lambda: True
        stack.recognizer.say("hello")
        stack.capture.is_agent_speaking = lambda: False
        stack.recognizer.say("hello again")
        assert [e.text for e in received] == ["hello again"]


class TestAudioCapture:
    def test_rms(self):
        assert rms(np.zeros(160, dtype=np.int16)) == 0.0
        assert rms(np.full(160, 1000, dtype=np.int16)) == pytest.approx(1000.0)
        assert rms(np.array([], dtype=np.int16)) == 0.0

    def test_read_before_open(self):
        with pytest.raises(CaptureUnavailableError):
            AudioCapture().read_chunk()


class TestAudioAsset:
    def test_released_exactly_once(self):
        asset = AudioAsset(Tier.REMOTE, b"data")
        assert asset.path.exists()
        assert asset.release()
        assert not asset.path.exists()
        assert not asset.release()
        assert asset.released


def sink_failing_with(error) -> AudioSink:
    sink = AudioSink(require_unlock=True)

    async def failing_play(path):
        raise error

    sink._play = failing_play
    return sink


class TestAudioSink:
    @pytest.mark.asyncio
    async def test_refused_unlock_keeps_sink_locked(self):
        sink = sink_failing_with(PlaybackBlockedError("access denied"))
        assert not await sink.unlock()
        assert not sink.unlocked
        with pytest.raises(PlaybackBlockedError):
            await sink.play(Path("line.wav"))

    @pytest.mark.asyncio
    async def test_broken_device_is_not_a_gesture_block(self):
        sink = sink_failing_with(PlaybackError("paplay not found"))
        assert not await sink.unlock()
        assert sink.unlocked
        with pytest.raises(PlaybackError) as exc:
            await sink.play(Path("line.wav"))
        assert not isinstance(exc.value, PlaybackBlockedError)

    @pytest.mark.asyncio
    async def test_broken_device_falls_through_tiers_without_waiting(self):
        sink = sink_failing_with(PlaybackError("paplay exited with 1"))
        s = make_stack(sink=sink, remote=FakeVoice(), local=FakeVoice(),
                       timing=FAST_TIMING.model_copy(update={"unlock_wait": 5.0}))
        await s.playback.unlock()

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await s.playback.speak("Hello there") == Tier.NONE
        assert loop.time() - started < 1.0
        assert not s.playback.waiting_for_unlock
        assert s.notices.was_shown("voice")
        assert not s.notices.was_shown("audio")


class TestPlaybackChannel:
    @pytest.mark.asyncio
    async def test_remote_tier_plays_and_releases(self):
        s = make_stack(remote=FakeVoice(), local=FakeVoice())
        tier = await s.playback.speak("Hello there")
        assert tier == Tier.REMOTE
        assert len(s.sink.played) == 1
        assert not s.sink.played[0].exists()

    @pytest.mark.asyncio
    async def test_falls_back_to_local_voice(self):
        local = FakeVoice()
        s = make_stack(remote=FakeVoice(fail=True), local=local)
        tier = await s.playback.speak("Hello there")
        assert tier == Tier.LOCAL
        assert local.calls == [("Hello there", "en")]
        assert s.notices.was_shown("voice")

    @pytest.mark.asyncio
    async def test_all_tiers_fail_resolves_silently(self):
        s = make_stack(remote=FakeVoice(fail=True), local=FakeVoice(fail=True))
        assert await s.playback.speak("Hello there") == Tier.NONE

    @pytest.mark.asyncio
    async def test_playback_error_moves_to_next_tier(self):
        s = make_stack(sink=FakeSink(error=PlaybackError("decode error")),
                       remote=FakeVoice(), local=FakeVoice())
        assert await s.playback.speak("Hello there") == Tier.NONE
        # Both assets were cleaned up even though neither played
        assert s.playback._current is None

    @pytest.mark.asyncio
    async def test_muted_skips_synthesis(self):
        remote = FakeVoice()
        s = make_stack(remote=remote, muted=True)
        assert await s.playback.speak("Hello there") == Tier.NONE
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_blocked_playback_resumes_after_enable(self):
        sink = FakeSink(require_unlock=True, allow_unlock=False)
        s = make_stack(sink=sink, remote=FakeVoice())
        task = asyncio.create_task(s.playback.speak("Hello there"))
        assert await wait_for(lambda: s.playback.waiting_for_unlock)
        assert s.notices.was_shown("audio")

        sink.allow_unlock = True
        assert await s.playback.enable_audio()
        assert await task == Tier.REMOTE
        assert len(sink.played) == 1
        assert not sink.played[0].exists()

    @pytest.mark.asyncio
    async def test_blocked_playback_gives_up_after_wait(self):
        sink = FakeSink(require_unlock=True, allow_unlock=False)
        s = make_stack(sink=sink, remote=FakeVoice(), local=FakeVoice())
        assert await s.playback.speak("Hello there") == Tier.NONE
        assert not s.playback.waiting_for_unlock
        assert sink.played == []

    @pytest.mark.asyncio
    async def test_abort_while_waiting_for_unlock(self):
        sink = FakeSink(require_unlock=True, allow_unlock=False)
        local = FakeVoice()
        s = make_stack(sink=sink, remote=FakeVoice(), local=local)
        task = asyncio.create_task(s.playback.speak("Hello there"))
        assert await wait_for(lambda: s.playback.waiting_for_unlock)
        await s.playback.abort()
        assert await task == Tier.NONE
        assert local.calls == []
