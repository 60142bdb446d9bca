"""Tests for the turn coordinator (floor ownership)."""
import asyncio

import pytest

from audio.errors import CaptureUnavailableError
from audio.playback import Tier
from core.state import FloorState
from conftest import FAST_TIMING, FakeRecognizer, FakeSink, FakeVoice, make_stack, wait_for


def collecting(turns) -> list[str]:
    received = []

    async def handler(text):
        received.append(text)

    turns.on_utterance = handler
    return received


class TestFloor:
    @pytest.mark.asyncio
    async def test_listens_after_grace_delay(self):
        s = make_stack(remote=FakeVoice(), sink=FakeSink(play_time=0.02))
        tier = await s.turns.request_speak("Hi, how are you?")
        assert tier == Tier.REMOTE
        assert s.turns.floor == FloorState.IDLE
        assert not s.recognizer.running

        assert await wait_for(lambda: s.turns.floor == FloorState.LISTENING)
        assert s.recognizer.running

    @pytest.mark.asyncio
    async def test_capture_and_playback_never_overlap(self):
        s = make_stack(remote=FakeVoice(), sink=FakeSink(play_time=0.03))
        collecting(s.turns)
        assert s.turns.request_listen()
        for line in ("First line here.", "Second line here.", "Third line here."):
            await s.turns.request_speak(line)
            await wait_for(lambda: s.turns.floor == FloorState.LISTENING)
        assert s.sink.overlaps == 0
        assert s.recognizer.overlaps == 0

    @pytest.mark.asyncio
    async def test_concurrent_lines_are_serialized(self):
        s = make_stack(remote=FakeVoice(), sink=FakeSink(play_time=0.02))
        results = await asyncio.gather(
            s.turns.request_speak("One line."),
            s.turns.request_speak("Another line."),
        )
        assert results == [Tier.REMOTE, Tier.REMOTE]
        assert len(s.sink.played) == 2
        assert s.recognizer.overlaps == 0

    @pytest.mark.asyncio
    async def test_every_tier_failing_still_returns_to_listening(self):
        s = make_stack(remote=FakeVoice(fail=True), local=FakeVoice(fail=True))
        assert await s.turns.request_speak("Hello?") == Tier.NONE
        assert await wait_for(lambda: s.turns.floor == FloorState.LISTENING,
                              timeout=FAST_TIMING.echo_resume_delay + 0.2)

    @pytest.mark.asyncio
    async def test_stays_idle_outside_interactive_phases(self):
        s = make_stack()
        s.turns.is_interactive = lambda: False
        await s.turns.request_speak("Goodbye!")
        await asyncio.sleep(FAST_TIMING.echo_resume_delay * 3)
        assert s.turns.floor == FloorState.IDLE
        assert s.recognizer.starts == 0

    @pytest.mark.asyncio
    async def test_pending_unlock_while_blocked(self):
        sink = FakeSink(require_unlock=True, allow_unlock=False)
        s = make_stack(sink=sink, remote=FakeVoice())
        task = asyncio.create_task(s.turns.request_speak("Hello there."))
        assert await wait_for(lambda: s.turns.floor == FloorState.PENDING_UNLOCK)
        assert not s.turns.request_listen()

        sink.allow_unlock = True
        await s.turns.enable_audio()
        assert await task == Tier.REMOTE
        assert await wait_for(lambda: s.turns.floor == FloorState.LISTENING)

    @pytest.mark.asyncio
    async def test_muted_output_pauses_listening(self):
        s = make_stack(remote=FakeVoice(), muted=True)
        assert await s.turns.request_speak("Silent line.") == Tier.NONE
        await asyncio.sleep(FAST_TIMING.echo_resume_delay * 3)
        assert s.turns.floor == FloorState.IDLE

        s.turns.set_muted(False)
        assert s.turns.floor == FloorState.LISTENING

    @pytest.mark.asyncio
    async def test_listen_when_muted_option(self):
        s = make_stack(muted=True)
        s.turns.listen_when_muted = True
        await s.turns.request_speak("Silent line.")
        assert await wait_for(lambda: s.turns.floor == FloorState.LISTENING)

    @pytest.mark.asyncio
    async def test_listen_is_noop_unless_idle(self):
        s = make_stack(sink=FakeSink(play_time=0.05), remote=FakeVoice())
        task = asyncio.create_task(s.turns.request_speak("Wait for me."))
        assert await wait_for(lambda: s.turns.floor == FloorState.SPEAKING)
        assert not s.turns.request_listen()
        assert not s.recognizer.running
        await task


class TestUtterances:
    @pytest.mark.asyncio
    async def test_utterance_delivered_once_after_silence(self, stack):
        received = collecting(stack.turns)
        stack.turns.request_listen()
        stack.recognizer.say("I studied computer")
        stack.recognizer.say("science at university")
        assert await wait_for(lambda: received)
        assert received == ["I studied computer science at university"]
        assert stack.turns.floor == FloorState.IDLE
        assert not stack.capture.is_active

    @pytest.mark.asyncio
    async def test_echo_of_agent_line_is_dropped(self, stack):
        received = collecting(stack.turns)
        await stack.turns.request_speak("Tell me about a challenge you faced at work.")
        assert await wait_for(lambda: stack.turns.floor == FloorState.LISTENING)

        stack.recognizer.say("tell me about a challenge you faced at work")
        await asyncio.sleep(FAST_TIMING.silence_timeout * 3)
        assert received == []
        assert stack.turns.floor == FloorState.LISTENING

    @pytest.mark.asyncio
    async def test_typed_answer_goes_through_dedup(self, stack):
        received = collecting(stack.turns)
        assert stack.turns.submit_text("I led a team of five engineers")
        assert not stack.turns.submit_text("I led a team of five engineers")
        await asyncio.sleep(0)
        assert received == ["I led a team of five engineers"]

    @pytest.mark.asyncio
    async def test_microphone_failure_leaves_typed_input(self):
        s = make_stack(recognizer=FakeRecognizer(start_error=CaptureUnavailableError("denied")))
        received = collecting(s.turns)
        assert not s.turns.request_listen()
        assert s.turns.text_mode
        assert s.turns.floor == FloorState.IDLE
        assert s.turns.submit_text("typing instead")
        await asyncio.sleep(0)
        assert received == ["typing instead"]

    @pytest.mark.asyncio
    async def test_mic_toggle(self, stack):
        stack.turns.request_listen()
        stack.turns.set_auto_listen(False)
        assert stack.turns.floor == FloorState.IDLE
        assert not stack.recognizer.running
        stack.turns.set_auto_listen(True)
        assert stack.turns.floor == FloorState.LISTENING


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_during_speech_cancels_resume(self):
        s = make_stack(remote=FakeVoice(), sink=FakeSink(play_time=0.2))
        task = asyncio.create_task(s.turns.request_speak("A long sentence."))
        assert await wait_for(lambda: s.sink.playing)
        await s.turns.abort_all()
        await task
        await asyncio.sleep(FAST_TIMING.echo_resume_delay * 3)
        assert s.turns.floor == FloorState.IDLE
        assert s.recognizer.starts == 0
        assert s.sink.stops == 1

    @pytest.mark.asyncio
    async def test_abort_discards_pending_utterance(self, stack):
        received = collecting(stack.turns)
        stack.turns.request_listen()
        stack.recognizer.say("half an answer")
        await stack.turns.abort_all()
        await asyncio.sleep(FAST_TIMING.silence_timeout * 3)
        assert received == []
        assert stack.turns.live_transcript == ""
