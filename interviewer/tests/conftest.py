"""Fakes for the device and provider seams, plus a wired-up test stack."""
import asyncio
import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from audio.capture import CaptureChannel
from audio.dedup import DedupGuard
from audio.errors import PlaybackBlockedError, VoiceUnavailableError
from audio.playback import PlaybackChannel
from audio.recognizer import EndEvent, ErrorEvent, FragmentEvent, SpeechRecognizer
from core.config import TimingConfig
from core.notices import NoticeBoard
from core.session import InterviewSession
from core.turns import TurnCoordinator
from llm.base import BaseLLM, ContentUnavailableError
from llm.credits import CreditGate
from llm.gateway import ContentGateway

FAST_TIMING = TimingConfig(
    silence_timeout=0.05,
    echo_resume_delay=0.02,
    capture_restart_delay=0.01,
    duplicate_window=3.0,
    echo_min_chars=8,
    unlock_wait=0.2,
)


class FakeRecognizer(SpeechRecognizer):
    def __init__(self, start_error: Exception | None = None):
        super().__init__("en")
        self.start_error = start_error
        self.running = False
        self.starts = 0
        self.stops = 0
        self.sink = None  # Set when wired, to check exclusivity
        self.overlaps = 0

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        if self.sink is not None and self.sink.playing:
            self.overlaps += 1
        self.running = True
        self.starts += 1

    def stop(self) -> None:
        self.running = False
        self.stops += 1

    def say(self, text: str, is_final: bool = True) -> None:
        self.emit(FragmentEvent(text=text, is_final=is_final))

    def fail(self, code: str) -> None:
        self.emit(ErrorEvent(code))

    def end(self) -> None:
        self.running = False
        self.emit(EndEvent())


class FakeSink:
    def __init__(self, require_unlock: bool = False, allow_unlock: bool = True,
                 play_time: float = 0.0, error: Exception | None = None):
        self.unlocked = not require_unlock
        self.allow_unlock = allow_unlock
        self.play_time = play_time
        self.error = error
        self.played: list[Path] = []
        self.playing = False
        self.stops = 0
        self.recognizer = None
        self.overlaps = 0

    async def unlock(self) -> bool:
        if self.allow_unlock:
            self.unlocked = True
        return self.unlocked

    async def play(self, path: Path) -> None:
        if not self.unlocked:
            raise PlaybackBlockedError("blocked until a user gesture")
        if self.error is not None:
            raise self.error
        assert path.exists()
        if self.recognizer is not None and self.recognizer.running:
            self.overlaps += 1
        self.playing = True
        try:
            self.played.append(path)
            await asyncio.sleep(self.play_time)
        finally:
            self.playing = False

    async def stop(self) -> None:
        self.stops += 1
        self.playing = False


class FakeVoice:
    """Stands in for RemoteVoice and LocalVoice."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, text: str, voice: str = "") -> bytes:
        self.calls.append((text, voice))
        if self.fail:
            raise VoiceUnavailableError("voice offline")
        return b"RIFF0000WAVEfmt "


class FakeProvider(BaseLLM):
    """Answers each content operation from canned replies, or fails."""

    def __init__(self, fail: bool = False, questions=None, score=7, summary="Solid interview."):
        self.fail = fail
        self.questions = questions if questions is not None else [
            {"question": "Describe a project you led.", "category": "experience"},
            {"question": "How do you handle conflict?", "category": "behavioral"},
            {"question": "What would you improve in your last team?", "category": "situational"},
        ]
        self.score = score
        self.summary = summary
        self.calls: list[str] = []

    async def complete(self, messages, max_tokens=400, temperature=0.7, json_mode=False) -> str:
        system = messages[0]["content"]
        user = messages[-1]["content"] if len(messages) > 1 else ""
        if "Generate" in user and "interview questions" in user:
            operation = "questions"
        elif "Evaluate the answer" in user:
            operation = "evaluation"
        elif "Summarize" in system:
            operation = "summary"
        else:
            operation = "transition"
        self.calls.append(operation)
        if self.fail:
            raise ContentUnavailableError("service down")

        if operation == "questions":
            return json.dumps({"questions": self.questions})
        if operation == "evaluation":
            return json.dumps({"score": self.score, "strengths": ["clear"], "improvements": ["metrics"]})
        if operation == "summary":
            return json.dumps({"summary": self.summary, "topStrength": "clarity",
                               "topImprovement": "numbers"})
        return "Good answer. Next one."


async def wait_for(predicate, timeout: float = 1.0) -> bool:
    """Poll the event loop until `predicate()` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.005)
    return True


def make_stack(recognizer=None, sink=None, remote=None, local=None, provider=None,
               credits=None, muted=False, timing=FAST_TIMING):
    """Wire capture, playback, dedup, coordinator, gateway and session around fakes."""
    notices = NoticeBoard("en")
    recognizer = recognizer or FakeRecognizer()
    sink = sink or FakeSink()
    recognizer.sink = sink
    sink.recognizer = recognizer

    capture = CaptureChannel(recognizer, notices, restart_delay=timing.capture_restart_delay)
    playback = PlaybackChannel(
        sink=sink, notices=notices, remote=remote, local=local,
        unlock_wait=timing.unlock_wait, muted=muted,
    )
    dedup = DedupGuard(duplicate_window=timing.duplicate_window, echo_min_chars=timing.echo_min_chars)
    turns = TurnCoordinator(capture, playback, dedup, timing)
    gateway = ContentGateway(provider, credits or CreditGate(), notices)
    session = InterviewSession(turns, gateway, notices)
    return SimpleNamespace(
        notices=notices, recognizer=recognizer, sink=sink, capture=capture,
        playback=playback, dedup=dedup, turns=turns, gateway=gateway, session=session,
    )


@pytest.fixture
def stack():
    return make_stack()

