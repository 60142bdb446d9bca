import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from audio.capture import CaptureChannel
from audio.dedup import DedupGuard
from audio.endpointing import EndpointingBuffer
from audio.playback import PlaybackChannel, Tier
from core.config import TimingConfig
from core.state import FloorState

UtteranceHandler = Callable[[str], Awaitable[None]]


class TurnCoordinator:
    """Single owner of the floor.

    Capture and playback are only ever started from here, so at most one of
    them is active at a time. After every agent line the floor goes back to
    idle and listening resumes after the echo grace delay, whatever happened
    to the audio. Muted output pauses auto-listening unless listen_when_muted
    is set.
    """

    def __init__(
        self,
        capture: CaptureChannel,
        playback: PlaybackChannel,
        dedup: DedupGuard,
        timing: TimingConfig,
        is_interactive: Callable[[], bool] = lambda: True,
        listen_when_muted: bool = False,
    ):
        self.capture = capture
        self.playback = playback
        self.dedup = dedup
        self.timing = timing
        self.is_interactive = is_interactive
        self.listen_when_muted = listen_when_muted
        self.endpointing = EndpointingBuffer(self._on_utterance, timing.silence_timeout)

        # Set by the session state machine
        self.on_utterance: Optional[UtteranceHandler] = None

        self._floor = FloorState.IDLE
        self._auto_listen = True
        self._speak_lock = asyncio.Lock()
        self._resume_handle: Optional[asyncio.TimerHandle] = None
        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()

        capture.on_fragment = self.endpointing.feed
        capture.is_agent_speaking = self.is_agent_speaking
        capture.wants_capture = self.wants_capture
        capture.on_text_mode = self._on_text_mode
        playback.on_blocked = self._on_playback_blocked
        playback.on_unblocked = self._on_playback_unblocked

    @property
    def floor(self) -> FloorState:
        return self._floor

    @property
    def live_transcript(self) -> str:
        return self.endpointing.live_transcript

    @property
    def text_mode(self) -> bool:
        return self.capture.text_mode

    @property
    def auto_listen(self) -> bool:
        return self._auto_listen

    def is_agent_speaking(self) -> bool:
        return self._floor in (FloorState.SPEAKING, FloorState.PENDING_UNLOCK)

    def wants_capture(self) -> bool:
        return (self._floor == FloorState.LISTENING
                and self._auto_listen and self.is_interactive())

    def _set_floor(self, floor: FloorState) -> None:
        if floor != self._floor:
            logger.debug("Floor: {} -> {}", self._floor.value, floor.value)
            self._floor = floor

    # ── Listening ──

    def request_listen(self) -> bool:
        """Hand the floor to the candidate. No-op unless the floor is idle."""
        self._cancel_resume()
        if self._floor != FloorState.IDLE:
            return self._floor == FloorState.LISTENING
        if not self._auto_listen or self.capture.text_mode or not self.is_interactive():
            return False

        self._set_floor(FloorState.LISTENING)
        self.endpointing.clear()
        if not self.capture.start():
            self._set_floor(FloorState.IDLE)
            return False
        return True

    def _on_utterance(self, text: str) -> None:
        if self._floor != FloorState.LISTENING:
            logger.debug("Utterance outside listening dropped: '{}'", text[:40])
            return
        if not self.dedup.accept(text):
            return
        self.capture.stop()
        self._set_floor(FloorState.IDLE)
        self._dispatch(text)

    def submit_text(self, text: str) -> bool:
        """Typed answer. Same dedup and session path as spoken input."""
        if self.is_agent_speaking():
            logger.debug("Typed input while the agent speaks ignored.")
            return False
        if not self.dedup.accept(text):
            return False
        self._cancel_resume()
        self.capture.stop()
        self.endpointing.clear()
        self._set_floor(FloorState.IDLE)
        self._dispatch(text.strip())
        return True

    def _dispatch(self, text: str) -> None:
        if self.on_utterance is None:
            return
        task = asyncio.get_running_loop().create_task(self.on_utterance(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ── Speaking ──

    async def request_speak(self, text: str) -> Tier:
        """Speak one agent line, then schedule listening after the grace delay.

        Never raises. Lines are serialized; a newer line waits for the
        current one to finish.
        """
        async with self._speak_lock:
            epoch = self._epoch
            self._cancel_resume()
            self.capture.stop()
            self.endpointing.clear()
            self.dedup.note_agent_line(text)
            self._set_floor(FloorState.SPEAKING)
            tier = Tier.NONE
            try:
                tier = await self.playback.speak(text)
            except Exception as e:
                logger.error("Playback raised unexpectedly: {}", e)
            finally:
                self._set_floor(FloorState.IDLE)
                if epoch == self._epoch and self._resumes_after_speech():
                    self._schedule_resume()
            logger.debug("Agent line done via {} tier.", tier.value)
            return tier

    def _resumes_after_speech(self) -> bool:
        return not self.playback.muted or self.listen_when_muted

    def _schedule_resume(self) -> None:
        self._cancel_resume()
        loop = asyncio.get_running_loop()
        self._resume_handle = loop.call_later(self.timing.echo_resume_delay, self._resume)

    def _resume(self) -> None:
        self._resume_handle = None
        self.request_listen()

    def _cancel_resume(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    def _on_playback_blocked(self) -> None:
        if self._floor == FloorState.SPEAKING:
            self._set_floor(FloorState.PENDING_UNLOCK)

    def _on_playback_unblocked(self) -> None:
        if self._floor == FloorState.PENDING_UNLOCK:
            self._set_floor(FloorState.SPEAKING)

    # ── Controls ──

    async def unlock_audio(self) -> bool:
        return await self.playback.unlock()

    async def enable_audio(self) -> bool:
        return await self.playback.enable_audio()

    def set_muted(self, muted: bool) -> None:
        """Mute toggle. Unmuting while idle hands the floor back to the candidate."""
        self.playback.muted = muted
        if not muted and self._floor == FloorState.IDLE:
            self.request_listen()

    def set_auto_listen(self, enabled: bool) -> None:
        """Microphone toggle. Off stops capture; on resumes it when idle."""
        self._auto_listen = enabled
        if not enabled:
            self._cancel_resume()
            self.capture.stop()
            self.endpointing.clear()
            if self._floor == FloorState.LISTENING:
                self._set_floor(FloorState.IDLE)
        elif self._floor == FloorState.IDLE:
            self.request_listen()

    def _on_text_mode(self) -> None:
        self.endpointing.clear()
        if self._floor == FloorState.LISTENING:
            self._set_floor(FloorState.IDLE)

    async def abort_all(self) -> None:
        """Hard reset: stop capture, abort playback, drop timers and pending speech."""
        self._epoch += 1
        self._cancel_resume()
        self.capture.stop()
        self.endpointing.clear()
        await self.playback.abort()
        self._set_floor(FloorState.IDLE)

    def reset(self) -> None:
        """Start-of-session reset of the floor and the input guards."""
        self._cancel_resume()
        self.capture.reset()
        self.endpointing.clear()
        self.dedup.reset()
        self._auto_listen = True
        self._set_floor(FloorState.IDLE)
