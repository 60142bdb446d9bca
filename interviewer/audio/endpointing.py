import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from audio.recognizer import FragmentEvent


@dataclass
class PendingUtterance:
    finalized_text: str = ""
    interim_text: str = ""
    last_fragment_at: float = 0.0


class EndpointingBuffer:
    """Turns streaming recognizer fragments into whole utterances.

    Final fragments are concatenated; every fragment restarts the silence
    timer. When the timer fires with accumulated text, the utterance is
    emitted once and the buffer is cleared.
    """

    def __init__(self, on_utterance: Callable[[str], None], silence_timeout: float = 2.5):
        self.on_utterance = on_utterance
        self.silence_timeout = silence_timeout
        self._pending = PendingUtterance()
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def live_transcript(self) -> str:
        """What the candidate has said so far, including the unconfirmed tail."""
        return (self._pending.finalized_text + self._pending.interim_text).strip()

    @property
    def has_pending(self) -> bool:
        return bool(self._pending.finalized_text.strip())

    def feed(self, event: FragmentEvent) -> None:
        if event.is_final:
            self._pending.finalized_text += event.text.strip() + " "
            self._pending.interim_text = ""
        else:
            self._pending.interim_text = event.text
        self._pending.last_fragment_at = time.monotonic()

        self._cancel_timer()
        if self.has_pending:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.silence_timeout, self._finalize)

    def clear(self) -> None:
        """Drop any buffered speech (floor change or session end)."""
        self._cancel_timer()
        if self.has_pending:
            logger.debug("Discarding pending utterance: '{}'", self.live_transcript[:40])
        self._pending = PendingUtterance()

    def _finalize(self) -> None:
        self._timer = None
        text = self._pending.finalized_text.strip()
        self._pending = PendingUtterance()
        if text:
            logger.debug("Utterance finalized after silence: '{}'", text[:60])
            self.on_utterance(text)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
