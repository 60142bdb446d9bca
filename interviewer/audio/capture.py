import asyncio
from typing import Callable, Optional

from loguru import logger

from audio.errors import CaptureUnavailableError
from audio.recognizer import (
    ABORTED, AUDIO_CAPTURE, NO_SPEECH, NOT_ALLOWED,
    EndEvent, ErrorEvent, FragmentEvent, RecognizerEvent, SpeechRecognizer,
)
from core.notices import NoticeBoard

# Errors that mean the microphone is gone for good
PERMANENT_ERRORS = {NOT_ALLOWED, AUDIO_CAPTURE}
# Errors the engine raises in normal operation
EXPECTED_ERRORS = {NO_SPEECH, ABORTED}


class CaptureChannel:
    """Owns the speech recognizer lifecycle.

    Fragments are forwarded only while the channel is active and the agent
    is not speaking; late events from a stopped engine are dropped. An
    unexpected end restarts the engine after a short delay when the floor
    still wants capture. Permission or device errors switch the session to
    typed input permanently.
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        notices: NoticeBoard,
        restart_delay: float = 0.1,
    ):
        self.recognizer = recognizer
        self.notices = notices
        self.restart_delay = restart_delay
        self.recognizer.set_listener(self.handle_event)

        # Wired by the turn coordinator
        self.on_fragment: Callable[[FragmentEvent], None] = lambda event: None
        self.is_agent_speaking: Callable[[], bool] = lambda: False
        self.wants_capture: Callable[[], bool] = lambda: False
        self.on_text_mode: Callable[[], None] = lambda: None

        self._active = False
        self._suppress_resume = False
        self._text_mode = False
        self._restart_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def text_mode(self) -> bool:
        """True once the microphone failed; typed input for the rest of the session."""
        return self._text_mode

    def start(self) -> bool:
        """Start the engine. Returns False if capture is unavailable."""
        if self._text_mode:
            return False
        if self._active:
            return True
        self._cancel_restart()
        self._suppress_resume = False
        try:
            self.recognizer.start()
        except CaptureUnavailableError as e:
            logger.warning("Speech capture unavailable: {}", e)
            self._enter_text_mode()
            return False
        except Exception as e:
            logger.warning("Speech capture failed to start: {}", e)
            self._enter_text_mode()
            return False
        self._active = True
        logger.debug("Capture started.")
        return True

    def stop(self, suppress_resume: bool = True) -> None:
        self._suppress_resume = suppress_resume
        self._cancel_restart()
        if not self._active:
            return
        self._active = False
        try:
            self.recognizer.stop()
        except Exception as e:
            logger.debug("Error stopping recognizer: {}", e)
        logger.debug("Capture stopped.")

    def reset(self) -> None:
        """Forget the text-mode fallback (new session)."""
        self.stop()
        self._text_mode = False

    def handle_event(self, event: RecognizerEvent) -> None:
        if isinstance(event, FragmentEvent):
            if not self._active or self.is_agent_speaking():
                logger.debug("Dropping stray fragment: '{}'", event.text[:40])
                return
            self.on_fragment(event)
        elif isinstance(event, ErrorEvent):
            self._handle_error(event)
        elif isinstance(event, EndEvent):
            self._handle_end()

    def _handle_error(self, event: ErrorEvent) -> None:
        if event.code in PERMANENT_ERRORS:
            logger.warning("Microphone error '{}': {}", event.code, event.detail)
            self._active = False
            self._enter_text_mode()
        elif event.code in EXPECTED_ERRORS:
            logger.debug("Recognizer reported '{}'.", event.code)
        else:
            logger.info("Transient recognizer error '{}': {}", event.code, event.detail)

    def _handle_end(self) -> None:
        was_active = self._active
        self._active = False
        if self._text_mode or self._suppress_resume:
            return
        if not was_active or not self.wants_capture():
            return
        logger.debug("Recognizer ended unexpectedly; restarting in {}s.", self.restart_delay)
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self.restart_delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if self._suppress_resume or not self.wants_capture():
            return
        self.start()

    def _enter_text_mode(self) -> None:
        if self._text_mode:
            return
        self._text_mode = True
        self._cancel_restart()
        self.notices.show("microphone")
        self.on_text_mode()

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
