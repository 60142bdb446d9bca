"""Speech-to-text engines and the events they emit.

A recognizer reports everything through one listener callback using the
event types below, so the capture channel never depends on engine-specific
callbacks.
"""
import asyncio
import io
import time
import wave
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np
from loguru import logger

from audio.audio_capture import SAMPLE_RATE, AudioCapture, rms
from audio.errors import CaptureUnavailableError

# Error codes. The first two are permanent, the rest are expected noise.
NOT_ALLOWED = "not-allowed"
AUDIO_CAPTURE = "audio-capture"
NO_SPEECH = "no-speech"
ABORTED = "aborted"
NETWORK = "network"


@dataclass(frozen=True)
class FragmentEvent:
    text: str
    is_final: bool


@dataclass(frozen=True)
class EndEvent:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    code: str
    detail: str = ""


RecognizerEvent = Union[FragmentEvent, EndEvent, ErrorEvent]
Listener = Callable[[RecognizerEvent], None]


class SpeechRecognizer(ABC):
    """Continuous speech-to-text engine with start/stop lifecycle."""

    def __init__(self, language: str = "en"):
        self.language = language
        self._listener: Optional[Listener] = None

    def set_listener(self, listener: Listener) -> None:
        self._listener = listener

    def emit(self, event: RecognizerEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    @abstractmethod
    def start(self) -> None:
        """Begin recognition. Raises CaptureUnavailableError if it cannot start."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop recognition. An EndEvent follows asynchronously."""
        ...


class WhisperRecognizer(SpeechRecognizer):
    """Microphone recognizer using energy-gated segments and the Whisper API.

    Audio is read from the microphone in an executor. When the RMS energy
    rises above the threshold a segment opens; after `segment_silence`
    seconds of quiet it is sent to Whisper and emitted as a final fragment.
    """

    def __init__(
        self,
        api_key: str,
        language: str = "en",
        capture: Optional[AudioCapture] = None,
        energy_threshold: float = 500.0,
        segment_silence: float = 0.8,
        no_speech_timeout: float = 8.0,
        max_segment: float = 30.0,
    ):
        super().__init__(language)
        self.api_key = api_key
        self.capture = capture or AudioCapture()
        self.energy_threshold = energy_threshold
        self.segment_silence = segment_silence
        self.no_speech_timeout = no_speech_timeout
        self.max_segment = max_segment
        self._client = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._run_id = 0

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)

    def start(self) -> None:
        if not self.api_key:
            raise CaptureUnavailableError("Speech recognition needs an OpenAI API key")
        # A stopping run may still hold the stream; the new run takes it over
        if not self.capture.is_open:
            self.capture.open()
        self._run_id += 1
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(self._run_id))

    def stop(self) -> None:
        self._running = False

    def _is_current(self, run_id: int) -> bool:
        return self._running and run_id == self._run_id

    async def _run(self, run_id: int):
        loop = asyncio.get_running_loop()
        frames: list[np.ndarray] = []
        speech_started = False
        quiet_time = 0.0
        segment_time = 0.0
        started_at = time.monotonic()
        heard_anything = False

        try:
            while self._is_current(run_id):
                try:
                    chunk = await loop.run_in_executor(None, self.capture.read_chunk)
                except Exception as e:
                    logger.error("Microphone read failed: {}", e)
                    self.emit(ErrorEvent(AUDIO_CAPTURE, str(e)))
                    break

                duration = len(chunk) / SAMPLE_RATE
                energy = rms(chunk)

                if energy >= self.energy_threshold:
                    speech_started = True
                    heard_anything = True
                    quiet_time = 0.0
                elif speech_started:
                    quiet_time += duration

                if speech_started:
                    frames.append(chunk)
                    segment_time += duration

                if speech_started and (quiet_time >= self.segment_silence
                                       or segment_time >= self.max_segment):
                    audio = np.concatenate(frames)
                    frames, speech_started, quiet_time, segment_time = [], False, 0.0, 0.0
                    await self._transcribe_segment(audio, run_id)
                elif not heard_anything and time.monotonic() - started_at >= self.no_speech_timeout:
                    self.emit(ErrorEvent(NO_SPEECH))
                    break
        finally:
            # A superseded run leaves the stream and the lifecycle to its successor
            if run_id == self._run_id:
                self._running = False
                self.capture.close()
                self.emit(EndEvent())

    async def _transcribe_segment(self, audio: np.ndarray, run_id: int) -> None:
        self._ensure_client()
        try:
            audio_file = io.BytesIO(self._to_wav(audio))
            audio_file.name = "segment.wav"
            response = await self._client.audio.transcriptions.create(
                model="whisper-1",
                file=audio_file,
                language="ar" if self.language.startswith("ar") else "en",
            )
            text = response.text.strip()
        except Exception as e:
            logger.warning("Whisper transcription failed: {}", e)
            self.emit(ErrorEvent(NETWORK, str(e)))
            return

        if text and self._is_current(run_id):
            logger.debug("Recognized segment: '{}'", text)
            self.emit(FragmentEvent(text=text, is_final=True))

    @staticmethod
    def _to_wav(audio: np.ndarray) -> bytes:
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(SAMPLE_RATE)
            wf.writeframes(audio.astype(np.int16).tobytes())
        return buf.getvalue()
