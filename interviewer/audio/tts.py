import asyncio
import io
import wave
from pathlib import Path
from typing import Optional

import numpy as np
from loguru import logger

from audio.errors import VoiceUnavailableError
from llm.credits import CreditGate


class RemoteVoice:
    """Synthesized interviewer voice from the OpenAI speech API.

    Returns complete WAV bytes; any failure (no key, quota, network, empty
    response) raises VoiceUnavailableError so the caller can drop to the
    local voice.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "tts-1-hd",
        speed: float = 0.95,
        credit_gate: Optional[CreditGate] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.speed = speed
        self.credit_gate = credit_gate
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)

    async def synthesize(self, text: str, voice_id: str = "nova") -> bytes:
        if not text or not text.strip():
            raise VoiceUnavailableError("Nothing to synthesize")
        if not self.api_key:
            raise VoiceUnavailableError("OpenAI API key not configured")
        if self.credit_gate is not None and not self.credit_gate.try_spend("synthesize-speech"):
            raise VoiceUnavailableError("Out of credits for speech synthesis")

        self._ensure_client()
        try:
            response = await self._client.audio.speech.create(
                model=self.model,
                voice=voice_id,
                input=text,
                speed=self.speed,
                response_format="wav",
            )
            audio = response.content
        except Exception as e:
            raise VoiceUnavailableError(f"Speech API error: {e}") from e

        if not audio:
            raise VoiceUnavailableError("Speech API returned no audio")
        logger.debug("Remote TTS: {} bytes for '{}'", len(audio), text[:50])
        return audio


class LocalVoice:
    """On-device text-to-speech using Piper.

    One voice model per interview language, loaded on first use.
    """

    def __init__(self, model_dir: Path, voices: dict[str, str], sample_rate: int = 22050):
        self.model_dir = model_dir
        self.voices = voices
        self.sample_rate = sample_rate
        self._loaded: dict[str, object] = {}

    def _load_sync(self, voice: str):
        if voice in self._loaded:
            return self._loaded[voice]
        try:
            from piper import PiperVoice
        except ImportError as e:
            raise VoiceUnavailableError("piper-tts not installed") from e

        model_path = self.model_dir / f"{voice}.onnx"
        config_path = self.model_dir / f"{voice}.onnx.json"
        if not model_path.exists():
            raise VoiceUnavailableError(f"Piper voice model not found at {model_path}")

        piper = PiperVoice.load(str(model_path), config_path=str(config_path))
        self._loaded[voice] = piper
        logger.info("Piper TTS loaded: {}", voice)
        return piper

    async def synthesize(self, text: str, language: str = "en") -> bytes:
        if not text or not text.strip():
            raise VoiceUnavailableError("Nothing to synthesize")
        voice = self.voices.get(language) or self.voices.get("en")
        if not voice:
            raise VoiceUnavailableError(f"No local voice for '{language}'")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._synthesize_sync, text, voice)

    def _synthesize_sync(self, text: str, voice: str) -> bytes:
        piper = self._load_sync(voice)

        # Piper yields AudioChunk objects with float32 samples in [-1, 1]
        all_audio = [
            (chunk.audio_float_array * 32767).astype(np.int16)
            for chunk in piper.synthesize(text)
        ]
        if not all_audio:
            raise VoiceUnavailableError(f"Piper produced no audio for '{text[:50]}'")

        return pcm_to_wav(np.concatenate(all_audio), self.sample_rate)


def pcm_to_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)  # 16-bit
        wav.setframerate(sample_rate)
        wav.writeframes(samples.astype(np.int16).tobytes())
    return buf.getvalue()


def silent_wav(duration: float = 0.05, sample_rate: int = 22050) -> bytes:
    """A short silent clip used to probe (unlock) the output device."""
    return pcm_to_wav(np.zeros(int(duration * sample_rate), dtype=np.int16), sample_rate)
