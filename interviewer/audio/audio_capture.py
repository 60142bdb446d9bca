import numpy as np
from loguru import logger

from audio.errors import CaptureUnavailableError

# Whisper works best on 16kHz mono
SAMPLE_RATE = 16000
CHUNK_SIZE = 1600  # 100ms at 16kHz
# Native rates tried when the sound server will not resample for us
FALLBACK_RATES = (44100, 48000)


def rms(chunk: np.ndarray) -> float:
    """Root-mean-square energy of an int16 chunk."""
    if chunk.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(chunk.astype(np.float32) ** 2)))


class AudioCapture:
    """Blocking microphone reader returning 16kHz int16 chunks.

    The stream is opened at the target rate when the device allows it;
    otherwise at a native rate, with each chunk interpolated down.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, chunk_size: int = CHUNK_SIZE,
                 input_device: int | None = None):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.input_device = input_device
        self._pa = None
        self._stream = None
        self._device_rate = sample_rate

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def _frames_at(self, rate: int) -> int:
        return self.chunk_size * rate // self.sample_rate

    def open(self) -> None:
        """Open the input stream. Raises CaptureUnavailableError if no rate works."""
        if self._stream is not None:
            return
        try:
            import pyaudio
        except ImportError as e:
            raise CaptureUnavailableError("pyaudio not installed") from e

        self._pa = pyaudio.PyAudio()
        errors = []
        for rate in (self.sample_rate, *FALLBACK_RATES):
            try:
                self._stream = self._pa.open(
                    format=pyaudio.paInt16,
                    channels=1,
                    rate=rate,
                    input=True,
                    input_device_index=self.input_device,
                    frames_per_buffer=self._frames_at(rate),
                )
            except Exception as e:
                errors.append(f"{rate}Hz: {e}")
                continue
            self._device_rate = rate
            logger.info("Microphone open at {}Hz (delivering {}Hz).", rate, self.sample_rate)
            return

        self.close()
        raise CaptureUnavailableError("No usable microphone rate ({})".format("; ".join(errors)))

    def read_chunk(self) -> np.ndarray:
        """Blocking read of one chunk at the target rate. Run it in an executor."""
        if self._stream is None:
            raise CaptureUnavailableError("Microphone is not open")
        raw = self._stream.read(self._frames_at(self._device_rate), exception_on_overflow=False)
        samples = np.frombuffer(raw, dtype=np.int16)
        if self._device_rate == self.sample_rate:
            return samples
        positions = np.linspace(0, len(samples) - 1, self.chunk_size)
        return np.interp(positions, np.arange(len(samples)), samples).astype(np.int16)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except Exception as e:
                logger.debug("Error closing microphone stream: {}", e)
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
