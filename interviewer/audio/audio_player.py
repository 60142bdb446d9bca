import asyncio
import subprocess
import tempfile
from pathlib import Path

from loguru import logger

from audio.errors import PlaybackBlockedError, PlaybackError
from audio.tts import silent_wav

# paplay messages meaning the sound server refused us rather than the file being bad
_BLOCKED_MARKERS = ("connection refused", "access denied", "connection failure", "not authorized")


class AudioSink:
    """Plays WAV files through PipeWire/PulseAudio (paplay).

    When `require_unlock` is set the sink refuses to play until `unlock()`
    has succeeded once, mirroring output devices that need a user gesture
    before audio is allowed.
    """

    def __init__(self, require_unlock: bool = True, timeout: float = 60.0):
        self.require_unlock = require_unlock
        self.timeout = timeout
        self._unlocked = not require_unlock
        self._current_process: subprocess.Popen | None = None
        self._stopped = False

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    async def unlock(self) -> bool:
        """Play a silent probe clip. Returns True if the device accepted it.

        Only a refusal keeps the sink locked. Any other probe failure means
        the device itself is broken, so `play()` reports that error directly.
        """
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=True) as tmp:
            tmp.write(silent_wav())
            tmp.flush()
            try:
                await self._play(Path(tmp.name))
            except PlaybackBlockedError as e:
                logger.warning("Audio unlock probe blocked: {}", e)
                return False
            except PlaybackError as e:
                logger.warning("Audio unlock probe failed: {}", e)
                self._unlocked = True
                return False
        self._unlocked = True
        logger.info("Audio output unlocked.")
        return True

    async def play(self, path: Path) -> None:
        """Play a WAV file and wait until it finishes or is stopped."""
        if not self._unlocked:
            raise PlaybackBlockedError("Audio output has not been unlocked")
        await self._play(path)

    async def _play(self, path: Path) -> None:
        self._stopped = False
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_sync, path)

    def _play_sync(self, path: Path) -> None:
        try:
            proc = subprocess.Popen(
                ["paplay", str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise PlaybackError("paplay not found. Install pulseaudio-utils.") from e

        self._current_process = proc
        try:
            proc.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            raise PlaybackError(f"Audio playback timed out ({self.timeout}s)") from e
        finally:
            self._current_process = None

        if proc.returncode == 0 or self._stopped:
            return
        stderr = proc.stderr.read().decode(errors="replace").strip() if proc.stderr else ""
        if any(marker in stderr.lower() for marker in _BLOCKED_MARKERS):
            raise PlaybackBlockedError(stderr or "Output device refused playback")
        raise PlaybackError(f"paplay exited with {proc.returncode}: {stderr}")

    async def stop(self) -> None:
        """Stop any currently playing audio immediately."""
        self._stopped = True
        proc = self._current_process
        if proc is not None:
            try:
                proc.kill()
                logger.info("Audio playback stopped (killed paplay).")
            except Exception as e:
                logger.debug("Error killing paplay: {}", e)
            self._current_process = None
