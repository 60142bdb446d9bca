import asyncio
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from audio.audio_player import AudioSink
from audio.errors import PlaybackBlockedError, PlaybackError, VoiceUnavailableError
from audio.tts import LocalVoice, RemoteVoice
from core.notices import NoticeBoard


class Tier(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    NONE = "none"


class AudioAsset:
    """Synthesized audio written to a temp file; released exactly once."""

    def __init__(self, source_tier: Tier, data: bytes):
        self.source_tier = source_tier
        fd, name = tempfile.mkstemp(prefix=f"interviewer-{source_tier.value}-", suffix=".wav")
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        self.path = Path(name)
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Delete the backing file. Returns False if already released."""
        if self._released:
            return False
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Could not remove {}: {}", self.path, e)
        return True


class PlaybackChannel:
    """Speaks a line through remote voice -> local voice -> silence.

    `speak()` never raises: whatever fails, it resolves with the tier that
    was actually heard (Tier.NONE when nothing played). A playback blocked by
    the output device is held for up to `unlock_wait` seconds so the user
    can enable audio; the held asset then plays through the normal path.
    """

    def __init__(
        self,
        sink: AudioSink,
        notices: NoticeBoard,
        remote: Optional[RemoteVoice] = None,
        local: Optional[LocalVoice] = None,
        voice_id: str = "nova",
        language: str = "en",
        unlock_wait: float = 15.0,
        muted: bool = False,
    ):
        self.sink = sink
        self.notices = notices
        self.remote = remote
        self.local = local
        self.voice_id = voice_id
        self.language = language
        self.unlock_wait = unlock_wait
        self.muted = muted

        # Wired by the turn coordinator
        self.on_blocked: Callable[[], None] = lambda: None
        self.on_unblocked: Callable[[], None] = lambda: None

        self._current: Optional[AudioAsset] = None
        self._unlock_event = asyncio.Event()
        self._aborted = False
        self._waiting_for_unlock = False

    @property
    def waiting_for_unlock(self) -> bool:
        return self._waiting_for_unlock

    async def unlock(self) -> bool:
        """One-time probe, triggered by the user's own start action."""
        if self.sink.unlocked:
            return True
        unlocked = await self.sink.unlock()
        if not self.sink.unlocked:
            self.notices.show("audio")
        return unlocked

    async def enable_audio(self) -> bool:
        """Manual retry after a blocked playback (the "enable audio" affordance)."""
        unlocked = await self.sink.unlock()
        # A broken device is no longer locked either; the held line then fails fast
        if self.sink.unlocked:
            self._unlock_event.set()
        return unlocked

    async def speak(self, text: str) -> Tier:
        self._aborted = False
        if self.muted or not text or not text.strip():
            return Tier.NONE

        if self.remote is not None:
            if await self._speak_remote(text):
                return Tier.REMOTE
            if self._aborted:
                return Tier.NONE

        if self.local is not None:
            if await self._speak_local(text):
                return Tier.LOCAL

        if not self._aborted:
            logger.info("No voice tier available; continuing on transcript text only.")
        return Tier.NONE

    async def abort(self) -> None:
        """Abandon in-flight playback and any held asset."""
        self._aborted = True
        self._unlock_event.set()
        await self.sink.stop()
        if self._current is not None:
            self._current.release()

    async def _speak_remote(self, text: str) -> bool:
        try:
            data = await self.remote.synthesize(text, self.voice_id)
        except VoiceUnavailableError as e:
            logger.warning("Remote voice unavailable: {}", e)
            if self.local is not None:
                self.notices.show("voice")
            return False
        except Exception as e:
            logger.error("Remote voice error: {}", e)
            if self.local is not None:
                self.notices.show("voice")
            return False

        if self._aborted:
            return False
        return await self._play_asset(AudioAsset(Tier.REMOTE, data), wait_for_unlock=True)

    async def _speak_local(self, text: str) -> bool:
        try:
            data = await self.local.synthesize(text, self.language)
        except VoiceUnavailableError as e:
            logger.warning("Local voice unavailable: {}", e)
            return False
        except Exception as e:
            logger.error("Local voice error: {}", e)
            return False

        if self._aborted:
            return False
        return await self._play_asset(AudioAsset(Tier.LOCAL, data), wait_for_unlock=False)

    async def _play_asset(self, asset: AudioAsset, wait_for_unlock: bool) -> bool:
        self._current = asset
        try:
            try:
                await self.sink.play(asset.path)
            except PlaybackBlockedError as e:
                logger.warning("{} playback blocked: {}", asset.source_tier.value, e)
                self.notices.show("audio")
                if not wait_for_unlock or not await self._wait_for_unlock():
                    return False
                await self.sink.play(asset.path)
            return not self._aborted
        except PlaybackError as e:
            logger.warning("{} playback failed: {}", asset.source_tier.value, e)
            if asset.source_tier == Tier.REMOTE and self.local is not None:
                self.notices.show("voice")
            return False
        except Exception as e:
            logger.error("Unexpected {} playback error: {}", asset.source_tier.value, e)
            return False
        finally:
            self._current = None
            asset.release()

    async def _wait_for_unlock(self) -> bool:
        if self._aborted:
            return False
        self._unlock_event.clear()
        self._waiting_for_unlock = True
        self.on_blocked()
        try:
            await asyncio.wait_for(self._unlock_event.wait(), timeout=self.unlock_wait)
            return not self._aborted
        except asyncio.TimeoutError:
            logger.info("Audio not enabled within {}s; trying the next voice tier.", self.unlock_wait)
            return False
        finally:
            self._waiting_for_unlock = False
            self.on_unblocked()
