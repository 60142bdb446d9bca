import asyncio
from pathlib import Path

from loguru import logger

from audio.audio_capture import AudioCapture
from audio.audio_player import AudioSink
from audio.capture import CaptureChannel
from audio.dedup import DedupGuard
from audio.playback import PlaybackChannel
from audio.recognizer import WhisperRecognizer
from audio.tts import LocalVoice, RemoteVoice
from core.config import ConfigManager
from core.notices import NoticeBoard
from core.session import InterviewSession
from core.turns import TurnCoordinator
from llm.base import build_provider
from llm.credits import CreditGate
from llm.gateway import ContentGateway

# Base directory for the interviewer package
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
MODELS_DIR = BASE_DIR / "models"


def build_session(config_manager: ConfigManager) -> InterviewSession:
    """Wire the turn-taking components from configuration."""
    config = config_manager.config
    notices = NoticeBoard(config.interview.language)
    credits = CreditGate(
        enabled=config.credits.enabled,
        balance=config.credits.balance,
        costs=config.credits.costs,
    )

    # Speech in and speech out both go through OpenAI, whatever the content provider
    openai_key = config.api_keys.openai
    recognizer = WhisperRecognizer(
        api_key=openai_key if config.hardware.mic_enabled else "",
        language=config.interview.language,
        capture=AudioCapture(),
        energy_threshold=config.hardware.energy_threshold,
        segment_silence=config.hardware.segment_silence,
        no_speech_timeout=config.hardware.no_speech_timeout,
    )
    capture = CaptureChannel(recognizer, notices, restart_delay=config.timing.capture_restart_delay)

    remote = None
    if config.voice.remote_enabled and openai_key:
        remote = RemoteVoice(
            api_key=openai_key,
            model=config.voice.remote_model,
            speed=config.voice.speed,
            credit_gate=credits,
        )
    local = LocalVoice(MODELS_DIR / "piper", config.voice.local_voices)
    playback = PlaybackChannel(
        sink=AudioSink(require_unlock=config.voice.require_unlock),
        notices=notices,
        remote=remote,
        local=local,
        voice_id=config.voice.voice_id,
        language=config.interview.language,
        unlock_wait=config.timing.unlock_wait,
        muted=config.voice.muted,
    )

    dedup = DedupGuard(
        duplicate_window=config.timing.duplicate_window,
        echo_min_chars=config.timing.echo_min_chars,
    )
    turns = TurnCoordinator(capture, playback, dedup, config.timing,
                            listen_when_muted=config.voice.listen_when_muted)
    gateway = ContentGateway(build_provider(config_manager), credits, notices)
    return InterviewSession(turns, gateway, notices, defaults=config.interview)


class InterviewerApp:
    """Boots the interview session and serves the control API."""

    def __init__(self):
        self.config_manager = ConfigManager(DATA_DIR)
        self.session = build_session(self.config_manager)
        self._server = None

    async def start(self):
        logger.info("=== Mock Interviewer starting ===")
        config = self.config_manager.config

        from api.server import create_app
        import uvicorn

        app = create_app(self.config_manager, self.session)
        server_config = uvicorn.Config(
            app, host=config.server.host, port=config.server.port, log_level="warning"
        )
        self._server = uvicorn.Server(server_config)
        logger.info("API server listening on {}:{}", config.server.host, config.server.port)
        await self._server.serve()

    async def shutdown(self):
        """Graceful shutdown."""
        logger.info("Shutting down...")
        await self.session.end()
        if self._server is not None:
            self._server.should_exit = True
        logger.info("Shutdown complete.")


def main():
    """Entry point."""
    import sys
    from loguru import logger as log

    log.remove()
    log.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level:<7} | {message}")
    log.add(DATA_DIR / "interviewer.log", rotation="10 MB", retention="7 days", level="DEBUG")

    app = InterviewerApp()

    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        loop.run_until_complete(app.shutdown())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
