class AudioError(Exception):
    """Base class for audio device and voice failures."""


class CaptureUnavailableError(AudioError):
    """Microphone could not be opened (permission denied or no device)."""


class VoiceUnavailableError(AudioError):
    """A synthesis tier could not produce audio for the given text."""


class PlaybackError(AudioError):
    """The output device failed to play an audio asset."""


class PlaybackBlockedError(PlaybackError):
    """The output device refuses playback until the user unlocks it."""
