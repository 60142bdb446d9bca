import re
import time
import unicodedata
from typing import Callable, Optional

from loguru import logger

# Arabic harakat, tanween, shadda, sukun, superscript alef and Quranic marks
_ARABIC_DIACRITICS = re.compile("[\u064B-\u065F\u0670\u06D6-\u06ED]")
_TATWEEL = "\u0640"
_ARABIC_LETTER_MAP = str.maketrans({
    "\u0623": "\u0627",  # alef with hamza above -> alef
    "\u0625": "\u0627",  # alef with hamza below -> alef
    "\u0622": "\u0627",  # alef with madda -> alef
    "\u0671": "\u0627",  # alef wasla -> alef
    "\u0649": "\u064A",  # alef maksura -> yeh
    "\u0629": "\u0647",  # teh marbuta -> heh
})
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lower-case, strip punctuation and fold Arabic spelling variants."""
    text = unicodedata.normalize("NFKC", text).casefold()
    text = _ARABIC_DIACRITICS.sub("", text).replace(_TATWEEL, "")
    text = text.translate(_ARABIC_LETTER_MAP)
    # Drop punctuation and symbols in any script (e.g. "،" and "؟")
    text = "".join(
        " " if unicodedata.category(ch)[0] in ("P", "S") else ch
        for ch in text
    )
    return _WHITESPACE.sub(" ", text).strip()


class DedupGuard:
    """Rejects duplicate submissions and echoes of the agent's own voice."""

    def __init__(
        self,
        duplicate_window: float = 3.0,
        echo_min_chars: int = 8,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.duplicate_window = duplicate_window
        self.echo_min_chars = echo_min_chars
        self._clock = clock
        self._last_accepted: Optional[str] = None
        self._last_accepted_at = 0.0
        self._agent_line = ""

    def note_agent_line(self, text: str) -> None:
        """Remember what the agent is about to say for echo detection."""
        self._agent_line = normalize(text)

    def accept(self, utterance: str) -> bool:
        if not utterance or not utterance.strip():
            return False

        normalized = normalize(utterance)
        if not normalized:
            logger.debug("Punctuation-only utterance rejected: '{}'", utterance[:20])
            return False
        now = self._clock()

        if (
            self._last_accepted is not None
            and normalized == self._last_accepted
            and now - self._last_accepted_at <= self.duplicate_window
        ):
            logger.info("Duplicate utterance rejected: '{}'", utterance[:60])
            return False

        if self._is_echo(normalized):
            logger.info("Echo of agent speech rejected: '{}'", utterance[:60])
            return False

        self._last_accepted = normalized
        self._last_accepted_at = now
        return True

    def _is_echo(self, normalized: str) -> bool:
        if not self._agent_line or len(normalized) < self.echo_min_chars:
            return False
        return normalized in self._agent_line or self._agent_line in normalized

    def reset(self) -> None:
        self._last_accepted = None
        self._last_accepted_at = 0.0
        self._agent_line = ""
