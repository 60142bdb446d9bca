from dataclasses import dataclass, field
import time

from loguru import logger

# Non-blocking user notices, one message per category and language
NOTICE_TEXT = {
    "microphone": {
        "en": "Microphone not available - use text input",
        "ar": "الميكروفون غير متاح - استخدم الكتابة",
    },
    "audio": {
        "en": "Audio playback blocked - click to enable audio",
        "ar": "تعذر تشغيل الصوت - الرجاء النقر لتفعيل الصوت",
    },
    "voice": {
        "en": "AI voice unavailable, using device voice",
        "ar": "الصوت الذكي غير متاح، سيتم استخدام صوت الجهاز",
    },
    "content": {
        "en": "AI service unavailable, using standard questions",
        "ar": "خدمة الذكاء الاصطناعي غير متاحة، سيتم استخدام أسئلة قياسية",
    },
}


@dataclass
class Notice:
    category: str
    message: str
    timestamp: float = field(default_factory=time.time)


class NoticeBoard:
    """Collects user-facing notices, at most one per category per session."""

    def __init__(self, language: str = "en"):
        self.language = language
        self._shown: dict[str, Notice] = {}

    def show(self, category: str) -> bool:
        """Record a notice for the category. Returns False if already shown."""
        if category in self._shown:
            return False
        texts = NOTICE_TEXT.get(category, {})
        lang = "ar" if self.language.startswith("ar") else "en"
        notice = Notice(category=category, message=texts.get(lang, category))
        self._shown[category] = notice
        logger.warning("Notice [{}]: {}", category, notice.message)
        return True

    def was_shown(self, category: str) -> bool:
        return category in self._shown

    @property
    def notices(self) -> list[Notice]:
        return sorted(self._shown.values(), key=lambda n: n.timestamp)

    def reset(self, language: str | None = None) -> None:
        self._shown.clear()
        if language:
            self.language = language
