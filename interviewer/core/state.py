import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Phase(str, Enum):
    SETUP = "setup"              # Waiting for the user's start action
    CONNECTING = "connecting"    # Questions being prepared
    GREETING = "greeting"        # Greeting spoken, waiting for first reply
    WARMUP = "warmup"            # Small talk before the formal questions
    INTERVIEW = "interview"      # Question loop
    CLOSING = "closing"          # "Any questions for me?"
    ENDED = "ended"              # Terminal until a new session starts


INTERACTIVE_PHASES = frozenset({Phase.GREETING, Phase.WARMUP, Phase.INTERVIEW, Phase.CLOSING})


class FloorState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PENDING_UNLOCK = "pendingUnlock"  # Speaking, but the output device awaits a user gesture


class Speaker(str, Enum):
    AGENT = "agent"
    CANDIDATE = "candidate"


_turn_ids = itertools.count(1)


@dataclass(frozen=True)
class Turn:
    """One contribution to the transcript. Immutable once appended."""

    speaker: Speaker
    text: str
    id: str = field(default_factory=lambda: f"turn-{next(_turn_ids)}")
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Question:
    question: str
    category: str = "behavioral"


@dataclass(frozen=True)
class EvaluationResult:
    question: str
    answer: str
    score: float = 5.0
    strengths: tuple[str, ...] = ()
    improvements: tuple[str, ...] = ()

    @classmethod
    def default(cls, question: str, answer: str) -> "EvaluationResult":
        """Mid-score result used when the evaluation service fails."""
        return cls(question=question, answer=answer)


@dataclass(frozen=True)
class Summary:
    summary: str
    top_strength: str = ""
    top_improvement: str = ""


@dataclass
class InterviewContext:
    """Session context sent with every content request."""

    target_role: str
    experience_level: str = "mid"
    language: str = "en"

    @property
    def dialect(self) -> Optional[str]:
        return "saudi_casual" if self.language == "ar-sa" else None

    @property
    def is_arabic(self) -> bool:
        return self.language.startswith("ar")


@dataclass
class Session:
    """Interview state. Mutated only by the session state machine."""

    phase: Phase = Phase.SETUP
    language: str = "en"
    candidate_name: str = ""
    target_role: str = ""
    experience_level: str = "mid"
    questions: list[Question] = field(default_factory=list)
    question_cursor: int = 0
    transcript: list[Turn] = field(default_factory=list)
    results: list[EvaluationResult] = field(default_factory=list)
    summary: Optional[Summary] = None

    @property
    def context(self) -> InterviewContext:
        return InterviewContext(
            target_role=self.target_role,
            experience_level=self.experience_level,
            language=self.language,
        )

    @property
    def is_interactive(self) -> bool:
        return self.phase in INTERACTIVE_PHASES

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.question_cursor < len(self.questions):
            return self.questions[self.question_cursor]
        return None

    def append_turn(self, speaker: Speaker, text: str) -> Turn:
        turn = Turn(speaker=speaker, text=text)
        self.transcript.append(turn)
        return turn

    @property
    def overall_score(self) -> float:
        if not self.results:
            return 0.0
        return round(sum(r.score for r in self.results) / len(self.results), 1)

    @property
    def readiness_level(self) -> str:
        score = self.overall_score
        if score >= 8:
            return "excellent"
        if score >= 6:
            return "ready"
        if score >= 4:
            return "needs_practice"
        return "not_ready"
