import asyncio
from dataclasses import asdict
from typing import Optional

from loguru import logger

from core.config import InterviewConfig
from core.notices import NoticeBoard
from core.state import Phase, Session, Speaker
from core.turns import TurnCoordinator
from llm.fallback import DEFAULT_CANDIDATE_NAMES, INTERVIEWER_NAMES, phrases_for
from llm.gateway import ContentGateway


class InterviewSession:
    """The interview state machine.

    setup -> connecting -> greeting -> warmup -> interview -> closing -> ended

    Each candidate utterance moves the machine one step and produces the
    next agent line, which is handed to the turn coordinator. Both lines go
    into the transcript.
    """

    def __init__(self, turns: TurnCoordinator, gateway: ContentGateway,
                 notices: NoticeBoard, defaults: Optional[InterviewConfig] = None):
        self.turns = turns
        self.gateway = gateway
        self.notices = notices
        self.defaults = defaults or InterviewConfig()
        self.state = Session()

        self._generation = 0
        self._busy = False

        turns.is_interactive = lambda: self.state.is_interactive
        turns.on_utterance = self.handle_utterance

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def _set_phase(self, phase: Phase) -> None:
        if phase != self.state.phase:
            logger.info("Phase: {} -> {}", self.state.phase.value, phase.value)
            self.state.phase = phase

    async def start(self, settings: Optional[InterviewConfig] = None,
                    voice_id: Optional[str] = None) -> None:
        """User start action. Any running interview is torn down first."""
        settings = settings or self.defaults
        await self.turns.abort_all()
        self._generation += 1
        generation = self._generation
        self._busy = False

        self.state = Session(
            phase=Phase.SETUP,
            language=settings.language,
            candidate_name=settings.candidate_name,
            target_role=settings.target_role,
            experience_level=settings.experience_level,
        )
        self.notices.reset(settings.language)
        self.turns.reset()
        self.turns.playback.language = settings.language
        self.turns.capture.recognizer.language = settings.language
        if voice_id:
            self.turns.playback.voice_id = voice_id

        self._set_phase(Phase.CONNECTING)
        # The start click is the user gesture the output device waits for
        await self.turns.unlock_audio()
        questions = await self.gateway.generate_questions(self.state.context, settings.question_count)
        if generation != self._generation:
            return
        self.state.questions = questions
        self.state.question_cursor = 0
        logger.info("Interview ready: {} questions for '{}' ({}).",
                    len(questions), settings.target_role or "general", settings.language)

        self._set_phase(Phase.GREETING)
        name = settings.candidate_name or DEFAULT_CANDIDATE_NAMES.get(settings.language, "")
        await self._say(phrases_for(settings.language)["greeting"].format(name=name))

    async def _say(self, text: str) -> None:
        self.state.append_turn(Speaker.AGENT, text)
        await self.turns.request_speak(text)

    def submit_text(self, text: str) -> bool:
        """Typed answer. Refused, not remembered, while the previous turn is in flight."""
        if not self.state.is_interactive or not text or not text.strip():
            return False
        if self._busy:
            logger.debug("Typed answer while the previous turn is in flight refused.")
            return False
        return self.turns.submit_text(text)

    async def handle_utterance(self, text: str) -> None:
        """Advance the machine on one accepted candidate utterance."""
        if not self.state.is_interactive:
            logger.debug("Utterance in phase '{}' ignored.", self.state.phase.value)
            return
        if self._busy:
            logger.debug("Still answering the previous turn; utterance dropped.")
            return
        self._busy = True
        try:
            await self._advance(text, self._generation)
        except Exception as e:
            logger.exception("Failed to advance the interview: {}", e)
        finally:
            self._busy = False

    async def _advance(self, text: str, generation: int) -> None:
        state = self.state
        phrases = phrases_for(state.language)
        state.append_turn(Speaker.CANDIDATE, text)

        if state.phase == Phase.GREETING:
            self._set_phase(Phase.WARMUP)
            role = state.target_role or ("هذا" if state.context.is_arabic else "professional")
            await self._say(phrases["warmup"].format(role=role))

        elif state.phase == Phase.WARMUP:
            self._set_phase(Phase.INTERVIEW)
            first = state.current_question
            question = first.question if first else phrases["fallback_question"]
            await self._say(phrases["to_interview"].format(question=question))

        elif state.phase == Phase.INTERVIEW:
            await self._answer_question(text, generation)

        elif state.phase == Phase.CLOSING:
            self._set_phase(Phase.ENDED)
            self.turns.set_auto_listen(False)
            await self._say(phrases["goodbye"])
            await self._summarize(generation)

    async def _answer_question(self, answer: str, generation: int) -> None:
        state = self.state
        current = state.current_question
        if current is None:
            self._set_phase(Phase.CLOSING)
            await self._say(phrases_for(state.language)["closing"])
            return

        context = state.context
        # The evaluation is issued first; the transition may race it
        evaluation = asyncio.ensure_future(
            self.gateway.evaluate_answer(current.question, answer, context))
        next_index = state.question_cursor + 1
        if next_index < len(state.questions):
            next_question = state.questions[next_index].question
            transition = asyncio.ensure_future(self.gateway.generate_transition(
                list(state.transcript), current.question, next_question, context))
            result, line = await asyncio.gather(evaluation, transition)
        else:
            result = await evaluation
            line = None

        if generation != self._generation:
            return
        state.results.append(result)
        logger.info("Question {}/{} scored {}.", next_index, len(state.questions), result.score)

        if line is not None:
            state.question_cursor = next_index
            await self._say(line)
        else:
            state.question_cursor = len(state.questions)
            self._set_phase(Phase.CLOSING)
            await self._say(phrases_for(state.language)["closing"])

    async def _summarize(self, generation: int) -> None:
        if self.state.summary is not None or not self.state.results:
            return
        summary = await self.gateway.generate_summary(list(self.state.results), self.state.context)
        if generation == self._generation:
            self.state.summary = summary

    async def end(self) -> None:
        """User hang-up. Hard stop of all audio, then `ended`."""
        if self.state.phase in (Phase.SETUP, Phase.ENDED):
            return
        self._generation += 1
        await self.turns.abort_all()
        self.turns.set_auto_listen(False)
        self._set_phase(Phase.ENDED)
        self._busy = False
        await self._summarize(self._generation)

    async def reset(self) -> None:
        """Back to setup with every bit of session state cleared."""
        self._generation += 1
        await self.turns.abort_all()
        self.turns.reset()
        self.notices.reset()
        self._busy = False
        self.state = Session()
        logger.info("Session reset.")

    def set_mic_enabled(self, enabled: bool) -> None:
        self.turns.set_auto_listen(enabled and self.state.phase != Phase.ENDED)

    def set_muted(self, muted: bool) -> None:
        self.turns.set_muted(muted)

    def snapshot(self) -> dict:
        state = self.state
        return {
            "phase": state.phase.value,
            "floor": self.turns.floor.value,
            "language": state.language,
            "interviewer_name": INTERVIEWER_NAMES.get(state.language, INTERVIEWER_NAMES["en"]),
            "target_role": state.target_role,
            "candidate_name": state.candidate_name,
            "question_cursor": state.question_cursor,
            "questions": [asdict(q) for q in state.questions],
            "transcript": [
                {"id": t.id, "speaker": t.speaker.value, "text": t.text, "timestamp": t.timestamp}
                for t in state.transcript
            ],
            "results": [asdict(r) for r in state.results],
            "summary": asdict(state.summary) if state.summary else None,
            "overall_score": state.overall_score,
            "readiness": state.readiness_level,
            "notices": [asdict(n) for n in self.notices.notices],
            "live_transcript": self.turns.live_transcript,
            "text_mode": self.turns.text_mode,
            "muted": self.turns.playback.muted,
            "mic_enabled": self.turns.auto_listen,
            "waiting_for_audio": self.turns.playback.waiting_for_unlock,
        }
