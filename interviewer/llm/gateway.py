import json
import random
import re
from typing import Optional

from loguru import logger

from core.notices import NoticeBoard
from core.state import EvaluationResult, InterviewContext, Question, Summary, Turn
from llm import prompts
from llm.base import BaseLLM, ContentUnavailableError
from llm.credits import CreditGate
from llm.fallback import fallback_questions, fallback_transition

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_json(text: str):
    """Parse a model reply that should be JSON, tolerating code fences
    and leading chatter."""
    cleaned = _FENCE.sub("", text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass
    raise ContentUnavailableError("reply is not valid JSON")


def question_list(payload) -> list[Question]:
    """Pull the question list out of the shapes models actually return:
    a bare list, {"questions": [...]}, {"interview_questions": [...]}, or
    the first list value of any other object."""
    items = None
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        for key in ("questions", "interview_questions"):
            if isinstance(payload.get(key), list):
                items = payload[key]
                break
        else:
            items = next((v for v in payload.values() if isinstance(v, list)), None)
    if not items:
        return []

    questions = []
    for item in items:
        if isinstance(item, str) and item.strip():
            questions.append(Question(question=item.strip()))
        elif isinstance(item, dict):
            text = str(item.get("question") or item.get("text") or "").strip()
            if text:
                questions.append(Question(question=text,
                                          category=str(item.get("category") or "behavioral")))
    return questions


def _clamp_score(value) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 5.0
    if score != score:  # NaN
        return 5.0
    return max(0.0, min(10.0, score))


def _str_tuple(value) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, list):
        return tuple(str(v) for v in value if str(v).strip())
    return ()


class ContentGateway:
    """The four content operations, each with a local fallback.

    Every call goes through the credit gate first; a refused call, a missing
    provider or any provider error resolves to the fallback. No operation is
    retried and none of them raises.
    """

    def __init__(self, provider: Optional[BaseLLM], credits: CreditGate,
                 notices: Optional[NoticeBoard] = None,
                 rng: Optional[random.Random] = None):
        self.provider = provider
        self.credits = credits
        self.notices = notices
        self.rng = rng

    async def _complete(self, operation: str, messages: list[dict],
                        max_tokens: int, temperature: float, json_mode: bool) -> str:
        if self.provider is None:
            raise ContentUnavailableError("no content provider configured")
        if not self.credits.try_spend(operation):
            raise ContentUnavailableError(f"no credits left for {operation}")
        return await self.provider.complete(
            messages, max_tokens=max_tokens, temperature=temperature, json_mode=json_mode,
        )

    async def generate_questions(self, context: InterviewContext, count: int) -> list[Question]:
        try:
            reply = await self._complete(
                "generate-questions", prompts.questions_prompt(context, count),
                max_tokens=1200, temperature=0.8, json_mode=True,
            )
            questions = question_list(parse_json(reply))[:count]
            if not questions:
                raise ContentUnavailableError("no questions in reply")
            logger.info("Generated {} questions for '{}'.", len(questions), context.target_role)
            return questions
        except Exception as e:
            logger.warning("Question generation failed ({}), using the question bank.", e)
            if self.notices is not None:
                self.notices.show("content")
            return fallback_questions(context.language, context.target_role, count)

    async def evaluate_answer(self, question: str, answer: str,
                              context: InterviewContext) -> EvaluationResult:
        try:
            reply = await self._complete(
                "evaluate-answer", prompts.evaluation_prompt(question, answer, context),
                max_tokens=500, temperature=0.3, json_mode=True,
            )
            data = parse_json(reply)
            if not isinstance(data, dict):
                raise ContentUnavailableError("evaluation is not an object")
            return EvaluationResult(
                question=question,
                answer=answer,
                score=_clamp_score(data.get("score")),
                strengths=_str_tuple(data.get("strengths")),
                improvements=_str_tuple(data.get("improvements")),
            )
        except Exception as e:
            logger.warning("Answer evaluation failed ({}), using default score.", e)
            return EvaluationResult.default(question, answer)

    async def generate_transition(self, conversation: list[Turn], current_question: str,
                                  next_question: str, context: InterviewContext) -> str:
        try:
            reply = await self._complete(
                "generate-transition",
                prompts.transition_prompt(conversation, current_question, next_question, context),
                max_tokens=200, temperature=0.7, json_mode=False,
            )
            text = reply.strip()
            if not text:
                raise ContentUnavailableError("empty transition")
            return text
        except Exception as e:
            logger.warning("Transition generation failed ({}), using canned phrase.", e)
            return fallback_transition(context.language, next_question,
                                       position=len(conversation), rng=self.rng)

    async def generate_summary(self, results: list[EvaluationResult],
                               context: InterviewContext) -> Optional[Summary]:
        if not results:
            return None
        try:
            reply = await self._complete(
                "generate-summary", prompts.summary_prompt(results, context),
                max_tokens=600, temperature=0.5, json_mode=True,
            )
            data = parse_json(reply)
            if not isinstance(data, dict) or not str(data.get("summary") or "").strip():
                raise ContentUnavailableError("summary missing")
            return Summary(
                summary=str(data["summary"]).strip(),
                top_strength=str(data.get("topStrength") or data.get("top_strength") or ""),
                top_improvement=str(data.get("topImprovement") or data.get("top_improvement") or ""),
            )
        except Exception as e:
            logger.warning("Summary generation failed ({}); no summary.", e)
            return None
