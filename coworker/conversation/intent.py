"""
IntentClassifier - Direct answer or clarification-driven research?

One completion round trip both classifies the utterance and, on the direct
path, produces the answer. Research requests come back with clarifying
questions instead, and the answer is deferred until those are answered.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Union
from enum import Enum
from dataclasses import dataclass

from coworker.adapters.llm import CompletionProvider
from coworker.conversation.task_context import TaskContext
from coworker.conversation.turns import Turn, format_history
from coworker.core.config import settings
from coworker.core.exceptions import (
    ClassificationError,
    ProviderError,
    ResponseValidationError,
)
from coworker.core.prompts import PromptManager
from coworker.core.schemas import IntentResponse

logger = logging.getLogger(__name__)

MAX_CLARIFYING_QUESTIONS = 5


class IntentKind(str, Enum):
    DIRECT = "direct"
    NEEDS_CLARIFICATION = "needsClarification"


@dataclass(frozen=True)
class DirectAnswer:
    """The utterance was answered in the same round trip."""
    answer: str

    @property
    def kind(self) -> IntentKind:
        return IntentKind.DIRECT


@dataclass(frozen=True)
class NeedsClarification:
    """Research request; 1-5 questions to ask before researching."""
    questions: tuple

    @property
    def kind(self) -> IntentKind:
        return IntentKind.NEEDS_CLARIFICATION


IntentResult = Union[DirectAnswer, NeedsClarification]


def clamp_questions(questions: Sequence[Optional[str]], fallback: str) -> List[str]:
    """
    Drop blank questions and keep at most five.

    Over-asking is cosmetic, so this never fails; when nothing usable is left
    the fallback question is asked instead.
    """
    cleaned = [q.strip() for q in questions if isinstance(q, str) and q.strip()]
    if not cleaned:
        return [fallback]
    return cleaned[:MAX_CLARIFYING_QUESTIONS]


class IntentClassifier:
    """
    Classifies an utterance in the context of a task.

    Retry policy (at most two calls):
    - invalid payload -> retry once with a stricter instruction
    - transient provider error -> retry once after a short backoff
    - anything else, or a second failure -> ClassificationError
    """

    def __init__(
        self,
        provider: CompletionProvider,
        history_turns: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        fallback_question: Optional[str] = None,
    ):
        self.provider = provider
        self.history_turns = history_turns if history_turns is not None else settings.CLASSIFIER_HISTORY_TURNS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS
        self.fallback_question = fallback_question or settings.FALLBACK_CLARIFYING_QUESTION

    def build_context(
        self,
        utterance: str,
        task_context: Optional[TaskContext],
        recent_history: Sequence[Turn],
    ) -> str:
        return PromptManager.get_prompt(
            "INTENT_CONTEXT",
            task_context=task_context.to_prompt_context() if task_context else "(no task selected)",
            history=format_history(recent_history, self.history_turns),
            utterance=utterance,
        )

    async def classify(
        self,
        utterance: str,
        task_context: Optional[TaskContext] = None,
        recent_history: Sequence[Turn] = (),
    ) -> IntentResult:
        """
        Classify the utterance.

        Args:
            utterance: What the user just said
            task_context: Task the conversation is attached to
            recent_history: Turns before the utterance (trimmed to history_turns)

        Raises:
            ClassificationError: both attempts failed, or the provider failed permanently
        """
        context = self.build_context(utterance, task_context, recent_history)
        instructions = PromptManager.get_prompt("INTENT_INSTRUCTIONS")
        strict = False
        last_error: Optional[Exception] = None

        for attempt in (1, 2):
            request_instructions = instructions
            if strict:
                request_instructions += PromptManager.get_prompt("INTENT_STRICT_SUFFIX")

            try:
                response = await self.provider.complete(request_instructions, context, IntentResponse)
            except ResponseValidationError as e:
                logger.warning(f"Intent response invalid (attempt {attempt}): {e}")
                last_error = e
                strict = True
                continue
            except ProviderError as e:
                if e.transient and attempt == 1:
                    logger.warning(f"Transient provider error, retrying in {self.backoff_seconds}s: {e}")
                    last_error = e
                    await asyncio.sleep(self.backoff_seconds)
                    continue
                raise ClassificationError(f"Completion provider failed: {e}") from e

            result = self._to_result(response)
            logger.info(f"Intent: {result.kind.value}")
            return result

        raise ClassificationError(f"Could not classify message after 2 attempts: {last_error}") from last_error

    def _to_result(self, response: IntentResponse) -> IntentResult:
        if response.kind == IntentKind.DIRECT.value:
            return DirectAnswer(answer=(response.answer or "").strip())

        raw_questions = response.questions or []
        questions = clamp_questions(raw_questions, self.fallback_question)
        if len(questions) != len(raw_questions):
            logger.info(f"Clamped clarifying questions from {len(raw_questions)} to {len(questions)}")
        return NeedsClarification(questions=tuple(questions))
