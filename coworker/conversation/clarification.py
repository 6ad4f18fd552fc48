"""
ClarificationCollector - Gathers answers to clarifying questions before research.

State machine:
    IDLE -> AWAITING_ANSWERS -> READY -> IDLE (after finalize or cancel)

Questions are answered in order; a previously answered question may be
answered again. Skipping is the caller's business: it submits its own
"skip" string as the answer.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from enum import Enum

from coworker.conversation.turns import QAPair
from coworker.core.exceptions import (
    ClarificationInProgressError,
    IncompleteClarificationError,
    InvalidAnswerError,
    NoActiveClarificationError,
)

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 5


class ClarificationState(str, Enum):
    IDLE = "idle"
    AWAITING_ANSWERS = "awaiting_answers"
    READY = "ready"


@dataclass
class ClarificationRound:
    """Transient: lives between classification and the last answer."""
    original_query: str
    questions: Tuple[str, ...]
    answers: List[Optional[str]] = field(default_factory=list)

    def __post_init__(self):
        self.questions = tuple(self.questions)
        if not self.answers:
            self.answers = [None] * len(self.questions)

    def is_complete(self) -> bool:
        return all(a is not None for a in self.answers)

    def next_unanswered(self) -> Optional[int]:
        for i, answer in enumerate(self.answers):
            if answer is None:
                return i
        return None


@dataclass(frozen=True)
class FinalizedClarification:
    """A completed round, ready for research."""
    original_query: str
    qa_pairs: Tuple[QAPair, ...]


class ClarificationCollector:
    """Owns the ClarificationRound lifecycle for one session."""

    def __init__(self):
        self._round: Optional[ClarificationRound] = None

    @property
    def round(self) -> Optional[ClarificationRound]:
        return self._round

    @property
    def state(self) -> ClarificationState:
        if self._round is None:
            return ClarificationState.IDLE
        if self._round.is_complete():
            return ClarificationState.READY
        return ClarificationState.AWAITING_ANSWERS

    def is_active(self) -> bool:
        return self._round is not None

    def begin(self, original_query: str, questions: Sequence[str]) -> ClarificationRound:
        """
        Start a round.

        Raises:
            ClarificationInProgressError: a round is already active (no queueing)
            ValueError: questions empty or more than MAX_QUESTIONS
        """
        if self._round is not None:
            raise ClarificationInProgressError(
                "A clarification round is already active; answer or cancel it first"
            )
        if not 1 <= len(questions) <= MAX_QUESTIONS:
            raise ValueError(f"A round needs 1-{MAX_QUESTIONS} questions, got {len(questions)}")

        self._round = ClarificationRound(original_query=original_query, questions=tuple(questions))
        logger.info(f"Clarification: idle → awaiting_answers ({len(questions)} questions)")
        return self._round

    def answer(self, index: int, value: str) -> None:
        """
        Record the answer to question `index`.

        Raises:
            NoActiveClarificationError: no round is active
            InvalidAnswerError: blank value, index out of range, or an
                unanswered question before `index`
        """
        current = self._require_round()

        if not isinstance(value, str) or not value.strip():
            raise InvalidAnswerError(f"Answer to question {index + 1} is empty")
        if not 0 <= index < len(current.questions):
            raise InvalidAnswerError(
                f"Question index {index} out of range (round has {len(current.questions)} questions)"
            )

        next_open = current.next_unanswered()
        if next_open is not None and index > next_open:
            raise InvalidAnswerError(
                f"Question {next_open + 1} must be answered before question {index + 1}"
            )

        was_complete = current.is_complete()
        current.answers[index] = value.strip()
        if not was_complete and current.is_complete():
            logger.info("Clarification: awaiting_answers → ready")

    def is_complete(self) -> bool:
        return self._round is not None and self._round.is_complete()

    def next_unanswered(self) -> Optional[int]:
        return self._require_round().next_unanswered()

    def finalize(self) -> FinalizedClarification:
        """
        Return the completed round and go back to idle.

        Raises:
            NoActiveClarificationError: no round is active
            IncompleteClarificationError: some question has no answer; the round is kept
        """
        current = self._require_round()
        if not current.is_complete():
            missing = sum(1 for a in current.answers if a is None)
            raise IncompleteClarificationError(f"{missing} clarifying question(s) still unanswered")

        finalized = FinalizedClarification(
            original_query=current.original_query,
            qa_pairs=tuple(QAPair(question=q, answer=a) for q, a in zip(current.questions, current.answers)),
        )
        self._round = None
        logger.info("Clarification: ready → idle")
        return finalized

    def cancel(self) -> Optional[ClarificationRound]:
        """Drop the active round, if any, and return it."""
        dropped, self._round = self._round, None
        if dropped is not None:
            logger.info("Clarification cancelled → idle")
        return dropped

    def _require_round(self) -> ClarificationRound:
        if self._round is None:
            raise NoActiveClarificationError("No clarification round is active")
        return self._round
