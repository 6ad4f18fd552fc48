"""
ConversationOrchestrator - The single entry point for the presentation layer.

Flow:
    process_message -> IntentClassifier -> direct answer
                                        -> clarification round
    submit_clarifications -> ClarificationCollector.finalize -> ResearchSynthesizer -> Finding

Sessions are looked up by task id. Each session serializes its own calls;
different tasks run concurrently and share only the completion provider.
Model and network failures become an apologetic assistant turn; caller
misuse raises.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union
from dataclasses import dataclass, field

from coworker.adapters.llm import CompletionProvider
from coworker.conversation.clarification import FinalizedClarification
from coworker.conversation.intent import DirectAnswer, IntentClassifier
from coworker.conversation.session import Session
from coworker.conversation.task_context import TaskContext
from coworker.conversation.turns import Finding, Turn, TurnMetadata
from coworker.core.exceptions import (
    ClassificationError,
    IncompleteClarificationError,
    InvalidAnswerError,
    NoActiveClarificationError,
    NoActiveSessionError,
    ProviderError,
    ResearchError,
    SessionBusyError,
)
from coworker.core.prompts import PromptManager
from coworker.research.synthesizer import ResearchSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class MessageResult:
    """Outcome of process_message."""
    new_turns: List[Turn]
    requires_clarification: bool = False
    finding: Optional[Finding] = None
    questions: List[str] = field(default_factory=list)
    # True when the session was detached while the call was in flight
    discarded: bool = False


@dataclass
class ResearchResult:
    """Outcome of submit_clarifications / retry_research."""
    finding: Optional[Finding]
    new_turns: List[Turn]
    discarded: bool = False


class ConversationOrchestrator:
    """
    Owns per-task sessions and sequences classifier, collector and synthesizer.

    Lifecycle:
    - attach(task_id, history) when a task context is shown
    - reset() / detach(task_id) when it changes or the view closes
    """

    def __init__(
        self,
        provider: CompletionProvider,
        classifier: Optional[IntentClassifier] = None,
        synthesizer: Optional[ResearchSynthesizer] = None,
    ):
        self.provider = provider
        self.classifier = classifier or IntentClassifier(provider)
        self.synthesizer = synthesizer or ResearchSynthesizer(provider)
        self._sessions: Dict[str, Session] = {}
        self._current_task_id: Optional[str] = None

    # --- Session lifecycle ---

    def attach(
        self,
        task_id: str,
        existing_history: Iterable[Union[Turn, dict]] = (),
        task_context: Optional[TaskContext] = None,
    ) -> Session:
        """
        Attach a task and make it current.

        Idempotent: a live session for task_id is returned as-is, history
        and context arguments are ignored.
        """
        session = self._sessions.get(task_id)
        if session is not None:
            logger.debug(f"Task {task_id} already attached, reusing session {session.session_id}")
        else:
            history = [t if isinstance(t, Turn) else Turn.from_dict(t) for t in existing_history]
            session = Session.from_history(task_id, history, task_context)
            self._sessions[task_id] = session
            logger.info(f"Attached task {task_id}: session {session.session_id} with {len(history)} historical turns")

        self._current_task_id = task_id
        return session

    def detach(self, task_id: str) -> Optional[Session]:
        """Release a session. Calls still in flight for it will be discarded."""
        session = self._sessions.pop(task_id, None)
        if self._current_task_id == task_id:
            self._current_task_id = None
        if session is not None:
            logger.info(f"Detached task {task_id} (session {session.session_id})")
        return session

    def reset(self) -> None:
        """Discard the current session's in-memory turns and release it."""
        session = self.current_session
        if session is None:
            return
        dropped = session.discard_new_turns()
        session.collector.cancel()
        session.preserved_research = None
        self.detach(session.task_id)
        logger.info(f"Reset task {session.task_id}: dropped {dropped} in-memory turns")

    @property
    def current_session(self) -> Optional[Session]:
        if self._current_task_id is None:
            return None
        return self._sessions.get(self._current_task_id)

    def get_session(self, task_id: Optional[str] = None) -> Session:
        """Session for task_id, or the current one."""
        key = task_id if task_id is not None else self._current_task_id
        session = self._sessions.get(key) if key is not None else None
        if session is None:
            raise NoActiveSessionError(
                f"No session attached for task {key}" if key else "No task is attached"
            )
        return session

    def _is_live(self, session: Session) -> bool:
        return self._sessions.get(session.task_id) is session

    # --- Conversation ---

    async def process_message(self, text: str, task_id: Optional[str] = None) -> MessageResult:
        """
        Handle a user utterance.

        Raises (caller misuse only):
            NoActiveSessionError: nothing attached
            SessionBusyError: a clarification round is waiting for answers
            InvalidTurnError: empty text
        """
        session = self.get_session(task_id)

        async with session.lock:
            if session.collector.is_active():
                raise SessionBusyError(
                    "Clarifying questions are still open; submit answers or cancel them first"
                )

            user_turn = Turn.user(text)
            history = list(session.turns)
            session.append(user_turn)

            try:
                intent = await self.classifier.classify(text, session.task_context, history)
            except (ClassificationError, ProviderError) as e:
                logger.error(f"Classification failed for task {session.task_id}: {e}")
                if not self._is_live(session):
                    return self._discarded_message(session, user_turn)
                apology = Turn.assistant(PromptManager.CLASSIFICATION_APOLOGY, TurnMetadata.plain())
                session.append(apology)
                return MessageResult(new_turns=[user_turn, apology])

            if not self._is_live(session):
                return self._discarded_message(session, user_turn)

            if isinstance(intent, DirectAnswer):
                reply = Turn.assistant(intent.answer, TurnMetadata.plain())
                session.append(reply)
                return MessageResult(new_turns=[user_turn, reply])

            questions = list(intent.questions)
            session.collector.begin(text, questions)
            session.preserved_research = None
            prompt_turn = Turn.assistant(
                self.format_clarification_message(questions),
                TurnMetadata.clarifying_question(),
            )
            session.append(prompt_turn)
            return MessageResult(
                new_turns=[user_turn, prompt_turn],
                requires_clarification=True,
                questions=questions,
            )

    async def submit_clarifications(
        self,
        answers: Sequence[Optional[str]],
        task_id: Optional[str] = None,
    ) -> ResearchResult:
        """
        Answer the pending questions in order and run research.

        answers[i] answers question i; None keeps an answer already given
        through the collector. Everything is validated before anything is
        recorded, so a rejected call leaves the session untouched.

        Raises (caller misuse only):
            NoActiveClarificationError: no round is pending
            InvalidAnswerError: blank answer, or more answers than questions
            IncompleteClarificationError: some question would stay unanswered
        """
        session = self.get_session(task_id)

        async with session.lock:
            current = session.collector.round
            if current is None:
                raise NoActiveClarificationError("There are no clarifying questions to answer")

            answers = list(answers)
            if len(answers) > len(current.questions):
                raise InvalidAnswerError(
                    f"Got {len(answers)} answers for {len(current.questions)} questions"
                )
            for i, value in enumerate(answers):
                if value is not None and (not isinstance(value, str) or not value.strip()):
                    raise InvalidAnswerError(f"Answer to question {i + 1} is empty")

            merged = [
                answers[i] if i < len(answers) and answers[i] is not None else current.answers[i]
                for i in range(len(current.questions))
            ]
            missing = [i + 1 for i, value in enumerate(merged) if value is None]
            if missing:
                raise IncompleteClarificationError(
                    f"Questions {missing} have no answer yet"
                )

            for i, value in enumerate(merged):
                session.collector.answer(i, value)
            finalized = session.collector.finalize()
            session.preserved_research = finalized

            return await self._run_research(session, finalized)

    async def retry_research(self, task_id: Optional[str] = None) -> ResearchResult:
        """Re-run research with the answers kept from a failed attempt."""
        session = self.get_session(task_id)

        async with session.lock:
            if session.preserved_research is None:
                raise NoActiveClarificationError("There is no failed research to retry")
            return await self._run_research(session, session.preserved_research)

    def cancel_clarification(self, task_id: Optional[str] = None) -> bool:
        """Drop the pending round. Returns False if none was pending."""
        session = self.get_session(task_id)
        return session.collector.cancel() is not None

    async def _run_research(self, session: Session, finalized: FinalizedClarification) -> ResearchResult:
        try:
            finding = await self.synthesizer.synthesize(finalized, session.task_context)
        except (ResearchError, ProviderError) as e:
            logger.error(f"Research failed for task {session.task_id}: {e}")
            if not self._is_live(session):
                return self._discarded_research(session)
            apology = Turn.assistant(PromptManager.RESEARCH_APOLOGY, TurnMetadata.plain())
            session.append(apology)
            return ResearchResult(finding=None, new_turns=[apology])

        if not self._is_live(session):
            return self._discarded_research(session)

        result_turn = Turn.assistant(finding.summary, TurnMetadata.research_result(finding.id))
        session.append(result_turn)
        session.preserved_research = None
        return ResearchResult(finding=finding, new_turns=[result_turn])

    def _discarded_message(self, session: Session, user_turn: Turn) -> MessageResult:
        logger.info(f"Task {session.task_id} detached during classification; result discarded")
        return MessageResult(new_turns=[user_turn], discarded=True)

    def _discarded_research(self, session: Session) -> ResearchResult:
        logger.info(f"Task {session.task_id} detached during research; result discarded")
        return ResearchResult(finding=None, new_turns=[], discarded=True)

    @staticmethod
    def format_clarification_message(questions: Sequence[str]) -> str:
        """Format clarifying questions as one assistant message."""
        lines = [PromptManager.CLARIFICATION_INTRO, ""]
        for i, question in enumerate(questions, 1):
            lines.append(f"{i}. {question}")
        return "\n".join(lines)
