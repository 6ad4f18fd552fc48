"""
Conversation module.

Task-scoped coworker conversation:
- Turns: immutable messages tagged plain / clarifyingQuestion / researchResult
- Intent: direct answer or clarification-driven research, in one round trip
- Clarification: bounded Q&A round before research
- Session: per-task state, looked up by task id (never a singleton)

The orchestrator imports the research package, so import it directly:
  from coworker.conversation.orchestrator import ConversationOrchestrator
"""

from coworker.conversation.turns import (
    Finding,
    QAPair,
    Turn,
    TurnKind,
    TurnMetadata,
    TurnPair,
    TurnRole,
)
from coworker.conversation.task_context import TaskContext
from coworker.conversation.intent import (
    DirectAnswer,
    IntentClassifier,
    IntentKind,
    NeedsClarification,
)
from coworker.conversation.clarification import (
    ClarificationCollector,
    ClarificationRound,
    ClarificationState,
    FinalizedClarification,
)
from coworker.conversation.session import Session

__all__ = [
    "Finding",
    "QAPair",
    "Turn",
    "TurnKind",
    "TurnMetadata",
    "TurnPair",
    "TurnRole",
    "TaskContext",
    "DirectAnswer",
    "IntentClassifier",
    "IntentKind",
    "NeedsClarification",
    "ClarificationCollector",
    "ClarificationRound",
    "ClarificationState",
    "FinalizedClarification",
    "Session",
]
