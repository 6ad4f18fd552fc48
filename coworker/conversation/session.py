"""
Session - Live orchestration state for one task's conversation.

Tracks:
- Turns (persisted history first, read-only; new turns appended after)
- The clarification collector (pending round, if any)
- Finalized clarification data kept after a failed research attempt
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

from coworker.conversation.clarification import (
    ClarificationCollector,
    ClarificationRound,
    FinalizedClarification,
)
from coworker.conversation.task_context import TaskContext
from coworker.conversation.turns import Turn, append_turn

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """
    Owned by the orchestrator; identity matters, so sessions compare by
    identity rather than by value.
    """
    task_id: str
    task_context: Optional[TaskContext] = None
    turns: List[Turn] = field(default_factory=list)
    history_length: int = 0
    collector: ClarificationCollector = field(default_factory=ClarificationCollector)

    # Finalized answers kept when research fails, so the user need not re-answer
    preserved_research: Optional[FinalizedClarification] = None

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # Serializes classifier/synthesizer calls for this session
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_history(
        cls,
        task_id: str,
        history: List[Turn],
        task_context: Optional[TaskContext] = None,
    ) -> "Session":
        history = list(history)
        return cls(
            task_id=task_id,
            task_context=task_context,
            turns=history,
            history_length=len(history),
        )

    @property
    def history(self) -> Tuple[Turn, ...]:
        """Turns loaded from the external store."""
        return tuple(self.turns[:self.history_length])

    @property
    def new_turns(self) -> Tuple[Turn, ...]:
        """Turns created during this session, not yet persisted by the caller."""
        return tuple(self.turns[self.history_length:])

    @property
    def pending_clarification(self) -> Optional[ClarificationRound]:
        return self.collector.round

    def is_busy(self) -> bool:
        return self.lock.locked()

    def append(self, turn: Turn) -> None:
        self.turns = append_turn(self.turns, turn)
        self.updated_at = datetime.now()

    def discard_new_turns(self) -> int:
        """Drop in-memory turns; seeded history is kept. Returns how many were dropped."""
        dropped = len(self.turns) - self.history_length
        self.turns = self.turns[:self.history_length]
        self.updated_at = datetime.now()
        return dropped
