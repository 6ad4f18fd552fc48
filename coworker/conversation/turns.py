"""
Turns - Immutable message shapes for a task conversation.

Provides:
- Turn / TurnMetadata (tagged: plain, clarifyingQuestion, researchResult)
- Finding and QAPair (research artifacts referenced from turn metadata)
- Pure helpers to append, pair, render and (de)serialize turns

No I/O here: persistence belongs to the caller.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from enum import Enum

from coworker.core.exceptions import InvalidTurnError


class TurnRole(str, Enum):
    """Who sent the turn."""
    USER = "user"
    ASSISTANT = "assistant"


class TurnKind(str, Enum):
    """Metadata tag of a turn."""
    PLAIN = "plain"
    CLARIFYING_QUESTION = "clarifyingQuestion"
    RESEARCH_RESULT = "researchResult"


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    # fromisoformat only accepts a trailing "Z" from Python 3.11
    if isinstance(value, str) and value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidTurnError(f"Invalid timestamp: {value!r}") from e


@dataclass(frozen=True)
class TurnMetadata:
    """Tagged variant; finding_id is set only for research results."""
    kind: TurnKind = TurnKind.PLAIN
    finding_id: Optional[str] = None

    def __post_init__(self):
        try:
            kind = TurnKind(self.kind)
        except ValueError as e:
            raise InvalidTurnError(f"Unknown turn kind: {self.kind!r}") from e
        object.__setattr__(self, "kind", kind)

        if kind == TurnKind.RESEARCH_RESULT and not self.finding_id:
            raise InvalidTurnError("researchResult metadata requires a finding_id")
        if kind != TurnKind.RESEARCH_RESULT and self.finding_id is not None:
            raise InvalidTurnError(f"{kind.value} metadata cannot carry a finding_id")

    @classmethod
    def plain(cls) -> "TurnMetadata":
        return cls(TurnKind.PLAIN)

    @classmethod
    def clarifying_question(cls) -> "TurnMetadata":
        return cls(TurnKind.CLARIFYING_QUESTION)

    @classmethod
    def research_result(cls, finding_id: str) -> "TurnMetadata":
        return cls(TurnKind.RESEARCH_RESULT, finding_id=finding_id)

    def to_dict(self) -> dict:
        data = {"kind": self.kind.value}
        if self.finding_id is not None:
            data["finding_id"] = self.finding_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TurnMetadata":
        if not isinstance(data, dict) or "kind" not in data:
            raise InvalidTurnError(f"Invalid turn metadata: {data!r}")
        return cls(kind=data["kind"], finding_id=data.get("finding_id"))


@dataclass(frozen=True)
class Turn:
    """A single message in the conversation. Immutable once created."""
    role: TurnRole
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Optional[TurnMetadata] = None
    turn_id: str = field(default_factory=_new_id)

    def __post_init__(self):
        try:
            role = TurnRole(self.role)
        except ValueError as e:
            raise InvalidTurnError(f"Unknown role: {self.role!r}") from e
        object.__setattr__(self, "role", role)

        if not isinstance(self.content, str):
            raise InvalidTurnError("Turn content must be a string")
        if not self.content.strip() and self.metadata is None:
            raise InvalidTurnError("Turn content is empty and no metadata was given")

    @property
    def kind(self) -> TurnKind:
        return self.metadata.kind if self.metadata else TurnKind.PLAIN

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, metadata: Optional[TurnMetadata] = None) -> "Turn":
        return cls(role=TurnRole.ASSISTANT, content=content, metadata=metadata)

    def to_dict(self) -> dict:
        return {
            "id": self.turn_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        if not isinstance(data, dict):
            raise InvalidTurnError(f"Expected a dict, got {type(data).__name__}")
        try:
            role = data["role"]
            content = data["content"]
            timestamp = data["timestamp"]
        except KeyError as e:
            raise InvalidTurnError(f"Turn record is missing {e.args[0]!r}") from e

        metadata = data.get("metadata")
        return cls(
            role=role,
            content=content,
            timestamp=_parse_timestamp(timestamp),
            metadata=TurnMetadata.from_dict(metadata) if metadata is not None else None,
            turn_id=data.get("id") or _new_id(),
        )


@dataclass(frozen=True)
class QAPair:
    """One answered clarifying question."""
    question: str
    answer: str

    def to_dict(self) -> dict:
        return {"question": self.question, "answer": self.answer}

    @classmethod
    def from_dict(cls, data: dict) -> "QAPair":
        if not isinstance(data, dict):
            raise InvalidTurnError(f"Expected a dict, got {type(data).__name__}")
        try:
            return cls(question=data["question"], answer=data["answer"])
        except KeyError as e:
            raise InvalidTurnError(f"QA record is missing {e.args[0]!r}") from e


@dataclass(frozen=True)
class Finding:
    """Synthesized research artifact. Ownership passes to the caller once returned."""
    query: str
    clarifying_qa: Tuple[QAPair, ...]
    summary: str
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)
    sources: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "clarifying_qa", tuple(self.clarifying_qa))
        object.__setattr__(self, "sources", tuple(self.sources))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "query": self.query,
            "clarifying_qa": [qa.to_dict() for qa in self.clarifying_qa],
            "summary": self.summary,
            "sources": list(self.sources),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Finding":
        if not isinstance(data, dict):
            raise InvalidTurnError(f"Expected a dict, got {type(data).__name__}")
        try:
            finding_id = data["id"]
            query = data["query"]
            summary = data["summary"]
            timestamp = data["timestamp"]
        except KeyError as e:
            raise InvalidTurnError(f"Finding record is missing {e.args[0]!r}") from e

        return cls(
            id=finding_id,
            query=query,
            clarifying_qa=tuple(QAPair.from_dict(qa) for qa in data.get("clarifying_qa") or []),
            summary=summary,
            sources=tuple(data.get("sources") or []),
            timestamp=_parse_timestamp(timestamp),
        )


@dataclass(frozen=True)
class TurnPair:
    """A user turn and the assistant reply that followed it, for display."""
    user: Optional[Turn]
    assistant: Optional[Turn]


def append_turn(turns: Sequence[Turn], turn: Turn) -> List[Turn]:
    """Return a new list with turn appended; the input is left untouched."""
    if not isinstance(turn, Turn):
        raise InvalidTurnError(f"Expected a Turn, got {type(turn).__name__}")
    return [*turns, turn]


def pair_turns(turns: Iterable[Turn]) -> List[TurnPair]:
    """
    Group adjacent user/assistant turns.

    An assistant turn with no user turn before it gets user=None; a user turn
    with no reply gets assistant=None.
    """
    pairs: List[TurnPair] = []
    pending_user: Optional[Turn] = None

    for turn in turns:
        if turn.role == TurnRole.USER:
            if pending_user is not None:
                pairs.append(TurnPair(user=pending_user, assistant=None))
            pending_user = turn
        else:
            pairs.append(TurnPair(user=pending_user, assistant=turn))
            pending_user = None

    if pending_user is not None:
        pairs.append(TurnPair(user=pending_user, assistant=None))
    return pairs


def serialize_turns(turns: Iterable[Turn]) -> List[Dict[str, Any]]:
    """Serialize for the persistence collaborator."""
    return [t.to_dict() for t in turns]


def deserialize_turns(data: Iterable[dict]) -> List[Turn]:
    """Inverse of serialize_turns."""
    if data is None:
        return []
    return [Turn.from_dict(item) for item in data]


def format_history(turns: Sequence[Turn], limit: int = 10) -> str:
    """Render the last `limit` turns as prompt text."""
    if limit <= 0:
        return "(no previous messages)"
    recent = list(turns)[-limit:]
    if not recent:
        return "(no previous messages)"
    prefix = {TurnRole.USER: "User", TurnRole.ASSISTANT: "Coworker"}
    return "\n".join(f"{prefix[t.role]}: {t.content}" for t in recent)
