"""
Response schemas for the completion provider.

The provider adapter validates raw model output against these models, so the
rest of the engine only ever sees typed objects.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class IntentResponse(BaseModel):
    """Classification plus, on the direct path, the answer itself."""

    kind: Literal["direct", "needsClarification"]
    # Models often send null for the field of the other variant.
    answer: Optional[str] = None
    # Entries may be null or blank; the classifier drops those.
    questions: Optional[List[Optional[str]]] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "IntentResponse":
        self.answer = self.answer or ""
        self.questions = self.questions or []
        if self.kind == "direct" and not self.answer.strip():
            raise ValueError("direct intent requires a non-empty answer")
        return self


class FindingResponse(BaseModel):
    """Synthesized research summary."""

    summary: str
    sources: List[str] = Field(default_factory=list)

    @field_validator("summary")
    @classmethod
    def _summary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summary must not be empty")
        return value.strip()

    @field_validator("sources")
    @classmethod
    def _drop_blank_sources(cls, value: List[str]) -> List[str]:
        return [s.strip() for s in value if s and s.strip()]
