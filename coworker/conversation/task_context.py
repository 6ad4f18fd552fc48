"""
TaskContext - What the coworker knows about the task being worked on.

Supplied by the presentation layer from the external task store and rendered
into every classification and research prompt.
"""

from typing import List, Optional
from dataclasses import dataclass, field

from coworker.conversation.turns import Finding

# Only the newest findings are worth the prompt space
MAX_PREVIOUS_FINDINGS = 3
FINDING_PREVIEW_CHARS = 200


@dataclass
class TaskContext:
    title: str
    description: Optional[str] = None
    difficulty: Optional[str] = None
    estimated_minutes: Optional[int] = None
    previous_findings: List[Finding] = field(default_factory=list)
    brainstorms: List[str] = field(default_factory=list)

    def to_prompt_context(self) -> str:
        """Format as text for prompt injection."""
        lines = [f"Task: {self.title}"]
        if self.difficulty:
            lines.append(f"Difficulty: {self.difficulty}")
        if self.estimated_minutes:
            lines.append(f"Estimated Time: {self.estimated_minutes} minutes")
        if self.description:
            lines.append(f"Description: {self.description}")

        if self.previous_findings:
            lines.append("")
            lines.append("Previous Research:")
            recent = sorted(self.previous_findings, key=lambda f: f.timestamp, reverse=True)
            for finding in recent[:MAX_PREVIOUS_FINDINGS]:
                preview = finding.summary[:FINDING_PREVIEW_CHARS]
                lines.append(f"- {finding.query}: {preview}...")

        if self.brainstorms:
            lines.append("")
            lines.append("User Brainstorms:")
            for note in self.brainstorms:
                lines.append(f"- {note}")

        return "\n".join(lines)
