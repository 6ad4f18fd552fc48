"""
Research Synthesizer

Combines the original query, the clarification answers and the task context
into one completion request and returns a Finding. Persisting the Finding is
the caller's job.
"""

import asyncio
import logging
from typing import Optional

from coworker.adapters.llm import CompletionProvider
from coworker.conversation.clarification import FinalizedClarification
from coworker.conversation.task_context import TaskContext
from coworker.conversation.turns import Finding
from coworker.core.config import settings
from coworker.core.exceptions import (
    ProviderError,
    ResearchError,
    ResponseValidationError,
)
from coworker.core.prompts import PromptManager
from coworker.core.schemas import FindingResponse

logger = logging.getLogger(__name__)


class ResearchSynthesizer:
    """
    Produces one Finding per completed clarification round.

    A transient provider error is retried once after a fixed backoff;
    everything else fails with ResearchError straight away.
    """

    def __init__(self, provider: CompletionProvider, backoff_seconds: Optional[float] = None):
        self.provider = provider
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS

    def build_context(
        self,
        clarification: FinalizedClarification,
        task_context: Optional[TaskContext],
    ) -> str:
        if clarification.qa_pairs:
            clarifications_text = "\n".join(
                f"Q: {qa.question}\nA: {qa.answer}" for qa in clarification.qa_pairs
            )
        else:
            clarifications_text = "No additional clarifications provided."

        return PromptManager.get_prompt(
            "RESEARCH_CONTEXT",
            query=clarification.original_query,
            clarifications=clarifications_text,
            task_title=task_context.title if task_context else "",
            task_context=task_context.to_prompt_context() if task_context else "",
        )

    async def synthesize(
        self,
        clarification: FinalizedClarification,
        task_context: Optional[TaskContext] = None,
    ) -> Finding:
        """
        Run the research request.

        Raises:
            ResearchError: provider failed (after one retry if transient) or
                the response was unusable. No partial Finding is returned.
        """
        instructions = PromptManager.get_prompt("RESEARCH_INSTRUCTIONS")
        context = self.build_context(clarification, task_context)
        logger.info(f"Researching: {clarification.original_query[:80]}")

        response = None
        for attempt in (1, 2):
            try:
                response = await self.provider.complete(instructions, context, FindingResponse)
                break
            except ResponseValidationError as e:
                raise ResearchError(f"Research response was unusable: {e}") from e
            except ProviderError as e:
                if e.transient and attempt == 1:
                    logger.warning(f"Research call failed transiently, retrying in {self.backoff_seconds}s: {e}")
                    await asyncio.sleep(self.backoff_seconds)
                    continue
                raise ResearchError(f"Research failed: {e}") from e

        finding = Finding(
            query=clarification.original_query,
            clarifying_qa=clarification.qa_pairs,
            summary=response.summary,
            sources=tuple(response.sources),
        )
        logger.info(f"Finding {finding.id} ready ({len(finding.summary)} chars, {len(finding.sources)} sources)")
        return finding
