"""
CoworkerCLI - Interactive command-line loop over the ConversationOrchestrator.

Plays the presentation layer: it attaches a task, shows turns, collects
clarification answers and persists findings as Markdown files.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from coworker.adapters.llm import CompletionProvider
from coworker.cli.display import CoworkerDisplay
from coworker.conversation.orchestrator import ConversationOrchestrator, ResearchResult
from coworker.conversation.task_context import TaskContext
from coworker.conversation.turns import Finding, pair_turns
from coworker.core.exceptions import CoworkerError, NoActiveClarificationError

SKIP_ANSWER = "No preference"


class CoworkerCLI:
    """
    Interactive CLI for one task conversation.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        task_context: TaskContext,
        task_id: str = "cli-task",
        reports_dir: str = "findings",
    ):
        self.display = CoworkerDisplay()
        self.orchestrator = ConversationOrchestrator(provider)
        self.task_context = task_context
        self.task_id = task_id
        self.reports_dir = Path(reports_dir)
        self._running = False

    async def run(self):
        """Main CLI loop."""
        self.display.clear()
        self.display.print_banner(self.task_context.title)
        self.display.print_help()

        self.orchestrator.attach(self.task_id, task_context=self.task_context)

        self._running = True
        while self._running:
            try:
                user_input = self.display.print_user_prompt()

                if not user_input.strip():
                    continue

                command = user_input.strip().lower()
                if command in ("quit", "exit", "q"):
                    self.display.print_info("Goodbye!")
                    break
                if command in ("help", "?"):
                    self.display.print_help()
                    continue
                if command == "history":
                    self._show_history()
                    continue
                if command == "cancel":
                    self._cancel_questions()
                    continue
                if command == "retry":
                    await self._retry()
                    continue

                await self._process_message(user_input)

            except KeyboardInterrupt:
                self.display.print_info("\nInterrupted. Type 'quit' to exit.")
            except EOFError:
                self.display.print_info("\nEnd of input. Goodbye!")
                break
            except CoworkerError as e:
                self.display.print_error(f"Error: {e}")

        self.orchestrator.reset()

    async def _process_message(self, message: str):
        with self.display.console.status("[bold cyan]Thinking...[/bold cyan]"):
            result = await self.orchestrator.process_message(message)

        reply = result.new_turns[-1]
        self.display.print_agent(reply.content)

        if result.requires_clarification:
            try:
                answers = self._ask_questions(result.questions)
            except KeyboardInterrupt:
                answers = None
            if answers is None:
                self._cancel_questions()
                return

            with self.display.console.status("[bold cyan]Researching...[/bold cyan]"):
                research = await self.orchestrator.submit_clarifications(answers)
            self._show_research(research)

    def _ask_questions(self, questions: List[str]) -> Optional[List[str]]:
        """Collect one answer per question; None when the user cancels."""
        answers = []
        for i, question in enumerate(questions, 1):
            self.display.print_question(i, len(questions), question)
            while True:
                answer = self.display.print_user_prompt("Answer").strip()
                if answer.lower() == "cancel":
                    return None
                if answer.lower() == "skip":
                    answer = SKIP_ANSWER
                if answer:
                    break
                self.display.print_warning("Please answer, or type 'skip'.")
            answers.append(answer)
        return answers

    def _cancel_questions(self):
        if self.orchestrator.cancel_clarification():
            self.display.print_info("Questions dropped. What else can I help with?")
        else:
            self.display.print_info("No questions pending.")

    async def _retry(self):
        try:
            with self.display.console.status("[bold cyan]Researching...[/bold cyan]"):
                research = await self.orchestrator.retry_research()
        except NoActiveClarificationError:
            self.display.print_info("Nothing to retry.")
            return
        self._show_research(research)

    def _show_research(self, research: ResearchResult):
        if research.finding is None:
            for turn in research.new_turns:
                self.display.print_agent(turn.content)
            self.display.print_info("Type 'retry' to try again.")
            return

        self.display.print_finding(research.finding)
        self._save_finding(research.finding)

    def _save_finding(self, finding: Finding) -> str:
        """Persist the finding as Markdown; persistence belongs to the caller."""
        self.reports_dir.mkdir(exist_ok=True)

        ascii_words = re.findall(r"[a-zA-Z][a-zA-Z0-9-]+", finding.query)
        safe_query = "_".join(ascii_words)[:60] if ascii_words else "finding"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = self.reports_dir / f"{safe_query}_{timestamp}.md"

        lines = [f"# Research: {finding.query}", ""]
        for qa in finding.clarifying_qa:
            lines.append(f"- **{qa.question}** {qa.answer}")
        lines += ["", finding.summary]
        if finding.sources:
            lines += ["", "## Sources"] + [f"- {s}" for s in finding.sources]

        filepath.write_text("\n".join(lines), encoding="utf-8")
        self.display.print_success(f"Finding saved to: {filepath}")
        return str(filepath)

    def _show_history(self):
        session = self.orchestrator.get_session()
        lines = []
        for pair in pair_turns(session.turns):
            if pair.user:
                lines.append(f"You: {pair.user.content}")
            if pair.assistant:
                first_line = pair.assistant.content.splitlines()[0] if pair.assistant.content else ""
                lines.append(f"Coworker: {first_line}")
        self.display.print_history(lines)
