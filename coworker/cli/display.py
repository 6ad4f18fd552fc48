"""
Display utilities for CLI using Rich library.
"""

from typing import List

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from coworker.conversation.turns import Finding

COWORKER_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "success": "green bold",
        "agent": "blue bold",
        "user": "magenta bold",
    }
)


class CoworkerDisplay:
    """Rich-based display manager for the coworker CLI."""

    def __init__(self):
        self.console = Console(theme=COWORKER_THEME)

    def clear(self):
        """Clear the console."""
        self.console.clear()

    def print_banner(self, task_title: str):
        self.console.print(
            Panel(
                Text(f"MOMENTUM COWORKER\nTask: {task_title}", justify="center"),
                style="bold cyan",
                border_style="cyan",
            )
        )

    def print_help(self):
        help_text = """
[bold]Commands:[/bold]
  • Type a message about your task
  • Research requests trigger clarifying questions, answered one by one
  • Type [cyan]skip[/cyan] to skip a question, [cyan]cancel[/cyan] to drop the questions
  • [cyan]retry[/cyan] - Retry the last failed research
  • [cyan]cancel[/cyan] - Drop pending clarifying questions
  • [cyan]history[/cyan] - Show the conversation so far
  • [cyan]help[/cyan] - Show this help
  • [cyan]quit[/cyan] / [cyan]exit[/cyan] - Exit
        """
        self.console.print(Panel(help_text.strip(), title="Help", border_style="dim"))

    def print_agent(self, message: str):
        """Print agent message."""
        self.console.print()
        self.console.print(
            Panel(
                Markdown(message),
                title="Coworker",
                title_align="left",
                border_style="blue",
                padding=(1, 2),
            )
        )

    def print_user_prompt(self, label: str = "You") -> str:
        """Print user prompt and get input."""
        self.console.print()
        return self.console.input(f"[magenta bold]{label}:[/magenta bold] ")

    def print_question(self, index: int, total: int, question: str):
        self.console.print(f"[agent]Q{index}/{total}:[/agent] {question}")

    def print_finding(self, finding: Finding):
        self.print_agent(finding.summary)
        if finding.sources:
            self.console.print("[bold]Sources:[/bold]")
            for source in finding.sources:
                self.console.print(f"  • [info]{source}[/info]")

    def print_history(self, lines: List[str]):
        self.console.print(Panel("\n".join(lines) or "(empty)", title="History", border_style="dim"))

    def print_error(self, message: str):
        self.console.print(f"[error]✗ {message}[/error]")

    def print_warning(self, message: str):
        self.console.print(f"[warning]! {message}[/warning]")

    def print_success(self, message: str):
        self.console.print(f"[success]✓ {message}[/success]")

    def print_info(self, message: str):
        self.console.print(f"[info]{message}[/info]")
