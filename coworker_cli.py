#!/usr/bin/env python3
"""
Momentum Coworker CLI

Usage:
    python coworker_cli.py [--mock] [--task TITLE] [--description TEXT]

Options:
    --mock          Use mock LLM for testing (no API key needed)
    --task          Title of the task to work on
    --description   Task description

Examples:
    python coworker_cli.py --task "Draft proposal"          # Run with the configured provider
    python coworker_cli.py --mock --task "Launch pricing"   # Run with mock LLM
"""

import asyncio
import argparse
import json
import sys

from dotenv import load_dotenv
load_dotenv()


class MockLLMClient:
    """Mock LLM for testing without API keys."""

    async def generate(self, prompt: str, system_instruction: str = None, json_mode: bool = False) -> str:
        instructions = (system_instruction or "").lower()
        prompt_lower = prompt.lower()

        # Research synthesis
        if "performing research" in instructions:
            return json.dumps({
                "summary": (
                    "Mock research summary.\n\n"
                    "- Finding one\n- Finding two\n- Finding three\n\n"
                    "**Recommendation:** start with the smallest useful step."
                ),
                "sources": ["https://example.com/mock-source"],
            })

        # Intent classification
        message = prompt_lower.split("user message:", 1)[-1]
        if any(word in message for word in ("research", "find", "look up", "compare")):
            return json.dumps({
                "kind": "needsClarification",
                "questions": ["What's your main goal?", "Any constraints I should know about?"],
            })
        return json.dumps({
            "kind": "direct",
            "answer": "Mock answer: break the task into one small step and start there.",
        })


async def run_cli(mock: bool, task: str, description: str):
    """Run the CLI with specified configuration."""
    from coworker.adapters.llm import LLMCompletionProvider, LLMFactory
    from coworker.cli.app import CoworkerCLI
    from coworker.cli.display import CoworkerDisplay
    from coworker.conversation.task_context import TaskContext
    from coworker.core.config import settings, configure_logging

    configure_logging()
    display = CoworkerDisplay()

    if mock:
        display.print_info("Running in MOCK mode (no API calls)")
        llm = MockLLMClient()
    else:
        try:
            llm = LLMFactory.create_client()
            display.print_info(f"Using {settings.LLM_PROVIDER} API")
        except ValueError as e:
            display.print_error(str(e))
            display.console.print("""
[bold]Setup required:[/bold]

1. Create a .env file with your provider and API key:
   [cyan]LLM_PROVIDER=groq[/cyan]
   [cyan]GROQ_API_KEY=your_key_here[/cyan]

2. Or run in mock mode for testing:
   [cyan]python coworker_cli.py --mock[/cyan]
            """)
            sys.exit(1)

    cli = CoworkerCLI(
        provider=LLMCompletionProvider(llm),
        task_context=TaskContext(title=task, description=description),
    )
    await cli.run()


def main():
    """Parse arguments and run CLI."""
    parser = argparse.ArgumentParser(
        description="Momentum Coworker CLI - task-scoped AI help and research"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use mock LLM for testing"
    )
    parser.add_argument(
        "--task",
        default="Untitled task",
        help="Title of the task to work on"
    )
    parser.add_argument(
        "--description",
        default=None,
        help="Task description"
    )

    args = parser.parse_args()

    try:
        asyncio.run(run_cli(mock=args.mock, task=args.task, description=args.description))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
