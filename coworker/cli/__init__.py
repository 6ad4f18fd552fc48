"""
CLI Module - Interactive command-line coworker for a single task.

Features:
- Colorful output using Rich
- Clarifying questions asked one at a time
- Findings saved as Markdown
"""

from coworker.cli.app import CoworkerCLI
from coworker.cli.display import CoworkerDisplay

__all__ = ["CoworkerCLI", "CoworkerDisplay"]
