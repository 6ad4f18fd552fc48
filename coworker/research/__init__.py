"""
Research Module

Turns a finalized clarification round into a Finding:
- synthesizer.py: ResearchSynthesizer (one completion round trip per Finding)

Import submodules directly to avoid circular imports:
  from coworker.research.synthesizer import ResearchSynthesizer
"""

__all__ = [
    "synthesizer",
]
