"""
Error taxonomy for the conversation engine.

Caller misuse (InvalidTurnError, InvalidAnswerError, NoActiveClarificationError,
IncompleteClarificationError, ClarificationInProgressError, SessionBusyError,
NoActiveSessionError) propagates to the caller. Model and network failures
(ClassificationError, ResearchError, ProviderError) are converted by the
orchestrator into an apologetic assistant turn.
"""


class CoworkerError(Exception):
    """Base class for all coworker errors."""


class InvalidTurnError(CoworkerError):
    """A turn could not be constructed or deserialized."""


class InvalidAnswerError(CoworkerError):
    """A clarification answer was empty or addressed the wrong question."""


class ClarificationInProgressError(CoworkerError):
    """A clarification round is already active for the session."""


class IncompleteClarificationError(CoworkerError):
    """Research was requested before every question was answered."""


class NoActiveClarificationError(CoworkerError):
    """An operation needs a clarification round but none is active."""


class SessionBusyError(CoworkerError):
    """The session cannot accept this message in its current state."""


class NoActiveSessionError(CoworkerError):
    """No session is attached for the requested task."""


class ProviderError(CoworkerError):
    """
    The completion provider failed.

    transient=True marks failures worth one retry (timeouts, rate limits,
    connection resets, 5xx responses).
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient

    def __repr__(self) -> str:
        return f"ProviderError({str(self)!r}, transient={self.transient})"


class ResponseValidationError(CoworkerError):
    """The provider answered, but the payload did not match the schema."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class ClassificationError(CoworkerError):
    """Intent classification failed after its retry."""


class ResearchError(CoworkerError):
    """Research synthesis failed after its retry."""
