from __future__ import annotations

NEEDS_INTERVENTION_MARKER = "NEEDS_INTERVENTION"
EXIT_FAILURE = 1
EXIT_NEEDS_INTERVENTION = 3


class PipelineError(Exception):
    """Base class for failures that stop a pipeline phase."""


class NeedsInterventionError(PipelineError):
    """The phase cannot proceed without an operator (credentials, timeouts, bad agent output)."""

    def __str__(self) -> str:
        message = super().__str__()
        if message.startswith(NEEDS_INTERVENTION_MARKER):
            return message
        return f"{NEEDS_INTERVENTION_MARKER}: {message}"


class PersistenceError(PipelineError):
    pass


class CandidateValidationError(PipelineError, ValueError):
    pass


class AgentCallError(PipelineError):
    pass


class AgentOutputError(PipelineError, ValueError):
    pass
