"""
Exceptions raised inside the delegate pipeline.

The orchestrator converts each of these into a PipelineOutcome with the
failing stage attached; none of them escape to the HTTP layer.
"""


class PipelineError(Exception):
    """Base class for failures the pipeline knows how to report."""


class SubmitError(PipelineError):
    """Replicate rejected a prediction create request."""

    def __init__(self, raw_status: int, raw_body: str):
        self.raw_status = raw_status
        self.raw_body = raw_body
        super().__init__(f"Replicate API error ({raw_status}): {raw_body[:100]}")


class PollFailedError(PipelineError):
    """The prediction reached the `failed` state."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PollTimeoutError(PipelineError):
    """No terminal status was observed within the attempt budget."""

    def __init__(self, attempts: int, budget_seconds: float):
        self.attempts = attempts
        self.budget_seconds = budget_seconds
        super().__init__(f"No terminal status after {attempts} polls ({budget_seconds:g}s)")


class TransitionError(PipelineError):
    def __init__(self, state, event):
        self.state = state
        self.event = event
        super().__init__(f"invalid transition: {state} on {event}")
