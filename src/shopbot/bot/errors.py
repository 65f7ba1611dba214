"""Exception hierarchy for bot sessions.

Every error here is recovered inside the session that raised it. None of
them should escape to the fleet layer.
"""


class BotError(Exception):
    """Base class for session errors."""


class TransientNetworkError(BotError):
    """Read error or timeout during an otherwise healthy session."""


class ProtocolRequestError(BotError):
    """An outbound request could not be built or submitted."""

    def __init__(self, kind: str, reason: str) -> None:
        super().__init__(f"{kind} request failed: {reason}")
        self.kind = kind
        self.reason = reason


class WorkflowSafetyStop(BotError):
    """The auto-buy workflow hit its attempt cap and was stopped on purpose."""

    def __init__(self, attempts: int, limit: int) -> None:
        super().__init__(f"{attempts} attempts exceeds the limit of {limit}")
        self.attempts = attempts
        self.limit = limit
