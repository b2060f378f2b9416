"""Typed errors that cross the engine boundary.

Only conditions that need a user decision are raised to callers. Transport
drops, malformed messages and unknown events are handled internally and
surface as connectivity-state changes or log lines.
"""


class SyncError(Exception):
    """Base exception for the session sync engine."""


class NotConnectedError(SyncError):
    """A command was issued while the push connection is not open.

    The command was not encoded or sent and the session view is unchanged.
    Callers decide whether and when to retry the user action.

    Attributes:
        verb: The outbound message type that was attempted (e.g. "submit_answer").
        state: The connectivity state at the time of the attempt.

    """

    def __init__(self, *, verb: str, state: str) -> None:
        self.verb = verb
        self.state = state
        super().__init__(f"cannot send {verb}: connection is {state}")


class StatusFetchError(SyncError):
    """The authoritative status endpoint could not be read."""

    def __init__(self, *, session_code: str, reason: str, status_code: int | None = None) -> None:
        self.session_code = session_code
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"status fetch for {session_code} failed: {reason}")
