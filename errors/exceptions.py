"""Domain-specific exceptions for the pipeline chat client.

These exceptions let the orchestrator and the entry point distinguish
precondition failures, misuse of the conversation state machine and
REST collaborator failures.  Streaming failures are *not* raised: they are
surfaced as terminal ``error`` events on the stream itself.
"""

from __future__ import annotations


class ChatClientError(Exception):
    """Base class for client errors."""


class MissingCallerIdentityError(ChatClientError):
    """No authenticated caller is available.

    Raised synchronously, before any network activity, whenever a request
    would be sent without a user id.
    """

    def __init__(self, operation: str = "chat stream") -> None:
        self.operation = operation
        super().__init__(f"Caller identity is required to open a {operation}")


class ConversationStateError(ChatClientError):
    """An orchestrator operation was invoked in a state that does not allow it."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while conversation is {state}")


class ApiClientError(ChatClientError):
    """Raised when a REST endpoint returns a non-2xx response."""

    def __init__(self, status_code: int, detail: str, url: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        self.url = url
        super().__init__(f"API {status_code}: {detail} ({url})")
