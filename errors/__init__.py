"""Custom exception hierarchy for the pipeline chat client."""

from errors.exceptions import (
    ApiClientError,
    ChatClientError,
    ConversationStateError,
    MissingCallerIdentityError,
)

__all__ = [
    "ApiClientError",
    "ChatClientError",
    "ConversationStateError",
    "MissingCallerIdentityError",
]
