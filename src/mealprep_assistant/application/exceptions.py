"""Application-level exceptions.

These are business-logic errors, not HTTP errors. The presentation layer
(FastAPI routes) translates them into appropriate HTTP responses.
"""


class EmptyMessageError(ValueError):
    """Raised when a chat turn carries neither text nor images."""


class ConversationNotFoundError(LookupError):
    """Raised when a conversation does not exist or belongs to another user."""


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or inconsistent."""


class RetrievalBranchUnavailable(RuntimeError):
    """Raised inside one retrieval branch when its backing table or index is unusable.

    Always caught by the retrieval service and downgraded to an empty branch.
    """
