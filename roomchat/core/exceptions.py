class ChatError(Exception):
    """Base class for every failure the chat layer reports."""


class BackendError(ChatError):
    """A read or write against the backend failed."""


class NotFoundError(BackendError):
    """A single-row fetch matched nothing."""


class AuthRequiredError(ChatError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InvalidInputError(ChatError):
    """User input was rejected before any backend call."""
