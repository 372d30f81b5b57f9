"""Error types for the conversation memory core.

Three kinds of failure, handled differently:
- StoreFailure: storage unavailable or write rejected. Fatal for the turn, propagated.
- GenerationFailure: the model call failed or produced nothing. Recovered locally.
- StateInconsistency: a memory invariant was violated. A programming error, propagated.
"""


class ChatMemoryError(Exception):
    """Base exception for conversation memory errors."""

    pass


class StoreFailure(ChatMemoryError):
    """Raised when the message or conversation store cannot complete a call.

    Attributes:
        operation: Store operation that failed (e.g. "append", "update_summary")
        original_error: Underlying driver error, if any
    """

    def __init__(self, operation: str, message: str | None = None, original_error: Exception | None = None):
        self.operation = operation
        self.original_error = original_error
        self.message = message or f"Store operation '{operation}' failed"
        super().__init__(self.message)


class GenerationFailure(ChatMemoryError):
    """Raised by a language model gateway when a call fails or returns empty text."""

    def __init__(self, message: str = "Language model generation failed", original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class StateInconsistency(ChatMemoryError):
    """Raised when summary/tail bookkeeping violates a memory invariant.

    Attributes:
        conversation_id: Conversation whose state is inconsistent
    """

    def __init__(self, conversation_id: str, message: str):
        self.conversation_id = conversation_id
        self.message = f"Conversation {conversation_id}: {message}"
        super().__init__(self.message)
