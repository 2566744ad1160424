"""
Larm -- Error Taxonomy
Exceptions raised by the image workspace and render pipeline.
"""


class LarmError(Exception):
    """Base class for pipeline errors."""
    pass


class DecodeFailure(LarmError):
    """Raised when image bytes cannot be parsed into a pixel grid."""
    pass


class SizeMismatch(LarmError):
    """Raised when a byte buffer does not match width * height * 3.

    This is a contract violation between pipeline stages, not a runtime
    condition callers are expected to recover from.
    """

    def __init__(self, actual: int, width: int, height: int):
        self.actual = actual
        self.expected = width * height * 3
        self.width = width
        self.height = height
        super().__init__(
            f"Buffer holds {actual} bytes, expected {self.expected} "
            f"for {width}x{height} RGB"
        )


class SessionNotFound(LarmError):
    """Raised when a session id is not present in the store."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class EngineUnavailable(LarmError):
    """Raised when the native grain engine cannot be bound."""
    pass
