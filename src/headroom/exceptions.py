class HeadroomError(Exception):
    """Base exception for all expected headroom errors."""

    message: str
    exit_code: int

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ConfigurationError(HeadroomError):
    """Configuration related errors (env vars, model strings)."""


class HistoryStructureError(HeadroomError):
    """Conversation history with a malformed shape, such as an unknown role."""


class InvalidInputError(HeadroomError):
    """User input validation errors."""


class ProviderError(HeadroomError):
    """LLM provider errors."""
