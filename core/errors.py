"""
core/errors.py - Error types shared by the build and the chat pipeline
======================================================================

- ConfigurationError: a provider-backed path was used without credentials
- ProviderError: the embedding or generation provider failed or returned
  something we could not use
- KnowledgeValidationError: malformed knowledge input at build time
- AskFailure: typed failure returned to the serving layer
"""


class ConfigurationError(ValueError):
    """Raised when a provider is required but not configured."""


class ProviderError(RuntimeError):
    """Raised when an external provider call fails or is malformed."""


class KnowledgeValidationError(ValueError):
    """Raised when knowledge or FAQ input is malformed. Aborts the build."""


class AskFailure(Exception):
    """
    A question could not be answered by the pipeline.

    Attributes:
        kind: One of "invalid_question", "disabled", "not_configured",
              "unavailable"
        message: User-facing message
    """

    INVALID_QUESTION = "invalid_question"
    DISABLED = "disabled"
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}
