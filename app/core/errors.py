from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error the generation pipeline raises on purpose."""

    code = "PIPELINE_ERROR"
    refundable = False

    def __init__(self, message: str, *, code: str | None = None, user_message: str | None = None):
        super().__init__(message)
        if code:
            self.code = code
        self.user_message = user_message or message


class SemanticRejection(PipelineError):
    """Expected, user-facing outcome. Quota is not refunded."""

    code = "SEMANTIC_REJECTION"


class SystemFailure(PipelineError):
    """Unexpected failure on our side or the vendor's. Quota is refunded."""

    code = "SYSTEM_FAILURE"
    refundable = True


class ValidationError(SemanticRejection):
    code = "VALIDATION_ERROR"


class InvalidProfessionError(SemanticRejection):
    code = "INVALID_PROFESSION"

    def __init__(self, message: str = "The provided text does not appear to be a valid profession or job title."):
        super().__init__(message, user_message=message)


class UpstreamGenerationError(SystemFailure):
    code = "UPSTREAM_GENERATION_FAILED"

    def __init__(self, message: str, *, provider: str | None = None, model: str | None = None):
        super().__init__(message, user_message="AI generation is temporarily unavailable. Please try again.")
        self.provider = provider
        self.model = model


class ParseError(SystemFailure):
    code = "PARSE_ERROR"

    def __init__(self, message: str, *, task: str | None = None):
        super().__init__(message, user_message="The AI response could not be processed. Please try again.")
        self.task = task
