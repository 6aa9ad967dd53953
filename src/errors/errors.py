"""Exception hierarchy for the recipe generation pipeline.

Every stage raises one of these; the request handler turns them into an
ErrorReport via src.errors.classifier. Each class carries its ErrorKind and
the HTTP status it maps to.
"""

from typing import Optional


class RecipePipelineError(Exception):
    """Base class for every classified pipeline failure."""

    kind: str = "UpstreamFailure"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingCredential(RecipePipelineError):
    kind = "MissingCredential"
    status_code = 500

    def __init__(self, message: str = "GEMINI_API_KEY is not set") -> None:
        super().__init__(message)


class InvalidRequest(RecipePipelineError):
    kind = "InvalidRequest"
    status_code = 400


class UnsupportedImage(RecipePipelineError):
    kind = "UnsupportedImage"
    status_code = 400


class QuotaExceeded(RecipePipelineError):
    kind = "QuotaExceeded"
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class InvalidCredential(RecipePipelineError):
    kind = "InvalidCredential"
    status_code = 500


class RequestTimeout(RecipePipelineError):
    kind = "RequestTimeout"
    status_code = 500


class ResponseUnparseable(RecipePipelineError):
    """Model output could not be repaired into a Recipe.

    raw_text is kept for logs only and never returned to the caller.
    """

    kind = "ResponseUnparseable"
    status_code = 500

    def __init__(self, message: str, raw_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class UpstreamFailure(RecipePipelineError):
    kind = "UpstreamFailure"
    status_code = 500
