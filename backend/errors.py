# backend/errors.py
"""
Error taxonomy for the generate pipeline.

Every step raises a GenerationError subclass; the orchestrator passes whatever
escapes through classify() so the HTTP layer only ever sees a ClassifiedError.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

MAX_DETAIL_CHARS = 2000


class GenerationError(Exception):
    kind = "unhandled"
    status_code = 500
    default_message = "unhandled"

    def __init__(self, message: Optional[str] = None, detail: Any = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(GenerationError):
    kind = "validation_error"
    status_code = 400
    default_message = "invalid request"


class UploadFailed(GenerationError):
    kind = "upload_failed"
    status_code = 502
    default_message = "upload failed"


class UploadResponseInvalid(GenerationError):
    kind = "upload_response_invalid"
    status_code = 502
    default_message = "no uploaded image url"


class SubmissionFailed(GenerationError):
    kind = "submission_failed"
    status_code = 502
    default_message = "replicate start failed"


class PollTimeout(GenerationError):
    kind = "poll_timeout"
    status_code = 504
    default_message = "timeout"


class GenerationFailed(GenerationError):
    kind = "generation_failed"
    status_code = 502
    default_message = "generation failed"


class NoOutputProduced(GenerationError):
    kind = "no_output_produced"
    status_code = 502
    default_message = "no output image"


class ConfigurationError(GenerationError):
    kind = "configuration_error"
    status_code = 500
    default_message = "server misconfigured"


class Unhandled(GenerationError):
    pass


@dataclass(frozen=True)
class ClassifiedError:
    kind: str
    message: str
    status_code: int
    detail: Optional[str] = None

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


def _format_detail(detail: Any, secret: Optional[str]) -> Optional[str]:
    if detail is None or detail == "":
        return None
    text = detail if isinstance(detail, str) else repr(detail)
    if secret:
        text = text.replace(secret, "***")
    if len(text) > MAX_DETAIL_CHARS:
        text = text[:MAX_DETAIL_CHARS].rstrip() + "..."
    return text


def classify(exc: BaseException, secret: Optional[str] = None) -> ClassifiedError:
    """
    Map any exception to a ClassifiedError.
    `secret` (the backend token) is masked out of the detail text.
    """
    if isinstance(exc, GenerationError):
        return ClassifiedError(
            kind=exc.kind,
            message=exc.message,
            status_code=exc.status_code,
            detail=_format_detail(exc.detail, secret),
        )
    return ClassifiedError(
        kind=Unhandled.kind,
        message=Unhandled.default_message,
        status_code=Unhandled.status_code,
        detail=_format_detail(str(exc) or type(exc).__name__, secret),
    )
