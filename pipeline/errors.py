"""
Exception types raised inside the submission pipeline.

The runner catches these and maps them to a SubmissionOutcome; callers of
``SubmissionPipeline.submit`` never see them.
"""

from typing import Optional

from pipeline.schema import ErrorKind


class IntakeError(Exception):
    """Base class for pipeline failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False


class ArtifactGenerationError(IntakeError):
    """The PDF or JSON attachment could not be produced. Never retried."""

    kind = ErrorKind.ARTIFACT_GENERATION


class TransportError(IntakeError):
    """
    A submission transmission failed.

    Attributes:
        kind: Classified failure (timeout, offline, server, rate_limited, rejected, unknown)
        status: HTTP status code when one was received
        retryable: Whether the runner may try again
        server_message: Message returned by the server for explicit rejections
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status: Optional[int] = None,
        retryable: bool = True,
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.retryable = retryable
        self.server_message = server_message


def classify_status(status: int) -> TransportError:
    """
    Map a non-success HTTP status to a TransportError.

    4xx statuses are terminal except 429, which is retried as rate limiting.
    """
    if status == 429:
        return TransportError(f"HTTP {status}", ErrorKind.RATE_LIMITED, status, retryable=True)
    if 400 <= status < 500:
        return TransportError(f"HTTP {status}", ErrorKind.REJECTED, status, retryable=False)
    if status >= 500:
        return TransportError(f"HTTP {status}", ErrorKind.SERVER, status, retryable=True)
    return TransportError(f"HTTP {status}", ErrorKind.UNKNOWN, status, retryable=True)
