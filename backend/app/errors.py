"""
Error taxonomy shared by services and routes.

Services raise these; the application-level handler in app.main turns them
into `{"error": message}` responses with the attached status code.
"""

from fastapi import status


class CourseHubError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(CourseHubError):
    status_code = status.HTTP_401_UNAUTHORIZED


class BadRequestError(CourseHubError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(CourseHubError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(CourseHubError):
    status_code = status.HTTP_404_NOT_FOUND


class TooManyRequestsError(CourseHubError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class UnsupportedFormatError(CourseHubError):
    """The knowledge document has a type we cannot extract text from."""


class ExtractionFailedError(CourseHubError):
    """The document parser failed; the message carries the parser's cause."""


class UpstreamError(CourseHubError):
    """The generative model endpoint answered with a failure status."""

    def __init__(self, message: str, *, upstream_status: int | None = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class InternalError(CourseHubError):
    """Unhandled data-access or infrastructure failure."""
