"""Errors raised by the grade passback core.

Every error carries the HTTP status it is reported with.
"""

from __future__ import annotations


class GradePassbackError(Exception):
    """Base class for handled errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class Unauthenticated(GradePassbackError):
    """No validated launch token is attached to the request."""

    status_code = 401

    def __init__(self, message: str = "Not an LTI session"):
        super().__init__(message)


class MissingResourceLink(GradePassbackError):
    """The launch carries no resource-link id to scope a line item to."""

    status_code = 400

    def __init__(self, message: str = "launch has no resource link id"):
        super().__init__(message)


class InvalidScore(GradePassbackError):
    """The score is not a number or falls outside 0..scoreMaximum."""

    status_code = 400


class GradeServiceError(GradePassbackError):
    """A call to the platform's grade service failed."""

    status_code = 502


class UpstreamSubmissionError(GradeServiceError):
    """Posting a score to the platform failed."""


class PlatformRegistrationError(GradePassbackError):
    """A single platform entry could not be registered."""

    def __init__(self, url: str | None, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url
