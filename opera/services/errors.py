from __future__ import annotations


class OperaError(Exception):
    """Base class for user-facing pipeline errors.

    The message is what the user sees, so keep it short and lowercase.
    """

    message = "operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def user_message(self) -> str:
        return str(self)


class NoProjectOpen(OperaError):
    message = "no #project open"


class CycleAlreadyRunning(OperaError):
    message = "research cycle already running"


class ReviewError(OperaError):
    message = "review failed"


class InvalidReviewId(ReviewError):
    message = "invalid review ID"


class ReviewNotFound(ReviewError):
    message = "review not found"


class ReviewAlreadyProcessed(ReviewError):
    message = "review already processed"


class GeocodingFailed(ReviewError):
    message = "could not geocode location, skipping"


class WorkerNotRegistered(OperaError):
    message = "no worker registered"
