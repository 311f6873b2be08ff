"""Domain exceptions raised by services.

Services raise these instead of HTTP errors; `main` registers one
handler that maps `status_code` and the message onto the response.
"""


class StudyTrackError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(StudyTrackError):
    status_code = 400


class ConflictError(StudyTrackError):
    """The resource already exists (duplicate invite, duplicate share...)."""
    status_code = 400


class InvalidStateError(StudyTrackError):
    """The partnership state machine does not allow the transition."""
    status_code = 400


class ForbiddenError(StudyTrackError):
    status_code = 403


class NotFoundError(StudyTrackError):
    """Row missing or not owned by the caller; both look the same."""
    status_code = 404
