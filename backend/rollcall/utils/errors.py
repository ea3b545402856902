"""Error taxonomy for the attendance session service."""


class AttendanceError(Exception):
    """Base error for the attendance session service."""

    status_code = 500
    code = 'internal-failure'

    def __init__(self, message: str = None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class InvalidInput(AttendanceError):
    """Missing or malformed identifier."""

    status_code = 400
    code = 'invalid-input'


class InvalidSubject(InvalidInput):
    """Subject reference is empty or unknown."""

    code = 'invalid-subject'


class NoActiveSession(AttendanceError):
    """No attendance session is open."""

    status_code = 404
    code = 'no-active-session'


class StaleOrInvalidToken(AttendanceError):
    """Token is not the current credential."""

    status_code = 409
    code = 'stale-or-invalid-token'


class TokenExpired(AttendanceError):
    """Token is older than the rotation interval."""

    status_code = 409
    code = 'token-expired'


class DuplicateAttendance(AttendanceError):
    """Attendance already recorded for this session."""

    status_code = 200
    code = 'duplicate'


class InternalFailure(AttendanceError):
    """Unexpected collaborator failure."""

    status_code = 503
    code = 'internal-failure'
