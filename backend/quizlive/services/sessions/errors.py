"""Error taxonomy raised by the live session core.

Routes and socket handlers translate these into JSON replies through
``error_payload``; the core itself never retries.
"""

from typing import Any, Dict


class SessionError(Exception):
    status_code = 400
    code = 'session_error'

    def __init__(self, message: str = '', **details: Any) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.details)
        return payload


class ValidationError(SessionError):
    status_code = 400
    code = 'validation_error'


class Forbidden(SessionError):
    status_code = 403
    code = 'forbidden'


class NotFound(SessionError):
    status_code = 404
    code = 'not_found'


class Conflict(SessionError):
    status_code = 409
    code = 'conflict'


class NameTaken(Conflict):
    code = 'name_taken'


class AlreadyAnswered(Conflict):
    code = 'already_answered'


class Expired(SessionError):
    status_code = 410
    code = 'expired'


class SessionClosed(SessionError):
    status_code = 409
    code = 'session_closed'


class ExhaustedError(SessionError):
    status_code = 503
    code = 'pin_space_exhausted'


def error_payload(exc: SessionError):
    """(body, status) tuple for a Flask view."""
    return exc.to_dict(), exc.status_code
