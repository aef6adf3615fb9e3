from typing import Any, List, Optional

from flask import jsonify


class QuizError(Exception):
    """Base class for errors the quiz core reports to callers."""

    status_code = 400
    code = 'quiz_error'

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(QuizError):
    code = 'validation_error'


class CSVValidationError(ValidationError):
    """Raised when uploaded CSV rows fail validation; carries every row error."""

    def __init__(self, errors: List[str]):
        super().__init__('\n'.join(errors), details={'errors': list(errors)})
        self.errors = list(errors)


class QuestionIndexError(ValidationError):
    code = 'question_index_out_of_range'


class NotFoundError(QuizError):
    status_code = 404
    code = 'not_found'


class ConflictError(QuizError):
    status_code = 409
    code = 'conflict'


class DuplicateNicknameError(ConflictError):
    code = 'duplicate_nickname'


class GameLockedError(ConflictError):
    status_code = 403
    code = 'game_locked'


class GameEndedError(ConflictError):
    status_code = 410
    code = 'game_ended'


class InvalidTransitionError(ConflictError):
    code = 'invalid_transition'


class AlreadyAnsweredError(ConflictError):
    code = 'already_answered'


class StoreError(QuizError):
    status_code = 500
    code = 'store_error'


def build_error_payload(*, code: str, message: str, details: Any = None) -> dict:
    payload = {
        'code': str(code).strip() or 'unknown_error',
        'message': str(message).strip() or 'Unknown error.',
        'details': details if details is not None else {},
    }
    # 'error' mirrors message so callers of the bare {'error': ...} shape keep working
    payload['error'] = payload['message']
    return payload


def error_response(*, status: int, code: str, message: str, details: Any = None):
    return jsonify(build_error_payload(code=code, message=message, details=details)), int(status)


def quiz_error_response(exc: QuizError):
    return error_response(
        status=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
