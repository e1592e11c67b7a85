from enum import Enum


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    MISSING_FIELD = "missing_field"
    NOT_FOUND = "not_found"


class UserServiceError(Exception):
    """Base error, rendered as {"errorCode": status_code, "message": message}"""

    kind: ErrorKind
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidArgument(UserServiceError):
    kind = ErrorKind.INVALID_ARGUMENT


class MissingField(UserServiceError):
    kind = ErrorKind.MISSING_FIELD


class NotFound(UserServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
