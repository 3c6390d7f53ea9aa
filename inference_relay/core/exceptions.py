"""Gateway-side errors. Each one renders as ``{"error": message}`` with its status."""

from inference_relay.gateway.types import ErrorKind


class RelayError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    headers: dict[str, str] | None = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return self.kind.status_code


class BadRequestError(RelayError):
    kind = ErrorKind.BAD_REQUEST


class UnauthorizedError(RelayError):
    kind = ErrorKind.UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}


class NotFoundError(RelayError):
    kind = ErrorKind.NOT_FOUND


class MethodNotAllowedError(RelayError):
    kind = ErrorKind.METHOD_NOT_ALLOWED


class UnsupportedMediaTypeError(RelayError):
    kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE
