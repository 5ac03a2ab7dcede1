from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    not_found = "NOT_FOUND"
    forbidden = "FORBIDDEN"
    unauthorized = "UNAUTHORIZED"
    validation = "VALIDATION_ERROR"
    conflict = "CONFLICT"
    internal = "INTERNAL_ERROR"


ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.not_found: "Resource not found",
    ErrorKind.forbidden: "Access denied",
    ErrorKind.unauthorized: "Authentication required",
    ErrorKind.validation: "Invalid request data",
    ErrorKind.conflict: "Resource already exists",
    ErrorKind.internal: "Internal server error",
}

HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.not_found: 404,
    ErrorKind.forbidden: 403,
    ErrorKind.unauthorized: 401,
    ErrorKind.validation: 400,
    ErrorKind.conflict: 409,
    ErrorKind.internal: 500,
}


class ServiceError(Exception):
    """Domain failure carrying one of the closed :class:`ErrorKind` values.

    ``detail`` is the context-specific text ("Account not found"); the
    generic human message comes from :data:`ERROR_MESSAGES`.
    """

    def __init__(self, kind: ErrorKind, detail: Optional[str] = None) -> None:
        self.kind = kind
        self.detail = detail or ERROR_MESSAGES[kind]
        super().__init__(self.detail)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self.kind]

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]


def not_found(entity: str) -> ServiceError:
    return ServiceError(ErrorKind.not_found, f"{entity} not found")


def forbidden(entity: str) -> ServiceError:
    return ServiceError(ErrorKind.forbidden, f"{entity} belongs to another user")


def invalid(detail: str) -> ServiceError:
    return ServiceError(ErrorKind.validation, detail)
