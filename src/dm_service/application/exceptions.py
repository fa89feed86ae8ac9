from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "internal"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class BadRequestError(AppError):
    code = "bad_request"


class ForbiddenError(AppError):
    code = "forbidden"


class NotFoundError(AppError):
    code = "not_found"


class RangeNotSatisfiableError(AppError):
    code = "range_not_satisfiable"

    def __init__(self, length: int, detail: str = "Requested range not satisfiable") -> None:
        self.length = length
        super().__init__(detail)


class InternalError(AppError):
    code = "internal"
