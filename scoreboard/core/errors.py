from typing import Any, Optional

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    def __init__(self, detail: Any = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: Any = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(HTTPException):
    """
    A contending value is already recorded. The detail always carries both
    the existing and the candidate value so the caller can show a diff and
    retry with force.
    """
    def __init__(self, message: str, existing: Optional[dict] = None, candidate: Optional[dict] = None):
        detail = {"message": message}
        detail.update(existing or {})
        detail.update(candidate or {})
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidTransitionError(BadRequestError):
    def __init__(self, kind: str, current: str, new: str):
        self.kind = kind
        self.current = current
        self.new = new
        super().__init__(detail=f"Invalid {kind} status transition: {current} -> {new}")
