# app/utils/errors.py

from fastapi import HTTPException

class ValidationError(HTTPException):
    """A required field is missing or malformed."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class ForbiddenError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=403, detail=detail)

class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)

class InvalidStateError(HTTPException):
    """The request is not in a state that allows the transition."""
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)

class DocumentGenerationError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=502, detail=detail)
