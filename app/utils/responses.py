# app/utils/responses.py

from typing import Any, Optional


def format_response(success: bool, data=None, message: str = ""):
    return {
        "success": success,
        "data": data,
        "message": message,
    }


def format_error_response(exc: Exception, status_code: int = 500, detail: Optional[Any] = None):
    """Error envelope. The class name lets clients tell NotFoundError from InvalidStateError."""
    if detail is None:
        detail = getattr(exc, "detail", None) or str(exc)
    return {
        "success": False,
        "error": {
            "type": exc.__class__.__name__,
            "detail": detail,
            "status_code": status_code,
        }
    }
