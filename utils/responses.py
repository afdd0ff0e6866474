"""
Normalized JSON envelope: {ok, data, error, message}
"""
from typing import Any, Optional

from fastapi.responses import JSONResponse

from errors import TrialAdmissionError, TrialLimitReachedError


def success_response(data: Any = None, message: str = "OK", status: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"ok": True, "data": {} if data is None else data, "error": None, "message": message},
    )


def error_response(error_code: str, status: int = 400, message: str = "An error occurred",
                   data: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"ok": False, "data": data or {}, "error": error_code, "message": message},
    )


def admission_denied_response(exc: TrialAdmissionError) -> JSONResponse:
    """
    409 for a refused entity creation.

    ``error`` is the machine-readable reason; ``data.upgrade_required`` tells the
    client to show the upgrade prompt, and ``data.limit`` carries the trial cap
    when that is what was hit.
    """
    data = {"upgrade_required": exc.upgrade_required}
    if isinstance(exc, TrialLimitReachedError):
        data["limit"] = exc.limit
    return error_response(exc.code, status=409, message=exc.message, data=data)
