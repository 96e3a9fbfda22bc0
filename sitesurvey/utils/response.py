from enum import Enum
from typing import Any


def success_response(data: Any = None, message: str | None = None) -> dict:
    return {"status": "success", "data": data, "message": message}


def error_response(message: str, data: Any = None) -> dict:
    return {"status": "error", "data": data, "message": message}


def update_response(result: Enum, **data: Any) -> dict:
    """Envelope for a store mutation; a stale id is a success with nothing applied."""
    message = None if result.value == "applied" else "Nothing to update, unknown id"
    return success_response(data={"result": result.value, **data}, message=message)
