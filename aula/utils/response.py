"""
Response envelopes shared by routers and app-level exception handlers.
"""

from typing import Any


def success_response(data: Any = None, message: str = "Success") -> dict:
    return {"success": True, "data": data, "message": message}


def error_response(message: str = "Error", data: Any = None) -> dict:
    # "detail" mirrors what HTTPException responses carry
    return {"success": False, "data": data, "message": message, "detail": message}
