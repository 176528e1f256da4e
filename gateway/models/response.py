# ============================================================
# File: response.py - status / health response envelope
# ============================================================
# Models:
# 1. ApiResponse  - {success, data, error} wrapper used by the
#                   status and health routes
# ============================================================

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    success: bool = True
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "ApiResponse":
        return cls(data=data)

    @classmethod
    def fail(cls, error: str) -> "ApiResponse":
        """Probe could not run (nothing configured, not a failed check)"""
        return cls(success=False, error=error)
