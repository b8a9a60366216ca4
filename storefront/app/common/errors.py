from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class ApiError(Exception):
    """Raise to return a consistent JSON error response."""

    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self, request_id: str | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details or {},
                "request_id": request_id,
            }
        }
        return payload

    @property
    def messages(self) -> List[str]:
        """All human-readable messages carried by the error, first one first."""
        errors = (self.details or {}).get("errors")
        if errors:
            return list(errors)
        return [self.message]


def abort_json(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Convenience wrapper."""
    raise ApiError(status_code=status_code, code=code, message=message, details=details)


def abort_validation(errors: List[str], status_code: int = 422) -> None:
    """Fail with every collected message; the first one becomes `message`."""
    raise ApiError(
        status_code=status_code,
        code="validation_error",
        message=errors[0],
        details={"errors": errors},
    )
