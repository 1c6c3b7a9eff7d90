"""HTTP error envelope.

Every non-2xx body from the API has the shape
`{"ok": false, "error": {"code", "message", "details"}}`, whether it comes
from a ledger rejection, a middleware (413, 429) or a missing executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from launchpad.runtime.errors import LaunchpadError


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def not_ready(cls) -> "ApiError":
        return cls(500, "not_ready", "no launchpad executor is attached")

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": dict(self.details)}}


# Caller errors raised by the ledger. Codes not listed here map to 400.
_STATUS_BY_CODE: Dict[str, int] = {
    "invalid_configuration": 400,
    "invalid_argument": 400,
    "insufficient_fee": 402,
    "unauthorized": 403,
    "not_found": 404,
    "insufficient_balance": 409,
    "insufficient_allowance": 409,
}


def api_error_from_launchpad(e: LaunchpadError) -> ApiError:
    return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.code, e.reason, dict(e.details or {}))
