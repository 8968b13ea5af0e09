from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    message: str
    # "unauthenticated" | "forbidden" | "not_found" | "invalid" | "store_error"
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, message: str, **data: Any) -> "CommandResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, error: str, message: str) -> "CommandResult":
        return cls(ok=False, message=message, error=error)


_HTTP_STATUS = {
    "unauthenticated": 401,
    "forbidden": 403,
    "not_found": 404,
    "invalid": 422,
    "store_error": 503,
}


def raise_for_result(result: CommandResult) -> CommandResult:
    """Pass a successful result through; turn a failed one into the matching HTTPException."""
    if result.ok:
        return result
    status = _HTTP_STATUS.get(result.error or "", 400)
    raise HTTPException(status_code=status, detail={"code": result.error, "message": result.message})
