# ==============================
# Response Envelope
# ==============================
"""
Every route answers with {ok, data, error, meta}. Failures raise HTTPException with the
envelope as `detail`, so clients always find the same shape.
"""

from __future__ import annotations

from typing import Any, Dict, NoReturn, Optional

from fastapi import HTTPException


def ok(data: Dict[str, Any], *, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ok": True, "data": data, "error": None, "meta": meta or {}}


def fail(
    *,
    http_status: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> NoReturn:
    payload = {
        "ok": False,
        "data": None,
        "error": {"code": code, "message": message, "details": details or {}},
        "meta": meta or {},
    }
    raise HTTPException(status_code=http_status, detail=payload)
