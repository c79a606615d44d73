# ==============================
# Log Redaction
# ==============================
"""
Redaction applied to tool arguments, tool results and prompts before they reach a log
line.

Scope:
- Key-based masking (any mapping key containing a hint such as "token" or "password")
- Regex masking inside string values (configurable via settings.logging.redact_patterns)
- Pydantic models are dumped first, so ToolResult / Message payloads redact cleanly

The redactor never touches what handlers or the backend receive; it only shapes logs.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Pattern

from pydantic import BaseModel

DEFAULT_KEY_HINTS: List[str] = [
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "private_key",
]

DEFAULT_PATTERNS: List[str] = [
    r"sk-[A-Za-z0-9]{20,}",
    r"(?i)api[_-]?key\s*[:=]\s*\S+",
    r"(?i)authorization\s*:\s*bearer\s+\S+",
]

# token-count fields are not secrets
_SAFE_KEYS = {"input_tokens", "output_tokens", "total_tokens", "max_tokens"}


def _compile(patterns: Iterable[str]) -> List[Pattern[str]]:
    compiled: List[Pattern[str]] = []
    for p in patterns:
        try:
            compiled.append(re.compile(p))
        except re.error as exc:
            raise ValueError(f"Invalid redaction pattern {p!r}: {exc}") from exc
    return compiled


class SecurityRedactor:
    def __init__(
        self,
        *,
        patterns: Optional[List[str]] = None,
        key_hints: Optional[List[str]] = None,
        mask: str = "[REDACTED]",
        enabled: bool = True,
    ) -> None:
        self.mask = mask
        self.enabled = enabled
        self.key_hints = [k.lower() for k in (key_hints or DEFAULT_KEY_HINTS)]
        self.patterns = _compile(patterns or DEFAULT_PATTERNS)

    @classmethod
    def from_settings(cls, settings: Any) -> "SecurityRedactor":
        log_cfg = settings.logging
        return cls(patterns=log_cfg.redact_patterns or None, enabled=log_cfg.redact)

    def redact_text(self, text: str) -> str:
        if not self.enabled:
            return text
        out = text
        for p in self.patterns:
            out = p.sub(self.mask, out)
        return out

    def redact_dict(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        return self.redact(obj)

    def redact(self, value: Any) -> Any:
        """JSON-friendly, redacted copy of `value`."""
        if not self.enabled:
            return value
        return self._redact_any(value)

    def _redact_any(self, x: Any) -> Any:
        if x is None or isinstance(x, (bool, int, float)):
            return x
        if isinstance(x, str):
            return self.redact_text(x)
        if isinstance(x, BaseModel):
            return self._redact_any(x.model_dump(mode="json"))
        if isinstance(x, (list, tuple, set)):
            return [self._redact_any(i) for i in x]
        if isinstance(x, dict):
            out: Dict[str, Any] = {}
            for k, v in x.items():
                ks = str(k).lower()
                if ks not in _SAFE_KEYS and any(h in ks for h in self.key_hints):
                    out[k] = self.mask
                else:
                    out[k] = self._redact_any(v)
            return out
        return self.redact_text(str(x))
