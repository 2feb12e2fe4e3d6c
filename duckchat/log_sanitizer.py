from __future__ import annotations

from collections.abc import Mapping

REDACTED = "***REDACTED***"


_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-vqd-4",
    "x-vqd-hash-1",
    "x-fe-signals",
}


def mask_token(value: str | None, *, keep: int = 6) -> str:
    """
    Shorten an upstream token for logs: only the first `keep` characters
    survive, enough to tell two tokens apart.
    """
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return REDACTED
    return f"{value[:keep]}…"


def sanitize_headers_for_log(
    headers: Mapping[str, str], *, mask: str = REDACTED
) -> dict[str, str]:
    """
    Copy of `headers` safe to log.

    Session tokens, telemetry fingerprints and cookies are masked; anything
    whose name hints at a credential (token/secret/auth/cookie) is masked too.
    """
    sanitized: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES or any(
            hint in lower_name for hint in ("token", "secret", "auth", "cookie")
        ):
            sanitized[name] = mask
            continue
        sanitized[name] = value
    return sanitized


__all__ = ["REDACTED", "mask_token", "sanitize_headers_for_log"]
