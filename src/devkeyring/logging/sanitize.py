"""Sensitive data sanitization for log output.

Provides :func:`sanitize_for_logs` which redacts key material (PEM
bodies) and ledger credentials (API tokens, ``Authorization`` headers,
webhook secrets) from data structures before they are written to logs.
Only metadata such as the PEM block type is preserved.
"""

from __future__ import annotations

import re
from typing import Any

# Mapping keys whose values are always secret
_SECRET_KEYS = frozenset({"authorization", "token", "secret", "password", "private_key"})

# Regex matching the base64 body inside PEM blocks
_PEM_BODY_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)"
    r"([\s\S]*?)"
    r"(-----END [A-Z0-9 ]+-----)",
)

# GitHub personal, app and installation tokens
_TOKEN_RE = re.compile(r"\b(gh[pousr]_|github_pat_)[A-Za-z0-9_]{16,}\b")


def sanitize_pem(pem: str) -> str:
    """Replace the base64 body of PEM blocks with ``[REDACTED]``.

    Preserves BEGIN/END markers so the type of object is still visible.
    """

    def _redact(m: re.Match) -> str:
        return f"{m.group(1)}\n[REDACTED]\n{m.group(3)}"

    return _PEM_BODY_RE.sub(_redact, pem)


def sanitize_token(text: str) -> str:
    """Replace ledger API tokens in *text* with their prefix only."""
    return _TOKEN_RE.sub(lambda m: f"{m.group(1)}[REDACTED]", text)


def sanitize_for_logs(data: Any) -> Any:  # noqa: ANN401
    """Recursively sanitize sensitive material in *data*.

    Handles dicts (secret-named keys, PEM strings in values), lists,
    and plain strings.  Non-sensitive data passes through unchanged.
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]"
            if isinstance(k, str) and k.lower() in _SECRET_KEYS and v
            else sanitize_for_logs(v)
            for k, v in data.items()
        }

    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_logs(item) for item in data)

    if isinstance(data, str):
        if "-----BEGIN " in data:
            data = sanitize_pem(data)
        return sanitize_token(data)

    return data
