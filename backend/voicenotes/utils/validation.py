from __future__ import annotations

import re

_MIN_PASSWORD_LENGTH = 6
# bcrypt only considers the first 72 bytes
_MAX_PASSWORD_BYTES = 72
_SEGMENT_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def validate_password_strength(password: str) -> tuple[bool, str | None]:
    """Validate password strength."""
    if len(password) < _MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {_MIN_PASSWORD_LENGTH} characters long"
    if len(password.encode()) > _MAX_PASSWORD_BYTES:
        return False, f"Password must be at most {_MAX_PASSWORD_BYTES} bytes long"

    weak_passwords = {"password", "123456", "qwerty", "admin", "test", "password123"}
    if password.lower() in weak_passwords:
        return False, "Password is too weak. Please choose a stronger password."
    return True, None


def sanitize_storage_key(key: str) -> str:
    """Restrict a storage key to a safe character set.

    Each path segment keeps only ``[A-Za-z0-9._-]`` (anything else becomes
    ``_``); empty, ``.`` and ``..`` segments are dropped so a key can never
    climb out of its storage root.
    """
    segments = []
    for raw in key.replace("\\", "/").split("/"):
        if raw in {"", ".", ".."}:
            continue
        segments.append(_SEGMENT_UNSAFE.sub("_", raw))
    if not segments:
        raise ValueError("Storage key is empty after sanitization")
    return "/".join(segments)
