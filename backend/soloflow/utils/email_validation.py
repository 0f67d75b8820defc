from __future__ import annotations

from functools import lru_cache

from email_validator import EmailNotValidError, validate_email


@lru_cache(maxsize=256)
def _validate_format_only(candidate: str) -> str:
    """Normalize addresses validating only syntax/IDNA information."""
    info = validate_email(candidate, check_deliverability=False)
    return info.normalized or info.email


def normalize_email(value: str) -> str:
    """Return the lowercase, normalized form used as the login identity."""
    candidate = (value or "").strip().lower()
    if not candidate:
        raise ValueError("E-mail is required.")
    try:
        return _validate_format_only(candidate)
    except EmailNotValidError as exc:  # pragma: no cover - library error text varies
        raise ValueError(f"Invalid e-mail: {exc}") from exc
