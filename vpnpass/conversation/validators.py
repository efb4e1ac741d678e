"""
Input validation for conversation steps. Failures raise ValidationError;
the engine re-prompts the same step.
"""
import re

from vpnpass.core.errors import ValidationError

CREDENTIAL_RE = re.compile(r"^[A-Za-z0-9_-]{3,20}$")
DAYS_RE = re.compile(r"[0-9]+")


def validate_credential(text: str) -> str:
    value = (text or "").strip()
    if not CREDENTIAL_RE.fullmatch(value):
        raise ValidationError("Password must be 3-20 characters: letters, digits, _ or -")
    return value


def validate_duration(text: str, min_days: int, max_days: int) -> int:
    value = (text or "").strip()
    if not DAYS_RE.fullmatch(value):
        raise ValidationError(f"Duration must be a whole number of days ({min_days}-{max_days})")
    days = int(value)
    if days < min_days or days > max_days:
        raise ValidationError(f"Duration must be between {min_days} and {max_days} days")
    return days
