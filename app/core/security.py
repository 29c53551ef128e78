"""Identifier and token generation helpers"""

import secrets
import string
import time
from typing import Optional

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_id(now: Optional[float] = None) -> str:
    """
    Generate a unique analysis job ID.
    Args:
        now: Optional epoch seconds used for the time prefix (defaults to the current time)
    Returns:
        str: "job_<base36 millis>_<8 random base36 chars>", sortable by creation time
    """
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(8))
    return f"job_{_to_base36(millis)}_{suffix}"


def generate_trace_token() -> str:
    """
    Generate a secure random token for request tracing.
    Returns:
        str: A secure random token (16 bytes hex encoded)
    """
    return secrets.token_hex(16)
