"""
Public submission id generation.

Ids look like ``SUB-202603-0042``: the year and month of creation followed by
a zero-padded random number. The format alone does not guarantee uniqueness;
the submissions table carries a unique constraint and the service retries the
insert with a fresh id on a collision.
"""

import re
import secrets
from datetime import datetime, timezone
from typing import Optional

PUBLIC_ID_PATTERN = re.compile(r"^SUB-\d{6}-\d{4}$")


def generate_submission_id(now: Optional[datetime] = None) -> str:
    """
    Generate a human-facing submission id.

    Args:
        now: Timestamp whose year and month are embedded (defaults to now, UTC)

    Returns:
        Id in the form SUB-YYYYMM-dddd
    """
    now = now or datetime.now(timezone.utc)
    return f"SUB-{now:%Y%m}-{secrets.randbelow(10000):04d}"


def is_public_id(value: str) -> bool:
    return bool(PUBLIC_ID_PATTERN.match(value))
