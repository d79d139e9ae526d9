import secrets
import string
from datetime import datetime, timezone

_ALPHABET = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def new_reference_number(now: datetime | None = None) -> str:
    """Return a human readable booking reference such as ``BK-MF3K2J1Q-7XQ2``."""

    now = now or datetime.now(timezone.utc)
    stamp = _base36(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"BK-{stamp}-{suffix}"
