"""Per-request correlation tokens."""

import secrets

NONCE_BYTES = 16  # 128 bits


def generate_nonce(prefix: str | None = None) -> str:
    """Return a fresh random nonce, optionally tagged with an operation prefix.

    >>> generate_nonce("set-activity").startswith("set-activity-")
    True
    """
    token = secrets.token_hex(NONCE_BYTES)
    return f"{prefix}-{token}" if prefix else token
