"""Tracking token issuance.

A token is the only key a public tracking request carries, so it must be
unguessable and carry no structure: 32 bytes from the OS CSPRNG, hex encoded.
"""

import secrets
from typing import Callable

TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2
MAX_ISSUE_ATTEMPTS = 5


def issue_token() -> str:
    """Return a new 64-character hex token.

    Errors from the randomness source propagate; there is no fallback.
    """
    return secrets.token_hex(TOKEN_BYTES)


def issue_unique_token(is_taken: Callable[[str], bool]) -> str:
    """Return the first issued token for which ``is_taken`` is false."""
    for _ in range(MAX_ISSUE_ATTEMPTS):
        token = issue_token()
        if not is_taken(token):
            return token
    raise RuntimeError(f"Could not issue a unique token after {MAX_ISSUE_ATTEMPTS} attempts")
