"""Lobby code generation and normalization."""

import random

# Characters for lobby codes (excluding ambiguous: I/1, O/0)
LOBBY_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
LOBBY_CODE_LENGTH = 6

_ALPHABET_SET = frozenset(LOBBY_CODE_ALPHABET)


def generate_lobby_code() -> str:
    """Generate a random lobby code.

    Uniqueness is not checked here; the service retries on collision.
    """
    return "".join(random.choices(LOBBY_CODE_ALPHABET, k=LOBBY_CODE_LENGTH))


def normalize_code(code: str) -> str:
    """Return the canonical form of a lobby code (trimmed, upper-cased)."""
    return code.strip().upper()


def is_valid_code(code: str) -> bool:
    """Check whether a normalized code could have been generated."""
    return len(code) == LOBBY_CODE_LENGTH and all(c in _ALPHABET_SET for c in code)
