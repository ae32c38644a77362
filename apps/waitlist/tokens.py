"""Claim tokens: handed to the customer in plaintext, stored only as a SHA-256 hash."""

import hashlib
import secrets

TOKEN_BYTES = 24


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_claim_token() -> tuple[str, str]:
    """Returns (plaintext token, token hash)."""
    token = secrets.token_hex(TOKEN_BYTES)
    return token, hash_token(token)
