# utils/auth.py
from __future__ import annotations

import bcrypt

_BCRYPT_DEFAULT_ROUNDS = 12


def hash_password(password: str, rounds: int = _BCRYPT_DEFAULT_ROUNDS) -> str:
    """bcrypt hash (utf-8 text) for storing in users.password_hash."""
    if not password:
        raise ValueError("Password cannot be empty.")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")
