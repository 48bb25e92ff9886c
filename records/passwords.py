from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 10
# bcrypt reads only the first 72 bytes of a password.
_MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    secret = password.encode("utf-8")[:_MAX_PASSWORD_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds)).decode("utf-8")
