"""
Password hashing and avatar helpers.
"""

from __future__ import annotations

import hashlib
from urllib.parse import urlencode

import bcrypt


class PasswordError(ValueError):
    pass


def hash_password(plain_password: str, rounds: int = 12) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise PasswordError("Password is empty.")
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        return False


def gravatar_url(email: str, size: int = 500) -> str:
    email_hash = hashlib.md5((email or "").strip().lower().encode("utf-8")).hexdigest()
    query = urlencode({"s": size, "d": "identicon"})
    return f"https://www.gravatar.com/avatar/{email_hash}?{query}"
