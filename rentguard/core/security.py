from __future__ import annotations

import secrets
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt

from rentguard.core.settings import settings


class JWTKeyError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def _load_verification_key() -> str:
    if settings.jwt_algorithm.upper().startswith(("RS", "ES", "PS")):
        if settings.jwt_public_key:
            return settings.jwt_public_key
        if settings.jwt_public_key_path:
            return _read_key(settings.jwt_public_key_path)
        raise JWTKeyError("JWT public key not configured")
    return settings.jwt_secret or settings.secret_key


def _read_key(path: str) -> str:
    with open(path, "r", encoding="utf-8") as key_file:
        return key_file.read()


def decode_token(token: str) -> dict[str, Any]:
    key = _load_verification_key()
    try:
        return jwt.decode(token, key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)
