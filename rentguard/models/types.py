import json
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import LargeBinary
from sqlalchemy.types import TypeDecorator

from rentguard.core.fernet_crypto import get_fernet


class EncryptedJSON(TypeDecorator):
    """Transparent Fernet encryption for JSON documents holding personal data."""

    impl = LargeBinary
    cache_ok = True

    def __init__(self, *, secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._secret = secret

    @property
    def _fernet(self) -> Fernet:
        return get_fernet(secret=self._secret)

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        raw = json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
        return bytes(self._fernet.encrypt(raw.encode("utf-8")))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            decrypted = self._fernet.decrypt(bytes(value))
        except InvalidToken as exc:  # pragma: no cover - indicates corrupted data
            raise ValueError("Unable to decrypt value") from exc
        return json.loads(decrypted.decode("utf-8"))


__all__ = ["EncryptedJSON"]
