import base64
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.types import TypeDecorator, Text

logger = logging.getLogger("labinsight")


def _build_cipher() -> Fernet:
    """Derive a stable Fernet key from ENCRYPTION_SECRET (dev secret when unset)."""
    secret = os.getenv("ENCRYPTION_SECRET", "dev-secret-key-change-me").encode("utf-8")
    key = base64.urlsafe_b64encode(hashlib.sha256(secret).digest())
    return Fernet(key)


_CIPHER = _build_cipher()


class _EncryptedColumn(TypeDecorator):
    impl = Text
    cache_ok = True

    def _dump(self, value: Any) -> str:
        raise NotImplementedError

    def _load(self, raw: str) -> Any:
        raise NotImplementedError

    def process_bind_param(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        return _CIPHER.encrypt(self._dump(value).encode("utf-8")).decode("utf-8")

    def process_result_value(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        try:
            raw = _CIPHER.decrypt(value.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            # Rows written under a rotated ENCRYPTION_SECRET read back as empty
            logger.warning({"function": "decrypt_column", "column_type": type(self).__name__})
            return None
        return self._load(raw)


class EncryptedText(_EncryptedColumn):
    """Free-text column (LLM analysis) stored as a Fernet token."""

    def _dump(self, value: Any) -> str:
        return value if isinstance(value, str) else str(value)

    def _load(self, raw: str) -> Any:
        return raw


class EncryptedJSON(_EncryptedColumn):
    """JSON-serializable column (raw extraction payload) stored as a Fernet token."""

    def _dump(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _load(self, raw: str) -> Any:
        return json.loads(raw)
