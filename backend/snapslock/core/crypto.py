from __future__ import annotations

from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken


@dataclass(frozen=True, slots=True)
class FieldEncryptor:
    """Symmetric encryption for provider tokens carried in sessions and auth attempts."""

    _fernet: Fernet

    @classmethod
    def from_key(cls, key: str) -> "FieldEncryptor":
        key = (key or "").strip()
        if not key:
            raise ValueError("FIELD_ENCRYPTION_KEY is required")
        try:
            fernet = Fernet(key.encode("utf-8"))
        except Exception as exc:
            raise ValueError("Invalid FIELD_ENCRYPTION_KEY") from exc
        return cls(_fernet=fernet)

    def encrypt_text(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise TypeError("plaintext must be str")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt_text(self, token: str, *, ttl_s: int | None = None) -> str:
        if not isinstance(token, str):
            raise TypeError("token must be str")
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"), ttl=ttl_s)
        except InvalidToken as exc:
            raise ValueError("Invalid encrypted value") from exc
        return plaintext.decode("utf-8")
