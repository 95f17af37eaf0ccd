from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from snapslock.core.crypto import FieldEncryptor

JWT_ALG_HS256 = "HS256"
JWT_TYP = "JWT"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    data = data.strip()
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(secret_key: str, signing_input: bytes) -> bytes:
    return hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()


def create_jwt(
    *,
    secret_key: str,
    subject: str,
    ttl_s: int = 3600,
    extra_claims: Mapping[str, Any] | None = None,
    now_s: int | None = None,
) -> str:
    secret_key = secret_key.strip()
    if not secret_key:
        raise ValueError("SECRET_KEY is required")

    now_i = int(now_s if now_s is not None else time.time())

    header = {"alg": JWT_ALG_HS256, "typ": JWT_TYP}
    payload: dict[str, Any] = {"sub": subject, "iat": now_i, "exp": now_i + int(ttl_s)}
    if extra_claims:
        payload.update(dict(extra_claims))

    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    signature = _sign(secret_key, f"{header_b64}.{payload_b64}".encode("ascii"))
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def decode_jwt(token: str, *, secret_key: str, leeway_s: int = 0, now_s: int | None = None) -> dict[str, Any]:
    secret_key = secret_key.strip()
    if not secret_key:
        raise ValueError("SECRET_KEY is required")

    parts = token.strip().split(".")
    if len(parts) != 3:
        raise ValueError("Invalid token format")

    try:
        header = json.loads(_b64url_decode(parts[0]))
        payload = json.loads(_b64url_decode(parts[1]))
        signature_raw = _b64url_decode(parts[2])
    except Exception as exc:
        raise ValueError("Invalid token encoding") from exc

    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise ValueError("Invalid token JSON")
    if header.get("alg") != JWT_ALG_HS256 or header.get("typ") != JWT_TYP:
        raise ValueError("Unsupported token")

    expected_sig = _sign(secret_key, f"{parts[0]}.{parts[1]}".encode("ascii"))
    if not hmac.compare_digest(signature_raw, expected_sig):
        raise ValueError("Invalid token signature")

    now_i = int(now_s if now_s is not None else time.time())
    try:
        exp_i = int(payload.get("exp"))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid exp") from exc
    if now_i > exp_i + leeway_s:
        raise ValueError("Token expired")

    return payload


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.strip().split(None, 1)
    if len(parts) != 2:
        return None
    scheme, token = parts
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token if token else None


@dataclass(frozen=True, slots=True)
class SessionUser:
    id: str
    email: str | None
    access_token: str | None


def create_session_token(
    *,
    secret_key: str,
    encryptor: FieldEncryptor,
    user_id: str,
    email: str | None,
    provider_access_token: str | None,
    ttl_s: int,
    now_s: int | None = None,
) -> str:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValueError("user_id is required")
    claims: dict[str, Any] = {"email": email or None}
    if provider_access_token:
        claims["pat"] = encryptor.encrypt_text(provider_access_token)
    return create_jwt(secret_key=secret_key, subject=user_id, ttl_s=ttl_s, extra_claims=claims, now_s=now_s)


def decode_session_token(
    token: str,
    *,
    secret_key: str,
    encryptor: FieldEncryptor,
    now_s: int | None = None,
) -> SessionUser:
    claims = decode_jwt(token, secret_key=secret_key, now_s=now_s)
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise ValueError("Session token missing subject")

    access_token: str | None = None
    pat = claims.get("pat")
    if isinstance(pat, str) and pat:
        access_token = encryptor.decrypt_text(pat)

    email = claims.get("email")
    return SessionUser(id=user_id, email=str(email) if email else None, access_token=access_token)


def new_nonce_pair() -> tuple[str, str]:
    """Returns ``(nonce, sha256_hex(nonce))`` for ID-token sign-in."""
    nonce = _b64url_encode(secrets.token_bytes(32))
    return nonce, hashlib.sha256(nonce.encode("utf-8")).hexdigest()


def new_pkce_pair() -> tuple[str, str]:
    """Returns ``(code_verifier, S256 code_challenge)``."""
    verifier = _b64url_encode(secrets.token_bytes(48))
    challenge = _b64url_encode(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge
