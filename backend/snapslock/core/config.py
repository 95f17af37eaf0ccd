from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from cryptography.fernet import Fernet

from snapslock.cdn.client import normalize_folder
from snapslock.core.crypto import FieldEncryptor
from snapslock.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_UPLOAD_MAX_BYTES = 20 * 1024 * 1024
DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True, slots=True)
class Settings:
    app_env: str
    database_url: str
    secret_key: str
    field_encryption_key: str
    site_url: str
    identity_url: str
    identity_anon_key: str
    identity_oauth_provider: str
    google_client_id: str
    cdn_cloud_name: str
    cdn_api_key: str
    cdn_api_secret: str
    cdn_base_url: str
    cdn_upload_folder: str
    upload_max_bytes: int
    session_cookie_name: str
    session_ttl_seconds: int
    metrics_token: str

    @property
    def is_prod(self) -> bool:
        return self.app_env in {"prod", "production"}


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key, default)
    return value.strip()


def _get_int(env: Mapping[str, str], key: str, default: int, *, lo: int, hi: int) -> int:
    try:
        value = int(_get(env, key, str(default)) or str(default))
    except ValueError:
        value = default
    return max(lo, min(int(value), hi))


def _read_key_file(path: Path) -> str | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except Exception as exc:
        log.warning("field_encryption_key_read_failed path=%s err=%s", str(path), type(exc).__name__)
        return None

    value = raw.strip()
    return value or None


def _atomic_write(path: Path, *, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    try:
        os.chmod(tmp, 0o600)
    except OSError:
        pass
    os.replace(tmp, path)


def _ensure_field_encryption_key(env: Mapping[str, str], *, app_env: str) -> str:
    key = _get(env, "FIELD_ENCRYPTION_KEY", "")
    if key:
        FieldEncryptor.from_key(key)
        return key

    file_raw = _get(env, "FIELD_ENCRYPTION_KEY_FILE", "")
    key_file = Path(file_raw) if file_raw else Path("./data/field_encryption_key")

    from_file = _read_key_file(key_file)
    if from_file is not None:
        FieldEncryptor.from_key(from_file)
        return from_file

    if app_env in {"prod", "production"}:
        return ""

    generated = Fernet.generate_key().decode("utf-8")
    try:
        _atomic_write(key_file, content=generated + "\n")
        log.info("field_encryption_key_generated path=%s", str(key_file))
    except Exception as exc:
        log.warning(
            "field_encryption_key_generated_not_persisted path=%s err=%s",
            str(key_file),
            type(exc).__name__,
        )
    return generated


def _normalize_folder(raw: str) -> str:
    raw = raw.strip().strip("/") or "wallpapers"
    try:
        return normalize_folder(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid CDN_UPLOAD_FOLDER: {raw!r}") from exc


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env

    app_env = _get(env, "APP_ENV", "dev").lower()
    is_prod = app_env in {"prod", "production"}

    settings = Settings(
        app_env=app_env,
        database_url=_get(env, "DATABASE_URL", "sqlite+aiosqlite:///./data/snapslock.db"),
        secret_key=_get(env, "SECRET_KEY", "" if is_prod else "dev-secret-key"),
        field_encryption_key=_ensure_field_encryption_key(env, app_env=app_env),
        site_url=_get(env, "SITE_URL", "http://localhost:8000").rstrip("/"),
        identity_url=_get(env, "IDENTITY_URL", "").rstrip("/"),
        identity_anon_key=_get(env, "IDENTITY_ANON_KEY", ""),
        identity_oauth_provider=_get(env, "IDENTITY_OAUTH_PROVIDER", "google").lower() or "google",
        google_client_id=_get(env, "GOOGLE_CLIENT_ID", ""),
        cdn_cloud_name=_get(env, "CDN_CLOUD_NAME", ""),
        cdn_api_key=_get(env, "CDN_API_KEY", ""),
        cdn_api_secret=_get(env, "CDN_API_SECRET", ""),
        cdn_base_url=_get(env, "CDN_BASE_URL", "https://api.cloudinary.com").rstrip("/"),
        cdn_upload_folder=_normalize_folder(_get(env, "CDN_UPLOAD_FOLDER", "wallpapers")),
        upload_max_bytes=_get_int(env, "UPLOAD_MAX_BYTES", DEFAULT_UPLOAD_MAX_BYTES, lo=1024, hi=200 * 1024 * 1024),
        session_cookie_name=_get(env, "SESSION_COOKIE_NAME", "snapslock_session") or "snapslock_session",
        session_ttl_seconds=_get_int(
            env, "SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS, lo=60, hi=90 * 24 * 3600
        ),
        metrics_token=_get(env, "METRICS_TOKEN", ""),
    )

    if settings.is_prod:
        missing: list[str] = []
        if not settings.secret_key:
            missing.append("SECRET_KEY")
        if not settings.field_encryption_key:
            missing.append("FIELD_ENCRYPTION_KEY")
        if not settings.identity_url or not settings.identity_anon_key:
            missing.append("IDENTITY_URL/IDENTITY_ANON_KEY")
        if not settings.cdn_cloud_name or not settings.cdn_api_key or not settings.cdn_api_secret:
            missing.append("CDN_CLOUD_NAME/CDN_API_KEY/CDN_API_SECRET")
        if missing:
            raise ValueError(f"Missing required env vars for prod: {', '.join(missing)}")

    return settings
