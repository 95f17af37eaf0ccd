from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from snapslock.core.time import iso_utc_ms, iso_utc_ms_in, parse_iso_utc
from snapslock.db.models.auth_attempts import ATTEMPT_COMPLETE, ATTEMPT_ERROR, ATTEMPT_PENDING, AuthAttempt
from snapslock.db.session import with_sqlite_busy_retry

DEFAULT_ATTEMPT_TTL_S = 10 * 60
ATTEMPT_EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class AuthAttemptState:
    id: str
    provider: str
    code_verifier: str
    status: str
    user_id: str | None
    session_token_enc: str | None
    error_code: str | None
    expires_at: str
    delivered_at: str | None

    def effective_status(self, *, now: str | None = None) -> str:
        if self.status == ATTEMPT_PENDING and (now or iso_utc_ms()) >= self.expires_at:
            return ATTEMPT_EXPIRED
        return self.status


def new_attempt_id() -> str:
    return "att_" + secrets.token_urlsafe(24)


def _state_from_row(row: Mapping[str, Any]) -> AuthAttemptState:
    return AuthAttemptState(
        id=str(row["id"]),
        provider=str(row["provider"]),
        code_verifier=str(row["code_verifier"]),
        status=str(row["status"]),
        user_id=row["user_id"],
        session_token_enc=row["session_token_enc"],
        error_code=row["error_code"],
        expires_at=str(row["expires_at"]),
        delivered_at=row["delivered_at"],
    )


async def create_auth_attempt(
    engine: AsyncEngine,
    *,
    provider: str,
    code_verifier: str,
    ttl_s: int = DEFAULT_ATTEMPT_TTL_S,
    now: str | None = None,
) -> AuthAttemptState:
    now = now or iso_utc_ms()
    attempt_id = new_attempt_id()
    expires_at = iso_utc_ms_in(int(ttl_s), now=parse_iso_utc(now))

    async def _op() -> None:
        async with engine.begin() as conn:
            # Stale attempts never leave the table otherwise.
            await conn.execute(sa.delete(AuthAttempt).where(AuthAttempt.expires_at < now))
            await conn.execute(
                sa.insert(AuthAttempt).values(
                    id=attempt_id,
                    provider=provider,
                    code_verifier=code_verifier,
                    status=ATTEMPT_PENDING,
                    created_at=now,
                    expires_at=expires_at,
                )
            )

    await with_sqlite_busy_retry(_op)
    return AuthAttemptState(
        id=attempt_id,
        provider=provider,
        code_verifier=code_verifier,
        status=ATTEMPT_PENDING,
        user_id=None,
        session_token_enc=None,
        error_code=None,
        expires_at=expires_at,
        delivered_at=None,
    )


async def get_auth_attempt(engine: AsyncEngine, *, attempt_id: str) -> AuthAttemptState | None:
    attempt_id = (attempt_id or "").strip()
    if not attempt_id:
        return None
    async with engine.connect() as conn:
        row = (
            await conn.execute(sa.select(AuthAttempt.__table__).where(AuthAttempt.id == attempt_id))
        ).mappings().first()
    if row is None:
        return None
    return _state_from_row(row)


async def _finish(engine: AsyncEngine, *, attempt_id: str, values: dict[str, object]) -> bool:
    now = str(values["completed_at"])

    async def _op() -> bool:
        async with engine.begin() as conn:
            result = await conn.execute(
                sa.update(AuthAttempt)
                .where(
                    AuthAttempt.id == attempt_id,
                    AuthAttempt.status == ATTEMPT_PENDING,
                    AuthAttempt.expires_at > now,
                )
                .values(**values)
            )
            return int(result.rowcount or 0) == 1

    return await with_sqlite_busy_retry(_op)


async def complete_auth_attempt(
    engine: AsyncEngine,
    *,
    attempt_id: str,
    user_id: str,
    session_token_enc: str,
    now: str | None = None,
) -> bool:
    """Moves a pending, unexpired attempt to ``complete``; False if it was not pending."""
    return await _finish(
        engine,
        attempt_id=attempt_id,
        values={
            "status": ATTEMPT_COMPLETE,
            "user_id": user_id,
            "session_token_enc": session_token_enc,
            "completed_at": now or iso_utc_ms(),
        },
    )


async def fail_auth_attempt(
    engine: AsyncEngine,
    *,
    attempt_id: str,
    error_code: str,
    now: str | None = None,
) -> bool:
    return await _finish(
        engine,
        attempt_id=attempt_id,
        values={"status": ATTEMPT_ERROR, "error_code": error_code, "completed_at": now or iso_utc_ms()},
    )


async def mark_auth_attempt_delivered(engine: AsyncEngine, *, attempt_id: str, now: str | None = None) -> bool:
    """True only for the first caller; the session is handed out at most once."""
    now = now or iso_utc_ms()

    async def _op() -> bool:
        async with engine.begin() as conn:
            result = await conn.execute(
                sa.update(AuthAttempt)
                .where(
                    AuthAttempt.id == attempt_id,
                    AuthAttempt.status == ATTEMPT_COMPLETE,
                    AuthAttempt.delivered_at.is_(None),
                )
                .values(delivered_at=now, session_token_enc=None)
            )
            return int(result.rowcount or 0) == 1

    return await with_sqlite_busy_retry(_op)
