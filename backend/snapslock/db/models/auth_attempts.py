from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from snapslock.db.models.base import Base, now_iso_default

ATTEMPT_PENDING = "pending"
ATTEMPT_COMPLETE = "complete"
ATTEMPT_ERROR = "error"


class AuthAttempt(Base):
    """One popup sign-in, polled by the opener until it reaches a terminal status."""

    __tablename__ = "auth_attempts"
    __table_args__ = (
        sa.CheckConstraint("status IN ('pending','complete','error')", name="ck_auth_attempts_status"),
        sa.Index("idx_auth_attempts_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(sa.Text(), primary_key=True)
    provider: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    code_verifier: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=sa.text("'pending'"))

    user_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    session_token_enc: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    error_code: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    created_at: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=now_iso_default())
    expires_at: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    completed_at: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    delivered_at: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
