from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from snapslock.db.models.base import Base, now_iso_default


def new_image_id() -> str:
    return str(uuid.uuid4())


class Image(Base):
    __tablename__ = "images"
    __table_args__ = (
        sa.CheckConstraint("likes_count >= 0", name="ck_images_likes_count"),
        sa.Index("idx_images_created_at", "created_at", "id"),
        sa.Index("idx_images_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(sa.Text(), primary_key=True, default=new_image_id)

    title: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    public_id: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    secure_url: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    width: Mapped[int | None] = mapped_column(sa.Integer(), nullable=True)
    height: Mapped[int | None] = mapped_column(sa.Integer(), nullable=True)
    format: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    user_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    likes_count: Mapped[int] = mapped_column(sa.Integer(), nullable=False, server_default=sa.text("0"), default=0)

    created_at: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=now_iso_default())
    updated_at: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=now_iso_default())
