from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from snapslock.db.models.base import Base, now_iso_default


class ImageLike(Base):
    __tablename__ = "image_likes"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "image_id", name="uq_image_likes_user_image"),
        sa.Index("idx_image_likes_image", "image_id"),
    )

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    image_id: Mapped[str] = mapped_column(
        sa.Text(),
        sa.ForeignKey("images.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=now_iso_default())
