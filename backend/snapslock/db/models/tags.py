from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from snapslock.db.models.base import Base, now_iso_default


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (sa.UniqueConstraint("slug", name="uq_tags_slug"),)

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    slug: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    created_at: Mapped[str] = mapped_column(sa.Text(), nullable=False, server_default=now_iso_default())
