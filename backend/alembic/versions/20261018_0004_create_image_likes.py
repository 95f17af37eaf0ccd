from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261018_0004"
down_revision = "20261018_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "image_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("image_id", sa.Text(), sa.ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "created_at",
            sa.Text(),
            nullable=False,
            server_default=sa.text("(strftime('%Y-%m-%dT%H:%M:%fZ','now'))"),
        ),
        sa.UniqueConstraint("user_id", "image_id", name="uq_image_likes_user_image"),
    )
    op.create_index("idx_image_likes_image", "image_likes", ["image_id"])


def downgrade() -> None:
    op.drop_index("idx_image_likes_image", table_name="image_likes")
    op.drop_table("image_likes")
