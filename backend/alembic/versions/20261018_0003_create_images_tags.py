from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "images_tags",
        sa.Column("image_id", sa.Text(), sa.ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("image_id", "tag_id", name="pk_images_tags"),
    )
    op.create_index("idx_images_tags_tag_image", "images_tags", ["tag_id", "image_id"])


def downgrade() -> None:
    op.drop_index("idx_images_tags_tag_image", table_name="images_tags")
    op.drop_table("images_tags")
