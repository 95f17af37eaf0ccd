from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261018_0005"
down_revision = "20261018_0004"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "auth_attempts",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("provider", sa.Text(), nullable=False),
        sa.Column("code_verifier", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("user_id", sa.Text(), nullable=True),
        sa.Column("session_token_enc", sa.Text(), nullable=True),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.Text(),
            nullable=False,
            server_default=sa.text("(strftime('%Y-%m-%dT%H:%M:%fZ','now'))"),
        ),
        sa.Column("expires_at", sa.Text(), nullable=False),
        sa.Column("completed_at", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.Text(), nullable=True),
        sa.CheckConstraint("status IN ('pending','complete','error')", name="ck_auth_attempts_status"),
    )
    op.create_index("idx_auth_attempts_expires_at", "auth_attempts", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_auth_attempts_expires_at", table_name="auth_attempts")
    op.drop_table("auth_attempts")
