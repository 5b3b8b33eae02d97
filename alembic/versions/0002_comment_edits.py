"""comment edits

Revision ID: 0002_comment_edits
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_comment_edits"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.add_column("comments", sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
  op.drop_column("comments", "updated_at")
