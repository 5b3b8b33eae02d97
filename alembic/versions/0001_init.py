"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
  return sa.Column("id", sa.String(36), primary_key=True)


def _ref(name: str, target: str, *, nullable: bool = False) -> sa.Column:
  return sa.Column(name, sa.String(36), sa.ForeignKey(target), nullable=nullable)


def _ts(name: str, *, nullable: bool = False) -> sa.Column:
  return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
  op.create_table(
    "users",
    _id(),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    _ts("created_at"),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "sessions",
    _id(),
    _ref("user_id", "users.id"),
    _ts("created_at"),
    _ts("expires_at"),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"])

  op.create_table(
    "boards",
    _id(),
    sa.Column("title", sa.String(), nullable=False),
    _ref("owner_id", "users.id"),
    sa.Column("order_version", sa.Integer(), nullable=False, server_default="0"),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"])

  op.create_table(
    "board_members",
    _id(),
    _ref("board_id", "boards.id"),
    _ref("user_id", "users.id"),
    sa.Column("role", sa.String(), nullable=False),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_board_id", "board_members", ["board_id"])
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"])

  op.create_table(
    "lists",
    _id(),
    _ref("board_id", "boards.id"),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("order_version", sa.Integer(), nullable=False, server_default="0"),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_lists_board_id", "lists", ["board_id"])

  op.create_table(
    "tasks",
    _id(),
    _ref("board_id", "boards.id"),
    _ref("list_id", "lists.id"),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    _ref("assignee_id", "users.id", nullable=True),
    sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
    _ts("due_date", nullable=True),
    sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    _ts("completed_at", nullable=True),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    _ref("created_by", "users.id"),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_tasks_board_id", "tasks", ["board_id"])
  op.create_index("ix_tasks_list_id", "tasks", ["list_id"])
  op.create_index("ix_tasks_list_position", "tasks", ["list_id", "position"])

  op.create_table(
    "labels",
    _id(),
    _ref("board_id", "boards.id"),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False, server_default="#64748b"),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "name", name="ux_labels_board_name"),
  )
  op.create_index("ix_labels_board_id", "labels", ["board_id"])

  op.create_table(
    "task_labels",
    _id(),
    _ref("task_id", "tasks.id"),
    _ref("label_id", "labels.id"),
    sa.UniqueConstraint("task_id", "label_id", name="ux_task_labels_task_label"),
  )
  op.create_index("ix_task_labels_task_id", "task_labels", ["task_id"])
  op.create_index("ix_task_labels_label_id", "task_labels", ["label_id"])

  op.create_table(
    "comments",
    _id(),
    _ref("task_id", "tasks.id"),
    _ref("author_id", "users.id"),
    sa.Column("body", sa.Text(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_comments_task_id", "comments", ["task_id"])

  op.create_table(
    "notifications",
    _id(),
    _ref("user_id", "users.id"),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=True),
    sa.Column("entity_id", sa.String(36), nullable=True),
    _ts("read_at", nullable=True),
    _ts("created_at"),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

  op.create_table(
    "audit_events",
    _id(),
    sa.Column("board_id", sa.String(36), nullable=True),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"])
  op.create_index("ix_audit_events_task_id", "audit_events", ["task_id"])


def downgrade() -> None:
  for table in (
    "audit_events",
    "notifications",
    "comments",
    "task_labels",
    "labels",
    "tasks",
    "lists",
    "board_members",
    "boards",
    "sessions",
    "users",
  ):
    op.drop_table(table)
