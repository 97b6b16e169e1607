"""Initial schema: users, security and activity logs, session records

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("last_login", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_provider", "users", ["provider"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "security_logs",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("user_id", sa.String(24), nullable=True),
        sa.Column("session_id", sa.String(128), nullable=True),
        sa.Column("event", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    for column in ("id", "user_id", "session_id", "event", "severity", "ip_address", "resolved", "created_at"):
        op.create_index(f"ix_security_logs_{column}", "security_logs", [column])
    op.create_index(
        "ix_security_logs_event_severity_created", "security_logs", ["event", "severity", "created_at"],
    )
    op.create_index("ix_security_logs_ip_created", "security_logs", ["ip_address", "created_at"])
    op.create_index(
        "ix_security_logs_user_event_created", "security_logs", ["user_id", "event", "created_at"],
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("user_id", sa.String(24), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(24), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    for column in ("id", "user_id", "action", "resource", "resource_id", "created_at"):
        op.create_index(f"ix_activity_logs_{column}", "activity_logs", [column])

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("session_id", sa.String(128), nullable=False),
        sa.Column("principal_id", sa.String(64), nullable=False),
        sa.Column("session_type", sa.String(20), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
    )
    op.create_index("ix_auth_sessions_id", "auth_sessions", ["id"])
    op.create_index("ix_auth_sessions_session_id", "auth_sessions", ["session_id"], unique=True)
    op.create_index("ix_auth_sessions_principal_id", "auth_sessions", ["principal_id"])
    op.create_index("ix_auth_sessions_session_type", "auth_sessions", ["session_type"])
    op.create_index("ix_auth_sessions_is_revoked", "auth_sessions", ["is_revoked"])


def downgrade() -> None:
    op.drop_table("auth_sessions")
    op.drop_table("activity_logs")
    op.drop_table("security_logs")
    op.drop_table("users")
