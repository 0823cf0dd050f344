"""Initial schema — providers, requests, routing rules, assignment log.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Provider organizations
    op.create_table(
        "provider_organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_approved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )

    # Provider users
    op.create_table(
        "provider_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "provider_id",
            sa.String(36),
            sa.ForeignKey("provider_organizations.id"),
            nullable=False,
        ),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("specializations", ARRAY(sa.String(100)), nullable=False, server_default="{}"),
        sa.Column("is_certified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("experience_years", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("can_accept_requests", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_provider_users_provider", "provider_users", ["provider_id"])

    # Service requests
    op.create_table(
        "service_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("request_number", sa.String(50), unique=True, nullable=False),
        sa.Column("subscriber_id", sa.String(36), nullable=False),
        sa.Column("request_type", sa.String(20), nullable=False),
        sa.Column("urgency", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "assigned_provider_id",
            sa.String(36),
            sa.ForeignKey("provider_users.id"),
            nullable=True,
        ),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("subscriber_tier", sa.String(50), nullable=True),
        sa.Column("amount", sa.Float, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sla_status", sa.String(20), nullable=False, server_default="on_track"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_requests_status", "service_requests", ["status"])
    op.create_index(
        "idx_requests_provider_status", "service_requests", ["assigned_provider_id", "status"]
    )

    # Routing rules
    op.create_table(
        "routing_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("strategy", sa.String(20), nullable=False, server_default="load_balanced"),
        sa.Column("conditions", JSONB, nullable=False, server_default="{}"),
        sa.Column("target", JSONB, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_routing_rules_active_priority", "routing_rules", ["is_active", "priority"]
    )

    # Assignment attempts
    op.create_table(
        "assignment_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.String(36), nullable=False),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("provider_id", sa.String(36), nullable=True),
        sa.Column("rule_id", sa.String(36), nullable=True),
        sa.Column("reason", sa.String(50), nullable=True),
        sa.Column("strategy", sa.String(20), nullable=True),
        sa.Column("already_assigned", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_assignment_log_request", "assignment_log", ["request_id"])
    op.create_index("idx_assignment_log_rule", "assignment_log", ["rule_id"])

    # Round-robin counters
    op.create_table(
        "round_robin_state",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rr_key", sa.String(500), unique=True, nullable=False),
        sa.Column("counter", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("round_robin_state")
    op.drop_table("assignment_log")
    op.drop_table("routing_rules")
    op.drop_table("service_requests")
    op.drop_table("provider_users")
    op.drop_table("provider_organizations")
