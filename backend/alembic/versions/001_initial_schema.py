"""Create users, universities, notes, note_tags and note_shares

Revision ID: 001
Revises: None
Create Date: 2024-03-01 00:00:00.000000+00:00

What:  Initial schema.
How:   PostgreSQL types (UUID, TIMESTAMP WITH TIME ZONE, JSON). Defaults that
       the ORM also sets are mirrored as server defaults so rows inserted
       by hand (seeds, psql) stay valid.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def _counter(name: str, default: int = 0) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text(str(default)))


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),

        # Subscription
        sa.Column("plan", sa.String(20), nullable=False, server_default=sa.text("'free'")),
        sa.Column("subscription_status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("current_period_end", sa.TIMESTAMP(timezone=True), nullable=True),

        # Feature limits (free plan defaults; -1 = unlimited)
        _counter("limit_ai_summaries", 5),
        _counter("limit_flashcard_generation", 3),
        _counter("limit_assignment_help", 2),
        _counter("limit_citations", 10),

        # Usage counters
        _counter("usage_total_notes"),
        _counter("usage_total_summaries"),
        _counter("usage_total_flashcards"),
        _counter("usage_total_assignments"),
        _counter("usage_total_citations"),
        sa.Column("last_active", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),

        # University affiliation (joined to universities by domain)
        sa.Column("university_name", sa.String(255), nullable=True),
        sa.Column("university_domain", sa.String(255), nullable=True),
        sa.Column("university_student_id", sa.String(100), nullable=True),
        sa.Column("university_department", sa.String(255), nullable=True),
        sa.Column("university_year", sa.String(50), nullable=True),

        # Preferences
        sa.Column("citation_style", sa.String(20), nullable=False, server_default=sa.text("'APA'")),
        sa.Column("language", sa.String(10), nullable=False, server_default=sa.text("'en'")),
        sa.Column("theme", sa.String(10), nullable=False, server_default=sa.text("'auto'")),

        # Verification / reset
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("email_verification_token", sa.String(128), nullable=True),
        sa.Column("reset_password_token", sa.String(128), nullable=True),
        sa.Column("reset_password_expires", sa.TIMESTAMP(timezone=True), nullable=True),

        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_users_university_domain", "users", ["university_domain"])
    op.create_index("idx_users_stripe_customer_id", "users", ["stripe_customer_id"])
    op.create_index("idx_users_stripe_subscription_id", "users", ["stripe_subscription_id"])

    op.create_table(
        "universities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),

        # Partnership
        sa.Column("partnership_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("partnership_plan", sa.String(20), nullable=False, server_default=sa.text("'basic'")),
        sa.Column("partnership_start_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("partnership_end_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("partnership_features", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("pricing", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("departments", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),

        # Statistics
        _counter("total_students"),
        _counter("active_users"),
        _counter("total_notes"),
        _counter("total_summaries"),
        _counter("total_flashcards"),
        sa.Column("average_usage_per_student", sa.Float(), nullable=False, server_default=sa.text("0")),

        # Settings
        sa.Column("allowed_domains", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("default_citation_style", sa.String(20), nullable=False, server_default=sa.text("'APA'")),
        sa.Column("custom_branding", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("settings_features", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("integrations", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),

        # Billing
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("billing_cycle", sa.String(20), nullable=False, server_default=sa.text("'annual'")),
        sa.Column("next_billing_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_payment_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=True),

        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("domain"),
    )
    op.create_index("idx_universities_partnership_status", "universities", ["partnership_status"])

    op.create_table(
        "notes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("subject", sa.String(200), nullable=True),

        # AI artifacts
        sa.Column("ai_summary_content", sa.Text(), nullable=True),
        sa.Column("ai_summary_generated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("ai_summary_model", sa.String(100), nullable=True),
        sa.Column("ai_flashcards", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("ai_key_points", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("ai_study_guide", sa.Text(), nullable=True),

        # Metadata
        _counter("word_count"),
        _counter("reading_time"),
        sa.Column("language", sa.String(10), nullable=False, server_default=sa.text("'en'")),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("original_file", sa.String(255), nullable=True),

        sa.Column("visibility", sa.String(20), nullable=False, server_default=sa.text("'private'")),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_studied", sa.TIMESTAMP(timezone=True), nullable=True),
        _counter("study_count"),

        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    # Default listing: WHERE user_id = :me ORDER BY updated_at DESC
    op.create_index("idx_notes_user_updated", "notes", ["user_id", sa.text("updated_at DESC")])
    op.create_index("idx_notes_user_subject", "notes", ["user_id", "subject"])

    op.create_table(
        "note_tags",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("note_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tag", sa.String(100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("note_id", "tag", name="uq_note_tags_note_tag"),
    )
    op.create_index("idx_note_tags_tag", "note_tags", ["tag"])

    op.create_table(
        "note_shares",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("note_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("permission", sa.String(10), nullable=False, server_default=sa.text("'view'")),
        sa.Column("shared_at", sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("note_id", "user_id", name="uq_note_shares_note_user"),
    )
    op.create_index("idx_note_shares_user", "note_shares", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_note_shares_user", table_name="note_shares")
    op.drop_table("note_shares")
    op.drop_index("idx_note_tags_tag", table_name="note_tags")
    op.drop_table("note_tags")
    op.drop_index("idx_notes_user_subject", table_name="notes")
    op.drop_index("idx_notes_user_updated", table_name="notes")
    op.drop_table("notes")
    op.drop_index("idx_universities_partnership_status", table_name="universities")
    op.drop_table("universities")
    op.drop_index("idx_users_stripe_subscription_id", table_name="users")
    op.drop_index("idx_users_stripe_customer_id", table_name="users")
    op.drop_index("idx_users_university_domain", table_name="users")
    op.drop_table("users")
