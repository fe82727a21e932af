"""initial_schema

Revision ID: 3a1f9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:31.408215

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3a1f9c2e7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enums first
    op.execute("CREATE TYPE categorystatus AS ENUM ('active', 'inactive')")
    op.execute("CREATE TYPE ticketstatus AS ENUM ('waiting', 'called', 'completed', 'cancelled')")
    op.execute("CREATE TYPE counterstatus AS ENUM ('closed', 'available', 'busy')")
    op.execute("CREATE TYPE calltype AS ENUM ('next', 'manual')")

    op.create_table(
        "service_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sqlmodel.sql.sqltypes.AutoString(length=1), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=False),
        sa.Column("english_name", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column("prefix", sqlmodel.sql.sqltypes.AutoString(length=5), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM("active", "inactive", name="categorystatus", create_type=False),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_service_categories_code"), "service_categories", ["code"], unique=True)

    # counters.current_ticket_id references tickets; that key is added after both tables exist
    op.create_table(
        "counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("counter_number", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM("closed", "available", "busy", name="counterstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("current_ticket_id", sa.Integer(), nullable=True),
        sa.Column("current_category_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["current_category_id"], ["service_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_counters_counter_number"), "counters", ["counter_number"], unique=True)

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("ticket_code", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM("waiting", "called", "completed", "cancelled", name="ticketstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("counter_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("called_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"]),
        sa.ForeignKeyConstraint(["counter_id"], ["counters.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tickets_category_id"), "tickets", ["category_id"], unique=False)
    op.create_index(op.f("ix_tickets_ticket_code"), "tickets", ["ticket_code"], unique=False)
    op.create_index(
        "ix_tickets_category_status_created",
        "tickets",
        ["category_id", "status", "created_at"],
        unique=False,
    )
    op.create_foreign_key(
        "fk_counters_current_ticket_id",
        "counters",
        "tickets",
        ["current_ticket_id"],
        ["id"],
    )

    op.create_table(
        "ticket_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("sequence_date", sa.Date(), nullable=False),
        sa.Column("current_total_number", sa.Integer(), nullable=False),
        sa.Column("current_passed_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("category_id", "sequence_date", name="uq_ticket_sequence_category_date"),
    )
    op.create_index(op.f("ix_ticket_sequences_category_id"), "ticket_sequences", ["category_id"], unique=False)

    op.create_table(
        "counter_last_tickets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("counter_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("last_ticket_code", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"]),
        sa.ForeignKeyConstraint(["counter_id"], ["counters.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("counter_id", "category_id", name="uq_counter_last_ticket_counter_category"),
    )
    op.create_index(
        op.f("ix_counter_last_tickets_counter_id"), "counter_last_tickets", ["counter_id"], unique=False
    )

    op.create_table(
        "call_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("counter_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column(
            "call_type",
            postgresql.ENUM("next", "manual", name="calltype", create_type=False),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"]),
        sa.ForeignKeyConstraint(["counter_id"], ["counters.id"]),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_call_logs_ticket_id"), "call_logs", ["ticket_id"], unique=False)
    op.create_index(op.f("ix_call_logs_counter_id"), "call_logs", ["counter_id"], unique=False)

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_settings_key"), "settings", ["key"], unique=True)

    # Default reset time
    op.execute(
        "INSERT INTO settings (key, value, description, updated_at) "
        "VALUES ('ticket_reset_time', '00:00', 'Daily ticket reset time (HH:MM)', now())"
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_settings_key"), table_name="settings")
    op.drop_table("settings")
    op.drop_index(op.f("ix_call_logs_counter_id"), table_name="call_logs")
    op.drop_index(op.f("ix_call_logs_ticket_id"), table_name="call_logs")
    op.drop_table("call_logs")
    op.drop_index(op.f("ix_counter_last_tickets_counter_id"), table_name="counter_last_tickets")
    op.drop_table("counter_last_tickets")
    op.drop_index(op.f("ix_ticket_sequences_category_id"), table_name="ticket_sequences")
    op.drop_table("ticket_sequences")
    op.drop_constraint("fk_counters_current_ticket_id", "counters", type_="foreignkey")
    op.drop_index("ix_tickets_category_status_created", table_name="tickets")
    op.drop_index(op.f("ix_tickets_ticket_code"), table_name="tickets")
    op.drop_index(op.f("ix_tickets_category_id"), table_name="tickets")
    op.drop_table("tickets")
    op.drop_index(op.f("ix_counters_counter_number"), table_name="counters")
    op.drop_table("counters")
    op.drop_index(op.f("ix_service_categories_code"), table_name="service_categories")
    op.drop_table("service_categories")

    op.execute("DROP TYPE IF EXISTS calltype")
    op.execute("DROP TYPE IF EXISTS counterstatus")
    op.execute("DROP TYPE IF EXISTS ticketstatus")
    op.execute("DROP TYPE IF EXISTS categorystatus")
