"""Exclusion constraint against overlapping live bookings.

Database-level backstop for the room lock taken by the booking write path:
even if two writers slip past the application check, the second insert fails
with an exclusion violation.

Revision ID: 002_no_live_booking_overlap
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "002_no_live_booking_overlap"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "002_no_live_booking_overlap.sql"


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS no_live_booking_overlap;")
    # btree_gist stays: other indexes may depend on it.
