"""writewise_baseline

Creates the full schema from writewise/db/schema.sql.

Revision ID: 9c41d7a2e5b3
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "9c41d7a2e5b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _adapt_sql(sql: str, dialect_name: str) -> str:
    """Adapt DDL for the target database dialect."""
    if dialect_name == "postgresql":
        sql = sql.replace("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY")
    return sql


def upgrade() -> None:
    dialect_name = op.get_bind().dialect.name

    schema_path = Path(__file__).resolve().parents[2] / "writewise" / "db" / "schema.sql"
    schema_sql = schema_path.read_text()
    # op.execute runs one statement at a time
    for statement in schema_sql.split(";"):
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            op.execute(sa.text(_adapt_sql(cleaned, dialect_name)))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    tables = [
        "placement_results",
        "learner_profile_snapshots",
        "student_preferences",
        "writing_samples",
        "completion_scores",
        "lesson_completions",
        "curriculum_revisions",
        "curriculum_weeks",
        "curricula",
        "streaks",
        "achievements",
        "skill_progress",
        "writing_submissions",
        "assessments",
        "lesson_progress",
        "sessions",
        "children",
    ]
    for table in tables:
        op.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))
