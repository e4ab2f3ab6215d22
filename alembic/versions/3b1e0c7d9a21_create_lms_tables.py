"""create lms tables

Revision ID: 3b1e0c7d9a21
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e0c7d9a21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "roles",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
    )

    op.create_table(
        "course_units",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "course_id",
            sa.Integer(),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "ix_course_units_course_published", "course_units", ["course_id", "is_published"]
    )

    op.create_table(
        "course_modules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "course_id",
            sa.Integer(),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "unit_id",
            sa.Integer(),
            sa.ForeignKey("course_units.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "course_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("enrolled_at", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("student_id", "course_id"),
    )

    op.create_table(
        "progress_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column(
            "unit_id", sa.Integer(), sa.ForeignKey("course_units.id"), nullable=False
        ),
        sa.Column(
            "module_id", sa.Integer(), sa.ForeignKey("course_modules.id"), nullable=True
        ),
        sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "student_id",
            "course_id",
            "unit_id",
            "module_id",
            name="uq_progress_records_key",
            postgresql_nulls_not_distinct=True,
        ),
    )
    op.create_index(
        "ix_progress_records_student_course",
        "progress_records",
        ["student_id", "course_id"],
    )

    op.create_table(
        "assessment_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "enrollment_id",
            sa.Integer(),
            sa.ForeignKey("course_enrollments.id"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_assessment_scores_enrollment_id", "assessment_scores", ["enrollment_id"]
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "enrollment_id",
            sa.Integer(),
            sa.ForeignKey("course_enrollments.id"),
            nullable=False,
        ),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("certificate_number", sa.String(length=64), nullable=False),
        sa.Column("issued_at", sa.Integer(), nullable=False),
        sa.Column("final_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("course_progress", sa.Float(), nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("course_title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("issuer", sa.Text(), nullable=False, server_default=""),
        sa.UniqueConstraint(
            "enrollment_id", "type", name="uq_certificates_enrollment_type"
        ),
        sa.UniqueConstraint("certificate_number", "type"),
    )
    op.create_index("ix_certificates_course_type", "certificates", ["course_id", "type"])
    op.create_index("ix_certificates_student", "certificates", ["student_id"])


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_table("assessment_scores")
    op.drop_table("progress_records")
    op.drop_table("course_enrollments")
    op.drop_table("course_modules")
    op.drop_table("course_units")
    op.drop_table("courses")
    op.drop_table("users")
