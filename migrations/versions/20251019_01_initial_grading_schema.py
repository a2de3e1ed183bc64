"""initial grading schema

Revision ID: 20251019_01
Revises:
Create Date: 2025-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20251019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ASSESSMENT_STATUSES = (
    "Processing Ques",
    "Ques Pending Approval",
    "Ready for Grading",
    "Processing Ans",
    "Ans Pending Approval",
    "Completed",
    "Extraction Failed",
    "Upload Failed",
)
SUBMISSION_STATUSES = (
    "Pending",
    "Extracting",
    "Processing",
    "Ready for Verification",
    "Verifying",
    "Approved",
    "Rejected",
    "Failed",
)

UUID = postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("organisation", sa.String(), nullable=False),
        sa.Column("role", sa.Enum("teacher", "admin", name="role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organisation", "users", ["organisation"])

    op.create_table(
        "assessments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("owner_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("class", sa.String(), nullable=True),
        sa.Column("subject", sa.String(), nullable=True),
        sa.Column("status", sa.Enum(*ASSESSMENT_STATUSES, name="assessment_status"), nullable=False),
        sa.Column("question_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_marks", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("question_paper_link", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_assessments_owner_id", "assessments", ["owner_id"])

    op.create_table(
        "questions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("assessment_id", UUID, sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_number", sa.Integer(), nullable=False),
        sa.Column("question_identifier", sa.String(), nullable=True),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("max_marks", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("page_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("topics", sa.JSON(), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("assessment_id", "question_number", name="uq_question_number_per_assessment"),
    )
    op.create_index("ix_questions_assessment_id", "questions", ["assessment_id"])

    op.create_table(
        "students",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("organisation", sa.String(), nullable=False),
        sa.Column("student_identifier", sa.String(), nullable=False),
        sa.Column("student_name", sa.String(), nullable=False),
        sa.Column("class", sa.String(), nullable=True),
        sa.Column("section", sa.String(), nullable=True),
        sa.Column("roll_number", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organisation", "student_identifier", name="uq_student_identifier_per_org"),
    )
    op.create_index("ix_students_organisation", "students", ["organisation"])

    op.create_table(
        "student_submissions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("assessment_id", UUID, sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("student_id", UUID, sa.ForeignKey("students.id", ondelete="SET NULL"), nullable=True),
        sa.Column("answer_sheet_link", sa.String(), nullable=True),
        sa.Column("extracted_student_info", sa.JSON(), nullable=True),
        sa.Column("page_numbers", sa.JSON(), nullable=True),
        sa.Column("status", sa.Enum(*SUBMISSION_STATUSES, name="submission_status"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("verified_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_student_submissions_assessment_id", "student_submissions", ["assessment_id"])
    op.create_index("ix_student_submissions_student_id", "student_submissions", ["student_id"])

    op.create_table(
        "answers",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "submission_id", UUID, sa.ForeignKey("student_submissions.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("question_id", UUID, sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("marks_obtained", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("ai_explanation", sa.Text(), nullable=True),
        sa.Column("user_feedback", sa.Text(), nullable=True),
        sa.Column("page_number", sa.Integer(), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("submission_id", "question_id", name="uq_answer_per_question"),
    )
    op.create_index("ix_answers_submission_id", "answers", ["submission_id"])
    op.create_index("ix_answers_question_id", "answers", ["question_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("answers")
    op.drop_table("student_submissions")
    op.drop_table("students")
    op.drop_table("questions")
    op.drop_table("assessments")
    op.drop_table("users")
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS submission_status")
        op.execute("DROP TYPE IF EXISTS assessment_status")
        op.execute("DROP TYPE IF EXISTS role")
