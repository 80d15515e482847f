"""Review workflow tables: stages, grants, assignments, reviews.

Revision ID: 9e3d1c7a5b20
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "9e3d1c7a5b20"
down_revision = None
branch_labels = None
depends_on = None

ORG_IS_NULL = sa.text("organisation_id IS NULL")
ORG_IS_NOT_NULL = sa.text("organisation_id IS NOT NULL")


def _partial_unique_index(name: str, table: str, columns: list[str], where: sa.TextClause) -> None:
    op.create_index(
        name,
        table,
        columns,
        unique=True,
        postgresql_where=where,
        sqlite_where=where,
    )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("template_stages"):
        op.create_table(
            "template_stages",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("template_id", sa.Uuid(), nullable=False),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(), nullable=False, server_default=""),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "template_id", "number", name="uq_template_stages_template_number"
            ),
        )
        op.create_index(op.f("ix_template_stages_template_id"), "template_stages", ["template_id"])

    if not inspector.has_table("template_stage_review_levels"):
        op.create_table(
            "template_stage_review_levels",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("stage_id", sa.Uuid(), nullable=False),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False, server_default=""),
            sa.ForeignKeyConstraint(["stage_id"], ["template_stages.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "stage_id", "number", name="uq_template_stage_review_levels_stage_number"
            ),
        )
        op.create_index(
            op.f("ix_template_stage_review_levels_stage_id"),
            "template_stage_review_levels",
            ["stage_id"],
        )

    if not inspector.has_table("applications"):
        op.create_table(
            "applications",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("template_id", sa.Uuid(), nullable=False),
            sa.Column("stage_id", sa.Uuid(), nullable=False),
            sa.Column("stage_number", sa.Integer(), nullable=False),
            sa.Column("stage_entered_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["stage_id"], ["template_stages.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_applications_template_id"), "applications", ["template_id"])
        op.create_index(op.f("ix_applications_stage_id"), "applications", ["stage_id"])

    if not inspector.has_table("permission_grants"):
        op.create_table(
            "permission_grants",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("template_id", sa.Uuid(), nullable=False),
            sa.Column("stage_number", sa.Integer(), nullable=False),
            sa.Column("review_level", sa.Integer(), nullable=False),
            sa.Column("permission_type", sa.String(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("organisation_id", sa.Uuid(), nullable=True),
            sa.Column("restrictions", sa.JSON(), nullable=True),
            sa.Column("allowed_sections", sa.JSON(none_as_null=True), nullable=True),
            sa.Column("can_self_assign", sa.Boolean(), nullable=False),
            sa.Column("can_make_final_decision", sa.Boolean(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in (
            "template_id",
            "stage_number",
            "review_level",
            "permission_type",
            "user_id",
            "organisation_id",
        ):
            op.create_index(
                op.f(f"ix_permission_grants_{column}"), "permission_grants", [column]
            )

    if not inspector.has_table("review_assignments"):
        op.create_table(
            "review_assignments",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("application_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("organisation_id", sa.Uuid(), nullable=True),
            sa.Column("stage_id", sa.Uuid(), nullable=False),
            sa.Column("stage_number", sa.Integer(), nullable=False),
            sa.Column("level_number", sa.Integer(), nullable=False),
            sa.Column("time_stage_created", sa.DateTime(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="Available"),
            sa.Column("allowed_sections", sa.JSON(none_as_null=True), nullable=True),
            sa.Column("assigned_sections", sa.JSON(), nullable=False),
            sa.Column("is_self_assignable", sa.Boolean(), nullable=False),
            sa.Column("is_final_decision", sa.Boolean(), nullable=False),
            sa.Column("is_locked", sa.Boolean(), nullable=False),
            sa.Column("is_last_level", sa.Boolean(), nullable=False),
            sa.Column("is_last_stage", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_review_assignments_application_id"), "review_assignments", ["application_id"]
        )
        op.create_index(
            op.f("ix_review_assignments_reviewer_id"), "review_assignments", ["reviewer_id"]
        )
        op.create_index(op.f("ix_review_assignments_stage_id"), "review_assignments", ["stage_id"])
        op.create_index(op.f("ix_review_assignments_status"), "review_assignments", ["status"])
        _partial_unique_index(
            "uq_review_assignments_identity",
            "review_assignments",
            ["reviewer_id", "stage_number", "application_id", "level_number"],
            ORG_IS_NULL,
        )
        _partial_unique_index(
            "uq_review_assignments_identity_org",
            "review_assignments",
            ["reviewer_id", "organisation_id", "stage_number", "application_id", "level_number"],
            ORG_IS_NOT_NULL,
        )

    if not inspector.has_table("review_assignment_assigner_joins"):
        op.create_table(
            "review_assignment_assigner_joins",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("assigner_id", sa.Uuid(), nullable=False),
            sa.Column("review_assignment_id", sa.Uuid(), nullable=False),
            sa.Column("organisation_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_review_assignment_assigner_joins_assigner_id"),
            "review_assignment_assigner_joins",
            ["assigner_id"],
        )
        op.create_index(
            op.f("ix_review_assignment_assigner_joins_review_assignment_id"),
            "review_assignment_assigner_joins",
            ["review_assignment_id"],
        )
        _partial_unique_index(
            "uq_review_assignment_assigner_joins_identity",
            "review_assignment_assigner_joins",
            ["assigner_id", "review_assignment_id"],
            ORG_IS_NULL,
        )
        _partial_unique_index(
            "uq_review_assignment_assigner_joins_identity_org",
            "review_assignment_assigner_joins",
            ["assigner_id", "review_assignment_id", "organisation_id"],
            ORG_IS_NOT_NULL,
        )

    if not inspector.has_table("review_question_assignments"):
        op.create_table(
            "review_question_assignments",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("review_assignment_id", sa.Uuid(), nullable=False),
            sa.Column("template_element_id", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_review_question_assignments_review_assignment_id"),
            "review_question_assignments",
            ["review_assignment_id"],
        )
        op.create_index(
            op.f("ix_review_question_assignments_template_element_id"),
            "review_question_assignments",
            ["template_element_id"],
        )

    if not inspector.has_table("reviews"):
        op.create_table(
            "reviews",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("review_assignment_id", sa.Uuid(), nullable=False),
            sa.Column("application_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("stage_id", sa.Uuid(), nullable=False),
            sa.Column("stage_number", sa.Integer(), nullable=False),
            sa.Column("level_number", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        for column in ("review_assignment_id", "application_id", "reviewer_id", "stage_id", "level_number"):
            op.create_index(op.f(f"ix_reviews_{column}"), "reviews", [column])

    if not inspector.has_table("review_status_history"):
        op.create_table(
            "review_status_history",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("review_id", sa.Uuid(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_review_status_history_review_id"), "review_status_history", ["review_id"]
        )
        op.create_index(
            op.f("ix_review_status_history_status"), "review_status_history", ["status"]
        )

    if not inspector.has_table("review_decisions"):
        op.create_table(
            "review_decisions",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("review_id", sa.Uuid(), nullable=False),
            sa.Column("decision", sa.String(), nullable=False, server_default="NoDecision"),
            sa.Column("comment", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_review_decisions_review_id"), "review_decisions", ["review_id"])

    if not inspector.has_table("review_responses"):
        op.create_table(
            "review_responses",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("review_id", sa.Uuid(), nullable=False),
            sa.Column("template_element_id", sa.Integer(), nullable=False),
            sa.Column("application_response_id", sa.Integer(), nullable=False),
            sa.Column("decision", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_review_responses_review_id"), "review_responses", ["review_id"])
        op.create_index(
            op.f("ix_review_responses_template_element_id"),
            "review_responses",
            ["template_element_id"],
        )
        op.create_index(
            op.f("ix_review_responses_application_response_id"),
            "review_responses",
            ["application_response_id"],
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in (
        "review_responses",
        "review_decisions",
        "review_status_history",
        "reviews",
        "review_question_assignments",
        "review_assignment_assigner_joins",
        "review_assignments",
        "permission_grants",
        "applications",
        "template_stage_review_levels",
        "template_stages",
    ):
        if inspector.has_table(table):
            op.drop_table(table)
