"""Permission policy rows describing who may review or assign at a level."""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from reviewflow.models.base import QueryModel


class PermissionGrant(QueryModel, table=True):
    """Flattened review/assign permission for one user at one template level.

    Rows are owned by the template-authoring side and only read here.
    """

    __tablename__ = "permission_grants"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    template_id: UUID = Field(index=True)
    stage_number: int = Field(index=True)
    review_level: int = Field(index=True)
    permission_type: str = Field(index=True)  # Review | Assign
    user_id: UUID = Field(index=True)
    organisation_id: UUID | None = Field(default=None, index=True)
    restrictions: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    allowed_sections: list[str] | None = Field(
        default=None, sa_column=Column(JSON(none_as_null=True))
    )
    can_self_assign: bool = Field(default=False)
    can_make_final_decision: bool = Field(default=False)
