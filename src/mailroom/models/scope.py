"""Context scopes: the global namespace and one namespace per project."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mailroom.errors import EmptyFieldError


class GlobalScope(BaseModel):
    """The namespace shared by every project."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["global"] = "global"

    @property
    def storage_key(self) -> str:
        return ""

    def __str__(self) -> str:
        return "global"


class ProjectScope(BaseModel):
    """The namespace of a single project (e.g. ``"owner/repo"``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["project"] = "project"
    project_id: str

    @field_validator("project_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("project_id cannot be empty")
        return value

    @property
    def storage_key(self) -> str:
        """Value of the ``context.project_id`` column for this scope."""
        return self.project_id

    def __str__(self) -> str:
        return f"project:{self.project_id}"


Scope = Annotated[GlobalScope | ProjectScope, Field(discriminator="kind")]
"""A context namespace. Global and project scopes never alias each other."""

GLOBAL = GlobalScope()


def scope_for(project_id: str | None) -> GlobalScope | ProjectScope:
    """
    Map an optional project identifier onto a scope.

    ``None`` selects the global scope. A blank string is rejected rather than
    being silently treated as global.

    Raises:
        EmptyFieldError: If ``project_id`` is blank.
    """
    if project_id is None:
        return GLOBAL
    if not project_id.strip():
        raise EmptyFieldError("project_id")
    return ProjectScope(project_id=project_id)
