# Overview: The authenticated principal handed to the core by the transport layer.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .categories import Role


@dataclass(frozen=True)
class Actor:
    """
    Upstream-authenticated caller.

    warehouse_id / project_id are the actor's assignment scope. None means
    the actor is not restricted along that axis.
    """
    id: Optional[int]
    role: str
    warehouse_id: Optional[int] = None
    project_id: Optional[int] = None

    @property
    def is_unrestricted(self) -> bool:
        return self.role in (Role.ADMIN, Role.SYSTEM)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "warehouse_id": self.warehouse_id,
            "project_id": self.project_id,
        }


SYSTEM_ACTOR = Actor(id=None, role=Role.SYSTEM)
