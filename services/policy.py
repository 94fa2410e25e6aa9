"""Role rules mirrored from the database's row-level policies."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    admin = "admin"
    engineer = "engineer"
    operator = "operator"


READING_WRITER_ROLES = frozenset({UserRole.admin, UserRole.engineer})


def parse_role(value: Optional[str]) -> Optional[UserRole]:
    if value is None:
        return None
    try:
        return UserRole(value.strip().lower())
    except ValueError:
        return None


def can_insert_readings(role: Optional[str]) -> bool:
    """Only admins and engineers may write sensor readings."""
    return parse_role(role) in READING_WRITER_ROLES
