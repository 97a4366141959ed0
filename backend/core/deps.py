# backend/core/deps.py

"""
Common dependencies for the application.

Authentication happens upstream; requests reach this service with the
already-authenticated actor in the ``X-Actor-Id`` header and the actor's
role in ``X-Actor-Role``.
"""

from typing import Optional
from fastapi import Header

from .database import get_db
from .exceptions import ValidationError


async def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[int]:
    """Authenticated actor id, or None for system callers"""
    if x_actor_id is None or x_actor_id == "":
        return None
    try:
        return int(x_actor_id)
    except ValueError:
        raise ValidationError("X-Actor-Id header must be an integer")


async def get_actor_role(x_actor_role: Optional[str] = Header(None)) -> Optional[str]:
    return x_actor_role.strip().lower() if x_actor_role else None


# Database dependency
get_db = get_db
