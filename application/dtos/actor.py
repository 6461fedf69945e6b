"""Authenticated caller as seen by application services."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    CLIENT = "client"
    PROFESSIONAL = "professional"
    ADMIN = "admin"


class Actor(BaseModel):
    user_id: str
    role: Role = Role.CLIENT

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
