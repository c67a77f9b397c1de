"""Modelos para el gate de roles y aprobación"""
from enum import Enum
from pydantic import BaseModel
from typing import List


class GateView(str, Enum):
    PENDING_SCREEN = "pending_screen"
    REJECTED_SCREEN = "rejected_screen"
    CONTENT = "content"


class AccessResponse(BaseModel):
    roles: List[str]
    display_roles: List[str]
    primary_role: str
    approval_status: str
    view: GateView
    can_view_admin: bool
    can_validate_tickets: bool
