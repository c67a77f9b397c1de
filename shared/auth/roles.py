"""Roles de usuario y estado de aprobación"""
from enum import Enum
from typing import Iterable, List, Optional, Set


class AppRole(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    DJ = "dj"
    PHOTOGRAPHER = "photographer"
    PERFORMER = "performer"
    VIP = "vip"
    USER = "user"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNSET = "unset"


# Orden de despliegue de badges y de prioridad del rol principal
ROLE_PRIORITY: List[AppRole] = [
    AppRole.ADMIN,
    AppRole.MODERATOR,
    AppRole.DJ,
    AppRole.PHOTOGRAPHER,
    AppRole.PERFORMER,
    AppRole.VIP,
    AppRole.USER,
]


def parse_roles(raw_roles: Iterable[str]) -> Set[AppRole]:
    """
    Convertir filas de user_roles a AppRole.

    Un rol desconocido es un error de datos y se propaga como ValueError.
    Sin filas, el usuario tiene el rol implícito 'user'.
    """
    roles = {AppRole(role) for role in raw_roles}
    return roles or {AppRole.USER}


def parse_approval_status(raw_status: Optional[str]) -> ApprovalStatus:
    if raw_status is None or raw_status == "":
        return ApprovalStatus.UNSET
    return ApprovalStatus(raw_status)
