"""
Gate de acceso: qué vista corresponde según el estado de aprobación,
y cómo se presentan los roles de un usuario.
"""
from typing import Iterable, List

from shared.auth.roles import AppRole, ApprovalStatus, ROLE_PRIORITY
from services.access.models.access import GateView


def resolve_view(approval_status: ApprovalStatus) -> GateView:
    """Sólo 'approved' ve contenido; sin estado se trata como pendiente"""
    if approval_status == ApprovalStatus.APPROVED:
        return GateView.CONTENT
    if approval_status == ApprovalStatus.REJECTED:
        return GateView.REJECTED_SCREEN
    return GateView.PENDING_SCREEN


def ordered_roles(roles: Iterable[AppRole]) -> List[AppRole]:
    present = set(roles)
    return [role for role in ROLE_PRIORITY if role in present]


def display_roles(roles: Iterable[AppRole]) -> List[AppRole]:
    """Badges a mostrar: 'user' se oculta si hay cualquier otro rol"""
    ordered = ordered_roles(roles)
    if len(ordered) > 1:
        return [role for role in ordered if role != AppRole.USER]
    return ordered


def primary_role(roles: Iterable[AppRole]) -> AppRole:
    """admin > moderator > primer rol distinto de 'user' > user"""
    for role in ordered_roles(roles):
        if role != AppRole.USER:
            return role
    return AppRole.USER


def can_view_admin(roles: Iterable[AppRole]) -> bool:
    return AppRole.ADMIN in set(roles)


def can_moderate(roles: Iterable[AppRole]) -> bool:
    return bool({AppRole.ADMIN, AppRole.MODERATOR} & set(roles))


def can_validate_tickets(roles: Iterable[AppRole]) -> bool:
    # Mismo criterio que la dependency get_current_staff
    return can_moderate(roles)
