"""
Modelo de acceso: roles globales y niveles de acceso por empresa.

Un nivel requerido L se satisface con una membresía de nivel >= L (a mayor
número, mayor privilegio). El rol global ADMIN omite cualquier verificación
por empresa.
"""
import enum
from typing import Iterable, Optional, Union

from app.common.exceptions import ValidationError


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    DEVELOPER = "DEVELOPER"
    USER = "USER"


class AccessLevel(enum.IntEnum):
    OWNER = 50          # Dueño de la empresa, acceso total
    ADMINISTRATOR = 40  # Administrador general
    AREA_MANAGER = 30   # Jefe de área
    SUPERVISOR = 20     # Supervisor de equipo
    EMPLOYEE = 10       # Vendedores, operarios


class MembershipStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


def is_global_admin(role: Optional[Union[Role, str]]) -> bool:
    return role is not None and str(getattr(role, "value", role)) == Role.ADMIN.value


def has_access_level(level: Optional[int], required: Optional[int]) -> bool:
    """Un requisito ausente siempre se cumple; un nivel ausente nunca."""
    if required is None:
        return True
    if level is None:
        return False
    return int(level) >= int(required)


def has_role(role: Optional[Union[Role, str]], allowed: Optional[Iterable[Union[Role, str]]]) -> bool:
    if allowed is None:
        return True
    if is_global_admin(role):
        return True
    if role is None:
        return False
    value = str(getattr(role, "value", role))
    return any(value == str(getattr(r, "value", r)) for r in allowed)


def can_manage_member(actor_level: int, target_level: int) -> bool:
    """Only a strictly higher level may change another member."""
    return int(actor_level) > int(target_level)


def parse_access_level(value: Union[int, str, AccessLevel]) -> AccessLevel:
    if isinstance(value, AccessLevel):
        return value
    try:
        if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
            return AccessLevel[value.strip().upper()]
        return AccessLevel(int(value))
    except (KeyError, ValueError):
        raise ValidationError(f"Nivel de acceso inválido: {value}")
