"""
Cadena de guards de autorización.

Los requisitos de cada ruta se declaran como registros de configuración
explícitos (ROUTE_ACCESS) y se evalúan en orden:

1. Ruta pública: se permite sin credenciales.
2. Autenticación: token Bearer válido y usuario existente/activo.
3. Rol global (roles o admin_only): se verifica antes de consultar la empresa.
4. Nivel de acceso por empresa: membresía activa en la empresa de la ruta
   con nivel >= requerido.

Cada categoría es independiente: si la ruta no declara un requisito, esa
categoría se cumple. El rol ADMIN cumple ambas categorías.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.common.exceptions import Forbidden, Unauthenticated, ValidationError
from app.database.database import get_db
from app.modules.auth.access import (
    AccessLevel, MembershipStatus, Role, has_access_level, has_role, is_global_admin,
)
from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import verify_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RouteAccess:
    is_public: bool = False
    roles: Optional[Tuple[Role, ...]] = None
    admin_only: bool = False
    access_level: Optional[AccessLevel] = None


PUBLIC = RouteAccess(is_public=True)
AUTHENTICATED = RouteAccess()


def level(required: AccessLevel) -> RouteAccess:
    return RouteAccess(access_level=required)


ROUTE_ACCESS: Dict[str, RouteAccess] = {
    # Auth
    "auth.register": PUBLIC,
    "auth.login": PUBLIC,
    "auth.me": AUTHENTICATED,

    # Companies
    "companies.create": AUTHENTICATED,
    "companies.list_mine": AUTHENTICATED,
    "companies.list_all": RouteAccess(admin_only=True),
    "companies.get": level(AccessLevel.EMPLOYEE),
    "companies.update": level(AccessLevel.ADMINISTRATOR),
    "companies.deactivate": level(AccessLevel.OWNER),

    # Members
    "members.list": level(AccessLevel.SUPERVISOR),
    "members.add": level(AccessLevel.ADMINISTRATOR),
    "members.update_level": level(AccessLevel.ADMINISTRATOR),
    "members.update_status": level(AccessLevel.ADMINISTRATOR),

    # Branches
    "branches.create": level(AccessLevel.ADMINISTRATOR),
    "branches.list": level(AccessLevel.EMPLOYEE),
    "branches.get": level(AccessLevel.EMPLOYEE),
    "branches.update": level(AccessLevel.ADMINISTRATOR),
    "branches.assign_manager": level(AccessLevel.ADMINISTRATOR),
    "branches.delete": level(AccessLevel.OWNER),

    # Products
    "products.create": level(AccessLevel.AREA_MANAGER),
    "products.list": level(AccessLevel.EMPLOYEE),
    "products.get": level(AccessLevel.EMPLOYEE),
    "products.update": level(AccessLevel.AREA_MANAGER),
    "products.delete": level(AccessLevel.ADMINISTRATOR),
    "products.restore": level(AccessLevel.ADMINISTRATOR),

    # Customers
    "customers.create": level(AccessLevel.EMPLOYEE),
    "customers.list": level(AccessLevel.EMPLOYEE),
    "customers.get": level(AccessLevel.EMPLOYEE),
    "customers.generic": level(AccessLevel.EMPLOYEE),
    "customers.update": level(AccessLevel.EMPLOYEE),
    "customers.delete": level(AccessLevel.AREA_MANAGER),

    # Invoices
    "invoices.create": level(AccessLevel.AREA_MANAGER),
    "invoices.list": level(AccessLevel.EMPLOYEE),
    "invoices.get": level(AccessLevel.EMPLOYEE),
    "invoices.update": level(AccessLevel.AREA_MANAGER),
    "invoices.update_status": level(AccessLevel.AREA_MANAGER),
    "invoices.delete": level(AccessLevel.AREA_MANAGER),
    "invoices.summary": level(AccessLevel.SUPERVISOR),

    # Invoice items
    "invoice_items.list": level(AccessLevel.EMPLOYEE),
    "invoice_items.add": level(AccessLevel.AREA_MANAGER),
    "invoice_items.update": level(AccessLevel.AREA_MANAGER),
    "invoice_items.remove": level(AccessLevel.AREA_MANAGER),

    # Inventory and stock ledger
    "inventory.list": level(AccessLevel.EMPLOYEE),
    "inventory.get": level(AccessLevel.EMPLOYEE),
    "inventory.low_stock": level(AccessLevel.SUPERVISOR),
    "inventory.restock": level(AccessLevel.SUPERVISOR),
    "inventory.reserve": level(AccessLevel.SUPERVISOR),
    "inventory.release": level(AccessLevel.SUPERVISOR),
    "stock.record": level(AccessLevel.SUPERVISOR),
    "stock.bulk_record": level(AccessLevel.SUPERVISOR),
    "stock.list": level(AccessLevel.EMPLOYEE),
    "stock.types": AUTHENTICATED,
    "stock.create_type": RouteAccess(roles=(Role.DEVELOPER,)),

    # Stock transfers
    "transfers.create": level(AccessLevel.AREA_MANAGER),
    "transfers.list": level(AccessLevel.EMPLOYEE),
    "transfers.get": level(AccessLevel.EMPLOYEE),
    "transfers.send": level(AccessLevel.AREA_MANAGER),
    "transfers.complete": level(AccessLevel.AREA_MANAGER),
    "transfers.cancel": level(AccessLevel.AREA_MANAGER),
}


def authenticate(token: Optional[str], db: Session) -> User:
    if not token:
        raise Unauthenticated("Token requerido")

    payload = verify_token(token)
    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError:
        raise Unauthenticated("Token inválido")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.is_active is not True:
        raise Unauthenticated("Usuario inválido")
    return user


def check_role(route: RouteAccess, role: Optional[Role]) -> None:
    if route.roles is None and not route.admin_only:
        return
    allowed = (Role.ADMIN,) if route.admin_only else route.roles
    if not has_role(role, allowed):
        raise Forbidden("No tienes permisos para esta operación")


def get_active_membership(db: Session, user_id: UUID, company_id: UUID) -> Optional[UserCompany]:
    return db.query(UserCompany).filter(
        UserCompany.user_id == user_id,
        UserCompany.company_id == company_id,
        UserCompany.is_active.is_(True),
        UserCompany.status == MembershipStatus.ACTIVE,
    ).first()


def parse_company_id(raw: Optional[str]) -> Optional[UUID]:
    if raw is None:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise ValidationError("ID de empresa inválido")


def check_access_level(
    route: RouteAccess,
    user: User,
    company_id: Optional[UUID],
    db: Session,
) -> Optional[AccessLevel]:
    """Returns the caller's level in the company, or None when not evaluated."""
    if route.access_level is None:
        return None
    if is_global_admin(user.role):
        return None
    if company_id is None:
        raise Forbidden("No perteneces a esta empresa")

    membership = get_active_membership(db, user.id, company_id)
    if membership is None:
        raise Forbidden("No perteneces a esta empresa")

    if not has_access_level(membership.access_level, route.access_level):
        raise Forbidden("Nivel de acceso insuficiente")

    return AccessLevel(membership.access_level)


def run_guard_chain(
    route: RouteAccess,
    token: Optional[str],
    raw_company_id: Optional[str],
    db: Session,
) -> AuthContext:
    if route.is_public:
        return AuthContext(is_public=True)

    user = authenticate(token, db)
    check_role(route, user.role)

    company_id = parse_company_id(raw_company_id)
    access_level = check_access_level(route, user, company_id, db)

    return AuthContext(
        user_id=user.id,
        role=user.role,
        company_id=company_id,
        access_level=access_level,
    )


def require_access(route_id: str):
    """
    Dependencia FastAPI que ejecuta la cadena de guards para `route_id` y
    deja el AuthContext en request.state.auth.
    """
    route = ROUTE_ACCESS[route_id]

    def guard(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_db),
    ) -> AuthContext:
        token = credentials.credentials if credentials else None
        try:
            context = run_guard_chain(route, token, request.path_params.get("company_id"), db)
        except (Unauthenticated, Forbidden) as e:
            logger.warning(f"Access denied to {route_id} ({request.method} {request.url.path}): {e.detail}")
            raise
        request.state.auth = context
        return context

    return guard
