from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.access import MembershipStatus
from app.modules.auth.guards import require_access
from app.modules.auth.schemas import AuthContext
from app.modules.company import service
from app.modules.company.schemas import (
    CompanyCreate, CompanyCreateResponse, CompanyOut, CompanyOutWithAccess, CompanyUpdate,
    MemberAccessLevelUpdate, MemberAdd, MemberOut, MemberStatusUpdate,
)

company_router = APIRouter(prefix="/companies")


@company_router.post("", response_model=CompanyCreateResponse, status_code=status.HTTP_201_CREATED)
def create_company(
    company: CompanyCreate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("companies.create")),
):
    """
    Crear una empresa. El usuario autenticado queda como OWNER y se crean
    automáticamente la sede principal y el cliente genérico.
    """
    return service.create_company(db, company, auth.user_id)


@company_router.get("", response_model=List[CompanyOutWithAccess])
def get_my_companies(
    db: db_dependency,
    auth: AuthContext = Depends(require_access("companies.list_mine")),
):
    """Empresas del usuario actual con su nivel de acceso."""
    return service.get_companies_for_user(db, auth.user_id)


@company_router.get(
    "/all",
    response_model=List[CompanyOut],
    dependencies=[Depends(require_access("companies.list_all"))],
)
def list_all_companies(db: db_dependency):
    """Todas las empresas (solo administradores globales)."""
    return service.list_all_companies(db)


@company_router.get(
    "/{company_id}",
    response_model=CompanyOut,
    dependencies=[Depends(require_access("companies.get"))],
)
def get_company(company_id: UUID, db: db_dependency):
    return service.get_company(db, company_id)


@company_router.patch(
    "/{company_id}",
    response_model=CompanyOut,
    dependencies=[Depends(require_access("companies.update"))],
)
def update_company(company_id: UUID, company_update: CompanyUpdate, db: db_dependency):
    return service.update_company(db, company_id, company_update)


@company_router.delete(
    "/{company_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("companies.deactivate"))],
)
def deactivate_company(company_id: UUID, db: db_dependency):
    """Desactivar la empresa (no borra datos)."""
    service.deactivate_company(db, company_id)


# Members

@company_router.get(
    "/{company_id}/members",
    response_model=List[MemberOut],
    dependencies=[Depends(require_access("members.list"))],
)
def list_members(
    company_id: UUID,
    db: db_dependency,
    member_status: Optional[MembershipStatus] = Query(None, alias="status"),
):
    return service.list_members(db, company_id, member_status)


@company_router.post("/{company_id}/members", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
def add_member(
    company_id: UUID,
    member: MemberAdd,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("members.add")),
):
    """Agregar un usuario existente (por email) con un nivel de acceso menor al propio."""
    return service.add_member(db, company_id, member, auth)


@company_router.patch("/{company_id}/members/{membership_id}/access-level", response_model=MemberOut)
def update_member_access_level(
    company_id: UUID,
    membership_id: UUID,
    update: MemberAccessLevelUpdate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("members.update_level")),
):
    return service.update_member_access_level(db, company_id, membership_id, update.access_level, auth)


@company_router.patch("/{company_id}/members/{membership_id}/status", response_model=MemberOut)
def update_member_status(
    company_id: UUID,
    membership_id: UUID,
    update: MemberStatusUpdate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("members.update_status")),
):
    return service.update_member_status(db, company_id, membership_id, update.status, auth)
