from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.branches.schemas import AssignManager, BranchCreate, BranchOut, BranchUpdate, PaginatedBranchResponse
from app.modules.branches.service import BranchService

branch_router = APIRouter(prefix="/companies/{company_id}/branches")


@branch_router.post(
    "",
    response_model=BranchOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("branches.create"))],
)
def create_branch(company_id: UUID, branch: BranchCreate, db: db_dependency):
    """Crear una sede. La primera sede de la empresa queda como principal."""
    return BranchService(db).create_branch(company_id, branch)


@branch_router.get(
    "",
    response_model=PaginatedBranchResponse,
    dependencies=[Depends(require_access("branches.list"))],
)
def list_branches(
    company_id: UUID,
    db: db_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre o código"),
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return BranchService(db).list_branches(company_id, search, is_active, page, limit)


@branch_router.get(
    "/{branch_id}",
    response_model=BranchOut,
    dependencies=[Depends(require_access("branches.get"))],
)
def get_branch(company_id: UUID, branch_id: UUID, db: db_dependency):
    return BranchService(db).get_branch(company_id, branch_id)


@branch_router.patch(
    "/{branch_id}",
    response_model=BranchOut,
    dependencies=[Depends(require_access("branches.update"))],
)
def update_branch(company_id: UUID, branch_id: UUID, branch: BranchUpdate, db: db_dependency):
    return BranchService(db).update_branch(company_id, branch_id, branch)


@branch_router.patch(
    "/{branch_id}/manager",
    response_model=BranchOut,
    dependencies=[Depends(require_access("branches.assign_manager"))],
)
def assign_manager(company_id: UUID, branch_id: UUID, assignment: AssignManager, db: db_dependency):
    """Asignar (o quitar) el encargado de la sede. Debe ser miembro activo."""
    return BranchService(db).assign_manager(company_id, branch_id, assignment.manager_id)


@branch_router.delete(
    "/{branch_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("branches.delete"))],
)
def delete_branch(company_id: UUID, branch_id: UUID, db: db_dependency):
    BranchService(db).delete_branch(company_id, branch_id)
