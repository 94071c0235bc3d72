from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.customers.schemas import CustomerCreate, CustomerOut, CustomerUpdate, PaginatedCustomerResponse
from app.modules.customers.service import CustomerService

customer_router = APIRouter(prefix="/companies/{company_id}/customers")


@customer_router.post(
    "",
    response_model=CustomerOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("customers.create"))],
)
def create_customer(company_id: UUID, customer: CustomerCreate, db: db_dependency):
    return CustomerService(db).create_customer(company_id, customer)


@customer_router.get(
    "",
    response_model=PaginatedCustomerResponse,
    dependencies=[Depends(require_access("customers.list"))],
)
def list_customers(
    company_id: UUID,
    db: db_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre, email o identificación"),
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return CustomerService(db).list_customers(company_id, search, is_active, page, limit)


@customer_router.get(
    "/generic",
    response_model=CustomerOut,
    dependencies=[Depends(require_access("customers.generic"))],
)
def get_generic_customer(company_id: UUID, db: db_dependency):
    """Cliente genérico (mostrador) de la empresa; se crea si no existe."""
    return CustomerService(db).get_or_create_generic(company_id)


@customer_router.get(
    "/{customer_id}",
    response_model=CustomerOut,
    dependencies=[Depends(require_access("customers.get"))],
)
def get_customer(company_id: UUID, customer_id: UUID, db: db_dependency):
    return CustomerService(db).get_customer(company_id, customer_id)


@customer_router.patch(
    "/{customer_id}",
    response_model=CustomerOut,
    dependencies=[Depends(require_access("customers.update"))],
)
def update_customer(company_id: UUID, customer_id: UUID, customer: CustomerUpdate, db: db_dependency):
    return CustomerService(db).update_customer(company_id, customer_id, customer)


@customer_router.delete(
    "/{customer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("customers.delete"))],
)
def delete_customer(company_id: UUID, customer_id: UUID, db: db_dependency):
    CustomerService(db).delete_customer(company_id, customer_id)
