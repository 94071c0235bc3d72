from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.products.schemas import PaginatedProductResponse, ProductCreate, ProductOut, ProductUpdate
from app.modules.products.service import ProductService

product_router = APIRouter(prefix="/companies/{company_id}/products")


@product_router.post(
    "",
    response_model=ProductOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("products.create"))],
)
def create_product(company_id: UUID, product: ProductCreate, db: db_dependency):
    """
    Crear un producto. El SKU es único dentro de la empresa.
    """
    return ProductService(db).create_product(company_id, product)


@product_router.get(
    "",
    response_model=PaginatedProductResponse,
    dependencies=[Depends(require_access("products.list"))],
)
def list_products(
    company_id: UUID,
    db: db_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre, SKU o descripción"),
    is_active: Optional[bool] = None,
    include_deleted: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return ProductService(db).list_products(company_id, search, is_active, include_deleted, page, limit)


@product_router.get(
    "/{product_id}",
    response_model=ProductOut,
    dependencies=[Depends(require_access("products.get"))],
)
def get_product(company_id: UUID, product_id: UUID, db: db_dependency):
    return ProductService(db).get_product(company_id, product_id)


@product_router.patch(
    "/{product_id}",
    response_model=ProductOut,
    dependencies=[Depends(require_access("products.update"))],
)
def update_product(company_id: UUID, product_id: UUID, product: ProductUpdate, db: db_dependency):
    return ProductService(db).update_product(company_id, product_id, product)


@product_router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("products.delete"))],
)
def delete_product(company_id: UUID, product_id: UUID, db: db_dependency):
    ProductService(db).delete_product(company_id, product_id)


@product_router.post(
    "/{product_id}/restore",
    response_model=ProductOut,
    dependencies=[Depends(require_access("products.restore"))],
)
def restore_product(company_id: UUID, product_id: UUID, db: db_dependency):
    return ProductService(db).restore_product(company_id, product_id)
