from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID
from datetime import date
from decimal import Decimal

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.auth.schemas import AuthContext
from app.modules.invoices.items_service import InvoiceItemService
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceDetail, InvoiceFilters, InvoiceItemCreate, InvoiceItemOut, InvoiceItemUpdate,
    InvoiceSortField, InvoiceStatusUpdate, InvoiceSummary, InvoiceUpdate, PaginatedInvoiceResponse, SortOrder,
)
from app.modules.invoices.service import InvoiceService

invoices_router = APIRouter(prefix="/companies/{company_id}/invoices")


@invoices_router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    company_id: UUID,
    invoice: InvoiceCreate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("invoices.create")),
):
    """
    Crear una factura en borrador.

    - Sede, cliente y productos deben pertenecer a la empresa
    - Los totales se calculan en el servidor
    - El stock no se modifica hasta emitir la factura (estado pending)
    """
    return InvoiceService(db).create_invoice(company_id, invoice, auth.user_id)


@invoices_router.get(
    "",
    response_model=PaginatedInvoiceResponse,
    dependencies=[Depends(require_access("invoices.list"))],
)
def list_invoices(
    company_id: UUID,
    db: db_dependency,
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    branch_id: Optional[UUID] = None,
    customer_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, description="Buscar por número, cliente o notas"),
    overdue: Optional[bool] = None,
    sort_by: InvoiceSortField = InvoiceSortField.ISSUED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    filters = InvoiceFilters(
        status=status_filter,
        branch_id=branch_id,
        customer_id=customer_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
        overdue=overdue,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return InvoiceService(db).list_invoices(company_id, filters, page, limit)


@invoices_router.get(
    "/summary",
    response_model=InvoiceSummary,
    dependencies=[Depends(require_access("invoices.summary"))],
)
def invoices_summary(
    company_id: UUID,
    db: db_dependency,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    """Conteos y montos por estado, promedio por factura y días promedio de pago."""
    return InvoiceService(db).get_summary(company_id, date_from, date_to)


@invoices_router.get(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    dependencies=[Depends(require_access("invoices.get"))],
)
def get_invoice(company_id: UUID, invoice_id: UUID, db: db_dependency):
    return InvoiceService(db).get_invoice(company_id, invoice_id)


@invoices_router.patch(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    dependencies=[Depends(require_access("invoices.update"))],
)
def update_invoice(company_id: UUID, invoice_id: UUID, invoice: InvoiceUpdate, db: db_dependency):
    """Solo facturas en borrador. Si se envían items, reemplazan a los actuales."""
    return InvoiceService(db).update_invoice(company_id, invoice_id, invoice)


@invoices_router.patch("/{invoice_id}/status", response_model=InvoiceDetail)
def update_invoice_status(
    company_id: UUID,
    invoice_id: UUID,
    status_update: InvoiceStatusUpdate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("invoices.update_status")),
):
    """
    Cambiar el estado de una factura.

    - draft -> pending descuenta stock de los productos inventariables
    - pending/overdue -> cancelled devuelve ese stock
    - paid y cancelled son estados finales
    """
    return InvoiceService(db).update_status(company_id, invoice_id, status_update, auth.user_id)


@invoices_router.delete(
    "/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("invoices.delete"))],
)
def delete_invoice(company_id: UUID, invoice_id: UUID, db: db_dependency):
    InvoiceService(db).delete_invoice(company_id, invoice_id)


# Invoice items

@invoices_router.get(
    "/{invoice_id}/items",
    response_model=List[InvoiceItemOut],
    dependencies=[Depends(require_access("invoice_items.list"))],
)
def list_invoice_items(company_id: UUID, invoice_id: UUID, db: db_dependency):
    return InvoiceItemService(db).list_items(company_id, invoice_id)


@invoices_router.post(
    "/{invoice_id}/items",
    response_model=InvoiceItemOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("invoice_items.add"))],
)
def add_invoice_item(company_id: UUID, invoice_id: UUID, item: InvoiceItemCreate, db: db_dependency):
    return InvoiceItemService(db).add_item(company_id, invoice_id, item)


@invoices_router.patch(
    "/{invoice_id}/items/{item_id}",
    response_model=InvoiceItemOut,
    dependencies=[Depends(require_access("invoice_items.update"))],
)
def update_invoice_item(
    company_id: UUID,
    invoice_id: UUID,
    item_id: UUID,
    item: InvoiceItemUpdate,
    db: db_dependency,
):
    return InvoiceItemService(db).update_item(company_id, invoice_id, item_id, item)


@invoices_router.delete(
    "/{invoice_id}/items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_access("invoice_items.remove"))],
)
def remove_invoice_item(company_id: UUID, invoice_id: UUID, item_id: UUID, db: db_dependency):
    InvoiceItemService(db).remove_item(company_id, invoice_id, item_id)
