from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.guards import require_access
from app.modules.auth.schemas import AuthContext
from app.modules.inventory.models import TransferStatus
from app.modules.inventory.service import StockLedgerService
from app.modules.inventory.transfers_service import StockTransferService
from app.modules.inventory.schemas import (
    InventoryOut, PaginatedInventoryResponse, PaginatedStockMovementResponse, PaginatedStockTransferResponse,
    StockAlertResponse, StockReservation, StockTransferCreate, StockTransferOut,
    StockMovementBulkCreate, StockMovementBulkOut, StockMovementCreate, StockMovementOut,
    StockMovementTypeCreate, StockMovementTypeOut,
)

stock_router = APIRouter(prefix="/companies/{company_id}/inventory", tags=["Inventory"])


@stock_router.get(
    "",
    response_model=PaginatedInventoryResponse,
    dependencies=[Depends(require_access("inventory.list"))],
)
def list_inventory(
    company_id: UUID,
    db: db_dependency,
    branch_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Buscar por nombre o SKU"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Stock actual por producto y sede."""
    return StockLedgerService(db).list_inventory(company_id, branch_id, search, page, limit)


@stock_router.get(
    "/low-stock",
    response_model=StockAlertResponse,
    dependencies=[Depends(require_access("inventory.low_stock"))],
)
def low_stock(company_id: UUID, db: db_dependency, branch_id: Optional[UUID] = Query(None)):
    """Productos con stock menor o igual a su stock mínimo."""
    return StockLedgerService(db).list_low_stock(company_id, branch_id)


@stock_router.get(
    "/restock-needed",
    response_model=StockAlertResponse,
    dependencies=[Depends(require_access("inventory.restock"))],
)
def restock_needed(company_id: UUID, db: db_dependency, branch_id: Optional[UUID] = Query(None)):
    """Productos que alcanzaron su punto de reorden."""
    return StockLedgerService(db).list_restock_needed(company_id, branch_id)


@stock_router.get(
    "/branches/{branch_id}/products/{product_id}",
    response_model=InventoryOut,
    dependencies=[Depends(require_access("inventory.get"))],
)
def get_inventory(company_id: UUID, branch_id: UUID, product_id: UUID, db: db_dependency):
    return StockLedgerService(db).get_inventory(company_id, branch_id, product_id)


@stock_router.post(
    "/branches/{branch_id}/products/{product_id}/reserve",
    response_model=InventoryOut,
    dependencies=[Depends(require_access("inventory.reserve"))],
)
def reserve_stock(
    company_id: UUID, branch_id: UUID, product_id: UUID, reservation: StockReservation, db: db_dependency
):
    """Apartar stock disponible. El stock reservado no se puede vender."""
    return StockLedgerService(db).reserve_stock(company_id, branch_id, product_id, reservation)


@stock_router.post(
    "/branches/{branch_id}/products/{product_id}/release",
    response_model=InventoryOut,
    dependencies=[Depends(require_access("inventory.release"))],
)
def release_reservation(
    company_id: UUID, branch_id: UUID, product_id: UUID, reservation: StockReservation, db: db_dependency
):
    return StockLedgerService(db).release_reservation(company_id, branch_id, product_id, reservation)


movements_router = APIRouter(prefix="/companies/{company_id}/stock-movements", tags=["Inventory Movements"])


@movements_router.post("", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED)
def record_movement(
    company_id: UUID,
    movement_data: StockMovementCreate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("stock.record")),
):
    """Registrar un movimiento y actualizar el stock en la misma transacción."""
    return StockLedgerService(db).record_movement(company_id, movement_data, auth.user_id)


@movements_router.post("/bulk", response_model=StockMovementBulkOut, status_code=status.HTTP_201_CREATED)
def bulk_record_movements(
    company_id: UUID,
    bulk_data: StockMovementBulkCreate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("stock.bulk_record")),
):
    """
    Registrar varios movimientos en orden. Todo o nada: si uno falla no se
    aplica ninguno y el error indica la posición del movimiento.
    """
    movements = StockLedgerService(db).bulk_record(company_id, bulk_data.movements, auth.user_id)
    return {"movements": movements, "total": len(movements)}


@movements_router.get(
    "",
    response_model=PaginatedStockMovementResponse,
    dependencies=[Depends(require_access("stock.list"))],
)
def get_movements(
    company_id: UUID,
    db: db_dependency,
    branch_id: Optional[UUID] = Query(None),
    product_id: Optional[UUID] = Query(None),
    movement_type: Optional[str] = Query(None),
    reference: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Movimientos de inventario, del más reciente al más antiguo."""
    return StockLedgerService(db).list_movements(
        company_id,
        branch_id=branch_id,
        product_id=product_id,
        movement_type=movement_type,
        reference=reference,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )


movement_types_router = APIRouter(prefix="/stock-movement-types", tags=["Inventory Movements"])


@movement_types_router.get(
    "",
    response_model=List[StockMovementTypeOut],
    dependencies=[Depends(require_access("stock.types"))],
)
def list_movement_types(db: db_dependency):
    return StockLedgerService(db).list_movement_types()


@movement_types_router.post(
    "",
    response_model=StockMovementTypeOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_access("stock.create_type"))],
)
def create_movement_type(movement_type: StockMovementTypeCreate, db: db_dependency):
    return StockLedgerService(db).create_movement_type(movement_type)


transfers_router = APIRouter(prefix="/companies/{company_id}/stock-transfers", tags=["Stock Transfers"])


@transfers_router.post("", response_model=StockTransferOut, status_code=status.HTTP_201_CREATED)
def create_transfer(
    company_id: UUID,
    transfer_data: StockTransferCreate,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("transfers.create")),
):
    """Crear un traslado entre sedes. El stock queda reservado en la sede de origen."""
    return StockTransferService(db).create_transfer(company_id, transfer_data, auth.user_id)


@transfers_router.get(
    "",
    response_model=PaginatedStockTransferResponse,
    dependencies=[Depends(require_access("transfers.list"))],
)
def list_transfers(
    company_id: UUID,
    db: db_dependency,
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    branch_id: Optional[UUID] = Query(None, description="Sede de origen o destino"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return StockTransferService(db).list_transfers(company_id, status_filter, branch_id, page, limit)


@transfers_router.get(
    "/{transfer_id}",
    response_model=StockTransferOut,
    dependencies=[Depends(require_access("transfers.get"))],
)
def get_transfer(company_id: UUID, transfer_id: UUID, db: db_dependency):
    return StockTransferService(db).get_transfer(company_id, transfer_id)


@transfers_router.post("/{transfer_id}/send", response_model=StockTransferOut)
def send_transfer(
    company_id: UUID,
    transfer_id: UUID,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("transfers.send")),
):
    """Despachar: libera la reserva y descuenta el stock en origen."""
    return StockTransferService(db).send_transfer(company_id, transfer_id, auth.user_id)


@transfers_router.post("/{transfer_id}/complete", response_model=StockTransferOut)
def complete_transfer(
    company_id: UUID,
    transfer_id: UUID,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("transfers.complete")),
):
    """Recibir en destino."""
    return StockTransferService(db).complete_transfer(company_id, transfer_id, auth.user_id)


@transfers_router.post("/{transfer_id}/cancel", response_model=StockTransferOut)
def cancel_transfer(
    company_id: UUID,
    transfer_id: UUID,
    db: db_dependency,
    auth: AuthContext = Depends(require_access("transfers.cancel")),
):
    return StockTransferService(db).cancel_transfer(company_id, transfer_id, auth.user_id)
