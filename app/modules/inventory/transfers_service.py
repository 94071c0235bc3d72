"""
Traslados de stock entre sedes.

PENDING     reserva el stock en la sede de origen
IN_TRANSIT  libera la reserva y descuenta en origen (traslado_salida)
COMPLETED   suma en destino (traslado_entrada)
CANCELLED   desde PENDING libera la reserva; desde IN_TRANSIT devuelve el
            stock a la sede de origen

Cada paso corre en una sola transacción y sus movimientos quedan enlazados
al traslado por transfer_id.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.common.exceptions import (
    AppError, InvalidTransition, NotFound, ReferenceMismatch, ServiceError, ValidationError,
)
from app.common.pagination import paginate
from app.modules.branches.models import Branch
from app.modules.inventory.models import StockTransfer, StockTransferItem, TransferStatus
from app.modules.inventory.schemas import StockTransferCreate, StockTransferOut
from app.modules.inventory.service import TRANSFER_IN, TRANSFER_OUT, StockLedgerService
from app.modules.products.models import Product

logger = logging.getLogger(__name__)

TRANSFER_TRANSITIONS = {
    TransferStatus.PENDING: {TransferStatus.IN_TRANSIT, TransferStatus.CANCELLED},
    TransferStatus.IN_TRANSIT: {TransferStatus.COMPLETED, TransferStatus.CANCELLED},
    TransferStatus.COMPLETED: set(),
    TransferStatus.CANCELLED: set(),
}


def transfer_reference(transfer: StockTransfer) -> str:
    return f"TRF-{str(transfer.id)[:8].upper()}"


class StockTransferService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    def _get_branch(self, company_id: UUID, branch_id: UUID) -> Branch:
        branch = self.db.query(Branch).filter(Branch.id == branch_id).first()
        if not branch or branch.company_id != company_id:
            raise ReferenceMismatch("La sede no pertenece a esta empresa")
        if not branch.is_active:
            raise ValidationError(f"La sede {branch.name} está inactiva")
        return branch

    def _get_products(self, company_id: UUID, product_ids: Iterable[UUID]) -> dict:
        ids = set(product_ids)
        products = self.db.query(Product).filter(
            Product.id.in_(ids),
            Product.deleted_at.is_(None),
        ).all()
        found = {p.id: p for p in products if p.company_id == company_id}
        if ids - set(found):
            raise ReferenceMismatch("Uno o más productos no pertenecen a esta empresa")
        untracked = [p.sku for p in found.values() if not p.track_inventory]
        if untracked:
            raise ValidationError(f"El producto {untracked[0]} no controla inventario")
        return found

    def _get(self, company_id: UUID, transfer_id: UUID) -> StockTransfer:
        transfer = self.db.query(StockTransfer).options(
            selectinload(StockTransfer.items),
            joinedload(StockTransfer.from_branch),
            joinedload(StockTransfer.to_branch),
        ).filter(
            StockTransfer.id == transfer_id,
            StockTransfer.company_id == company_id,
        ).first()
        if not transfer:
            raise NotFound("Traslado no encontrado")
        return transfer

    @staticmethod
    def _ensure_transition(transfer: StockTransfer, new_status: TransferStatus) -> None:
        if new_status not in TRANSFER_TRANSITIONS[transfer.status]:
            raise InvalidTransition(
                f"No se puede pasar un traslado de {transfer.status.value} a {new_status.value}"
            )

    @staticmethod
    def to_out(transfer: StockTransfer) -> StockTransferOut:
        out = StockTransferOut.model_validate(transfer)
        out.from_branch_name = transfer.from_branch.name if transfer.from_branch else None
        out.to_branch_name = transfer.to_branch.name if transfer.to_branch else None
        out.total_quantity = sum(item.quantity for item in transfer.items)
        return out

    def create_transfer(self, company_id: UUID, data: StockTransferCreate, user_id: UUID) -> StockTransferOut:
        try:
            from_branch = self._get_branch(company_id, data.from_branch_id)
            to_branch = self._get_branch(company_id, data.to_branch_id)
            products = self._get_products(company_id, [item.product_id for item in data.items])

            transfer = StockTransfer(
                company_id=company_id,
                from_branch_id=from_branch.id,
                to_branch_id=to_branch.id,
                user_id=user_id,
                status=TransferStatus.PENDING,
                transfer_date=data.transfer_date or datetime.now(timezone.utc),
                notes=data.notes,
            )
            for item in data.items:
                product = products[item.product_id]
                transfer.items.append(StockTransferItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=item.quantity,
                    unit_cost=item.unit_cost if item.unit_cost is not None else product.cost,
                ))
            self.db.add(transfer)
            self.db.flush()

            for item in transfer.items:
                product = products[item.product_id]
                inventory = self.ledger.get_or_create_inventory(product.id, from_branch.id)
                self.ledger.reserve(inventory, product, item.quantity)

            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating stock transfer for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al crear el traslado")

        logger.info(
            f"Stock transfer {transfer.id} created: {from_branch.code} -> {to_branch.code} "
            f"({len(data.items)} items)"
        )
        return self.get_transfer(company_id, transfer.id)

    def get_transfer(self, company_id: UUID, transfer_id: UUID) -> StockTransferOut:
        return self.to_out(self._get(company_id, transfer_id))

    def list_transfers(
        self,
        company_id: UUID,
        status: Optional[TransferStatus] = None,
        branch_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        query = self.db.query(StockTransfer).options(
            selectinload(StockTransfer.items),
            joinedload(StockTransfer.from_branch),
            joinedload(StockTransfer.to_branch),
        ).filter(StockTransfer.company_id == company_id)

        if status:
            query = query.filter(StockTransfer.status == status)
        if branch_id:
            query = query.filter(or_(
                StockTransfer.from_branch_id == branch_id,
                StockTransfer.to_branch_id == branch_id,
            ))

        transfers, meta = paginate(query.order_by(StockTransfer.created_at.desc()), page, limit)
        return {"data": [self.to_out(transfer) for transfer in transfers], **meta}

    def send_transfer(self, company_id: UUID, transfer_id: UUID, user_id: UUID) -> StockTransferOut:
        def send(transfer: StockTransfer) -> None:
            out_type = self.ledger.get_movement_type(TRANSFER_OUT)
            for item in transfer.items:
                product = self.db.get(Product, item.product_id)
                inventory = self.ledger.get_or_create_inventory(product.id, transfer.from_branch_id)
                self.ledger.release(inventory, product, item.quantity)
                self.ledger.apply_movement(
                    transfer.from_branch, product, out_type, item.quantity, user_id,
                    reference=transfer_reference(transfer),
                    note=f"Traslado a {transfer.to_branch.name}",
                    transfer_id=transfer.id,
                )

        return self._change_status(company_id, transfer_id, TransferStatus.IN_TRANSIT, send)

    def complete_transfer(self, company_id: UUID, transfer_id: UUID, user_id: UUID) -> StockTransferOut:
        def complete(transfer: StockTransfer) -> None:
            in_type = self.ledger.get_movement_type(TRANSFER_IN)
            for item in transfer.items:
                product = self.db.get(Product, item.product_id)
                self.ledger.apply_movement(
                    transfer.to_branch, product, in_type, item.quantity, user_id,
                    reference=transfer_reference(transfer),
                    note=f"Traslado desde {transfer.from_branch.name}",
                    transfer_id=transfer.id,
                )
            transfer.completed_date = datetime.now(timezone.utc)
            transfer.completed_by = user_id

        return self._change_status(company_id, transfer_id, TransferStatus.COMPLETED, complete)

    def cancel_transfer(self, company_id: UUID, transfer_id: UUID, user_id: UUID) -> StockTransferOut:
        def cancel(transfer: StockTransfer) -> None:
            if transfer.status == TransferStatus.PENDING:
                for item in transfer.items:
                    product = self.db.get(Product, item.product_id)
                    inventory = self.ledger.get_or_create_inventory(product.id, transfer.from_branch_id)
                    self.ledger.release(inventory, product, item.quantity)
                return

            # En tránsito: la mercancía vuelve a la sede de origen
            in_type = self.ledger.get_movement_type(TRANSFER_IN)
            for item in transfer.items:
                product = self.db.get(Product, item.product_id)
                self.ledger.apply_movement(
                    transfer.from_branch, product, in_type, item.quantity, user_id,
                    reference=transfer_reference(transfer),
                    note="Traslado anulado, retorno a origen",
                    transfer_id=transfer.id,
                )

        return self._change_status(company_id, transfer_id, TransferStatus.CANCELLED, cancel)

    def _change_status(self, company_id: UUID, transfer_id: UUID, new_status: TransferStatus, apply) -> StockTransferOut:
        try:
            transfer = self._get(company_id, transfer_id)
            old_status = transfer.status
            self._ensure_transition(transfer, new_status)
            apply(transfer)
            transfer.status = new_status
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error changing status of stock transfer {transfer_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar el traslado")

        logger.info(f"Stock transfer {transfer_id} status changed from {old_status.value} to {new_status.value}")
        return self.get_transfer(company_id, transfer_id)
