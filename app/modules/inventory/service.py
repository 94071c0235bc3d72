"""
Ledger de inventario.

Cada cambio de stock se registra como un StockMovement inmutable y se
aplica sobre la fila Inventory de (producto, sede) en la misma transacción.
Las salidas usan un UPDATE condicional (stock - reservado >= cantidad) para
que dos ventas concurrentes no lleven el stock por debajo de cero ni tomen
unidades reservadas.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import (
    AppError, Conflict, InsufficientStock, NotFound, ReferenceMismatch, ServiceError, ValidationError,
)
from app.common.pagination import paginate
from app.modules.auth.models import User
from app.modules.branches.models import Branch
from app.modules.inventory.models import Inventory, StockMovement, StockMovementType
from app.modules.inventory.schemas import (
    InventoryOut, StockMovementCreate, StockMovementOut, StockMovementTypeCreate, StockReservation,
)
from app.modules.products.models import Product

logger = logging.getLogger(__name__)

SALE = "venta"
RETURN = "devolución"
TRANSFER_OUT = "traslado_salida"
TRANSFER_IN = "traslado_entrada"

DEFAULT_MOVEMENT_TYPES = [
    {"name": "venta", "description": "Salida por venta", "is_addition": False},
    {"name": "compra", "description": "Entrada por compra", "is_addition": True},
    {"name": "ajuste", "description": "Ajuste de stock", "is_addition": True},
    {"name": "devolución", "description": "Devolución de producto", "is_addition": True},
    {"name": "cierre", "description": "Salida por cierre de inventario", "is_addition": False},
    {"name": "carga_inicial", "description": "Carga inicial de stock", "is_addition": True},
    {"name": "traslado_salida", "description": "Salida por traslado a otra sede", "is_addition": False},
    {"name": "traslado_entrada", "description": "Entrada por traslado desde otra sede", "is_addition": True},
]


def seed_movement_types(db: Session) -> int:
    """
    Crea los tipos de movimiento por defecto que falten. Idempotente.

    Returns:
        int: cantidad de tipos creados
    """
    existing = {name for (name,) in db.query(StockMovementType.name).all()}
    created = 0
    for movement_type in DEFAULT_MOVEMENT_TYPES:
        if movement_type["name"] in existing:
            continue
        db.add(StockMovementType(**movement_type))
        created += 1
    if created:
        db.commit()
        logger.info(f"Seeded {created} stock movement types")
    return created


def signed_quantity(movement_type: StockMovementType, quantity: int) -> int:
    return quantity if movement_type.is_addition else -quantity


class StockLedgerService:
    """Service for stock movements and current inventory."""

    def __init__(self, db: Session):
        self.db = db

    # Movement types

    def list_movement_types(self) -> List[StockMovementType]:
        return self.db.query(StockMovementType).order_by(StockMovementType.name).all()

    def get_movement_type(self, name: str) -> StockMovementType:
        movement_type = self.db.query(StockMovementType).filter(StockMovementType.name == name).first()
        if not movement_type:
            raise ValidationError(f"Tipo de movimiento desconocido: {name}")
        return movement_type

    def create_movement_type(self, data: StockMovementTypeCreate) -> StockMovementType:
        if self.db.query(StockMovementType).filter(StockMovementType.name == data.name).first():
            raise Conflict(f"El tipo de movimiento '{data.name}' ya existe")
        try:
            movement_type = StockMovementType(**data.model_dump())
            self.db.add(movement_type)
            self.db.commit()
            self.db.refresh(movement_type)
            return movement_type
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating movement type {data.name}: {e}", exc_info=True)
            raise ServiceError("Error al crear el tipo de movimiento")

    # Core operations (no commit; the caller owns the transaction)

    def get_or_create_inventory(self, product_id: UUID, branch_id: UUID) -> Inventory:
        query = self.db.query(Inventory).filter(
            Inventory.product_id == product_id,
            Inventory.branch_id == branch_id,
        )
        inventory = query.first()
        if inventory:
            return inventory

        try:
            with self.db.begin_nested():
                inventory = Inventory(product_id=product_id, branch_id=branch_id, stock=0, reserved_stock=0)
                self.db.add(inventory)
        except IntegrityError:
            # Otra transacción creó la fila primero
            inventory = query.first()
        return inventory

    def apply_movement(
        self,
        branch: Branch,
        product: Product,
        movement_type: StockMovementType,
        quantity: int,
        user_id: UUID,
        reference: Optional[str] = None,
        note: Optional[str] = None,
        invoice_id: Optional[UUID] = None,
        transfer_id: Optional[UUID] = None,
    ):
        """
        Ajusta el stock de (producto, sede) y agrega la fila del ledger.
        Las salidas solo pueden tomar stock disponible (no reservado).

        Returns:
            (StockMovement, int): el movimiento y el stock resultante

        Raises:
            ValidationError: cantidad no positiva
            InsufficientStock: salida mayor al stock y el producto no admite backorder
        """
        if quantity <= 0:
            raise ValidationError("La cantidad debe ser mayor a cero")

        inventory = self.get_or_create_inventory(product.id, branch.id)

        if movement_type.is_addition:
            self.db.query(Inventory).filter(Inventory.id == inventory.id).update(
                {Inventory.stock: Inventory.stock + quantity}, synchronize_session=False
            )
        else:
            self._decrement(inventory, product, quantity)
        self.db.refresh(inventory)

        movement = StockMovement(
            branch_id=branch.id,
            product_id=product.id,
            user_id=user_id,
            movement_type_id=movement_type.id,
            quantity=signed_quantity(movement_type, quantity),
            reference=reference,
            note=note,
            invoice_id=invoice_id,
            transfer_id=transfer_id,
        )
        self.db.add(movement)
        self.db.flush()

        logger.info(
            f"Stock movement {movement_type.name} {movement.quantity:+d} for product {product.sku} "
            f"at branch {branch.code} (stock={inventory.stock}, ref={reference})"
        )
        return movement, inventory.stock

    def _decrement(self, inventory: Inventory, product: Product, quantity: int) -> None:
        query = self.db.query(Inventory).filter(Inventory.id == inventory.id)
        if not product.allow_backorder:
            query = query.filter(Inventory.stock - Inventory.reserved_stock >= quantity)

        updated = query.update({Inventory.stock: Inventory.stock - quantity}, synchronize_session=False)
        if updated == 0:
            self.db.refresh(inventory)
            raise InsufficientStock(
                f"Stock insuficiente para {product.name} ({product.sku}): "
                f"disponible {inventory.available_stock}, requerido {quantity}"
            )

    def reserve(self, inventory: Inventory, product: Product, quantity: int) -> None:
        """Aparta stock disponible. No admite backorder."""
        updated = self.db.query(Inventory).filter(
            Inventory.id == inventory.id,
            Inventory.stock - Inventory.reserved_stock >= quantity,
        ).update({Inventory.reserved_stock: Inventory.reserved_stock + quantity}, synchronize_session=False)
        self.db.refresh(inventory)
        if updated == 0:
            raise InsufficientStock(
                f"No se pueden reservar {quantity} unidades de {product.name} ({product.sku}): "
                f"disponible {inventory.available_stock}"
            )

    def release(self, inventory: Inventory, product: Product, quantity: int) -> None:
        updated = self.db.query(Inventory).filter(
            Inventory.id == inventory.id,
            Inventory.reserved_stock >= quantity,
        ).update({Inventory.reserved_stock: Inventory.reserved_stock - quantity}, synchronize_session=False)
        self.db.refresh(inventory)
        if updated == 0:
            raise ValidationError(
                f"No se pueden liberar {quantity} unidades de {product.name} ({product.sku}): "
                f"reservado {inventory.reserved_stock}"
            )

    # Public operations

    def record_movement(self, company_id: UUID, data: StockMovementCreate, user_id: UUID) -> StockMovementOut:
        try:
            movement, stock = self._record(company_id, data, user_id)
            self.db.commit()
            return self._movement_out(movement, resulting_stock=stock)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording stock movement for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al registrar el movimiento")

    def bulk_record(
        self,
        company_id: UUID,
        items: Sequence[StockMovementCreate],
        user_id: UUID,
    ) -> List[StockMovementOut]:
        """
        Aplica los movimientos en el orden dado dentro de UNA transacción.
        Todo o nada: el primer movimiento inválido revierte el lote completo
        y el error indica su posición.
        """
        applied = []
        index = 0
        try:
            for index, item in enumerate(items):
                applied.append(self._record(company_id, item, user_id))
            self.db.commit()
        except AppError as e:
            self.db.rollback()
            logger.warning(f"Bulk stock movement aborted at item {index} for company {company_id}: {e.detail}")
            e.detail = f"Movimiento {index}: {e.detail}"
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error in bulk stock movement for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al registrar los movimientos")

        logger.info(f"Bulk stock movement applied: {len(applied)} movements for company {company_id}")
        return [self._movement_out(movement, resulting_stock=stock) for movement, stock in applied]

    def _record(self, company_id: UUID, data: StockMovementCreate, user_id: UUID):
        movement_type = self.get_movement_type(data.movement_type)
        branch = self._get_branch(company_id, data.branch_id)
        product = self._get_product(company_id, data.product_id)

        actor_id = data.user_id or user_id
        if not self.db.query(User.id).filter(User.id == actor_id).first():
            raise NotFound("Usuario no encontrado")

        return self.apply_movement(
            branch, product, movement_type, data.quantity, actor_id,
            reference=data.reference, note=data.note,
        )

    def _get_branch(self, company_id: UUID, branch_id: UUID) -> Branch:
        branch = self.db.query(Branch).filter(Branch.id == branch_id).first()
        if not branch or branch.company_id != company_id:
            raise ReferenceMismatch("La sede no pertenece a esta empresa")
        return branch

    def _get_product(self, company_id: UUID, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(
            Product.id == product_id,
            Product.deleted_at.is_(None),
        ).first()
        if not product or product.company_id != company_id:
            raise ReferenceMismatch("El producto no pertenece a esta empresa")
        return product

    # Reservations

    def reserve_stock(
        self,
        company_id: UUID,
        branch_id: UUID,
        product_id: UUID,
        data: StockReservation,
    ) -> InventoryOut:
        return self._change_reservation(company_id, branch_id, product_id, data, self.reserve, "reserved")

    def release_reservation(
        self,
        company_id: UUID,
        branch_id: UUID,
        product_id: UUID,
        data: StockReservation,
    ) -> InventoryOut:
        return self._change_reservation(company_id, branch_id, product_id, data, self.release, "released")

    def _change_reservation(self, company_id, branch_id, product_id, data, operation, verb) -> InventoryOut:
        try:
            branch = self._get_branch(company_id, branch_id)
            product = self._get_product(company_id, product_id)
            if not product.track_inventory:
                raise ValidationError(f"El producto {product.sku} no controla inventario")
            inventory = self.get_or_create_inventory(product.id, branch.id)
            operation(inventory, product, data.quantity)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error changing reservation for product {product_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar la reserva de stock")

        logger.info(
            f"Stock {verb}: {data.quantity} of product {product.sku} at branch {branch.code} "
            f"(reserved={inventory.reserved_stock}, ref={data.reference})"
        )
        return self._inventory_out(inventory, product, branch)

    # Queries

    def list_movements(
        self,
        company_id: UUID,
        branch_id: Optional[UUID] = None,
        product_id: Optional[UUID] = None,
        movement_type: Optional[str] = None,
        reference: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        """Movimientos de la empresa, del más reciente al más antiguo."""
        query = self.db.query(StockMovement, Branch, Product, User, StockMovementType).join(
            Branch, StockMovement.branch_id == Branch.id
        ).join(
            Product, StockMovement.product_id == Product.id
        ).join(
            User, StockMovement.user_id == User.id
        ).join(
            StockMovementType, StockMovement.movement_type_id == StockMovementType.id
        ).filter(Branch.company_id == company_id)

        if branch_id:
            query = query.filter(StockMovement.branch_id == branch_id)
        if product_id:
            query = query.filter(StockMovement.product_id == product_id)
        if movement_type:
            query = query.filter(StockMovementType.name == movement_type)
        if reference:
            query = query.filter(StockMovement.reference == reference)
        if date_from:
            query = query.filter(StockMovement.created_at >= date_from)
        if date_to:
            query = query.filter(StockMovement.created_at <= date_to)

        rows, meta = paginate(query.order_by(StockMovement.created_at.desc()), page, limit)
        data = [
            StockMovementOut(
                id=movement.id,
                branch_id=movement.branch_id,
                product_id=movement.product_id,
                user_id=movement.user_id,
                movement_type=movement_type_row.name,
                is_addition=movement_type_row.is_addition,
                quantity=movement.quantity,
                reference=movement.reference,
                note=movement.note,
                invoice_id=movement.invoice_id,
                transfer_id=movement.transfer_id,
                created_at=movement.created_at,
                branch_name=branch.name,
                product_name=product.name,
                product_sku=product.sku,
                user_name=user.full_name,
            )
            for movement, branch, product, user, movement_type_row in rows
        ]
        return {"data": data, **meta}

    def get_inventory(self, company_id: UUID, branch_id: UUID, product_id: UUID) -> InventoryOut:
        branch = self._get_branch(company_id, branch_id)
        product = self._get_product(company_id, product_id)
        inventory = self.db.query(Inventory).filter(
            Inventory.branch_id == branch.id,
            Inventory.product_id == product.id,
        ).first()
        if not inventory:
            raise NotFound("El producto no tiene inventario en esta sede")
        return self._inventory_out(inventory, product, branch)

    def list_inventory(
        self,
        company_id: UUID,
        branch_id: Optional[UUID] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        query = self._inventory_query(company_id, branch_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))

        rows, meta = paginate(query.order_by(Branch.name, Product.name), page, limit)
        return {"data": [self._inventory_out(*row) for row in rows], **meta}

    def list_low_stock(self, company_id: UUID, branch_id: Optional[UUID] = None) -> dict:
        """Filas con stock <= stock mínimo del producto (solo productos con control de inventario)."""
        rows = self._inventory_query(company_id, branch_id).filter(
            Product.track_inventory.is_(True),
            Inventory.stock <= Product.min_stock_level,
        ).order_by(Inventory.stock, Product.name).all()
        items = [self._inventory_out(*row) for row in rows]
        return {"items": items, "total_count": len(items)}

    def list_restock_needed(self, company_id: UUID, branch_id: Optional[UUID] = None) -> dict:
        """Filas con stock <= punto de reorden. Productos sin reorder_point no aplican."""
        rows = self._inventory_query(company_id, branch_id).filter(
            Product.track_inventory.is_(True),
            Product.reorder_point.isnot(None),
            Inventory.stock <= Product.reorder_point,
        ).order_by(Inventory.stock, Product.name).all()
        items = [self._inventory_out(*row) for row in rows]
        return {"items": items, "total_count": len(items)}

    def _inventory_query(self, company_id: UUID, branch_id: Optional[UUID]):
        if branch_id:
            self._get_branch(company_id, branch_id)
        query = self.db.query(Inventory, Product, Branch).join(
            Product, Inventory.product_id == Product.id
        ).join(
            Branch, Inventory.branch_id == Branch.id
        ).filter(
            Branch.company_id == company_id,
            Product.deleted_at.is_(None),
        )
        if branch_id:
            query = query.filter(Inventory.branch_id == branch_id)
        return query

    @staticmethod
    def _inventory_out(inventory: Inventory, product: Product, branch: Branch) -> InventoryOut:
        return InventoryOut(
            id=inventory.id,
            product_id=inventory.product_id,
            branch_id=inventory.branch_id,
            stock=inventory.stock,
            reserved_stock=inventory.reserved_stock,
            available_stock=inventory.available_stock,
            product_name=product.name,
            product_sku=product.sku,
            branch_name=branch.name,
            min_stock_level=product.min_stock_level,
            reorder_point=product.reorder_point,
            reorder_quantity=product.reorder_quantity,
            is_low_stock=product.track_inventory and inventory.stock <= product.min_stock_level,
            needs_restock=(
                product.track_inventory
                and product.reorder_point is not None
                and inventory.stock <= product.reorder_point
            ),
        )

    def _movement_out(self, movement: StockMovement, resulting_stock: Optional[int] = None) -> StockMovementOut:
        return StockMovementOut(
            id=movement.id,
            branch_id=movement.branch_id,
            product_id=movement.product_id,
            user_id=movement.user_id,
            movement_type=movement.movement_type.name,
            is_addition=movement.movement_type.is_addition,
            quantity=movement.quantity,
            reference=movement.reference,
            note=movement.note,
            invoice_id=movement.invoice_id,
            transfer_id=movement.transfer_id,
            created_at=movement.created_at,
            branch_name=movement.branch.name,
            product_name=movement.product.name,
            product_sku=movement.product.sku,
            user_name=movement.user.full_name,
            resulting_stock=resulting_stock,
        )
