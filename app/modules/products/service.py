import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import AppError, Conflict, InvalidState, NotFound, ServiceError, ValidationError
from app.common.pagination import paginate
from app.modules.products.models import Product
from app.modules.products.schemas import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


class ProductService:
    """Catálogo de productos por empresa, con borrado lógico."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, company_id: UUID, product_id: UUID, include_deleted: bool = False) -> Product:
        query = self.db.query(Product).filter(
            Product.id == product_id,
            Product.company_id == company_id,
        )
        if not include_deleted:
            query = query.filter(Product.deleted_at.is_(None))

        product = query.first()
        if not product:
            raise NotFound("Producto no encontrado")
        return product

    def list_products(
        self,
        company_id: UUID,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        include_deleted: bool = False,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        query = self.db.query(Product).filter(Product.company_id == company_id)
        if not include_deleted:
            query = query.filter(Product.deleted_at.is_(None))
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Product.name.ilike(term),
                Product.sku.ilike(term),
                Product.description.ilike(term),
            ))
        if is_active is not None:
            query = query.filter(Product.is_active == is_active)

        items, meta = paginate(query.order_by(Product.name), page, limit)
        return {"data": items, **meta}

    def create_product(self, company_id: UUID, data: ProductCreate) -> Product:
        self._ensure_unique_sku(company_id, data.sku)
        try:
            product = Product(company_id=company_id, **data.model_dump())
            self.db.add(product)
            self.db.commit()
            self.db.refresh(product)
            logger.info(f"Product {product.sku} created for company {company_id}")
            return product
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating product {data.sku}: {e}", exc_info=True)
            raise ServiceError("Error al crear el producto")

    def update_product(self, company_id: UUID, product_id: UUID, data: ProductUpdate) -> Product:
        product = self.get_product(company_id, product_id)
        changes = data.model_dump(exclude_unset=True)

        if "sku" in changes and changes["sku"] != product.sku:
            self._ensure_unique_sku(company_id, changes["sku"])

        min_level = changes.get("min_stock_level", product.min_stock_level) or 0
        max_level = changes.get("max_stock_level", product.max_stock_level)
        if max_level is not None and max_level < min_level:
            raise ValidationError("El stock máximo no puede ser menor al stock mínimo")

        try:
            for field, value in changes.items():
                setattr(product, field, value)
            self.db.commit()
            self.db.refresh(product)
            return product
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating product {product_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar el producto")

    def delete_product(self, company_id: UUID, product_id: UUID) -> None:
        """Borrado lógico: las facturas conservan su snapshot del producto."""
        product = self.get_product(company_id, product_id)
        try:
            product.soft_delete()
            self.db.commit()
            logger.info(f"Product {product_id} soft-deleted")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting product {product_id}: {e}", exc_info=True)
            raise ServiceError("Error al eliminar el producto")

    def restore_product(self, company_id: UUID, product_id: UUID) -> Product:
        product = self.get_product(company_id, product_id, include_deleted=True)
        if not product.is_deleted:
            raise InvalidState("El producto no está eliminado")
        try:
            product.restore()
            self.db.commit()
            self.db.refresh(product)
            return product
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error restoring product {product_id}: {e}", exc_info=True)
            raise ServiceError("Error al restaurar el producto")

    def _ensure_unique_sku(self, company_id: UUID, sku: str) -> None:
        # Incluye eliminados: la restricción única aplica a todas las filas
        exists = self.db.query(Product.id).filter(
            Product.company_id == company_id,
            Product.sku == sku,
        ).first()
        if exists:
            raise Conflict(f"El SKU '{sku}' ya existe en esta empresa")
