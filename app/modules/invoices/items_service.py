import logging
from typing import List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import AppError, NotFound, ServiceError, ValidationError
from app.modules.invoices.calculator import calculate_item_total, money
from app.modules.invoices.models import Invoice, InvoiceItem
from app.modules.invoices.schemas import InvoiceItemCreate, InvoiceItemOut, InvoiceItemUpdate
from app.modules.invoices.service import InvoiceService

logger = logging.getLogger(__name__)


class InvoiceItemService:
    """Ítems de una factura en borrador. Cada cambio recalcula los totales."""

    def __init__(self, db: Session):
        self.db = db
        self.invoices = InvoiceService(db)

    def _get_item(self, invoice: Invoice, item_id: UUID) -> InvoiceItem:
        for item in invoice.items:
            if item.id == item_id:
                return item
        raise NotFound("Ítem de factura no encontrado")

    def _recalculate(self, invoice: Invoice) -> None:
        self.db.flush()
        self.db.expire(invoice, ["items"])
        self.invoices.apply_totals(invoice, invoice.items)

    def list_items(self, company_id: UUID, invoice_id: UUID) -> List[InvoiceItemOut]:
        invoice = self.invoices._get(company_id, invoice_id)
        return [InvoiceItemOut.model_validate(item) for item in invoice.items]

    def add_item(self, company_id: UUID, invoice_id: UUID, data: InvoiceItemCreate) -> InvoiceItemOut:
        try:
            invoice = self.invoices._get(company_id, invoice_id)
            self.invoices.ensure_draft(invoice)
            product = self.invoices._get_products(company_id, [data.product_id])[data.product_id]

            position = max((i.position for i in invoice.items), default=-1) + 1
            item = self.invoices.build_item(data, product, position)
            item.invoice_id = invoice.id
            self.db.add(item)
            self._recalculate(invoice)
            self.db.commit()
            self.db.refresh(item)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding item to invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al agregar el ítem")

        logger.info(f"Item {item.product_sku} x{item.quantity} added to invoice {invoice.invoice_number}")
        return InvoiceItemOut.model_validate(item)

    def update_item(
        self,
        company_id: UUID,
        invoice_id: UUID,
        item_id: UUID,
        data: InvoiceItemUpdate,
    ) -> InvoiceItemOut:
        try:
            invoice = self.invoices._get(company_id, invoice_id)
            self.invoices.ensure_draft(invoice)
            item = self._get_item(invoice, item_id)

            for field, value in data.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(item, field, value)
            item.unit_price = money(item.unit_price)
            item.discount_amount = money(item.discount_amount or 0)
            item.total_price = calculate_item_total(item.quantity, item.unit_price, item.discount_amount)

            self._recalculate(invoice)
            self.db.commit()
            self.db.refresh(item)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating item {item_id} of invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar el ítem")

        return InvoiceItemOut.model_validate(item)

    def remove_item(self, company_id: UUID, invoice_id: UUID, item_id: UUID) -> None:
        try:
            invoice = self.invoices._get(company_id, invoice_id)
            self.invoices.ensure_draft(invoice)
            item = self._get_item(invoice, item_id)
            if len(invoice.items) == 1:
                raise ValidationError("La factura debe tener al menos un ítem")

            self.db.query(InvoiceItem).filter(InvoiceItem.id == item.id).delete(synchronize_session=False)
            self._recalculate(invoice)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error removing item {item_id} from invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al eliminar el ítem")

        logger.info(f"Item {item_id} removed from invoice {invoice_id}")
