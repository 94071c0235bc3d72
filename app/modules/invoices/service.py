"""
Servicio de facturación.

Una factura nace en borrador y el stock solo se descuenta al emitirla
(DRAFT -> PENDING). Cancelar una factura emitida devuelve el stock de los
movimientos de venta enlazados a ella por invoice_id. El
número se asigna por empresa con el formato PRE-YYYYMM-NNNNNN.
"""
import logging
import math
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.common.exceptions import (
    AppError, Conflict, InvalidState, NotFound, ReferenceMismatch, ServiceError, ValidationError,
)
from app.common.pagination import paginate
from app.core.config import settings
from app.modules.branches.models import Branch
from app.modules.company.models import Company
from app.modules.customers.models import Customer
from app.modules.inventory.models import StockMovement, StockMovementType
from app.modules.inventory.service import RETURN, SALE, StockLedgerService
from app.modules.invoices.calculator import (
    calculate_item_total, calculate_totals, days_past_due, format_invoice_number,
    invoice_prefix, money, next_sequence, number_pattern, validate_transition,
)
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceDetail, InvoiceFilters, InvoiceItemCreate, InvoiceOut,
    InvoiceStatusUpdate, InvoiceSummary, InvoiceUpdate, SortOrder,
)
from app.modules.products.models import Product

logger = logging.getLogger(__name__)

SALE_REVERSAL_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None) if value.tzinfo else value


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    # Reference checks

    def _lock_company(self, company_id: UUID) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).with_for_update().first()
        if not company:
            raise NotFound("Empresa no encontrada")
        return company

    def _get_branch(self, company_id: UUID, branch_id: UUID) -> Branch:
        branch = self.db.query(Branch).filter(Branch.id == branch_id).first()
        if not branch or branch.company_id != company_id:
            raise ReferenceMismatch("La sede no pertenece a esta empresa")
        if not branch.is_active:
            raise ValidationError("La sede está inactiva")
        return branch

    def _get_customer(self, company_id: UUID, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer or customer.company_id != company_id:
            raise ReferenceMismatch("El cliente no pertenece a esta empresa")
        if not customer.is_active:
            raise ValidationError("El cliente está inactivo")
        return customer

    def _get_products(self, company_id: UUID, product_ids: Iterable[UUID]) -> dict:
        ids = set(product_ids)
        products = self.db.query(Product).filter(
            Product.id.in_(ids),
            Product.deleted_at.is_(None),
        ).all()
        found = {p.id: p for p in products if p.company_id == company_id}
        missing = ids - set(found)
        if missing:
            raise ReferenceMismatch(f"El producto {sorted(str(m) for m in missing)[0]} no pertenece a esta empresa")
        inactive = [p.name for p in found.values() if not p.is_active]
        if inactive:
            raise ValidationError(f"Producto inactivo: {inactive[0]}")
        return found

    # Items and totals

    def build_item(self, data: InvoiceItemCreate, product: Product, position: int) -> InvoiceItem:
        unit_price = data.unit_price if data.unit_price is not None else product.price
        return InvoiceItem(
            product_id=product.id,
            position=position,
            product_name=product.name,
            product_sku=product.sku,
            product_description=product.description,
            quantity=data.quantity,
            unit_price=money(unit_price),
            discount_amount=money(data.discount_amount or 0),
            total_price=calculate_item_total(data.quantity, unit_price, data.discount_amount),
        )

    def _build_items(self, company_id: UUID, items: Sequence[InvoiceItemCreate]) -> List[InvoiceItem]:
        products = self._get_products(company_id, [i.product_id for i in items])
        return [self.build_item(data, products[data.product_id], position) for position, data in enumerate(items)]

    @staticmethod
    def apply_totals(invoice: Invoice, items: Iterable[InvoiceItem]) -> None:
        subtotal = sum((Decimal(str(item.total_price)) for item in items), Decimal("0"))
        for field, value in calculate_totals(subtotal, invoice.tax_rate, invoice.discount_rate).items():
            setattr(invoice, field, value)

    # Numbering

    def _next_number(self, company_id: UUID, prefix: str, year: int, month: int) -> str:
        pattern = number_pattern(prefix, year, month)
        last = self.db.query(Invoice.invoice_number).filter(
            Invoice.company_id == company_id,
            Invoice.invoice_number.like(f"{pattern}%"),
        ).order_by(Invoice.invoice_number.desc()).first()
        return format_invoice_number(prefix, year, month, next_sequence(last[0] if last else None))

    def _number_taken(self, company_id: UUID, number: str) -> bool:
        return self.db.query(Invoice.id).filter(
            Invoice.company_id == company_id,
            Invoice.invoice_number == number,
        ).first() is not None

    def _insert_numbered(self, company: Company, invoice: Invoice, items: List[InvoiceItem]) -> None:
        """
        Asigna el siguiente número del mes e inserta factura e ítems en un
        savepoint. Si otro proceso tomó el número se reintenta con el siguiente.
        """
        prefix = invoice_prefix(company.name)
        now = datetime.now(timezone.utc)
        for attempt in range(1, settings.INVOICE_NUMBER_MAX_ATTEMPTS + 1):
            number = self._next_number(company.id, prefix, now.year, now.month)
            invoice.invoice_number = number
            try:
                with self.db.begin_nested():
                    self.db.add(invoice)
                    self.db.flush()
                    for item in items:
                        item.invoice_id = invoice.id
                        self.db.add(item)
                return
            except IntegrityError:
                if not self._number_taken(company.id, number):
                    raise
                logger.warning(f"Invoice number {number} already taken (attempt {attempt})")
        raise Conflict("No se pudo asignar un número de factura, intenta nuevamente")

    # Overdue

    def refresh_overdue_invoices(self, company_id: UUID, today: Optional[date] = None) -> int:
        """Pasa a OVERDUE las facturas PENDING con fecha de vencimiento anterior a hoy."""
        today = today or utc_today()
        updated = self.db.query(Invoice).filter(
            Invoice.company_id == company_id,
            Invoice.status == InvoiceStatus.PENDING,
            Invoice.due_date.isnot(None),
            Invoice.due_date < today,
        ).update({Invoice.status: InvoiceStatus.OVERDUE}, synchronize_session=False)
        if updated:
            self.db.commit()
            logger.info(f"Marked {updated} invoices as overdue for company {company_id}")
        return updated

    # Serialization

    @staticmethod
    def to_out(invoice: Invoice, today: Optional[date] = None, detail: bool = False):
        schema = InvoiceDetail if detail else InvoiceOut
        out = schema.model_validate(invoice)
        out.customer_name = invoice.customer.full_name if invoice.customer else None
        out.branch_name = invoice.branch.name if invoice.branch else None
        out.days_past_due = days_past_due(invoice.status, invoice.due_date, today or utc_today())
        return out

    # Operations

    def create_invoice(self, company_id: UUID, data: InvoiceCreate, user_id: UUID) -> InvoiceDetail:
        try:
            company = self._lock_company(company_id)
            branch = self._get_branch(company_id, data.branch_id)
            customer = self._get_customer(company_id, data.customer_id)
            items = self._build_items(company_id, data.items)

            invoice = Invoice(
                company_id=company_id,
                branch_id=branch.id,
                customer_id=customer.id,
                user_id=user_id,
                status=InvoiceStatus.DRAFT,
                tax_rate=data.tax_rate,
                discount_rate=data.discount_rate,
                due_date=data.due_date,
                notes=data.notes,
            )
            self.apply_totals(invoice, items)
            self._insert_numbered(company, invoice, items)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating invoice for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al crear la factura")

        logger.info(
            f"Invoice {invoice.invoice_number} created for company {company_id} "
            f"({len(items)} items, total={invoice.total_amount})"
        )
        return self.get_invoice(company_id, invoice.id)

    def _get(self, company_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.items),
            joinedload(Invoice.customer),
            joinedload(Invoice.branch),
        ).filter(
            Invoice.id == invoice_id,
            Invoice.company_id == company_id,
        ).first()
        if not invoice:
            raise NotFound("Factura no encontrada")
        return invoice

    def get_invoice(self, company_id: UUID, invoice_id: UUID) -> InvoiceDetail:
        self.refresh_overdue_invoices(company_id)
        return self.to_out(self._get(company_id, invoice_id), detail=True)

    def list_invoices(
        self,
        company_id: UUID,
        filters: InvoiceFilters,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        self.refresh_overdue_invoices(company_id)

        query = self.db.query(Invoice).join(Customer, Customer.id == Invoice.customer_id).options(
            joinedload(Invoice.customer),
            joinedload(Invoice.branch),
        ).filter(Invoice.company_id == company_id)

        if filters.status:
            query = query.filter(Invoice.status == filters.status)
        if filters.branch_id:
            query = query.filter(Invoice.branch_id == filters.branch_id)
        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.user_id:
            query = query.filter(Invoice.user_id == filters.user_id)
        if filters.date_from:
            query = query.filter(Invoice.issued_at >= datetime.combine(filters.date_from, time.min))
        if filters.date_to:
            query = query.filter(Invoice.issued_at <= datetime.combine(filters.date_to, time.max))
        if filters.min_amount is not None:
            query = query.filter(Invoice.total_amount >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.filter(Invoice.total_amount <= filters.max_amount)
        if filters.overdue is True:
            query = query.filter(Invoice.status == InvoiceStatus.OVERDUE)
        elif filters.overdue is False:
            query = query.filter(Invoice.status != InvoiceStatus.OVERDUE)
        if filters.search:
            term = f"%{filters.search}%"
            query = query.filter(or_(
                Invoice.invoice_number.ilike(term),
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.email.ilike(term),
                Invoice.notes.ilike(term),
            ))

        column = getattr(Invoice, filters.sort_by.value)
        order = column.asc() if filters.sort_order == SortOrder.ASC else column.desc()
        query = query.order_by(order, Invoice.invoice_number.desc())

        invoices, meta = paginate(query, page, limit)
        today = utc_today()
        return {"data": [self.to_out(invoice, today) for invoice in invoices], **meta}

    def update_invoice(self, company_id: UUID, invoice_id: UUID, data: InvoiceUpdate) -> InvoiceDetail:
        try:
            invoice = self._get(company_id, invoice_id)
            self.ensure_draft(invoice)

            changes = data.model_dump(exclude_unset=True, exclude={"items"})
            if "customer_id" in changes:
                self._get_customer(company_id, changes["customer_id"])
            for field, value in changes.items():
                if field in ("tax_rate", "discount_rate") and value is None:
                    continue
                setattr(invoice, field, value)

            if data.items is not None:
                items = self._build_items(company_id, data.items)
                self.db.query(InvoiceItem).filter(
                    InvoiceItem.invoice_id == invoice.id
                ).delete(synchronize_session=False)
                self.db.expire(invoice, ["items"])
                for item in items:
                    item.invoice_id = invoice.id
                    self.db.add(item)
            else:
                items = list(invoice.items)

            self.apply_totals(invoice, items)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar la factura")

        logger.info(f"Invoice {invoice.invoice_number} updated")
        return self.get_invoice(company_id, invoice_id)

    @staticmethod
    def ensure_draft(invoice: Invoice) -> None:
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvalidState("Solo se pueden modificar facturas en borrador")

    def update_status(
        self,
        company_id: UUID,
        invoice_id: UUID,
        data: InvoiceStatusUpdate,
        user_id: UUID,
    ) -> InvoiceDetail:
        self.refresh_overdue_invoices(company_id)
        try:
            invoice = self._get(company_id, invoice_id)
            old_status = invoice.status
            new_status = data.status
            validate_transition(old_status, new_status)

            if old_status == InvoiceStatus.DRAFT and new_status == InvoiceStatus.PENDING:
                self._apply_sale(invoice, user_id)
            elif new_status == InvoiceStatus.CANCELLED and old_status in SALE_REVERSAL_STATUSES:
                self._revert_sale(invoice, user_id)

            if new_status == InvoiceStatus.PAID:
                invoice.paid_date = data.paid_date or datetime.now(timezone.utc)
            elif new_status == InvoiceStatus.PENDING:
                invoice.paid_date = None
            if data.notes:
                invoice.notes = data.notes

            invoice.status = new_status
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating status of invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar el estado de la factura")

        logger.info(f"Invoice {invoice.invoice_number} status changed from {old_status.value} to {new_status.value}")
        return self.get_invoice(company_id, invoice_id)

    def _apply_sale(self, invoice: Invoice, user_id: UUID) -> None:
        """Salida de stock por cada ítem de producto inventariable."""
        sale = self.ledger.get_movement_type(SALE)
        for item in invoice.items:
            product = self.db.get(Product, item.product_id)
            if not product.track_inventory:
                continue
            self.ledger.apply_movement(
                invoice.branch, product, sale, item.quantity, user_id,
                reference=invoice.invoice_number,
                note=f"Venta - Factura {invoice.invoice_number}",
                invoice_id=invoice.id,
            )

    def _revert_sale(self, invoice: Invoice, user_id: UUID) -> None:
        """Devuelve exactamente lo que la emisión descontó, según el ledger."""
        return_type = self.ledger.get_movement_type(RETURN)
        sales = self.db.query(StockMovement).join(
            StockMovementType, StockMovementType.id == StockMovement.movement_type_id
        ).filter(
            StockMovement.invoice_id == invoice.id,
            StockMovementType.name == SALE,
        ).all()
        for movement in sales:
            product = self.db.get(Product, movement.product_id)
            self.ledger.apply_movement(
                invoice.branch, product, return_type, abs(movement.quantity), user_id,
                reference=invoice.invoice_number,
                note=f"Reversión de venta - Factura {invoice.invoice_number} anulada",
                invoice_id=invoice.id,
            )

    def delete_invoice(self, company_id: UUID, invoice_id: UUID) -> None:
        try:
            invoice = self._get(company_id, invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise InvalidState("Solo se pueden eliminar facturas en borrador")
            number = invoice.invoice_number
            self.db.query(InvoiceItem).filter(
                InvoiceItem.invoice_id == invoice.id
            ).delete(synchronize_session=False)
            self.db.query(Invoice).filter(Invoice.id == invoice.id).delete(synchronize_session=False)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {e}", exc_info=True)
            raise ServiceError("Error al eliminar la factura")

        logger.info(f"Invoice {number} deleted from company {company_id}")

    def get_summary(
        self,
        company_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> InvoiceSummary:
        self.refresh_overdue_invoices(company_id)

        query = self.db.query(Invoice).filter(Invoice.company_id == company_id)
        if date_from:
            query = query.filter(Invoice.issued_at >= datetime.combine(date_from, time.min))
        if date_to:
            query = query.filter(Invoice.issued_at <= datetime.combine(date_to, time.max))
        invoices = query.all()

        zero = Decimal("0.00")
        counts = {s: 0 for s in InvoiceStatus}
        amounts = {s: zero for s in InvoiceStatus}
        payment_days = []
        for invoice in invoices:
            counts[invoice.status] += 1
            amounts[invoice.status] += Decimal(str(invoice.total_amount))
            if invoice.status == InvoiceStatus.PAID and invoice.paid_date and invoice.issued_at:
                elapsed = _naive(invoice.paid_date) - _naive(invoice.issued_at)
                payment_days.append(elapsed.total_seconds() / 86400)

        billed = [i for i in invoices if i.status != InvoiceStatus.CANCELLED]
        total_amount = sum((Decimal(str(i.total_amount)) for i in billed), zero)

        return InvoiceSummary(
            total_invoices=len(invoices),
            draft_invoices=counts[InvoiceStatus.DRAFT],
            pending_invoices=counts[InvoiceStatus.PENDING],
            paid_invoices=counts[InvoiceStatus.PAID],
            overdue_invoices=counts[InvoiceStatus.OVERDUE],
            cancelled_invoices=counts[InvoiceStatus.CANCELLED],
            total_amount=money(total_amount),
            paid_amount=money(amounts[InvoiceStatus.PAID]),
            pending_amount=money(amounts[InvoiceStatus.PENDING]),
            overdue_amount=money(amounts[InvoiceStatus.OVERDUE]),
            average_invoice_amount=money(total_amount / len(billed)) if billed else zero,
            average_payment_days=math.ceil(sum(payment_days) / len(payment_days)) if payment_days else None,
            date_from=date_from,
            date_to=date_to,
        )
