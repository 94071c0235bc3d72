import logging
import re
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import AppError, Conflict, InvalidState, NotFound, ServiceError
from app.common.pagination import paginate
from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)

GENERIC_FIRST_NAME = "Cliente"
GENERIC_LAST_NAME = "Genérico"


def build_generic_customer(company) -> Customer:
    """Cliente de mostrador de una empresa, sin persistir."""
    slug = re.sub(r'\s+', '', company.name.lower())
    return Customer(
        company_id=company.id,
        first_name=GENERIC_FIRST_NAME,
        last_name=GENERIC_LAST_NAME,
        email=f"generico@{slug}.com",
        address="Dirección genérica",
        is_generic=True,
    )


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, company_id: UUID, customer_id: UUID) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.company_id == company_id,
        ).first()
        if not customer:
            raise NotFound("Cliente no encontrado")
        return customer

    def list_customers(
        self,
        company_id: UUID,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        query = self.db.query(Customer).filter(Customer.company_id == company_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Customer.first_name.ilike(term),
                Customer.last_name.ilike(term),
                Customer.email.ilike(term),
                Customer.tax_id.ilike(term),
            ))
        if is_active is not None:
            query = query.filter(Customer.is_active == is_active)

        items, meta = paginate(query.order_by(Customer.is_generic.desc(), Customer.first_name), page, limit)
        return {"data": items, **meta}

    def create_customer(self, company_id: UUID, data: CustomerCreate) -> Customer:
        try:
            customer = Customer(company_id=company_id, **data.model_dump())
            self.db.add(customer)
            self.db.commit()
            self.db.refresh(customer)
            return customer
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating customer for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al crear el cliente")

    def get_or_create_generic(self, company_id: UUID) -> Customer:
        from app.modules.company.models import Company

        generic = self.db.query(Customer).filter(
            Customer.company_id == company_id,
            Customer.is_generic.is_(True),
        ).first()
        if generic:
            return generic

        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFound("Empresa no encontrada")

        try:
            generic = build_generic_customer(company)
            self.db.add(generic)
            self.db.commit()
            self.db.refresh(generic)
            logger.info(f"Generic customer created for company {company_id}")
            return generic
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating generic customer for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al crear el cliente genérico")

    def update_customer(self, company_id: UUID, customer_id: UUID, data: CustomerUpdate) -> Customer:
        customer = self.get_customer(company_id, customer_id)
        changes = data.model_dump(exclude_unset=True)
        if customer.is_generic and changes.get("is_active") is False:
            raise InvalidState("No se puede desactivar el cliente genérico")

        try:
            for field, value in changes.items():
                setattr(customer, field, value)
            self.db.commit()
            self.db.refresh(customer)
            return customer
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating customer {customer_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar el cliente")

    def delete_customer(self, company_id: UUID, customer_id: UUID) -> None:
        from app.modules.invoices.models import Invoice

        try:
            customer = self.get_customer(company_id, customer_id)
            if customer.is_generic:
                raise InvalidState("No se puede eliminar el cliente genérico")

            has_invoices = self.db.query(Invoice.id).filter(Invoice.customer_id == customer.id).first()
            if has_invoices:
                raise Conflict("El cliente tiene facturas asociadas")

            self.db.delete(customer)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting customer {customer_id}: {e}", exc_info=True)
            raise ServiceError("Error al eliminar el cliente")
