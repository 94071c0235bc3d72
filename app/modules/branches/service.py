import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import AppError, Conflict, InvalidState, NotFound, ServiceError, ValidationError
from app.common.pagination import paginate
from app.modules.auth.access import MembershipStatus
from app.modules.auth.models import UserCompany
from app.modules.branches.models import Branch
from app.modules.branches.schemas import BranchCreate, BranchUpdate

logger = logging.getLogger(__name__)


class BranchService:
    """Sedes de una empresa. El código es único por empresa y solo hay una sede principal."""

    def __init__(self, db: Session):
        self.db = db

    def get_branch(self, company_id: UUID, branch_id: UUID) -> Branch:
        branch = self.db.query(Branch).filter(
            Branch.id == branch_id,
            Branch.company_id == company_id,
        ).first()
        if not branch:
            raise NotFound("Sede no encontrada")
        return branch

    def list_branches(
        self,
        company_id: UUID,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = None,
    ) -> dict:
        query = self.db.query(Branch).filter(Branch.company_id == company_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Branch.name.ilike(term), Branch.code.ilike(term)))
        if is_active is not None:
            query = query.filter(Branch.is_active == is_active)

        items, meta = paginate(query.order_by(Branch.is_main.desc(), Branch.name), page, limit)
        return {"data": items, **meta}

    def create_branch(self, company_id: UUID, data: BranchCreate) -> Branch:
        try:
            self._ensure_unique_code(company_id, data.code)
            if data.manager_id:
                self._ensure_active_member(company_id, data.manager_id)

            is_main = data.is_main
            if is_main:
                self._unset_main(company_id)
            elif self.db.query(Branch).filter(Branch.company_id == company_id).count() == 0:
                # La primera sede de la empresa es la principal
                is_main = True

            branch = Branch(company_id=company_id, **data.model_dump(exclude={"is_main"}), is_main=is_main)
            self.db.add(branch)
            self.db.commit()
            self.db.refresh(branch)
            logger.info(f"Branch {branch.code} created for company {company_id}")
            return branch
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating branch for company {company_id}: {e}", exc_info=True)
            raise ServiceError("Error al crear la sede")

    def update_branch(self, company_id: UUID, branch_id: UUID, data: BranchUpdate) -> Branch:
        try:
            branch = self.get_branch(company_id, branch_id)
            changes = data.model_dump(exclude_unset=True)

            if "code" in changes and changes["code"] != branch.code:
                self._ensure_unique_code(company_id, changes["code"])

            if changes.get("is_main") and not branch.is_main:
                self._unset_main(company_id)
            elif changes.get("is_main") is False and branch.is_main:
                raise InvalidState("Asigna otra sede como principal antes de quitar este estado")

            if changes.get("is_active") is False and branch.is_main:
                raise InvalidState("No se puede desactivar la sede principal")

            for field, value in changes.items():
                setattr(branch, field, value)

            self.db.commit()
            self.db.refresh(branch)
            return branch
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating branch {branch_id}: {e}", exc_info=True)
            raise ServiceError("Error al actualizar la sede")

    def assign_manager(self, company_id: UUID, branch_id: UUID, manager_id: Optional[UUID]) -> Branch:
        try:
            branch = self.get_branch(company_id, branch_id)
            if manager_id is not None:
                self._ensure_active_member(company_id, manager_id)
            branch.manager_id = manager_id
            self.db.commit()
            self.db.refresh(branch)
            return branch
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error assigning manager to branch {branch_id}: {e}", exc_info=True)
            raise ServiceError("Error al asignar el encargado")

    def delete_branch(self, company_id: UUID, branch_id: UUID) -> None:
        # Imports locales: inventario y facturas dependen de sedes
        from app.modules.inventory.models import Inventory, StockMovement, StockTransfer
        from app.modules.invoices.models import Invoice

        try:
            branch = self.get_branch(company_id, branch_id)

            if branch.is_main:
                others = self.db.query(Branch).filter(
                    Branch.company_id == company_id,
                    Branch.id != branch.id,
                ).count()
                if others:
                    raise InvalidState("No se puede eliminar la sede principal mientras existan otras sedes")

            has_history = (
                self.db.query(Invoice.id).filter(Invoice.branch_id == branch.id).first() is not None
                or self.db.query(StockMovement.id).filter(StockMovement.branch_id == branch.id).first() is not None
                or self.db.query(StockTransfer.id).filter(or_(
                    StockTransfer.from_branch_id == branch.id,
                    StockTransfer.to_branch_id == branch.id,
                )).first() is not None
            )
            if has_history:
                raise Conflict("La sede tiene facturas, movimientos o traslados de inventario registrados")

            self.db.query(Inventory).filter(Inventory.branch_id == branch.id).delete(synchronize_session=False)
            self.db.delete(branch)
            self.db.commit()
            logger.info(f"Branch {branch_id} deleted from company {company_id}")
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting branch {branch_id}: {e}", exc_info=True)
            raise ServiceError("Error al eliminar la sede")

    def _ensure_unique_code(self, company_id: UUID, code: str) -> None:
        exists = self.db.query(Branch).filter(
            Branch.company_id == company_id,
            Branch.code == code,
        ).first()
        if exists:
            raise Conflict(f"El código de sede '{code}' ya existe en esta empresa")

    def _ensure_active_member(self, company_id: UUID, user_id: UUID) -> None:
        membership = self.db.query(UserCompany).filter(
            UserCompany.company_id == company_id,
            UserCompany.user_id == user_id,
            UserCompany.is_active.is_(True),
            UserCompany.status == MembershipStatus.ACTIVE,
        ).first()
        if not membership:
            raise ValidationError("El encargado debe ser un miembro activo de la empresa")

    def _unset_main(self, company_id: UUID) -> None:
        self.db.query(Branch).filter(
            Branch.company_id == company_id,
            Branch.is_main.is_(True),
        ).update({Branch.is_main: False}, synchronize_session=False)
