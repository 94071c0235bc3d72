"""
Empresas (tenants) y sus membresías.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.common.exceptions import AppError, Conflict, Forbidden, NotFound, ServiceError, ValidationError
from app.modules.auth.access import (
    AccessLevel, MembershipStatus, can_manage_member, is_global_admin, parse_access_level,
)
from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import AuthContext
from app.modules.branches.models import Branch
from app.modules.company.models import Company
from app.modules.company.schemas import (
    CompanyCreate, CompanyOut, CompanyOutWithAccess, CompanyUpdate, MemberAdd, MemberOut,
)
from app.modules.customers.service import build_generic_customer

logger = logging.getLogger(__name__)

MAIN_BRANCH_CODE = "PRINCIPAL"


def create_company(db: Session, company_data: CompanyCreate, user_id: UUID) -> dict:
    """
    Crear una empresa. En la misma transacción:
    - el creador queda como miembro OWNER activo
    - se crea la sede principal
    - se crea el cliente genérico

    Returns:
        dict: datos de la empresa más los ids de la sede principal y del cliente genérico
    """
    if db.query(Company).filter(Company.name == company_data.name).first():
        raise Conflict("Ya existe una empresa con este nombre")
    if company_data.tax_id and db.query(Company).filter(Company.tax_id == company_data.tax_id).first():
        raise Conflict("Ya existe una empresa con esta identificación tributaria")

    try:
        company = Company(**company_data.model_dump())
        db.add(company)
        db.flush()

        db.add(UserCompany(
            user_id=user_id,
            company_id=company.id,
            access_level=int(AccessLevel.OWNER),
            status=MembershipStatus.ACTIVE,
            is_active=True,
        ))

        main_branch = Branch(
            company_id=company.id,
            name="Sede Principal",
            code=MAIN_BRANCH_CODE,
            address=company.address,
            phone=company.phone,
            email=company.email,
            is_main=True,
        )
        generic_customer = build_generic_customer(company)
        db.add_all([main_branch, generic_customer])

        db.commit()
        db.refresh(company)
        logger.info(f"Company {company.name} ({company.id}) created by user {user_id}")

        return {
            **CompanyOut.model_validate(company).model_dump(),
            "main_branch_id": main_branch.id,
            "generic_customer_id": generic_customer.id,
        }
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating company {company_data.name}: {e}", exc_info=True)
        raise ServiceError("Error al crear la empresa")


def get_companies_for_user(db: Session, user_id: UUID) -> List[CompanyOutWithAccess]:
    """Empresas activas donde el usuario tiene una membresía activa."""
    memberships = db.query(UserCompany).options(joinedload(UserCompany.company)).filter(
        UserCompany.user_id == user_id,
        UserCompany.is_active.is_(True),
        UserCompany.status == MembershipStatus.ACTIVE,
    ).all()
    result = []
    for membership in memberships:
        company = membership.company
        if not company.is_active:
            continue
        result.append(CompanyOutWithAccess(
            **CompanyOut.model_validate(company).model_dump(),
            access_level=membership.access_level,
        ))
    return result


def list_all_companies(db: Session) -> List[Company]:
    return db.query(Company).order_by(Company.name).all()


def get_company(db: Session, company_id: UUID) -> Company:
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        raise NotFound("Empresa no encontrada")
    return company


def update_company(db: Session, company_id: UUID, company_update: CompanyUpdate) -> Company:
    company = get_company(db, company_id)
    changes = company_update.model_dump(exclude_unset=True)

    if changes.get("name") and changes["name"] != company.name:
        if db.query(Company).filter(Company.name == changes["name"], Company.id != company.id).first():
            raise Conflict("Ya existe una empresa con este nombre")
    if changes.get("tax_id") and changes["tax_id"] != company.tax_id:
        if db.query(Company).filter(Company.tax_id == changes["tax_id"], Company.id != company.id).first():
            raise Conflict("Ya existe una empresa con esta identificación tributaria")

    try:
        for field, value in changes.items():
            setattr(company, field, value)
        db.commit()
        db.refresh(company)
        return company
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating company {company_id}: {e}", exc_info=True)
        raise ServiceError("Error al actualizar la empresa")


def deactivate_company(db: Session, company_id: UUID) -> None:
    company = get_company(db, company_id)
    try:
        company.is_active = False
        db.commit()
        logger.info(f"Company {company_id} deactivated")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deactivating company {company_id}: {e}", exc_info=True)
        raise ServiceError("Error al desactivar la empresa")


# Members

def _member_out(membership: UserCompany) -> MemberOut:
    return MemberOut(
        id=membership.id,
        user_id=membership.user_id,
        email=membership.user.email,
        full_name=membership.user.full_name,
        access_level=membership.access_level,
        status=membership.status,
        is_active=membership.is_active,
        joined_at=membership.joined_at,
    )


def _ensure_can_manage(actor: AuthContext, target_level: int) -> None:
    """Solo un nivel estrictamente superior puede gestionar a otro miembro."""
    if is_global_admin(actor.role):
        return
    if actor.access_level is None or not can_manage_member(actor.access_level, target_level):
        raise Forbidden("No puedes gestionar miembros con un nivel igual o superior al tuyo")


def _get_membership(db: Session, company_id: UUID, membership_id: UUID) -> UserCompany:
    membership = db.query(UserCompany).options(joinedload(UserCompany.user)).filter(
        UserCompany.id == membership_id,
        UserCompany.company_id == company_id,
    ).first()
    if not membership:
        raise NotFound("Miembro no encontrado")
    return membership


def list_members(db: Session, company_id: UUID, status: Optional[MembershipStatus] = None) -> List[MemberOut]:
    query = db.query(UserCompany).options(joinedload(UserCompany.user)).filter(
        UserCompany.company_id == company_id,
    )
    if status is not None:
        query = query.filter(UserCompany.status == status)
    memberships = query.order_by(UserCompany.access_level.desc(), UserCompany.joined_at).all()
    return [_member_out(m) for m in memberships]


def add_member(db: Session, company_id: UUID, data: MemberAdd, actor: AuthContext) -> MemberOut:
    get_company(db, company_id)
    level = parse_access_level(data.access_level)
    _ensure_can_manage(actor, level)

    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise NotFound("Usuario no encontrado")

    existing = db.query(UserCompany).filter(
        UserCompany.user_id == user.id,
        UserCompany.company_id == company_id,
    ).first()
    if existing:
        raise Conflict("El usuario ya pertenece a esta empresa")

    try:
        membership = UserCompany(
            user_id=user.id,
            company_id=company_id,
            access_level=int(level),
            status=MembershipStatus.ACTIVE,
            is_active=True,
            invited_by=actor.user_id,
        )
        db.add(membership)
        db.commit()
        db.refresh(membership)
        logger.info(f"User {user.email} added to company {company_id} with level {level.name}")
        return _member_out(membership)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error adding member to company {company_id}: {e}", exc_info=True)
        raise ServiceError("Error al agregar el miembro")


def update_member_access_level(
    db: Session,
    company_id: UUID,
    membership_id: UUID,
    access_level,
    actor: AuthContext,
) -> MemberOut:
    membership = _get_membership(db, company_id, membership_id)
    level = parse_access_level(access_level)

    if membership.user_id == actor.user_id:
        raise ValidationError("No puedes cambiar tu propio nivel de acceso")
    _ensure_can_manage(actor, membership.access_level)
    _ensure_can_manage(actor, level)

    try:
        membership.access_level = int(level)
        db.commit()
        db.refresh(membership)
        logger.info(f"Membership {membership_id} access level set to {level.name}")
        return _member_out(membership)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating access level for membership {membership_id}: {e}", exc_info=True)
        raise ServiceError("Error al actualizar el nivel de acceso")


def update_member_status(
    db: Session,
    company_id: UUID,
    membership_id: UUID,
    status: MembershipStatus,
    actor: AuthContext,
) -> MemberOut:
    membership = _get_membership(db, company_id, membership_id)

    if membership.user_id == actor.user_id:
        raise ValidationError("No puedes cambiar tu propio estado")
    _ensure_can_manage(actor, membership.access_level)

    try:
        membership.status = status
        membership.is_active = status == MembershipStatus.ACTIVE
        db.commit()
        db.refresh(membership)
        logger.info(f"Membership {membership_id} status set to {status.value}")
        return _member_out(membership)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating status for membership {membership_id}: {e}", exc_info=True)
        raise ServiceError("Error al actualizar el estado del miembro")
