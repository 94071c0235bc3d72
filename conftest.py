"""
Fixtures compartidas de Pytest.

La base de datos es SQLite en memoria sobre una única conexión (StaticPool);
la aplicación y los tests comparten la misma sesión.
"""
import os

# Antes de importar la aplicación: sin PostgreSQL y sin create_all al arrancar
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DEBUG", "false")

from decimal import Decimal
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.database import Base, enable_sqlite_savepoints, get_db
from app.main import app
from app.modules.auth.access import AccessLevel, MembershipStatus, Role
from app.modules.auth.models import User, UserCompany
from app.modules.auth.utils import create_access_token, hash_password
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company
from app.modules.inventory.schemas import StockMovementCreate
from app.modules.inventory.service import StockLedgerService, seed_movement_types
from app.modules.products.schemas import ProductCreate
from app.modules.products.service import ProductService

API = "/api/v1"
PASSWORD = "Secreta123"

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_movement_types(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email: str, role: Role = Role.USER, first_name: str = "Ana") -> User:
    user = User(
        email=email,
        password=hash_password(PASSWORD),
        first_name=first_name,
        last_name="Prueba",
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def add_membership(db, user: User, company_id, level: AccessLevel,
                   status: MembershipStatus = MembershipStatus.ACTIVE) -> UserCompany:
    membership = UserCompany(
        user_id=user.id,
        company_id=company_id,
        access_level=int(level),
        status=status,
        is_active=status == MembershipStatus.ACTIVE,
    )
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


@pytest.fixture
def owner(db_session) -> User:
    return make_user(db_session, "owner@supermercado.com")


@pytest.fixture
def owner_headers(owner) -> dict:
    return auth_headers(owner)


@pytest.fixture
def sample_company(db_session, owner) -> dict:
    """Empresa con sede principal y cliente genérico; owner es OWNER."""
    return create_company(
        db_session,
        CompanyCreate(name="Supermercado Central", tax_id="900123456-1"),
        owner.id,
    )


@pytest.fixture
def company_id(sample_company) -> UUID:
    return sample_company["id"]


@pytest.fixture
def branch_id(sample_company) -> UUID:
    return sample_company["main_branch_id"]


@pytest.fixture
def customer_id(sample_company) -> UUID:
    return sample_company["generic_customer_id"]


@pytest.fixture
def member_factory(db_session, company_id):
    """Crea un usuario con membresía en la empresa y retorna (user, headers)."""
    counter = {"n": 0}

    def factory(level: AccessLevel, status: MembershipStatus = MembershipStatus.ACTIVE):
        counter["n"] += 1
        user = make_user(db_session, f"miembro{counter['n']}@supermercado.com")
        add_membership(db_session, user, company_id, level, status)
        return user, auth_headers(user)

    return factory


def create_product(db, company_id, sku: str, price: str = "10.00", **kwargs):
    data = {"name": f"Producto {sku}", "sku": sku, "price": Decimal(price), **kwargs}
    return ProductService(db).create_product(company_id, ProductCreate(**data))


def add_stock(db, company_id, branch_id, product_id, quantity: int, user_id, movement_type: str = "compra"):
    return StockLedgerService(db).record_movement(
        company_id,
        StockMovementCreate(
            branch_id=branch_id,
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
        ),
        user_id,
    )


@pytest.fixture
def sample_products(db_session, company_id):
    """A (precio 100) y B (precio 50), ambos inventariables."""
    product_a = create_product(db_session, company_id, "ARROZ-500", price="100.00", min_stock_level=2)
    product_b = create_product(db_session, company_id, "FRIJOL-500", price="50.00")
    return product_a, product_b
