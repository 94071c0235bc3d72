"""
Seed script: tablas, tipos de movimiento y una empresa demo con datos.

What it creates:
- Tablas (create_all) y tipos de movimiento de stock por defecto.
- Owner user + company (con sede principal y cliente genérico).
- Una segunda sede, productos con SKU únicos y carga inicial de stock en ambas sedes.
- Facturas de venta: mezcla de borradores, emitidas, pagadas y anuladas.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_demo_data.py \
        --company-name "Super Demo Market" \
        --email admin@superdemo.com \
        --password SuperDemo!2025 \
        --products 50 --invoices 30

    python scripts/seed_demo_data.py --types-only   # solo tipos de movimiento

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import logging
import random
from decimal import Decimal

from app.common.exceptions import AppError
from app.database.database import Base, SessionLocal, engine
from app.main import app  # noqa: F401  registra todos los modelos
from app.modules.auth.access import Role
from app.modules.auth.models import User
from app.modules.auth.utils import hash_password
from app.modules.branches.schemas import BranchCreate
from app.modules.branches.service import BranchService
from app.modules.company.models import Company
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company
from app.modules.customers.schemas import CustomerCreate
from app.modules.customers.service import CustomerService
from app.modules.inventory.schemas import StockMovementCreate
from app.modules.inventory.service import StockLedgerService, seed_movement_types
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate, InvoiceStatusUpdate
from app.modules.invoices.service import InvoiceService
from app.modules.products.schemas import ProductCreate
from app.modules.products.service import ProductService

logger = logging.getLogger("seed")

PRODUCT_NAMES = [
    "Arroz", "Frijol", "Lenteja", "Azúcar", "Sal", "Aceite", "Café", "Chocolate",
    "Harina", "Pasta", "Atún", "Leche", "Queso", "Galletas", "Jabón", "Detergente",
]
PRESENTATIONS = ["250g", "500g", "1kg", "2kg", "1L", "Pack x6"]
CUSTOMERS = [
    ("María", "López"), ("Juan", "Pérez"), ("Camila", "Rojas"),
    ("Andrés", "Gómez"), ("Valentina", "Díaz"), ("Santiago", "Torres"),
]


def get_or_create_owner(db, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        password=hash_password(password),
        first_name="Admin",
        last_name="Demo",
        role=Role.USER,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_company(db, owner: User, name: str) -> dict:
    existing = db.query(Company).filter(Company.name == name).first()
    if existing:
        raise SystemExit(f"La empresa '{name}' ya existe; usa otro --company-name")
    return create_company(db, CompanyCreate(name=name), owner.id)


def seed_products(db, company_id, count: int):
    service = ProductService(db)
    products = []
    for i in range(count):
        base = PRODUCT_NAMES[i % len(PRODUCT_NAMES)]
        presentation = random.choice(PRESENTATIONS)
        price = Decimal(random.randint(20, 400) * 50)
        products.append(service.create_product(company_id, ProductCreate(
            name=f"{base} {presentation}",
            sku=f"{base[:3].upper()}-{i + 1:04d}",
            price=price,
            cost=(price * Decimal("0.7")).quantize(Decimal("1")),
            min_stock_level=random.choice([0, 5, 10]),
        )))
    return products


def seed_stock(db, company_id, branch_ids, products, user_id):
    ledger = StockLedgerService(db)
    movements = [
        StockMovementCreate(
            branch_id=branch_id,
            product_id=product.id,
            movement_type="carga_inicial",
            quantity=random.randint(20, 120),
            reference="CARGA-INICIAL",
        )
        for branch_id in branch_ids
        for product in products
    ]
    ledger.bulk_record(company_id, movements, user_id)


def seed_invoices(db, company_id, branch_ids, customer_ids, products, user_id, count: int):
    service = InvoiceService(db)
    stats = {status: 0 for status in InvoiceStatus}
    for _ in range(count):
        items = [
            InvoiceItemCreate(product_id=product.id, quantity=random.randint(1, 4))
            for product in random.sample(products, k=min(len(products), random.randint(1, 5)))
        ]
        invoice = service.create_invoice(company_id, InvoiceCreate(
            branch_id=random.choice(branch_ids),
            customer_id=random.choice(customer_ids),
            items=items,
            tax_rate=Decimal("19"),
        ), user_id)

        target = random.choices(
            [InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
            weights=[2, 3, 4, 1],
        )[0]
        path = {
            InvoiceStatus.DRAFT: [],
            InvoiceStatus.PENDING: [InvoiceStatus.PENDING],
            InvoiceStatus.PAID: [InvoiceStatus.PENDING, InvoiceStatus.PAID],
            InvoiceStatus.CANCELLED: [InvoiceStatus.PENDING, InvoiceStatus.CANCELLED],
        }[target]
        try:
            for status in path:
                service.update_status(company_id, invoice.id, InvoiceStatusUpdate(status=status), user_id)
        except AppError as e:
            logger.warning(f"Invoice {invoice.invoice_number} stays as is: {e.detail}")
            continue
        stats[target] += 1
    return stats


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--company-name", default="Super Demo Market")
    parser.add_argument("--email", default="admin@superdemo.com")
    parser.add_argument("--password", default="SuperDemo!2025")
    parser.add_argument("--products", type=int, default=50)
    parser.add_argument("--invoices", type=int, default=30)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--types-only", action="store_true", help="Solo crear tipos de movimiento")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    random.seed(args.seed)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = seed_movement_types(db)
        print(f"Tipos de movimiento creados: {created}")
        if args.types_only:
            return

        owner = get_or_create_owner(db, args.email, args.password)
        company = seed_company(db, owner, args.company_name)
        company_id = company["id"]

        second = BranchService(db).create_branch(company_id, BranchCreate(name="Sucursal Norte", code="NORTE"))
        branch_ids = [company["main_branch_id"], second.id]

        customer_service = CustomerService(db)
        customer_ids = [company["generic_customer_id"]] + [
            customer_service.create_customer(company_id, CustomerCreate(first_name=first, last_name=last)).id
            for first, last in CUSTOMERS
        ]

        products = seed_products(db, company_id, args.products)
        seed_stock(db, company_id, branch_ids, products, owner.id)
        stats = seed_invoices(db, company_id, branch_ids, customer_ids, products, owner.id, args.invoices)

        print("Seed completado:")
        print(f"  Empresa: {args.company_name} ({company_id})")
        print(f"  Login: {args.email} / {args.password}")
        print(f"  Productos: {len(products)}  Sedes: {len(branch_ids)}  Clientes: {len(customer_ids)}")
        print("  Facturas: " + ", ".join(f"{s.value}={n}" for s, n in stats.items() if n))
    finally:
        db.close()


if __name__ == "__main__":
    main()
