"""
Tests para el módulo de Facturación

- Reglas puras: totales, transiciones y numeración
- Flujo completo por API: borrador, emisión con descuento de stock,
  pago, anulación con devolución de stock
- Referencias cruzadas entre empresas y stock insuficiente
- Asignación de números con reintento ante colisión
"""
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.common.exceptions import InvalidTransition, ValidationError
from app.modules.auth.access import AccessLevel
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company
from app.modules.inventory.models import StockMovement, StockMovementType
from app.modules.inventory.service import StockLedgerService
from app.modules.invoices import calculator
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus
from app.modules.invoices.service import InvoiceService, _naive
from conftest import API, add_stock, auth_headers, create_product, make_user


def item_payload(product, quantity, extra=None):
    return {"product_id": str(product.id), "quantity": quantity, **(extra or {})}


def invoice_payload(branch_id, customer_id, items, **extra):
    return {
        "branch_id": str(branch_id),
        "customer_id": str(customer_id),
        "items": [item_payload(*item) for item in items],
        **extra,
    }


def stock_of(db, company_id, branch_id, product) -> int:
    return StockLedgerService(db).get_inventory(company_id, branch_id, product.id).stock


def sale_movements(db, reference: str, type_name: str = "venta"):
    return db.query(StockMovement).join(
        StockMovementType, StockMovementType.id == StockMovement.movement_type_id
    ).filter(
        StockMovement.reference == reference,
        StockMovementType.name == type_name,
    ).all()


@pytest.fixture
def stocked(db_session, owner, company_id, branch_id, sample_products):
    """A con 10 unidades y B con 5 en la sede principal."""
    product_a, product_b = sample_products
    add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
    add_stock(db_session, company_id, branch_id, product_b.id, 5, owner.id)
    return product_a, product_b


@pytest.fixture
def create_invoice(client, owner_headers, company_id, branch_id, customer_id):
    def factory(items, headers=None, **extra):
        response = client.post(
            f"{API}/companies/{company_id}/invoices",
            json=invoice_payload(branch_id, customer_id, items, **extra),
            headers=headers or owner_headers,
        )
        return response

    return factory


def set_status(client, headers, company_id, invoice_id, new_status, **extra):
    return client.patch(
        f"{API}/companies/{company_id}/invoices/{invoice_id}/status",
        json={"status": new_status, **extra},
        headers=headers,
    )


def row_counts(db):
    return (
        db.query(Invoice).count(),
        db.query(InvoiceItem).count(),
        db.query(StockMovement).count(),
    )


# ===== REGLAS PURAS =====

class TestCalculator:
    def test_item_total(self):
        assert calculator.calculate_item_total(2, Decimal("100")) == Decimal("200.00")
        assert calculator.calculate_item_total(3, Decimal("10.50"), Decimal("1.50")) == Decimal("30.00")

    def test_item_discount_cannot_exceed_value(self):
        with pytest.raises(ValidationError):
            calculator.calculate_item_total(1, Decimal("10"), Decimal("11"))

    def test_invoice_totals(self):
        totals = calculator.calculate_totals(Decimal("250"), Decimal("19"), Decimal("10"))
        assert totals == {
            "subtotal_amount": Decimal("250.00"),
            "tax_amount": Decimal("47.50"),
            "discount_amount": Decimal("25.00"),
            "total_amount": Decimal("272.50"),
        }

    def test_totals_without_discount(self):
        subtotal = calculator.calculate_item_total(2, Decimal("10"))
        totals = calculator.calculate_totals(subtotal, Decimal("10"))
        assert totals["tax_amount"] == Decimal("2.00")
        assert totals["discount_amount"] == Decimal("0.00")
        assert totals["total_amount"] == Decimal("22.00")

    def test_totals_round_half_up(self):
        totals = calculator.calculate_totals(Decimal("0.05"), Decimal("50"))
        assert totals["tax_amount"] == Decimal("0.03")

    @pytest.mark.parametrize("current,new", [
        (InvoiceStatus.DRAFT, InvoiceStatus.PENDING),
        (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED),
        (InvoiceStatus.PENDING, InvoiceStatus.PAID),
        (InvoiceStatus.PENDING, InvoiceStatus.OVERDUE),
        (InvoiceStatus.OVERDUE, InvoiceStatus.PAID),
        (InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED),
    ])
    def test_allowed_transitions(self, current, new):
        assert calculator.can_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        (InvoiceStatus.DRAFT, InvoiceStatus.PAID),
        (InvoiceStatus.PAID, InvoiceStatus.PENDING),
        (InvoiceStatus.PAID, InvoiceStatus.CANCELLED),
        (InvoiceStatus.CANCELLED, InvoiceStatus.DRAFT),
        (InvoiceStatus.OVERDUE, InvoiceStatus.PENDING),
    ])
    def test_rejected_transitions(self, current, new):
        with pytest.raises(InvalidTransition):
            calculator.validate_transition(current, new)

    def test_terminal_statuses(self):
        assert calculator.TERMINAL_STATUSES == {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}

    def test_numbering(self):
        assert calculator.invoice_prefix("Supermercado Central") == "SUP"
        assert calculator.invoice_prefix("123 Tiendas") == "INV"
        assert calculator.format_invoice_number("SUP", 2026, 3, 7) == "SUP-202603-000007"
        assert calculator.next_sequence(None) == 1
        assert calculator.next_sequence("SUP-202603-000041") == 42

    def test_overdue(self):
        today = date(2026, 5, 10)
        assert calculator.is_overdue(InvoiceStatus.PENDING, date(2026, 5, 9), today)
        assert not calculator.is_overdue(InvoiceStatus.PENDING, today, today)
        assert not calculator.is_overdue(InvoiceStatus.PAID, date(2026, 5, 1), today)
        assert calculator.days_past_due(InvoiceStatus.OVERDUE, date(2026, 5, 7), today) == 3
        assert calculator.days_past_due(InvoiceStatus.PAID, date(2026, 5, 7), today) == 0
        assert calculator.days_past_due(InvoiceStatus.PENDING, date(2026, 5, 9), today) == 1
        assert calculator.days_past_due(InvoiceStatus.PENDING, date(2026, 5, 12), today) == 0
        assert calculator.days_past_due(InvoiceStatus.OVERDUE, None, today) == 0


# ===== CREACIÓN =====

class TestCreateInvoice:
    def test_create_draft_computes_totals_and_keeps_stock(
        self, db_session, create_invoice, company_id, branch_id, stocked
    ):
        product_a, product_b = stocked
        response = create_invoice([(product_a, 2), (product_b, 1)], tax_rate="19", discount_rate="10")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert Decimal(data["subtotal_amount"]) == Decimal("250")
        assert Decimal(data["tax_amount"]) == Decimal("47.50")
        assert Decimal(data["discount_amount"]) == Decimal("25")
        assert Decimal(data["total_amount"]) == Decimal("272.50")
        assert re.match(r"^SUP-\d{6}-000001$", data["invoice_number"])
        assert [item["product_sku"] for item in data["items"]] == ["ARROZ-500", "FRIJOL-500"]
        assert data["customer_name"] == "Cliente Genérico"

        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        assert stock_of(db_session, company_id, branch_id, product_b) == 5

    def test_unit_price_defaults_to_product_price(self, create_invoice, sample_products):
        product_a, _ = sample_products
        response = create_invoice([(product_a, 3, {"unit_price": "80.00"})])
        assert Decimal(response.json()["items"][0]["unit_price"]) == Decimal("80")

        response = create_invoice([(product_a, 3)])
        assert Decimal(response.json()["items"][0]["unit_price"]) == Decimal("100")
        assert Decimal(response.json()["total_amount"]) == Decimal("300")

    def test_numbers_are_sequential_per_company(self, create_invoice, sample_products):
        product_a, _ = sample_products
        first = create_invoice([(product_a, 1)]).json()["invoice_number"]
        second = create_invoice([(product_a, 1)]).json()["invoice_number"]
        assert first.endswith("-000001")
        assert second.endswith("-000002")
        assert first[:-6] == second[:-6]

    def test_requires_at_least_one_item(self, client, owner_headers, company_id, branch_id, customer_id):
        response = client.post(
            f"{API}/companies/{company_id}/invoices",
            json={"branch_id": str(branch_id), "customer_id": str(customer_id), "items": []},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"

    def test_quantity_must_be_positive(self, create_invoice, sample_products):
        product_a, _ = sample_products
        response = create_invoice([(product_a, 0)])
        assert response.status_code == 400


class TestReferenceMismatch:
    @pytest.fixture
    def other_company(self, db_session):
        other_owner = make_user(db_session, "otro@tienda.com")
        return create_company(db_session, CompanyCreate(name="Tienda Norte"), other_owner.id)

    def test_branch_from_another_company(
        self, db_session, client, owner_headers, create_invoice, company_id, customer_id, stocked, other_company
    ):
        product_a, _ = stocked
        create_invoice([(product_a, 1)])
        before = row_counts(db_session)

        response = client.post(
            f"{API}/companies/{company_id}/invoices",
            json=invoice_payload(other_company["main_branch_id"], customer_id, [(product_a, 1)]),
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ReferenceMismatch"
        assert row_counts(db_session) == before

    def test_customer_from_another_company(
        self, db_session, client, owner_headers, company_id, branch_id, stocked, other_company
    ):
        product_a, _ = stocked
        before = row_counts(db_session)

        response = client.post(
            f"{API}/companies/{company_id}/invoices",
            json=invoice_payload(branch_id, other_company["generic_customer_id"], [(product_a, 1)]),
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ReferenceMismatch"
        assert row_counts(db_session) == before

    def test_product_from_another_company(self, db_session, create_invoice, stocked, other_company):
        product_a, _ = stocked
        foreign = create_product(db_session, other_company["id"], "AJENO-1")
        before = row_counts(db_session)

        response = create_invoice([(product_a, 1), (foreign, 1)])

        assert response.status_code == 400
        assert response.json()["kind"] == "ReferenceMismatch"
        assert row_counts(db_session) == before


class TestNumberAllocation:
    def test_collision_retries_with_next_number(self, create_invoice, sample_products, monkeypatch):
        product_a, _ = sample_products
        taken = create_invoice([(product_a, 1)]).json()["invoice_number"]

        real_next_number = InvoiceService._next_number
        calls = []

        def stale_next_number(self, company_id, prefix, year, month):
            calls.append(1)
            if len(calls) == 1:
                return taken
            return real_next_number(self, company_id, prefix, year, month)

        monkeypatch.setattr(InvoiceService, "_next_number", stale_next_number)
        response = create_invoice([(product_a, 1)])

        assert response.status_code == 201
        assert response.json()["invoice_number"].endswith("-000002")
        assert len(calls) == 2

    def test_gives_up_after_max_attempts(self, create_invoice, sample_products, monkeypatch):
        product_a, _ = sample_products
        taken = create_invoice([(product_a, 1)]).json()["invoice_number"]
        monkeypatch.setattr(InvoiceService, "_next_number", lambda self, *args: taken)

        response = create_invoice([(product_a, 1)])
        assert response.status_code == 409
        assert response.json()["kind"] == "Conflict"


# ===== ESTADOS Y STOCK =====

class TestStatusFlow:
    def test_issue_decrements_stock(
        self, db_session, client, owner_headers, create_invoice, company_id, branch_id, stocked
    ):
        product_a, product_b = stocked
        invoice = create_invoice([(product_a, 2), (product_b, 1)]).json()

        response = set_status(client, owner_headers, company_id, invoice["id"], "pending")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert stock_of(db_session, company_id, branch_id, product_a) == 8
        assert stock_of(db_session, company_id, branch_id, product_b) == 4
        movements = sale_movements(db_session, invoice["invoice_number"])
        assert sorted(m.quantity for m in movements) == [-2, -1]

    def test_insufficient_stock_keeps_draft(
        self, db_session, client, owner, owner_headers, create_invoice, company_id, branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 1, owner.id)
        invoice = create_invoice([(product_a, 2)]).json()

        response = set_status(client, owner_headers, company_id, invoice["id"], "pending")

        assert response.status_code == 400
        assert response.json()["kind"] == "InsufficientStock"
        detail = client.get(f"{API}/companies/{company_id}/invoices/{invoice['id']}", headers=owner_headers)
        assert detail.json()["status"] == "draft"
        assert stock_of(db_session, company_id, branch_id, product_a) == 1
        assert sale_movements(db_session, invoice["invoice_number"]) == []

    def test_untracked_products_do_not_move_stock(
        self, db_session, client, owner_headers, create_invoice, company_id
    ):
        service = create_product(db_session, company_id, "DOMICILIO", price="5.00", track_inventory=False)
        invoice = create_invoice([(service, 1)]).json()

        response = set_status(client, owner_headers, company_id, invoice["id"], "pending")

        assert response.status_code == 200
        assert sale_movements(db_session, invoice["invoice_number"]) == []

    def test_pay_sets_paid_date(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 1)]).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")

        response = set_status(client, owner_headers, company_id, invoice["id"], "paid")

        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        assert response.json()["paid_date"] is not None

    def test_paid_is_terminal(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 1)]).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")
        set_status(client, owner_headers, company_id, invoice["id"], "paid")

        response = set_status(client, owner_headers, company_id, invoice["id"], "cancelled")

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidTransition"

    def test_paid_cannot_return_to_pending(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 1)]).json()
        assert set_status(client, owner_headers, company_id, invoice["id"], "pending").status_code == 200
        assert set_status(client, owner_headers, company_id, invoice["id"], "paid").status_code == 200

        response = set_status(client, owner_headers, company_id, invoice["id"], "pending")

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidTransition"
        current = client.get(f"{API}/companies/{company_id}/invoices/{invoice['id']}", headers=owner_headers).json()
        assert current["status"] == "paid"
        assert current["paid_date"] is not None

    def test_draft_cannot_be_paid(self, client, owner_headers, create_invoice, company_id, sample_products):
        product_a, _ = sample_products
        invoice = create_invoice([(product_a, 1)]).json()
        response = set_status(client, owner_headers, company_id, invoice["id"], "paid")
        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidTransition"

    def test_cancel_issued_invoice_restores_stock(
        self, db_session, client, owner_headers, create_invoice, company_id, branch_id, stocked
    ):
        product_a, product_b = stocked
        invoice = create_invoice([(product_a, 2), (product_b, 1)]).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")

        response = set_status(client, owner_headers, company_id, invoice["id"], "cancelled")

        assert response.status_code == 200
        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        assert stock_of(db_session, company_id, branch_id, product_b) == 5
        returns = sale_movements(db_session, invoice["invoice_number"], "devolución")
        assert sorted(m.quantity for m in returns) == [1, 2]

    def test_cancel_only_reverses_its_own_sale(
        self, db_session, client, owner_headers, create_invoice, company_id, branch_id, stocked
    ):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 2)]).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")
        assert stock_of(db_session, company_id, branch_id, product_a) == 8

        manual = client.post(
            f"{API}/companies/{company_id}/stock-movements",
            json={
                "branch_id": str(branch_id),
                "product_id": str(product_a.id),
                "movement_type": "venta",
                "quantity": 3,
                "reference": invoice["invoice_number"],
            },
            headers=owner_headers,
        )
        assert manual.status_code == 201
        assert manual.json()["invoice_id"] is None
        assert stock_of(db_session, company_id, branch_id, product_a) == 5

        response = set_status(client, owner_headers, company_id, invoice["id"], "cancelled")

        assert response.status_code == 200
        assert stock_of(db_session, company_id, branch_id, product_a) == 7
        returns = sale_movements(db_session, invoice["invoice_number"], "devolución")
        assert [m.quantity for m in returns] == [2]
        assert str(returns[0].invoice_id) == invoice["id"]

    def test_cancel_draft_does_not_touch_stock(
        self, db_session, client, owner_headers, create_invoice, company_id, branch_id, stocked
    ):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 2)]).json()

        response = set_status(client, owner_headers, company_id, invoice["id"], "cancelled")

        assert response.status_code == 200
        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        assert sale_movements(db_session, invoice["invoice_number"], "devolución") == []

    def test_pending_past_due_becomes_overdue(
        self, client, owner_headers, create_invoice, company_id, stocked
    ):
        product_a, _ = stocked
        due = datetime.now(timezone.utc).date() - timedelta(days=3)
        invoice = create_invoice([(product_a, 1)], due_date=due.isoformat()).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")

        response = client.get(f"{API}/companies/{company_id}/invoices/{invoice['id']}", headers=owner_headers)

        assert response.json()["status"] == "overdue"
        assert response.json()["days_past_due"] == 3
        listing = client.get(
            f"{API}/companies/{company_id}/invoices", params={"overdue": "true"}, headers=owner_headers
        )
        assert listing.json()["total"] == 1


# ===== EDICIÓN DE BORRADORES =====

class TestDraftEditing:
    def test_update_recomputes_totals(self, client, owner_headers, create_invoice, company_id, sample_products):
        product_a, product_b = sample_products
        invoice = create_invoice([(product_a, 1)]).json()

        response = client.patch(
            f"{API}/companies/{company_id}/invoices/{invoice['id']}",
            json={
                "tax_rate": "19",
                "items": [{"product_id": str(product_b.id), "quantity": 2}],
            },
            headers=owner_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["items"]) == 1
        assert data["items"][0]["product_sku"] == "FRIJOL-500"
        assert Decimal(data["subtotal_amount"]) == Decimal("100")
        assert Decimal(data["total_amount"]) == Decimal("119")

    def test_customer_cannot_be_cleared(
        self, client, owner_headers, create_invoice, company_id, customer_id, sample_products
    ):
        product_a, _ = sample_products
        invoice = create_invoice([(product_a, 1)]).json()

        response = client.patch(
            f"{API}/companies/{company_id}/invoices/{invoice['id']}",
            json={"customer_id": None},
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"
        current = client.get(f"{API}/companies/{company_id}/invoices/{invoice['id']}", headers=owner_headers).json()
        assert current["customer_id"] == str(customer_id)

    def test_issued_invoice_is_not_editable(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        invoice = create_invoice([(product_a, 1)]).json()
        set_status(client, owner_headers, company_id, invoice["id"], "pending")

        response = client.patch(
            f"{API}/companies/{company_id}/invoices/{invoice['id']}",
            json={"notes": "cambio"},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidState"

    def test_items_add_update_remove(self, client, owner_headers, create_invoice, company_id, sample_products):
        product_a, product_b = sample_products
        invoice = create_invoice([(product_a, 1)]).json()
        items_url = f"{API}/companies/{company_id}/invoices/{invoice['id']}/items"

        added = client.post(items_url, json={"product_id": str(product_b.id), "quantity": 2}, headers=owner_headers)
        assert added.status_code == 201
        assert added.json()["position"] == 1

        updated = client.patch(f"{items_url}/{added.json()['id']}", json={"quantity": 4}, headers=owner_headers)
        assert Decimal(updated.json()["total_price"]) == Decimal("200")

        detail = client.get(f"{API}/companies/{company_id}/invoices/{invoice['id']}", headers=owner_headers).json()
        assert Decimal(detail["subtotal_amount"]) == Decimal("300")

        removed = client.delete(f"{items_url}/{added.json()['id']}", headers=owner_headers)
        assert removed.status_code == 204
        assert len(client.get(items_url, headers=owner_headers).json()) == 1

        last = client.delete(f"{items_url}/{invoice['items'][0]['id']}", headers=owner_headers)
        assert last.status_code == 400

    def test_delete_only_drafts(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        draft = create_invoice([(product_a, 1)]).json()
        issued = create_invoice([(product_a, 1)]).json()
        set_status(client, owner_headers, company_id, issued["id"], "pending")

        assert client.delete(f"{API}/companies/{company_id}/invoices/{draft['id']}", headers=owner_headers).status_code == 204
        assert client.get(f"{API}/companies/{company_id}/invoices/{draft['id']}", headers=owner_headers).status_code == 404

        response = client.delete(f"{API}/companies/{company_id}/invoices/{issued['id']}", headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidState"


# ===== CONSULTAS Y ACCESO =====

class TestQueriesAndAccess:
    def test_list_filters_and_search(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        first = create_invoice([(product_a, 1)]).json()
        create_invoice([(product_a, 3)])
        set_status(client, owner_headers, company_id, first["id"], "pending")
        url = f"{API}/companies/{company_id}/invoices"

        assert client.get(url, headers=owner_headers).json()["total"] == 2
        assert client.get(url, params={"status": "pending"}, headers=owner_headers).json()["total"] == 1
        assert client.get(url, params={"min_amount": "200"}, headers=owner_headers).json()["total"] == 1
        assert client.get(url, params={"search": first["invoice_number"]}, headers=owner_headers).json()["total"] == 1

        ordered = client.get(url, params={"sort_by": "total_amount", "sort_order": "asc"}, headers=owner_headers).json()
        amounts = [Decimal(i["total_amount"]) for i in ordered["data"]]
        assert amounts == sorted(amounts)

    def test_summary(self, client, owner_headers, create_invoice, company_id, stocked):
        product_a, _ = stocked
        paid = create_invoice([(product_a, 1)]).json()
        create_invoice([(product_a, 2)])
        set_status(client, owner_headers, company_id, paid["id"], "pending")
        set_status(client, owner_headers, company_id, paid["id"], "paid")

        summary = client.get(f"{API}/companies/{company_id}/invoices/summary", headers=owner_headers).json()

        assert summary["total_invoices"] == 2
        assert summary["paid_invoices"] == 1
        assert summary["draft_invoices"] == 1
        assert Decimal(summary["paid_amount"]) == Decimal("100")
        assert Decimal(summary["total_amount"]) == Decimal("300")
        assert summary["average_payment_days"] is not None

    def test_aware_datetimes_are_compared_in_utc(self):
        bogota = timezone(timedelta(hours=-5))
        assert _naive(datetime(2026, 5, 10, 23, 0, tzinfo=bogota)) == datetime(2026, 5, 11, 4, 0)
        assert _naive(datetime(2026, 5, 10, 23, 0)) == datetime(2026, 5, 10, 23, 0)

    def test_employee_can_read_but_not_create(
        self, client, member_factory, create_invoice, company_id, sample_products
    ):
        product_a, _ = sample_products
        _, employee_headers = member_factory(AccessLevel.EMPLOYEE)

        assert create_invoice([(product_a, 1)], headers=employee_headers).status_code == 403
        assert client.get(f"{API}/companies/{company_id}/invoices", headers=employee_headers).status_code == 200

    def test_non_member_is_rejected(self, db_session, client, company_id):
        stranger = make_user(db_session, "extrano@correo.com")
        response = client.get(f"{API}/companies/{company_id}/invoices", headers=auth_headers(stranger))
        assert response.status_code == 403
        assert response.json()["kind"] == "Forbidden"
