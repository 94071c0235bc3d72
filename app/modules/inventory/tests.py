"""
Tests para el ledger de inventario

- Movimientos individuales: entradas, salidas y stock insuficiente
- Lote todo-o-nada con posición del movimiento fallido
- Stock por sede, stock bajo y tipos de movimiento
- Reservas, punto de reorden y traslados entre sedes
"""
import pytest

from app.common.exceptions import InsufficientStock, InvalidTransition
from app.modules.auth.access import AccessLevel, Role
from app.modules.branches.schemas import BranchCreate
from app.modules.branches.service import BranchService
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company
from app.modules.inventory.models import StockMovement, StockMovementType, StockTransfer, TransferStatus
from app.modules.inventory.service import StockLedgerService, seed_movement_types, DEFAULT_MOVEMENT_TYPES
from app.modules.inventory.schemas import StockTransferCreate, StockTransferItemCreate
from app.modules.inventory.transfers_service import StockTransferService
from conftest import API, add_stock, auth_headers, create_product, make_user


def movement(branch_id, product, movement_type, quantity, **extra):
    return {
        "branch_id": str(branch_id),
        "product_id": str(product.id),
        "movement_type": movement_type,
        "quantity": quantity,
        **extra,
    }


def stock_of(db, company_id, branch_id, product) -> int:
    return StockLedgerService(db).get_inventory(company_id, branch_id, product.id).stock


class TestMovementTypes:
    def test_seed_is_idempotent(self, db_session):
        assert seed_movement_types(db_session) == 0
        assert db_session.query(StockMovementType).count() == len(DEFAULT_MOVEMENT_TYPES)

    def test_list_requires_authentication(self, client, owner_headers):
        assert client.get(f"{API}/stock-movement-types").status_code == 401
        names = {t["name"] for t in client.get(f"{API}/stock-movement-types", headers=owner_headers).json()}
        assert {"venta", "compra", "devolución"} <= names

    def test_create_requires_developer_role(self, db_session, client, owner_headers):
        payload = {"name": "merma", "description": "Pérdida", "is_addition": False}
        assert client.post(f"{API}/stock-movement-types", json=payload, headers=owner_headers).status_code == 403

        developer = make_user(db_session, "dev@ally360.com", role=Role.DEVELOPER)
        response = client.post(f"{API}/stock-movement-types", json=payload, headers=auth_headers(developer))
        assert response.status_code == 201
        assert response.json()["is_addition"] is False

        again = client.post(f"{API}/stock-movement-types", json=payload, headers=auth_headers(developer))
        assert again.status_code == 409


class TestRecordMovement:
    def test_purchase_adds_to_existing_stock(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)

        response = client.post(
            f"{API}/companies/{company_id}/stock-movements",
            json=movement(branch_id, product_a, "compra", 5, reference="OC-001"),
            headers=owner_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["quantity"] == 5
        assert data["resulting_stock"] == 15
        assert data["movement_type"] == "compra"
        assert stock_of(db_session, company_id, branch_id, product_a) == 15

    def test_outgoing_movement_is_signed(self, db_session, owner, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)

        out = add_stock(db_session, company_id, branch_id, product_a.id, 4, owner.id, movement_type="cierre")

        assert out.quantity == -4
        assert out.resulting_stock == 6

    def test_insufficient_stock(self, db_session, owner, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 3, owner.id)

        with pytest.raises(InsufficientStock):
            add_stock(db_session, company_id, branch_id, product_a.id, 4, owner.id, movement_type="venta")

        assert stock_of(db_session, company_id, branch_id, product_a) == 3

    def test_backorder_allows_negative_stock(self, db_session, owner, company_id, branch_id):
        product = create_product(db_session, company_id, "PAN-1", allow_backorder=True)
        out = add_stock(db_session, company_id, branch_id, product.id, 2, owner.id, movement_type="venta")
        assert out.resulting_stock == -2

    def test_unknown_movement_type(self, client, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        response = client.post(
            f"{API}/companies/{company_id}/stock-movements",
            json=movement(branch_id, product_a, "regalo", 1),
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"

    def test_branch_of_another_company(self, db_session, client, owner_headers, company_id, sample_products):
        other = create_company(db_session, CompanyCreate(name="Tienda Sur"), make_user(db_session, "sur@t.com").id)
        product_a, _ = sample_products
        response = client.post(
            f"{API}/companies/{company_id}/stock-movements",
            json=movement(other["main_branch_id"], product_a, "compra", 1),
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ReferenceMismatch"

    def test_employee_cannot_record(self, client, member_factory, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        response = client.post(
            f"{API}/companies/{company_id}/stock-movements",
            json=movement(branch_id, product_a, "compra", 1),
            headers=headers,
        )
        assert response.status_code == 403


class TestBulkRecord:
    def test_bulk_applies_in_order(
        self, db_session, client, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, product_b = sample_products
        response = client.post(
            f"{API}/companies/{company_id}/stock-movements/bulk",
            json={"movements": [
                movement(branch_id, product_a, "carga_inicial", 10),
                movement(branch_id, product_a, "venta", 4),
                movement(branch_id, product_b, "compra", 7),
            ]},
            headers=owner_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["total"] == 3
        assert [m["resulting_stock"] for m in data["movements"]] == [10, 6, 7]

    def test_bulk_is_all_or_nothing(
        self, db_session, client, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, product_b = sample_products
        response = client.post(
            f"{API}/companies/{company_id}/stock-movements/bulk",
            json={"movements": [
                movement(branch_id, product_b, "compra", 7),
                movement(branch_id, product_a, "venta", 1),
            ]},
            headers=owner_headers,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["kind"] == "InsufficientStock"
        assert body["detail"].startswith("Movimiento 1:")
        assert db_session.query(StockMovement).count() == 0
        listing = client.get(f"{API}/companies/{company_id}/inventory", headers=owner_headers).json()
        assert all(row["stock"] == 0 for row in listing["data"])


class TestInventoryQueries:
    def test_list_movements_newest_first(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        add_stock(db_session, company_id, branch_id, product_a.id, 2, owner.id, movement_type="venta")

        response = client.get(
            f"{API}/companies/{company_id}/stock-movements",
            params={"product_id": str(product_a.id)},
            headers=owner_headers,
        )

        data = response.json()
        assert data["total"] == 2
        assert [m["movement_type"] for m in data["data"]] == ["venta", "compra"]

        filtered = client.get(
            f"{API}/companies/{company_id}/stock-movements",
            params={"movement_type": "compra"},
            headers=owner_headers,
        ).json()
        assert filtered["total"] == 1

    def test_low_stock(self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products):
        product_a, product_b = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 2, owner.id)   # mínimo 2
        add_stock(db_session, company_id, branch_id, product_b.id, 5, owner.id)   # mínimo 0

        response = client.get(f"{API}/companies/{company_id}/inventory/low-stock", headers=owner_headers)

        data = response.json()
        assert data["total_count"] == 1
        assert data["items"][0]["product_sku"] == "ARROZ-500"
        assert data["items"][0]["is_low_stock"] is True

    def test_get_inventory_row(self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products):
        product_a, product_b = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 8, owner.id)
        url = f"{API}/companies/{company_id}/inventory/branches/{branch_id}/products"

        response = client.get(f"{url}/{product_a.id}", headers=owner_headers)
        assert response.json()["stock"] == 8
        assert response.json()["available_stock"] == 8

        assert client.get(f"{url}/{product_b.id}", headers=owner_headers).status_code == 404


def reserved_of(db, company_id, branch_id, product) -> int:
    return StockLedgerService(db).get_inventory(company_id, branch_id, product.id).reserved_stock


class TestReservations:
    def url(self, company_id, branch_id, product, action):
        return f"{API}/companies/{company_id}/inventory/branches/{branch_id}/products/{product.id}/{action}"

    def test_reserve_reduces_available_stock(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)

        response = client.post(
            self.url(company_id, branch_id, product_a, "reserve"),
            json={"quantity": 4, "reference": "PED-77"},
            headers=owner_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["stock"] == 10
        assert data["reserved_stock"] == 4
        assert data["available_stock"] == 6

    def test_reserved_stock_cannot_be_sold(self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        client.post(self.url(company_id, branch_id, product_a, "reserve"), json={"quantity": 8}, headers=owner_headers)

        with pytest.raises(InsufficientStock):
            add_stock(db_session, company_id, branch_id, product_a.id, 3, owner.id, movement_type="venta")

        out = add_stock(db_session, company_id, branch_id, product_a.id, 2, owner.id, movement_type="venta")
        assert out.resulting_stock == 8
        assert reserved_of(db_session, company_id, branch_id, product_a) == 8

    def test_cannot_reserve_more_than_available(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 3, owner.id)

        response = client.post(
            self.url(company_id, branch_id, product_a, "reserve"), json={"quantity": 4}, headers=owner_headers
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "InsufficientStock"
        assert reserved_of(db_session, company_id, branch_id, product_a) == 0

    def test_backorder_does_not_apply_to_reservations(self, db_session, client, owner_headers, company_id, branch_id):
        product = create_product(db_session, company_id, "PAN-1", allow_backorder=True)
        response = client.post(
            self.url(company_id, branch_id, product, "reserve"), json={"quantity": 1}, headers=owner_headers
        )
        assert response.status_code == 400

    def test_release(self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        client.post(self.url(company_id, branch_id, product_a, "reserve"), json={"quantity": 5}, headers=owner_headers)

        response = client.post(
            self.url(company_id, branch_id, product_a, "release"), json={"quantity": 3}, headers=owner_headers
        )
        assert response.status_code == 200
        assert response.json()["reserved_stock"] == 2
        assert response.json()["available_stock"] == 8

        too_much = client.post(
            self.url(company_id, branch_id, product_a, "release"), json={"quantity": 3}, headers=owner_headers
        )
        assert too_much.status_code == 400
        assert too_much.json()["kind"] == "ValidationError"
        assert reserved_of(db_session, company_id, branch_id, product_a) == 2

    def test_untracked_product(self, db_session, client, owner_headers, company_id, branch_id):
        service = create_product(db_session, company_id, "DOMICILIO", track_inventory=False)
        response = client.post(
            self.url(company_id, branch_id, service, "reserve"), json={"quantity": 1}, headers=owner_headers
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"

    def test_employee_cannot_reserve(self, client, member_factory, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        response = client.post(
            self.url(company_id, branch_id, product_a, "reserve"), json={"quantity": 1}, headers=headers
        )
        assert response.status_code == 403


class TestRestockNeeded:
    def test_lists_rows_at_or_below_reorder_point(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products
    ):
        aceite = create_product(db_session, company_id, "ACEITE-1L", reorder_point=5, reorder_quantity=20)
        azucar = create_product(db_session, company_id, "AZUCAR-1K", reorder_point=5)
        add_stock(db_session, company_id, branch_id, aceite.id, 5, owner.id)
        add_stock(db_session, company_id, branch_id, azucar.id, 6, owner.id)

        response = client.get(f"{API}/companies/{company_id}/inventory/restock-needed", headers=owner_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 1
        row = data["items"][0]
        assert row["product_sku"] == "ACEITE-1L"
        assert row["reorder_point"] == 5
        assert row["reorder_quantity"] == 20
        assert row["needs_restock"] is True

    def test_requires_supervisor(self, client, member_factory, company_id):
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        response = client.get(f"{API}/companies/{company_id}/inventory/restock-needed", headers=headers)
        assert response.status_code == 403


@pytest.fixture
def second_branch_id(db_session, company_id):
    branch = BranchService(db_session).create_branch(company_id, BranchCreate(name="Sede Norte", code="NOR-01"))
    return branch.id


@pytest.fixture
def transfer_factory(db_session, owner, company_id, branch_id, second_branch_id):
    def factory(product, quantity, from_branch_id=None, to_branch_id=None):
        data = StockTransferCreate(
            from_branch_id=from_branch_id or branch_id,
            to_branch_id=to_branch_id or second_branch_id,
            items=[StockTransferItemCreate(product_id=product.id, quantity=quantity)],
        )
        return StockTransferService(db_session).create_transfer(company_id, data, owner.id)

    return factory


class TestStockTransfers:
    def url(self, company_id, *parts):
        return "/".join([f"{API}/companies/{company_id}/stock-transfers", *[str(p) for p in parts]])

    def test_full_flow(
        self, db_session, client, owner, owner_headers, company_id, branch_id, second_branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)

        created = client.post(
            self.url(company_id),
            json={
                "from_branch_id": str(branch_id),
                "to_branch_id": str(second_branch_id),
                "items": [{"product_id": str(product_a.id), "quantity": 4}],
                "notes": "Surtido sede norte",
            },
            headers=owner_headers,
        )
        assert created.status_code == 201
        transfer = created.json()
        assert transfer["status"] == "pending"
        assert transfer["to_branch_name"] == "Sede Norte"
        assert transfer["total_quantity"] == 4
        assert transfer["items"][0]["product_sku"] == "ARROZ-500"
        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        assert reserved_of(db_session, company_id, branch_id, product_a) == 4

        sent = client.post(self.url(company_id, transfer["id"], "send"), headers=owner_headers)
        assert sent.status_code == 200
        assert sent.json()["status"] == "in_transit"
        assert stock_of(db_session, company_id, branch_id, product_a) == 6
        assert reserved_of(db_session, company_id, branch_id, product_a) == 0

        out = db_session.query(StockMovement).filter(
            StockMovement.branch_id == branch_id,
            StockMovement.transfer_id.isnot(None),
        ).one()
        assert out.quantity == -4
        assert str(out.transfer_id) == transfer["id"]

        completed = client.post(self.url(company_id, transfer["id"], "complete"), headers=owner_headers)
        assert completed.status_code == 200
        assert completed.json()["status"] == "completed"
        assert completed.json()["completed_by"] == str(owner.id)
        assert completed.json()["completed_date"] is not None
        assert stock_of(db_session, company_id, second_branch_id, product_a) == 4

        legs = db_session.query(StockMovement).filter(StockMovement.transfer_id == out.transfer_id).all()
        assert sorted(m.quantity for m in legs) == [-4, 4]

    def test_cancel_pending_releases_reservation(
        self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products, transfer_factory
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        transfer = transfer_factory(product_a, 6)

        response = client.post(self.url(company_id, transfer.id, "cancel"), headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        assert reserved_of(db_session, company_id, branch_id, product_a) == 0
        assert db_session.query(StockMovement).filter(StockMovement.transfer_id == transfer.id).count() == 0

    def test_cancel_in_transit_returns_stock(
        self, db_session, owner, company_id, branch_id, second_branch_id, sample_products, transfer_factory
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        transfer = transfer_factory(product_a, 6)
        service = StockTransferService(db_session)
        service.send_transfer(company_id, transfer.id, owner.id)
        assert stock_of(db_session, company_id, branch_id, product_a) == 4

        cancelled = service.cancel_transfer(company_id, transfer.id, owner.id)

        assert cancelled.status == TransferStatus.CANCELLED
        assert stock_of(db_session, company_id, branch_id, product_a) == 10
        with pytest.raises(InvalidTransition):
            service.complete_transfer(company_id, transfer.id, owner.id)

    def test_transitions(self, db_session, owner, company_id, branch_id, sample_products, transfer_factory):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        transfer = transfer_factory(product_a, 2)
        service = StockTransferService(db_session)

        with pytest.raises(InvalidTransition):
            service.complete_transfer(company_id, transfer.id, owner.id)

        service.send_transfer(company_id, transfer.id, owner.id)
        service.complete_transfer(company_id, transfer.id, owner.id)
        with pytest.raises(InvalidTransition):
            service.cancel_transfer(company_id, transfer.id, owner.id)

    def test_same_branch_rejected(self, client, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        response = client.post(
            self.url(company_id),
            json={
                "from_branch_id": str(branch_id),
                "to_branch_id": str(branch_id),
                "items": [{"product_id": str(product_a.id), "quantity": 1}],
            },
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"

    def test_insufficient_stock_creates_nothing(
        self, db_session, client, owner, owner_headers, company_id, branch_id, second_branch_id, sample_products
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 3, owner.id)

        response = client.post(
            self.url(company_id),
            json={
                "from_branch_id": str(branch_id),
                "to_branch_id": str(second_branch_id),
                "items": [{"product_id": str(product_a.id), "quantity": 5}],
            },
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "InsufficientStock"
        assert db_session.query(StockTransfer).count() == 0
        assert reserved_of(db_session, company_id, branch_id, product_a) == 0

    def test_branch_of_another_company(self, db_session, client, owner_headers, company_id, branch_id, sample_products):
        other = create_company(db_session, CompanyCreate(name="Tienda Sur"), make_user(db_session, "sur@t.com").id)
        product_a, _ = sample_products
        response = client.post(
            self.url(company_id),
            json={
                "from_branch_id": str(branch_id),
                "to_branch_id": str(other["main_branch_id"]),
                "items": [{"product_id": str(product_a.id), "quantity": 1}],
            },
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ReferenceMismatch"

    def test_list_and_access(
        self, db_session, client, owner, member_factory, company_id, branch_id, second_branch_id,
        sample_products, transfer_factory
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        transfer = transfer_factory(product_a, 2)
        _, headers = member_factory(AccessLevel.EMPLOYEE)

        listing = client.get(
            self.url(company_id), params={"branch_id": str(second_branch_id), "status": "pending"}, headers=headers
        )
        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert listing.json()["data"][0]["id"] == str(transfer.id)

        payload = {
            "from_branch_id": str(branch_id),
            "to_branch_id": str(second_branch_id),
            "items": [{"product_id": str(product_a.id), "quantity": 1}],
        }
        assert client.post(self.url(company_id), json=payload, headers=headers).status_code == 403
        assert client.post(self.url(company_id, transfer.id, "send"), headers=headers).status_code == 403

    def test_branch_with_transfers_cannot_be_deleted(
        self, db_session, client, owner, owner_headers, company_id, branch_id, second_branch_id,
        sample_products, transfer_factory
    ):
        product_a, _ = sample_products
        add_stock(db_session, company_id, branch_id, product_a.id, 10, owner.id)
        transfer_factory(product_a, 2)

        response = client.delete(f"{API}/companies/{company_id}/branches/{second_branch_id}", headers=owner_headers)
        assert response.status_code == 409
