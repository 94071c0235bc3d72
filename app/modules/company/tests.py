"""
Tests para Empresas y membresías

- Creación con sede principal, cliente genérico y membresía OWNER
- Lectura, actualización y desactivación según nivel de acceso
- Gestión de miembros: solo un nivel superior puede gestionar a otro
"""
from uuid import UUID

from app.modules.auth.access import AccessLevel, MembershipStatus, Role
from app.modules.branches.models import Branch
from app.modules.customers.models import Customer
from conftest import API, auth_headers, make_user


class TestCreateCompany:
    def test_create_sets_up_owner_branch_and_generic_customer(self, db_session, client, owner, owner_headers):
        response = client.post(
            f"{API}/companies",
            json={"name": "Minimercado La Esquina", "tax_id": "901555444-2", "phone": "+57 300 123 4567"},
            headers=owner_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["phone"] == "+573001234567"

        branch = db_session.get(Branch, UUID(data["main_branch_id"]))
        assert branch.is_main and branch.code == "PRINCIPAL"
        customer = db_session.query(Customer).filter(Customer.company_id == branch.company_id).one()
        assert customer.is_generic
        assert customer.email == "generico@minimercadolaesquina.com"

        mine = client.get(f"{API}/companies", headers=owner_headers).json()
        assert [(c["name"], c["access_level"]) for c in mine] == [("Minimercado La Esquina", AccessLevel.OWNER)]

    def test_duplicate_name(self, client, owner_headers, sample_company):
        response = client.post(f"{API}/companies", json={"name": "Supermercado Central"}, headers=owner_headers)
        assert response.status_code == 409
        assert response.json()["kind"] == "Conflict"

    def test_invalid_tax_id(self, client, owner_headers):
        response = client.post(f"{API}/companies", json={"name": "Tienda X", "tax_id": "12"}, headers=owner_headers)
        assert response.status_code == 400

    def test_requires_authentication(self, client):
        assert client.post(f"{API}/companies", json={"name": "Anónima"}).status_code == 401


class TestCompanyAccess:
    def test_employee_reads_but_cannot_update(self, client, member_factory, company_id):
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        assert client.get(f"{API}/companies/{company_id}", headers=headers).status_code == 200
        response = client.patch(f"{API}/companies/{company_id}", json={"address": "Calle 1"}, headers=headers)
        assert response.status_code == 403

    def test_administrator_updates(self, client, member_factory, company_id):
        _, headers = member_factory(AccessLevel.ADMINISTRATOR)
        response = client.patch(f"{API}/companies/{company_id}", json={"address": "Calle 10 # 5-20"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["address"] == "Calle 10 # 5-20"

    def test_only_owner_deactivates(self, client, owner_headers, member_factory, company_id):
        _, admin_headers = member_factory(AccessLevel.ADMINISTRATOR)
        assert client.delete(f"{API}/companies/{company_id}", headers=admin_headers).status_code == 403

        assert client.delete(f"{API}/companies/{company_id}", headers=owner_headers).status_code == 204
        assert client.get(f"{API}/companies", headers=owner_headers).json() == []

    def test_list_all_is_admin_only(self, db_session, client, owner_headers, sample_company):
        assert client.get(f"{API}/companies/all", headers=owner_headers).status_code == 403

        admin = make_user(db_session, "root@ally360.com", role=Role.ADMIN)
        response = client.get(f"{API}/companies/all", headers=auth_headers(admin))
        assert response.status_code == 200
        assert len(response.json()) == 1


class TestMembers:
    def test_add_member_by_email(self, db_session, client, owner_headers, company_id):
        make_user(db_session, "vendedor@supermercado.com")
        response = client.post(
            f"{API}/companies/{company_id}/members",
            json={"email": "vendedor@supermercado.com", "access_level": "supervisor"},
            headers=owner_headers,
        )
        assert response.status_code == 201
        assert response.json()["access_level"] == AccessLevel.SUPERVISOR

        again = client.post(
            f"{API}/companies/{company_id}/members",
            json={"email": "vendedor@supermercado.com"},
            headers=owner_headers,
        )
        assert again.status_code == 409

    def test_unknown_user(self, client, owner_headers, company_id):
        response = client.post(
            f"{API}/companies/{company_id}/members",
            json={"email": "nadie@correo.com"},
            headers=owner_headers,
        )
        assert response.status_code == 404

    def test_cannot_grant_own_level(self, db_session, client, member_factory, company_id):
        _, admin_headers = member_factory(AccessLevel.ADMINISTRATOR)
        make_user(db_session, "par@supermercado.com")
        response = client.post(
            f"{API}/companies/{company_id}/members",
            json={"email": "par@supermercado.com", "access_level": 40},
            headers=admin_headers,
        )
        assert response.status_code == 403

    def test_update_level_and_status(self, client, owner_headers, member_factory, company_id):
        employee, _ = member_factory(AccessLevel.EMPLOYEE)
        members = client.get(f"{API}/companies/{company_id}/members", headers=owner_headers).json()
        membership_id = next(m["id"] for m in members if m["user_id"] == str(employee.id))
        base = f"{API}/companies/{company_id}/members/{membership_id}"

        promoted = client.patch(f"{base}/access-level", json={"access_level": "AREA_MANAGER"}, headers=owner_headers)
        assert promoted.json()["access_level"] == AccessLevel.AREA_MANAGER

        suspended = client.patch(f"{base}/status", json={"status": "suspended"}, headers=owner_headers)
        assert suspended.json()["status"] == MembershipStatus.SUSPENDED.value
        assert suspended.json()["is_active"] is False

        active = client.get(
            f"{API}/companies/{company_id}/members", params={"status": "active"}, headers=owner_headers
        ).json()
        assert len(active) == 1

    def test_cannot_change_own_membership(self, client, owner, owner_headers, company_id):
        members = client.get(f"{API}/companies/{company_id}/members", headers=owner_headers).json()
        own_id = next(m["id"] for m in members if m["user_id"] == str(owner.id))

        response = client.patch(
            f"{API}/companies/{company_id}/members/{own_id}/status",
            json={"status": "inactive"},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"
