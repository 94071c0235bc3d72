"""
Tests para Sedes

- Código único por empresa y una sola sede principal
- Encargado: debe ser miembro activo
- Eliminación bloqueada por historial o por ser la principal con otras sedes
"""
from app.modules.auth.access import AccessLevel
from conftest import API, add_stock, make_user


def branches_url(company_id) -> str:
    return f"{API}/companies/{company_id}/branches"


class TestBranches:
    def test_company_starts_with_main_branch(self, client, owner_headers, company_id, branch_id):
        data = client.get(branches_url(company_id), headers=owner_headers).json()
        assert data["total"] == 1
        assert data["data"][0]["id"] == str(branch_id)
        assert data["data"][0]["is_main"] is True

    def test_create_and_duplicate_code(self, client, owner_headers, company_id):
        payload = {"name": "Sede Norte", "code": "bog-01"}
        created = client.post(branches_url(company_id), json=payload, headers=owner_headers)
        assert created.status_code == 201
        assert created.json()["code"] == "BOG-01"
        assert created.json()["is_main"] is False

        duplicate = client.post(branches_url(company_id), json=payload, headers=owner_headers)
        assert duplicate.status_code == 409

    def test_new_main_branch_replaces_previous(self, client, owner_headers, company_id, branch_id):
        created = client.post(
            branches_url(company_id),
            json={"name": "Sede Centro", "code": "CENTRO", "is_main": True},
            headers=owner_headers,
        ).json()

        main = client.get(branches_url(company_id), params={"limit": 10}, headers=owner_headers).json()["data"]
        assert [b["id"] for b in main if b["is_main"]] == [created["id"]]

    def test_main_branch_cannot_be_deactivated(self, client, owner_headers, company_id, branch_id):
        response = client.patch(f"{branches_url(company_id)}/{branch_id}", json={"is_active": False}, headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidState"

    def test_assign_manager_must_be_member(self, db_session, client, owner, owner_headers, company_id, branch_id):
        outsider = make_user(db_session, "externo@correo.com")
        url = f"{branches_url(company_id)}/{branch_id}/manager"

        rejected = client.patch(url, json={"manager_id": str(outsider.id)}, headers=owner_headers)
        assert rejected.status_code == 400

        assigned = client.patch(url, json={"manager_id": str(owner.id)}, headers=owner_headers)
        assert assigned.status_code == 200
        assert assigned.json()["manager_id"] == str(owner.id)

    def test_delete_rules(self, db_session, client, owner, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        secondary = client.post(
            branches_url(company_id), json={"name": "Sede Sur", "code": "SUR"}, headers=owner_headers
        ).json()

        main_delete = client.delete(f"{branches_url(company_id)}/{branch_id}", headers=owner_headers)
        assert main_delete.status_code == 400

        add_stock(db_session, company_id, secondary["id"], product_a.id, 3, owner.id)
        with_history = client.delete(f"{branches_url(company_id)}/{secondary['id']}", headers=owner_headers)
        assert with_history.status_code == 409

        empty = client.post(
            branches_url(company_id), json={"name": "Sede Vacía", "code": "VACIA"}, headers=owner_headers
        ).json()
        assert client.delete(f"{branches_url(company_id)}/{empty['id']}", headers=owner_headers).status_code == 204

    def test_employee_cannot_create(self, client, member_factory, company_id):
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        response = client.post(branches_url(company_id), json={"name": "Sede X", "code": "X1"}, headers=headers)
        assert response.status_code == 403
