"""
Tests para Clientes

- CRUD por empresa con normalización de teléfono e identificación
- Cliente genérico: siempre existe y no se puede desactivar ni eliminar
- Un cliente con facturas no se elimina
"""
from app.modules.auth.access import AccessLevel
from conftest import API


def customers_url(company_id) -> str:
    return f"{API}/companies/{company_id}/customers"


class TestCustomers:
    def test_create_normalizes_fields(self, client, owner_headers, company_id):
        response = client.post(
            customers_url(company_id),
            json={"first_name": "Carlos", "last_name": "Ruiz", "phone": "(601) 555-1234", "tax_id": "10.203.040"},
            headers=owner_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["phone"] == "6015551234"
        assert data["tax_id"] == "10203040"
        assert data["full_name"] == "Carlos Ruiz"
        assert data["is_generic"] is False

    def test_list_and_search(self, client, owner_headers, company_id):
        client.post(customers_url(company_id), json={"first_name": "Marta", "email": "marta@correo.com"}, headers=owner_headers)

        everyone = client.get(customers_url(company_id), headers=owner_headers).json()
        assert everyone["total"] == 2
        assert everyone["data"][0]["is_generic"] is True

        found = client.get(customers_url(company_id), params={"search": "marta"}, headers=owner_headers).json()
        assert found["total"] == 1

    def test_generic_customer(self, client, owner_headers, company_id, customer_id):
        response = client.get(f"{customers_url(company_id)}/generic", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["id"] == str(customer_id)

        deactivate = client.patch(f"{customers_url(company_id)}/{customer_id}", json={"is_active": False}, headers=owner_headers)
        assert deactivate.status_code == 400
        assert deactivate.json()["kind"] == "InvalidState"

        delete = client.delete(f"{customers_url(company_id)}/{customer_id}", headers=owner_headers)
        assert delete.status_code == 400

    def test_customer_with_invoices_is_kept(self, client, owner_headers, company_id, branch_id, sample_products):
        product_a, _ = sample_products
        customer = client.post(customers_url(company_id), json={"first_name": "Luis"}, headers=owner_headers).json()
        client.post(
            f"{API}/companies/{company_id}/invoices",
            json={
                "branch_id": str(branch_id),
                "customer_id": customer["id"],
                "items": [{"product_id": str(product_a.id), "quantity": 1}],
            },
            headers=owner_headers,
        )

        response = client.delete(f"{customers_url(company_id)}/{customer['id']}", headers=owner_headers)
        assert response.status_code == 409

    def test_delete_customer(self, client, owner_headers, company_id):
        customer = client.post(customers_url(company_id), json={"first_name": "Temporal"}, headers=owner_headers).json()
        assert client.delete(f"{customers_url(company_id)}/{customer['id']}", headers=owner_headers).status_code == 204
        assert client.get(f"{customers_url(company_id)}/{customer['id']}", headers=owner_headers).status_code == 404

    def test_only_area_manager_deletes(self, client, owner_headers, member_factory, company_id):
        customer = client.post(customers_url(company_id), json={"first_name": "Pedro"}, headers=owner_headers).json()
        _, employee_headers = member_factory(AccessLevel.EMPLOYEE)
        response = client.delete(f"{customers_url(company_id)}/{customer['id']}", headers=employee_headers)
        assert response.status_code == 403
