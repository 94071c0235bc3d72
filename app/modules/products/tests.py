"""
Tests para Productos

- SKU normalizado y único por empresa (incluye eliminados)
- Niveles de stock coherentes
- Borrado lógico y restauración
"""
from app.modules.auth.access import AccessLevel
from conftest import API


def products_url(company_id) -> str:
    return f"{API}/companies/{company_id}/products"


class TestProducts:
    def test_create_product(self, client, owner_headers, company_id):
        response = client.post(
            products_url(company_id),
            json={"name": "Aceite 1L", "sku": " ace-1l ", "price": "12500.00", "min_stock_level": 5},
            headers=owner_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["sku"] == "ACE-1L"
        assert data["track_inventory"] is True
        assert data["unit"] == "unidad"

    def test_duplicate_sku(self, client, owner_headers, company_id, sample_products):
        response = client.post(
            products_url(company_id),
            json={"name": "Otro arroz", "sku": "arroz-500", "price": "1.00"},
            headers=owner_headers,
        )
        assert response.status_code == 409

    def test_stock_levels_must_be_coherent(self, client, owner_headers, company_id):
        response = client.post(
            products_url(company_id),
            json={"name": "Sal", "sku": "SAL", "price": "1.00", "min_stock_level": 10, "max_stock_level": 5},
            headers=owner_headers,
        )
        assert response.status_code == 400

    def test_search(self, client, owner_headers, company_id, sample_products):
        found = client.get(products_url(company_id), params={"search": "frijol"}, headers=owner_headers).json()
        assert found["total"] == 1
        assert found["data"][0]["sku"] == "FRIJOL-500"

    def test_soft_delete_and_restore(self, client, owner_headers, company_id, sample_products):
        product_a, _ = sample_products
        url = f"{products_url(company_id)}/{product_a.id}"

        assert client.delete(url, headers=owner_headers).status_code == 204
        assert client.get(url, headers=owner_headers).status_code == 404
        assert client.get(products_url(company_id), headers=owner_headers).json()["total"] == 1

        restored = client.post(f"{url}/restore", headers=owner_headers)
        assert restored.status_code == 200
        assert client.get(url, headers=owner_headers).status_code == 200

        again = client.post(f"{url}/restore", headers=owner_headers)
        assert again.status_code == 400

    def test_update_product(self, client, owner_headers, company_id, sample_products):
        product_a, _ = sample_products
        response = client.patch(
            f"{products_url(company_id)}/{product_a.id}",
            json={"price": "110.00", "max_stock_level": 1},
            headers=owner_headers,
        )
        assert response.status_code == 400

        response = client.patch(
            f"{products_url(company_id)}/{product_a.id}", json={"price": "110.00"}, headers=owner_headers
        )
        assert response.status_code == 200

    def test_employee_reads_only(self, client, member_factory, company_id, sample_products):
        _, headers = member_factory(AccessLevel.EMPLOYEE)
        assert client.get(products_url(company_id), headers=headers).status_code == 200
        response = client.post(products_url(company_id), json={"name": "X", "sku": "X1", "price": "1"}, headers=headers)
        assert response.status_code == 403
