"""
Tests para el módulo de Productos

Cubre:
- Alta y consulta de productos scoped por empresa
- Materiales y acabados con recargo porcentual
- Precio personalizado en modo create y edit
- Movimientos de stock
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import NotFoundError, ValidationError
from app.modules.products.models import Material, Finish, MovementType
from app.modules.products.schemas import CreateCustomization, EditCustomization, CustomComponent
from app.modules.products.service import ProductService, StockService


@pytest.fixture
def oak(db_session, tenant_id):
    material = Material(tenant_id=tenant_id, name="Roble", upcharge_percentage=Decimal("15"))
    db_session.add(material)
    db_session.commit()
    db_session.refresh(material)
    return material


@pytest.fixture
def walnut(db_session, tenant_id):
    material = Material(tenant_id=tenant_id, name="Nogal", upcharge_percentage=Decimal("25"))
    db_session.add(material)
    db_session.commit()
    db_session.refresh(material)
    return material


@pytest.fixture
def matte(db_session, tenant_id):
    finish = Finish(tenant_id=tenant_id, name="Barniz mate", upcharge_percentage=Decimal("5"))
    db_session.add(finish)
    db_session.commit()
    db_session.refresh(finish)
    return finish


# ===== TESTS DE ENDPOINTS =====

class TestProductEndpoints:

    def test_create_and_get_product(self, client, headers):
        response = client.post("/products/", json={
            "name": "Silla", "sku": " silla-01 ", "price": "45.50", "stock_quantity": "12"
        }, headers=headers)

        assert response.status_code == 201
        product = response.json()
        assert product["sku"] == "SILLA-01"

        response = client.get(f"/products/{product['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["price"] == "45.50"

    def test_duplicate_sku_conflict(self, client, headers):
        payload = {"name": "Silla", "sku": "SILLA-01", "price": "45.50"}
        client.post("/products/", json=payload, headers=headers)

        response = client.post("/products/", json=payload, headers=headers)

        assert response.status_code == 409

    def test_products_are_scoped_by_tenant(self, client, headers, sample_product):
        other = {"X-Company-ID": str(uuid4())}

        assert client.get(f"/products/{sample_product.id}", headers=headers).status_code == 200
        assert client.get(f"/products/{sample_product.id}", headers=other).status_code == 404
        assert client.get("/products/", headers=other).json()["total"] == 0

    def test_missing_tenant_header(self, client):
        response = client.get("/products/")

        assert response.status_code == 400
        assert "X-Company-ID" in response.json()["detail"]

    def test_invalid_tenant_header(self, client):
        response = client.get("/products/", headers={"X-Company-ID": "no-es-uuid"})

        assert response.status_code == 400

    def test_list_with_search(self, client, headers, sample_product):
        response = client.get("/products/", params={"search": "roble"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_materials_and_finishes(self, client, headers):
        response = client.post("/products/materials", json={"name": "Roble", "upcharge_percentage": "15"}, headers=headers)
        assert response.status_code == 201

        response = client.post("/products/finishes", json={"name": "Laca", "upcharge_percentage": "8"}, headers=headers)
        assert response.status_code == 201

        assert [m["name"] for m in client.get("/products/materials", headers=headers).json()] == ["Roble"]
        assert [f["name"] for f in client.get("/products/finishes", headers=headers).json()] == ["Laca"]

    def test_custom_price_create_mode(self, client, headers, sample_product, oak, matte):
        response = client.post(f"/products/{sample_product.id}/custom-price", json={
            "mode": "create",
            "components": [
                {"component_name": "Tablero", "material_id": str(oak.id), "finish_id": str(matte.id)}
            ]
        }, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["base_price"] == "100.00"
        assert data["total_upcharge"] == "20.00"
        assert data["custom_price"] == "120.00"
        assert len(data["component_details"]) == 2

    def test_custom_price_unknown_mode(self, client, headers, sample_product):
        response = client.post(f"/products/{sample_product.id}/custom-price", json={
            "mode": "clone", "components": []
        }, headers=headers)

        assert response.status_code == 422

    def test_custom_price_requires_mode(self, client, headers, sample_product, oak):
        response = client.post(f"/products/{sample_product.id}/custom-price", json={
            "components": [{"component_name": "Tablero", "material_id": str(oak.id)}]
        }, headers=headers)

        assert response.status_code == 422

    def test_tenant_is_echoed_in_response(self, client, headers, tenant_id):
        response = client.get("/products/", headers=headers)

        assert response.headers["X-Tenant-ID"] == str(tenant_id)
        assert "X-Frame-Options" not in response.headers


# ===== TESTS DE SERVICIOS =====

class TestProductService:

    def test_edit_customization_replaces_by_component_name(self, db_session, tenant_id, sample_product, oak, walnut, matte):
        request = EditCustomization(
            mode="edit",
            existing=[
                CustomComponent(component_name="Tablero", material_id=oak.id),
                CustomComponent(component_name="Patas", finish_id=matte.id),
            ],
            components=[CustomComponent(component_name="Tablero", material_id=walnut.id)],
        )

        price = ProductService(db_session).price_customization(sample_product.id, request, tenant_id)

        # Nogal 25% + mate 5% sobre 100
        assert price.custom_price == Decimal("130.00")
        assert [d["name"] for d in price.component_details] == ["Nogal", "Barniz mate"]

    def test_unknown_material(self, db_session, tenant_id, sample_product):
        request = CreateCustomization(mode="create", components=[CustomComponent(component_name="Tablero", material_id=uuid4())])

        with pytest.raises(NotFoundError):
            ProductService(db_session).price_customization(sample_product.id, request, tenant_id)

    def test_component_requires_material_or_finish(self):
        with pytest.raises(ValueError):
            CustomComponent(component_name="Tablero")

    def test_stock_movements(self, db_session, tenant_id, sample_product):
        stock = StockService(db_session)

        movement = stock.move(sample_product.id, Decimal("3"), MovementType.OUT, tenant_id, "Sales Order", "CMD-TEST")
        db_session.commit()

        assert movement.quantity == Decimal("-3")
        assert movement.quantity_before == Decimal("10")
        assert movement.quantity_after == Decimal("7")
        db_session.refresh(sample_product)
        assert sample_product.stock_quantity == Decimal("7")

    def test_negative_movement_rejected(self, db_session, tenant_id, sample_product):
        with pytest.raises(ValidationError):
            StockService(db_session).move(sample_product.id, Decimal("-1"), MovementType.IN, tenant_id, "Ajuste", None)
