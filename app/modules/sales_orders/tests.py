"""
Tests para el módulo de Pedidos

Cubre:
- Ledger de pagos en memoria (alta, edición, baja, saldo, estados terminales)
- Conversión de cotizaciones aceptadas con control de stock
- Anulación y eliminación con reposición de stock
- API de pagos con control de versión
- Estadísticas
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from app.modules.products.models import InventoryMovement, Product
from app.modules.sales_orders import ledger
from app.modules.sales_orders.ledger import LedgerDocument
from app.modules.sales_orders.models import PaymentMethod, SalesOrderStatus


def open_document(total="276.00"):
    return LedgerDocument(status=SalesOrderStatus.EN_COURS, total_amount=Decimal(total))


# ===== TESTS DEL LEDGER =====

class TestPaymentLedger:

    def test_partial_payments_balance(self):
        document = open_document()
        ledger.add_payment(document, Decimal("100.00"), PaymentMethod.CASH, date(2024, 1, 10))
        ledger.add_payment(document, Decimal("76.00"), PaymentMethod.CARD, date(2024, 1, 20))

        balance = ledger.compute_balance(document)

        assert balance.total_paid == Decimal("176.00")
        assert balance.outstanding == Decimal("100.00")
        assert balance.is_overpaid is False

    def test_paying_outstanding_settles_document(self):
        document = open_document()
        ledger.add_payment(document, "100", "cash")

        outstanding = ledger.compute_balance(document).outstanding
        ledger.add_payment(document, outstanding, "bank_transfer")

        assert ledger.compute_balance(document).outstanding == Decimal("0.00")

    def test_overpayment_is_negative_outstanding(self):
        document = open_document("50.00")
        ledger.add_payment(document, "80", "check")

        balance = ledger.compute_balance(document)

        assert balance.outstanding == Decimal("-30.00")
        assert balance.is_overpaid is True

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "0.001", "12.345", "NaN", "Infinity", Decimal("-Infinity")])
    def test_invalid_amount(self, amount):
        document = open_document()

        with pytest.raises(ValidationError):
            ledger.add_payment(document, amount, "cash")
        assert document.payments == []

    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            ledger.add_payment(open_document(), "10", "bitcoin")

    def test_add_payment_on_finalized_document(self):
        document = LedgerDocument(status="termine", total_amount=Decimal("100"))

        with pytest.raises(StateError):
            ledger.add_payment(document, "10", "cash")
        # StateError también es un ValidationError
        with pytest.raises(ValidationError):
            ledger.add_payment(document, "10", "cash")
        assert document.payments == []

    def test_delete_payment_on_finalized_document(self):
        document = open_document()
        payment = ledger.add_payment(document, "100", "cash")
        document.status = SalesOrderStatus.TERMINE

        with pytest.raises(StateError):
            ledger.delete_payment(document, payment.id)
        assert document.payments == [payment]

    def test_update_payment(self):
        document = open_document()
        payment = ledger.add_payment(document, "100", "cash")

        ledger.update_payment(document, payment.id, {"amount": "120", "date": date(2024, 2, 1), "notes": "Ajuste"})

        assert payment.amount == Decimal("120")
        assert payment.payment_date == date(2024, 2, 1)
        assert ledger.compute_balance(document).outstanding == Decimal("156.00")

    def test_update_with_invalid_amount_leaves_payment_unchanged(self):
        document = open_document()
        payment = ledger.add_payment(document, "100", "cash")

        with pytest.raises(ValidationError):
            ledger.update_payment(document, payment.id, {"amount": "0", "notes": "No aplica"})
        assert payment.amount == Decimal("100")
        assert payment.notes is None

    def test_update_on_cancelled_document(self):
        document = open_document()
        payment = ledger.add_payment(document, "100", "cash")
        document.status = "annule"

        with pytest.raises(StateError):
            ledger.update_payment(document, payment.id, {"amount": "50"})

    def test_unknown_payment(self):
        with pytest.raises(NotFoundError):
            ledger.delete_payment(open_document(), uuid4())
        with pytest.raises(NotFoundError):
            ledger.update_payment(open_document(), uuid4(), {"amount": "1"})

    def test_version_conflict(self):
        document = open_document()
        ledger.add_payment(document, "10", "cash", expected_version=0)
        assert document.payments_version == 1

        with pytest.raises(ConflictError):
            ledger.add_payment(document, "10", "cash", expected_version=0)
        assert len(document.payments) == 1


# ===== FIXTURES DE PEDIDOS =====

@pytest.fixture
def accepted_quotation(client, headers, contact_id, sample_product):
    """Cotización aceptada: 2 mesas con stock + 1 servicio sin producto (total 276.00)"""
    response = client.post("/quotations/", json={
        "contact_id": str(contact_id),
        "sections": [
            {"name": "Muebles", "lines": [
                {"product_id": str(sample_product.id), "product_name": "Mesa de roble",
                 "quantity": 2, "unit_price": 100, "discount_percent": 10, "tax_rate": 20},
            ]},
            {"name": "Servicios", "lines": [
                {"product_name": "Entrega", "quantity": 1, "unit_price": 50, "tax_rate": 20},
            ]},
        ],
    }, headers=headers)
    quotation = response.json()
    client.patch(f"/quotations/{quotation['id']}/status", json={"status": "accepted"}, headers=headers)
    return quotation


@pytest.fixture
def sales_order(client, headers, accepted_quotation):
    response = client.post("/sales-orders/", json={"quotation_id": accepted_quotation["id"]}, headers=headers)
    assert response.status_code == 201
    return response.json()


def stock_of(db_session, product):
    db_session.expire_all()
    return db_session.get(Product, product.id).stock_quantity


def finish_order(client, headers, order_id):
    response = client.patch(f"/sales-orders/{order_id}/status", json={"status": "termine"}, headers=headers)
    assert response.status_code == 200


# ===== CONVERSIÓN =====

class TestSalesOrderCreation:

    def test_create_from_accepted_quotation(self, client, headers, db_session, sample_product, accepted_quotation, sales_order):
        assert sales_order["number"] == f"CMD-{date.today().year}-0001"
        assert sales_order["status"] == "en_cours"
        assert sales_order["totals"]["total"] == "276.00"
        assert [s["name"] for s in sales_order["sections"]] == ["Muebles", "Servicios"]
        assert sales_order["payment_terms"] == "30 jours"
        assert sales_order["balance"]["outstanding"] == "276.00"

        assert stock_of(db_session, sample_product) == Decimal("8")
        movement = db_session.query(InventoryMovement).one()
        assert movement.quantity == Decimal("-2")
        assert movement.reference == sales_order["number"]

        quotation = client.get(f"/quotations/{accepted_quotation['id']}", headers=headers).json()
        assert quotation["sales_order_id"] == sales_order["id"]

    def test_quotation_cannot_be_converted_twice(self, client, headers, accepted_quotation, sales_order):
        response = client.post("/sales-orders/", json={"quotation_id": accepted_quotation["id"]}, headers=headers)

        assert response.status_code == 409

    def test_only_accepted_quotations(self, client, headers, contact_id):
        quotation = client.post("/quotations/", json={"contact_id": str(contact_id)}, headers=headers).json()

        response = client.post("/sales-orders/", json={"quotation_id": quotation["id"]}, headers=headers)

        assert response.status_code == 409

    def test_insufficient_stock(self, client, headers, db_session, sample_product, accepted_quotation):
        product = db_session.get(Product, sample_product.id)
        product.stock_quantity = Decimal("1")
        db_session.commit()

        response = client.post("/sales-orders/", json={"quotation_id": accepted_quotation["id"]}, headers=headers)

        assert response.status_code == 400
        assert "Mesa de roble" in response.json()["detail"]
        assert stock_of(db_session, sample_product) == Decimal("1")
        assert client.get("/sales-orders/", headers=headers).json()["total"] == 0

    def test_down_payment_is_first_payment(self, client, headers, accepted_quotation):
        response = client.post("/sales-orders/", json={
            "quotation_id": accepted_quotation["id"],
            "down_payment_amount": "100.00",
            "down_payment_method": "bank_transfer",
            "down_payment_date": "2024-03-01",
        }, headers=headers)

        order = response.json()
        assert len(order["payments"]) == 1
        assert order["payments"][0]["date"] == "2024-03-01"
        assert order["balance"]["total_paid"] == "100.00"
        assert order["balance"]["outstanding"] == "176.00"
        assert order["payments_version"] == 1

    def test_down_payment_requires_method(self, client, headers, accepted_quotation):
        response = client.post("/sales-orders/", json={
            "quotation_id": accepted_quotation["id"], "down_payment_amount": "50"
        }, headers=headers)

        assert response.status_code == 400

    def test_unknown_quotation(self, client, headers):
        response = client.post("/sales-orders/", json={"quotation_id": str(uuid4())}, headers=headers)

        assert response.status_code == 404


# ===== ESTADOS =====

class TestSalesOrderStatus:

    def test_status_flow(self, client, headers, sales_order):
        response = client.patch(f"/sales-orders/{sales_order['id']}/status", json={
            "status": "expedie", "shipped_date": "2024-05-02", "tracking_number": "TRK-1"
        }, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "expedie"
        assert response.json()["tracking_number"] == "TRK-1"

    def test_terminal_status_cannot_be_left(self, client, headers, sales_order):
        finish_order(client, headers, sales_order["id"])

        response = client.patch(f"/sales-orders/{sales_order['id']}/status", json={"status": "livre"}, headers=headers)

        assert response.status_code == 409

    def test_cancel_restores_stock(self, client, headers, db_session, sample_product, sales_order):
        response = client.post(f"/sales-orders/{sales_order['id']}/cancel", headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "annule"
        assert stock_of(db_session, sample_product) == Decimal("10")
        movements = db_session.query(InventoryMovement).order_by(InventoryMovement.quantity).all()
        assert [m.quantity for m in movements] == [Decimal("-2"), Decimal("2")]

        response = client.post(f"/sales-orders/{sales_order['id']}/cancel", headers=headers)
        assert response.status_code == 409

    def test_cancel_completed_order(self, client, headers, sales_order):
        finish_order(client, headers, sales_order["id"])

        response = client.post(f"/sales-orders/{sales_order['id']}/cancel", headers=headers)

        assert response.status_code == 409

    def test_delete_restores_stock_and_frees_quotation(self, client, headers, db_session, sample_product,
                                                       accepted_quotation, sales_order):
        response = client.delete(f"/sales-orders/{sales_order['id']}", headers=headers)

        assert response.status_code == 200
        assert stock_of(db_session, sample_product) == Decimal("10")
        assert client.get(f"/sales-orders/{sales_order['id']}", headers=headers).status_code == 404
        quotation = client.get(f"/quotations/{accepted_quotation['id']}", headers=headers).json()
        assert quotation["sales_order_id"] is None

    def test_delete_cancelled_order_does_not_restore_twice(self, client, headers, db_session, sample_product, sales_order):
        client.post(f"/sales-orders/{sales_order['id']}/cancel", headers=headers)

        client.delete(f"/sales-orders/{sales_order['id']}", headers=headers)

        assert stock_of(db_session, sample_product) == Decimal("10")


# ===== PAGOS =====

class TestSalesOrderPayments:

    def test_partial_payments(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"

        first = client.post(url, json={"amount": "100.00", "method": "cash", "date": "2024-01-10"}, headers=headers)
        second = client.post(url, json={"amount": "76.00", "method": "card", "date": "2024-01-20", "notes": "Saldo parcial"}, headers=headers)

        assert first.status_code == 201
        assert first.json()["date"] == "2024-01-10"
        assert second.json()["notes"] == "Saldo parcial"

        balance = client.get(f"/sales-orders/{sales_order['id']}/balance", headers=headers).json()
        assert balance["total"] == "276.00"
        assert balance["total_paid"] == "176.00"
        assert balance["outstanding"] == "100.00"

    def test_zero_amount_rejected(self, client, headers, sales_order):
        response = client.post(
            f"/sales-orders/{sales_order['id']}/payments", json={"amount": "0", "method": "cash"}, headers=headers
        )

        assert response.status_code == 400

    def test_sub_cent_amount_rejected(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"

        response = client.post(url, json={"amount": "0.001", "method": "cash"}, headers=headers)

        assert response.status_code == 422
        payments = client.get(url, headers=headers).json()
        assert payments["payments"] == []
        assert payments["payments_version"] == 0

    def test_update_with_sub_cent_amount_rejected(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"
        payment = client.post(url, json={"amount": "100", "method": "cash"}, headers=headers).json()

        response = client.patch(f"{url}/{payment['id']}", json={"amount": "99.999"}, headers=headers)

        assert response.status_code == 422
        assert client.get(url, headers=headers).json()["payments"][0]["amount"] == "100.00"

    def test_update_and_delete_payment(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"
        payment = client.post(url, json={"amount": "100", "method": "cash"}, headers=headers).json()

        response = client.patch(f"{url}/{payment['id']}", json={"amount": "150", "method": "check"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["amount"] == "150.00"
        assert response.json()["method"] == "check"

        response = client.delete(f"{url}/{payment['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["payments"] == []
        assert response.json()["balance"]["outstanding"] == "276.00"
        assert response.json()["payments_version"] == 3

    def test_payments_read_only_when_finished(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"
        payment = client.post(url, json={"amount": "100", "method": "cash"}, headers=headers).json()
        finish_order(client, headers, sales_order["id"])

        assert client.delete(f"{url}/{payment['id']}", headers=headers).status_code == 409
        assert client.patch(f"{url}/{payment['id']}", json={"amount": "1"}, headers=headers).status_code == 409
        assert client.post(url, json={"amount": "10", "method": "cash"}, headers=headers).status_code == 409

        payments = client.get(url, headers=headers).json()
        assert len(payments["payments"]) == 1
        assert payments["balance"]["total_paid"] == "100.00"

    def test_stale_version_conflict(self, client, headers, sales_order):
        url = f"/sales-orders/{sales_order['id']}/payments"
        client.post(url, json={"amount": "10", "method": "cash", "expected_version": 0}, headers=headers)

        response = client.post(url, json={"amount": "10", "method": "cash", "expected_version": 0}, headers=headers)

        assert response.status_code == 409
        assert len(client.get(url, headers=headers).json()["payments"]) == 1

    def test_unknown_payment(self, client, headers, sales_order):
        response = client.delete(f"/sales-orders/{sales_order['id']}/payments/{uuid4()}", headers=headers)

        assert response.status_code == 404


# ===== ESTADÍSTICAS =====

class TestSalesOrderStats:

    def test_stats(self, client, headers, sales_order):
        stats = client.get("/sales-orders/stats/overview", headers=headers).json()

        assert stats["total_orders"] == 1
        assert stats["in_progress_count"] == 1
        assert Decimal(stats["active_revenue"]) == Decimal("276.00")
        assert Decimal(stats["completed_revenue"]) == Decimal("0")

    def test_list_filters(self, client, headers, sales_order):
        assert client.get("/sales-orders/", params={"status": "en_cours"}, headers=headers).json()["total"] == 1
        assert client.get("/sales-orders/", params={"status": "livre"}, headers=headers).json()["total"] == 0
