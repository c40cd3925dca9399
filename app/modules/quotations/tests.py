"""
Tests para el módulo de Cotizaciones

Cubre:
- Creación por secciones con totales recalculados
- Mutaciones de líneas y secciones (agregar, editar, eliminar, duplicar)
- Restricción de edición fuera de draft/sent
- Duplicado, eliminación, listado con conteo por estado
- Vencimiento automático (servicio y tarea de Celery)
- Estadísticas
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import StateError
from app.modules.quotations.models import Quotation, QuotationStatus
from app.modules.quotations.service import QuotationService
from app.modules.quotations.tasks import expire_quotations_task


def quotation_payload(contact_id, **overrides):
    payload = {
        "contact_id": str(contact_id),
        "sections": [
            {"name": "Salón", "lines": [
                {"product_name": "Mesa", "quantity": 2, "unit_price": 100, "discount_percent": 10, "tax_rate": 20},
            ]},
            {"name": "Cocina", "lines": [
                {"product_name": "Taburete", "quantity": 1, "unit_price": 50, "discount_percent": 0, "tax_rate": 20},
            ]},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def quotation(client, headers, contact_id):
    response = client.post("/quotations/", json=quotation_payload(contact_id), headers=headers)
    assert response.status_code == 201
    return response.json()


def set_status(client, headers, quotation_id, new_status):
    response = client.patch(f"/quotations/{quotation_id}/status", json={"status": new_status}, headers=headers)
    assert response.status_code == 200
    return response.json()


# ===== CREACIÓN Y CONSULTA =====

class TestQuotationCreation:

    def test_create_with_sections(self, quotation):
        assert quotation["number"] == f"DEV-{date.today().year}-0001"
        assert quotation["status"] == "draft"
        assert quotation["expiration_date"] == (date.today() + timedelta(days=30)).isoformat()
        assert [s["name"] for s in quotation["sections"]] == ["Salón", "Cocina"]
        assert quotation["totals"]["subtotal"] == "250.00"
        assert quotation["totals"]["discount"] == "20.00"
        assert quotation["totals"]["tax"] == "46.00"
        assert quotation["totals"]["total"] == "276.00"
        assert quotation["sections"][0]["totals"]["total"] == "216.00"
        assert quotation["sections"][0]["lines"][0]["amounts"]["tax_amount"] == "36.00"

    def test_numbers_are_sequential(self, client, headers, contact_id, quotation):
        response = client.post("/quotations/", json=quotation_payload(contact_id), headers=headers)

        assert response.json()["number"] == f"DEV-{date.today().year}-0002"

    def test_empty_quotation_has_zero_totals(self, client, headers, contact_id):
        response = client.post("/quotations/", json={"contact_id": str(contact_id)}, headers=headers)

        assert response.status_code == 201
        assert response.json()["totals"]["total"] == "0.00"

    def test_adjustments_in_totals(self, client, headers, contact_id):
        payload = quotation_payload(
            contact_id, global_discount_type="amount", global_discount_value="26", shipping_cost="30"
        )

        response = client.post("/quotations/", json=payload, headers=headers)

        assert response.json()["totals"]["total"] == "280.00"

    def test_default_tax_rate(self, client, headers, contact_id):
        payload = quotation_payload(contact_id, sections=[
            {"name": "", "lines": [{"product_name": "Servicio", "quantity": 1, "unit_price": 100}]}
        ])

        response = client.post("/quotations/", json=payload, headers=headers)

        assert response.json()["totals"]["tax"] == "20.00"

    def test_invalid_line_rejected(self, client, headers, contact_id):
        payload = quotation_payload(contact_id, sections=[
            {"name": "", "lines": [{"product_name": "X", "quantity": 1, "unit_price": 10, "discount_percent": 150}]}
        ])

        response = client.post("/quotations/", json=payload, headers=headers)

        assert response.status_code == 422

    @pytest.mark.parametrize("field,value", [
        ("unit_price", "0.004"), ("quantity", "1.0005"), ("discount_percent", "10.125"), ("tax_rate", "5.555")
    ])
    def test_line_values_beyond_stored_precision_rejected(self, client, headers, contact_id, field, value):
        line = {"product_name": "Tornillo", "quantity": 1000, "unit_price": "0.40", "tax_rate": 0}
        line[field] = value
        payload = quotation_payload(contact_id, sections=[{"name": "", "lines": [line]}])

        response = client.post("/quotations/", json=payload, headers=headers)

        assert response.status_code == 422

    def test_saved_line_matches_stateless_pricing(self, client, headers, contact_id):
        line = {"quantity": "1000", "unit_price": "0.04", "discount_percent": "12.5", "tax_rate": "5.5"}
        payload = quotation_payload(contact_id, sections=[{"name": "", "lines": [dict(line, product_name="Tornillo")]}])

        saved = client.post("/quotations/", json=payload, headers=headers).json()
        priced = client.post("/pricing/line", json=line).json()

        assert saved["totals"]["total"] == priced["total"] == "36.93"

    def test_get_not_found(self, client, headers):
        response = client.get(f"/quotations/{uuid4()}", headers=headers)

        assert response.status_code == 404

    def test_list_with_counts(self, client, headers, contact_id, quotation):
        client.post("/quotations/", json=quotation_payload(contact_id), headers=headers)
        set_status(client, headers, quotation["id"], "sent")

        data = client.get("/quotations/", headers=headers).json()
        assert data["total"] == 2
        assert data["counts_by_status"]["draft"] == 1
        assert data["counts_by_status"]["sent"] == 1

        filtered = client.get("/quotations/", params={"status": "sent"}, headers=headers).json()
        assert filtered["total"] == 1
        assert filtered["items"][0]["total_amount"] == "276.00"


# ===== LÍNEAS Y SECCIONES =====

class TestQuotationLines:

    def test_add_line_recomputes_totals(self, client, headers, quotation):
        section_id = quotation["sections"][1]["id"]

        response = client.post(
            f"/quotations/{quotation['id']}/sections/{section_id}/lines",
            json={"product_name": "Lámpara", "quantity": 1, "unit_price": "24", "tax_rate": 0},
            headers=headers
        )

        assert response.status_code == 201
        assert response.json()["totals"]["total"] == "300.00"

    def test_update_line_field(self, client, headers, quotation):
        line_id = quotation["sections"][0]["lines"][0]["id"]

        response = client.patch(
            f"/quotations/{quotation['id']}/lines/{line_id}", json={"quantity": 1}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["sections"][0]["totals"]["total"] == "108.00"
        assert response.json()["totals"]["total"] == "168.00"

    def test_update_line_beyond_stored_precision_rejected(self, client, headers, quotation):
        line_id = quotation["sections"][0]["lines"][0]["id"]

        response = client.patch(
            f"/quotations/{quotation['id']}/lines/{line_id}", json={"unit_price": "99.999"}, headers=headers
        )

        assert response.status_code == 422
        assert client.get(f"/quotations/{quotation['id']}", headers=headers).json()["totals"]["total"] == "276.00"

    def test_remove_line(self, client, headers, quotation):
        line_id = quotation["sections"][1]["lines"][0]["id"]

        response = client.delete(f"/quotations/{quotation['id']}/lines/{line_id}", headers=headers)

        assert response.status_code == 200
        assert response.json()["sections"][1]["lines"] == []
        assert response.json()["totals"]["total"] == "216.00"

    def test_duplicate_line(self, client, headers, quotation):
        line_id = quotation["sections"][0]["lines"][0]["id"]

        response = client.post(f"/quotations/{quotation['id']}/lines/{line_id}/duplicate", headers=headers)

        lines = response.json()["sections"][0]["lines"]
        assert len(lines) == 2
        assert [line["position"] for line in lines] == [0, 1]
        assert response.json()["totals"]["total"] == "492.00"

    def test_add_and_remove_section(self, client, headers, quotation):
        response = client.post(
            f"/quotations/{quotation['id']}/sections",
            json={"name": "Instalación", "lines": [{"product_name": "Montaje", "unit_price": 80, "tax_rate": 20}]},
            headers=headers
        )
        assert response.status_code == 201
        data = response.json()
        assert data["totals"]["total"] == "372.00"

        section_id = data["sections"][2]["id"]
        response = client.delete(f"/quotations/{quotation['id']}/sections/{section_id}", headers=headers)
        assert response.json()["totals"]["total"] == "276.00"

    def test_unknown_line(self, client, headers, quotation):
        response = client.patch(f"/quotations/{quotation['id']}/lines/{uuid4()}", json={"quantity": 1}, headers=headers)

        assert response.status_code == 404

    def test_accepted_quotation_is_read_only(self, client, headers, quotation):
        set_status(client, headers, quotation["id"], "accepted")
        line_id = quotation["sections"][0]["lines"][0]["id"]

        response = client.patch(
            f"/quotations/{quotation['id']}/lines/{line_id}", json={"quantity": 5}, headers=headers
        )

        assert response.status_code == 409
        assert client.get(f"/quotations/{quotation['id']}", headers=headers).json()["totals"]["total"] == "276.00"

    def test_replace_quotation(self, client, headers, contact_id, quotation):
        payload = quotation_payload(contact_id, sections=[
            {"name": "Único", "lines": [{"product_name": "Sofá", "quantity": 1, "unit_price": 500, "tax_rate": 20}]}
        ], notes="Versión 2")

        response = client.put(f"/quotations/{quotation['id']}", json=payload, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["notes"] == "Versión 2"
        assert [s["name"] for s in data["sections"]] == ["Único"]
        assert data["totals"]["total"] == "600.00"


# ===== DUPLICADO, ELIMINACIÓN, VENCIMIENTO =====

class TestQuotationLifecycle:

    def test_duplicate(self, client, headers, quotation):
        set_status(client, headers, quotation["id"], "sent")

        response = client.post(f"/quotations/{quotation['id']}/duplicate", headers=headers)

        assert response.status_code == 201
        copy = response.json()
        assert copy["id"] != quotation["id"]
        assert copy["number"] == f"DEV-{date.today().year}-0002"
        assert copy["status"] == "draft"
        assert copy["totals"]["total"] == "276.00"

    def test_delete(self, client, headers, quotation):
        response = client.delete(f"/quotations/{quotation['id']}", headers=headers)

        assert response.status_code == 200
        assert client.get(f"/quotations/{quotation['id']}", headers=headers).status_code == 404

    def test_expire_sent_quotations(self, client, headers, db_session, tenant_id, quotation):
        set_status(client, headers, quotation["id"], "sent")
        record = db_session.query(Quotation).filter(Quotation.number == quotation["number"]).first()
        record.expiration_date = date.today() - timedelta(days=1)
        db_session.commit()

        expired = QuotationService(db_session).expire_quotations(tenant_id=tenant_id)

        assert expired == 1
        db_session.refresh(record)
        assert record.status == QuotationStatus.EXPIRED

    def test_drafts_do_not_expire(self, db_session, quotation):
        record = db_session.query(Quotation).filter(Quotation.number == quotation["number"]).first()
        record.expiration_date = date.today() - timedelta(days=1)
        db_session.commit()

        assert QuotationService(db_session).expire_quotations() == 0

    def test_expire_task(self, client, headers, db_session, quotation):
        set_status(client, headers, quotation["id"], "sent")
        record = db_session.query(Quotation).filter(Quotation.number == quotation["number"]).first()
        record.expiration_date = date.today() - timedelta(days=3)
        db_session.commit()

        result = expire_quotations_task()

        assert result == {"status": "success", "expired": 1}

    def test_edit_expired_raises_state_error(self, db_session, tenant_id, quotation):
        record = db_session.query(Quotation).filter(Quotation.number == quotation["number"]).first()
        record.status = QuotationStatus.EXPIRED
        db_session.commit()

        with pytest.raises(StateError):
            QuotationService(db_session).remove_section(record.id, record.sections[0].id, tenant_id)

    def test_stats(self, client, headers, contact_id, quotation):
        second = client.post("/quotations/", json=quotation_payload(contact_id), headers=headers).json()
        set_status(client, headers, quotation["id"], "accepted")
        set_status(client, headers, second["id"], "rejected")

        stats = client.get("/quotations/stats/overview", headers=headers).json()

        assert stats["total_quotations"] == 2
        assert stats["accepted_count"] == 1
        assert stats["rejected_count"] == 1
        assert Decimal(stats["accepted_revenue"]) == Decimal("276.00")
        assert Decimal(stats["potential_revenue"]) == Decimal("552.00")
        assert Decimal(stats["average_quotation_value"]) == Decimal("276.00")
        assert Decimal(stats["conversion_rate"]) == Decimal("50.00")
