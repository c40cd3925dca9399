"""
Tests para el cálculo de líneas, documentos y precios personalizados

Cubre:
- Escenarios de referencia (línea con descuento e IVA, documento de dos líneas)
- Propiedades: cantidad o precio en cero, total = base + impuesto, idempotencia
- Validaciones de rango
- Descuento global y costos adicionales
- Endpoints públicos /pricing
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ValidationError
from app.modules.pricing.calculator import (
    LineItem, Section, DocumentAdjustments, DiscountType, ComponentUpcharge,
    calculate_line, aggregate_document, calculate_custom_price, quantize_money
)


def line(quantity, unit_price, discount_percent="0", tax_rate="0"):
    return LineItem(
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        discount_percent=Decimal(str(discount_percent)),
        tax_rate=Decimal(str(tax_rate)),
    )


# ===== TESTS DE LÍNEA =====

class TestCalculateLine:

    def test_line_with_discount_and_tax(self):
        """2 x 100 con 10% de descuento y 20% de IVA"""
        amounts = calculate_line(line(2, 100, 10, 20))

        assert amounts.gross_amount == Decimal("200.00")
        assert amounts.discount_amount == Decimal("20.00")
        assert amounts.taxable_amount == Decimal("180.00")
        assert amounts.tax_amount == Decimal("36.00")
        assert amounts.total == Decimal("216.00")

    def test_line_without_discount(self):
        amounts = calculate_line(line(1, 50, 0, 20))

        assert amounts.tax_amount == Decimal("10.00")
        assert amounts.total == Decimal("60.00")

    @pytest.mark.parametrize("quantity,unit_price", [(0, 100), (3, 0), (0, 0)])
    def test_zero_quantity_or_price_gives_zero(self, quantity, unit_price):
        amounts = calculate_line(line(quantity, unit_price, 15, 20))

        assert amounts.discount_amount == Decimal("0.00")
        assert amounts.tax_amount == Decimal("0.00")
        assert amounts.total == Decimal("0.00")

    def test_total_is_taxable_plus_tax(self):
        amounts = calculate_line(line("3.5", "19.99", "7.5", "5.5"))

        assert amounts.total == amounts.taxable_amount + amounts.tax_amount
        assert amounts.taxable_amount == quantize_money(amounts.gross_amount - amounts.discount_amount)

    def test_full_discount(self):
        amounts = calculate_line(line(4, 25, 100, 20))

        assert amounts.taxable_amount == Decimal("0.00")
        assert amounts.total == Decimal("0.00")

    def test_rounding_half_up_at_output(self):
        """0.125 se redondea a 0.13 (redondeo comercial)"""
        amounts = calculate_line(line(1, "0.125"))

        assert amounts.total == Decimal("0.13")

    def test_accepts_dict_and_objects(self):
        from_dict = calculate_line({"quantity": 2, "unit_price": "100", "discount_percent": 10, "tax_rate": 20})

        assert from_dict.total == Decimal("216.00")

    @pytest.mark.parametrize("discount", ["-1", "100.01", "150"])
    def test_discount_out_of_range(self, discount):
        with pytest.raises(ValidationError) as exc:
            calculate_line(line(1, 10, discount, 0))
        assert exc.value.message == "discount out of range"

    def test_negative_tax_rate(self):
        with pytest.raises(ValidationError):
            calculate_line(line(1, 10, 0, -5))

    def test_negative_quantity_and_price(self):
        with pytest.raises(ValidationError):
            calculate_line(line(-1, 10))
        with pytest.raises(ValidationError):
            calculate_line(line(1, -10))

    def test_invalid_number(self):
        with pytest.raises(ValidationError):
            calculate_line({"quantity": "abc", "unit_price": 10})

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", float("nan"), Decimal("sNaN")])
    def test_non_finite_numbers_rejected(self, value):
        with pytest.raises(ValidationError):
            calculate_line({"quantity": value, "unit_price": "1"})
        with pytest.raises(ValidationError):
            calculate_line({"quantity": 1, "unit_price": value})
        with pytest.raises(ValidationError):
            calculate_line(LineItem(quantity=Decimal("1"), unit_price=Decimal("1"), tax_rate=Decimal(str(value))))


# ===== TESTS DE DOCUMENTO =====

class TestAggregateDocument:

    def test_two_line_document(self):
        section = Section(name="Salón", items=(line(2, 100, 10, 20), line(1, 50, 0, 20)))

        totals = aggregate_document([section])

        assert totals.subtotal == Decimal("250.00")
        assert totals.discount == Decimal("20.00")
        assert totals.tax == Decimal("46.00")
        assert totals.total == Decimal("276.00")

    def test_empty_document(self):
        assert aggregate_document([]).total == Decimal("0.00")
        assert aggregate_document([Section(name="Vacía")]).total == Decimal("0.00")

    def test_sections_are_summed(self):
        first = Section(name="A", items=(line(2, 100, 10, 20),))
        second = Section(name="B", items=(line(1, 50, 0, 20),))

        assert aggregate_document([first, second]).total == Decimal("276.00")

    def test_total_matches_sum_of_lines(self):
        items = (line(3, "33.33", "12.5", "20"), line(7, "1.99", 0, "5.5"), line("0.333", "10", 0, 20))
        totals = aggregate_document([Section(items=items)])

        line_sum = sum(calculate_line(item).total for item in items)
        assert abs(totals.total - line_sum) <= Decimal("0.01") * len(items)

    def test_idempotent(self):
        section = Section(items=(line(3, "33.33", "12.5", "20"),))

        assert aggregate_document([section]) == aggregate_document([section])

    def test_invalid_line_propagates(self):
        with pytest.raises(ValidationError):
            aggregate_document([[line(1, 10, 120, 0)]])

    def test_global_discount_percent(self):
        section = Section(items=(line(2, 100, 10, 20), line(1, 50, 0, 20)))
        adjustments = DocumentAdjustments(
            global_discount_type=DiscountType.PERCENT,
            global_discount_value=Decimal("10"),
        )

        totals = aggregate_document([section], adjustments)

        # 10% sobre el neto (250 - 20)
        assert totals.global_discount == Decimal("23.00")
        assert totals.total == Decimal("253.00")

    def test_global_discount_amount_and_costs(self):
        section = Section(items=(line(2, 100, 10, 20),))
        adjustments = DocumentAdjustments(
            global_discount_type=DiscountType.AMOUNT,
            global_discount_value=Decimal("16"),
            shipping_cost=Decimal("25"),
            installation_cost=Decimal("40"),
        )

        totals = aggregate_document([section], adjustments)

        assert totals.total == Decimal("265.00")
        assert totals.shipping_cost == Decimal("25.00")
        assert totals.installation_cost == Decimal("40.00")

    def test_global_percent_over_100_rejected(self):
        adjustments = DocumentAdjustments(global_discount_value=Decimal("101"))

        with pytest.raises(ValidationError):
            aggregate_document([[line(1, 10)]], adjustments)

    def test_negative_costs_rejected(self):
        adjustments = DocumentAdjustments(shipping_cost=Decimal("-1"))

        with pytest.raises(ValidationError):
            aggregate_document([[line(1, 10)]], adjustments)

    @pytest.mark.parametrize("value", ["NaN", "Infinity"])
    def test_non_finite_adjustments_rejected(self, value):
        adjustments = DocumentAdjustments(shipping_cost=value)

        with pytest.raises(ValidationError):
            aggregate_document([[line(1, 10)]], adjustments)


# ===== TESTS DE PRECIO PERSONALIZADO =====

class TestCustomPrice:

    def test_upcharges_are_applied_on_base_price(self):
        upcharges = [
            ComponentUpcharge("Tablero", "material", "Roble", Decimal("15")),
            ComponentUpcharge("Tablero", "finish", "Barniz mate", Decimal("5")),
        ]

        price = calculate_custom_price(Decimal("200"), upcharges)

        assert price.total_upcharge == Decimal("40.00")
        assert price.custom_price == Decimal("240.00")
        assert [d["upcharge_amount"] for d in price.component_details] == [Decimal("30.00"), Decimal("10.00")]

    def test_without_upcharges(self):
        price = calculate_custom_price("99.90", [])

        assert price.custom_price == Decimal("99.90")
        assert price.component_details == []

    def test_negative_upcharge_rejected(self):
        with pytest.raises(ValidationError):
            calculate_custom_price(100, [ComponentUpcharge("Pata", "material", "X", Decimal("-3"))])


# ===== TESTS DE ENDPOINTS =====

class TestPricingEndpoints:

    def test_price_line(self, client):
        response = client.post("/pricing/line", json={
            "quantity": "2", "unit_price": "100", "discount_percent": "10", "tax_rate": "20"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["discount_amount"] == "20.00"
        assert data["taxable_amount"] == "180.00"
        assert data["tax_amount"] == "36.00"
        assert data["total"] == "216.00"

    def test_price_line_discount_out_of_range(self, client):
        response = client.post("/pricing/line", json={"quantity": 1, "unit_price": 10, "discount_percent": 120})

        assert response.status_code == 422

    def test_price_document(self, client):
        response = client.post("/pricing/document", json={
            "sections": [
                {"name": "Salón", "items": [
                    {"quantity": 2, "unit_price": 100, "discount_percent": 10, "tax_rate": 20},
                ]},
                {"name": "Cocina", "items": [
                    {"quantity": 1, "unit_price": 50, "discount_percent": 0, "tax_rate": 20},
                ]},
            ]
        })

        assert response.status_code == 200
        data = response.json()
        assert [s["total"] for s in data["sections"]] == ["216.00", "60.00"]
        assert data["totals"]["subtotal"] == "250.00"
        assert data["totals"]["discount"] == "20.00"
        assert data["totals"]["tax"] == "46.00"
        assert data["totals"]["total"] == "276.00"

    def test_pricing_does_not_require_tenant(self, client):
        response = client.post("/pricing/document", json={"sections": []})

        assert response.status_code == 200
        assert response.json()["totals"]["total"] == "0.00"
