"""
Cálculo de precios de líneas y documentos (cotizaciones y pedidos).

Todas las operaciones son funciones puras sobre Decimal: no guardan estado y
se pueden invocar cada vez que cambia una línea o una sección. La precisión
completa se mantiene durante el cálculo y el redondeo a 2 decimales
(ROUND_HALF_UP) solo se aplica en los valores de salida.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.common.exceptions import ValidationError

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


class DiscountType(str, Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Convertir un valor numérico (int, float, str, Decimal) a Decimal exacto"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() evita arrastrar la representación binaria de los float
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} is not a valid number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} is not a valid number")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Redondear a precisión de moneda (2 decimales, redondeo comercial)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItem:
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = ZERO
    tax_rate: Decimal = ZERO

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            quantity=to_decimal(data.get("quantity"), "quantity"),
            unit_price=to_decimal(data.get("unit_price"), "unit_price"),
            discount_percent=to_decimal(data.get("discount_percent"), "discount_percent"),
            tax_rate=to_decimal(data.get("tax_rate"), "tax_rate"),
        )


@dataclass(frozen=True)
class LineAmounts:
    gross_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Section:
    """Agrupación nombrada y ordenada de líneas"""
    name: str = ""
    items: Tuple[LineItem, ...] = ()

    def __iter__(self):
        return iter(self.items)


@dataclass(frozen=True)
class DocumentAdjustments:
    """Descuento global y costos adicionales de la cabecera del documento"""
    global_discount_type: DiscountType = DiscountType.PERCENT
    global_discount_value: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    installation_cost: Decimal = ZERO


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    global_discount: Decimal = Decimal('0.00')
    shipping_cost: Decimal = Decimal('0.00')
    installation_cost: Decimal = Decimal('0.00')


@dataclass(frozen=True)
class ComponentUpcharge:
    component_name: str
    kind: str  # material | finish
    name: str
    upcharge_percentage: Decimal


@dataclass(frozen=True)
class CustomPrice:
    base_price: Decimal
    total_upcharge: Decimal
    custom_price: Decimal
    component_details: List[dict] = field(default_factory=list)


def _read_line(item: Any) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    if isinstance(item, Mapping):
        item = LineItem.from_mapping(item)
    quantity = to_decimal(getattr(item, "quantity"), "quantity")
    unit_price = to_decimal(getattr(item, "unit_price"), "unit_price")
    discount_percent = to_decimal(getattr(item, "discount_percent", ZERO), "discount_percent")
    tax_rate = to_decimal(getattr(item, "tax_rate", ZERO), "tax_rate")

    if quantity < 0:
        raise ValidationError("negative quantity")
    if unit_price < 0:
        raise ValidationError("negative unit price")
    if discount_percent < 0 or discount_percent > HUNDRED:
        raise ValidationError("discount out of range")
    if tax_rate < 0:
        raise ValidationError("tax rate out of range")

    return quantity, unit_price, discount_percent, tax_rate


def _exact_line(item: Any) -> LineAmounts:
    quantity, unit_price, discount_percent, tax_rate = _read_line(item)

    gross = quantity * unit_price
    discount_amount = gross * discount_percent / HUNDRED
    taxable = gross - discount_amount
    tax_amount = taxable * tax_rate / HUNDRED

    return LineAmounts(
        gross_amount=gross,
        discount_amount=discount_amount,
        taxable_amount=taxable,
        tax_amount=tax_amount,
        total=taxable + tax_amount,
    )


def calculate_line(item: Any) -> LineAmounts:
    """
    Calcular descuento, base gravable, impuesto y total de una línea

    Args:
        item: LineItem, dict o cualquier objeto con los atributos
            quantity, unit_price, discount_percent y tax_rate

    Returns:
        LineAmounts redondeados a 2 decimales

    Raises:
        ValidationError: cantidad/precio negativos, descuento fuera de
            [0, 100] o tasa de impuesto negativa
    """
    exact = _exact_line(item)
    return LineAmounts(
        gross_amount=quantize_money(exact.gross_amount),
        discount_amount=quantize_money(exact.discount_amount),
        taxable_amount=quantize_money(exact.taxable_amount),
        tax_amount=quantize_money(exact.tax_amount),
        total=quantize_money(exact.total),
    )


def adjustments_from(document: Any) -> DocumentAdjustments:
    """Leer los ajustes de cabecera de una cotización o pedido"""
    return DocumentAdjustments(
        global_discount_type=getattr(document, "global_discount_type", None) or DiscountType.PERCENT,
        global_discount_value=to_decimal(getattr(document, "global_discount_value", None)),
        shipping_cost=to_decimal(getattr(document, "shipping_cost", None)),
        installation_cost=to_decimal(getattr(document, "installation_cost", None)),
    )


def calculate_global_discount(net_subtotal: Decimal, adjustments: DocumentAdjustments) -> Decimal:
    value = to_decimal(adjustments.global_discount_value, "global_discount_value")
    if value < 0:
        raise ValidationError("global discount out of range")

    try:
        discount_type = DiscountType(adjustments.global_discount_type or DiscountType.PERCENT)
    except ValueError:
        raise ValidationError("unknown global discount type")

    if discount_type == DiscountType.PERCENT:
        if value > HUNDRED:
            raise ValidationError("global discount out of range")
        return net_subtotal * value / HUNDRED
    return value


def aggregate_document(
    sections: Iterable[Iterable[Any]],
    adjustments: Optional[DocumentAdjustments] = None
) -> DocumentTotals:
    """
    Calcular los totales de un documento a partir de sus secciones

    Cada sección es un iterable de líneas (LineItem, dict u objeto ORM).
    Un documento sin secciones o con secciones vacías da totales en cero.
    """
    subtotal = ZERO
    discount = ZERO
    tax = ZERO

    for section in sections:
        for item in section:
            amounts = _exact_line(item)
            subtotal += amounts.gross_amount
            discount += amounts.discount_amount
            tax += amounts.tax_amount

    global_discount = ZERO
    shipping = ZERO
    installation = ZERO
    if adjustments is not None:
        global_discount = calculate_global_discount(subtotal - discount, adjustments)
        shipping = to_decimal(adjustments.shipping_cost, "shipping_cost")
        installation = to_decimal(adjustments.installation_cost, "installation_cost")
        if shipping < 0 or installation < 0:
            raise ValidationError("additional costs cannot be negative")

    total = subtotal - discount - global_discount + tax + shipping + installation

    return DocumentTotals(
        subtotal=quantize_money(subtotal),
        discount=quantize_money(discount),
        tax=quantize_money(tax),
        total=quantize_money(total),
        global_discount=quantize_money(global_discount),
        shipping_cost=quantize_money(shipping),
        installation_cost=quantize_money(installation),
    )


def calculate_custom_price(base_price: Any, upcharges: Sequence[ComponentUpcharge]) -> CustomPrice:
    """
    Precio de un producto personalizado: precio base + Σ(base × recargo%)

    Cada material o acabado elegido aporta su porcentaje de recargo sobre
    el precio base (no se acumulan en cascada).
    """
    base = to_decimal(base_price, "base_price")
    if base < 0:
        raise ValidationError("negative base price")

    total_upcharge = ZERO
    details = []
    for upcharge in upcharges:
        percentage = to_decimal(upcharge.upcharge_percentage, "upcharge_percentage")
        if percentage < 0:
            raise ValidationError("upcharge out of range")
        amount = base * percentage / HUNDRED
        total_upcharge += amount
        details.append({
            "component_name": upcharge.component_name,
            "type": upcharge.kind,
            "name": upcharge.name,
            "upcharge_percentage": percentage,
            "upcharge_amount": quantize_money(amount),
        })

    return CustomPrice(
        base_price=quantize_money(base),
        total_upcharge=quantize_money(total_upcharge),
        custom_price=quantize_money(base + total_upcharge),
        component_details=details,
    )
