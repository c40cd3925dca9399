from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List

from app.modules.pricing.calculator import DiscountType


class LineItemIn(BaseModel):
    """Línea de precio tal como llega en el JSON"""
    quantity: Decimal = Field(..., ge=0, description="Cantidad (puede tener decimales)")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario sin impuestos")
    discount_percent: Decimal = Field(Decimal('0'), ge=0, le=100, description="Descuento de línea en %")
    tax_rate: Decimal = Field(Decimal('0'), ge=0, description="Tasa de impuesto en % (ej. 20)")


class LineAmountsOut(BaseModel):
    gross_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SectionIn(BaseModel):
    name: str = Field("", max_length=200)
    items: List[LineItemIn] = Field(default_factory=list)


class AdjustmentsIn(BaseModel):
    global_discount_type: DiscountType = DiscountType.PERCENT
    global_discount_value: Decimal = Field(Decimal('0'), ge=0, decimal_places=2)
    shipping_cost: Decimal = Field(Decimal('0'), ge=0, decimal_places=2)
    installation_cost: Decimal = Field(Decimal('0'), ge=0, decimal_places=2)

    @field_validator('global_discount_value')
    @classmethod
    def validate_global_discount(cls, v, info):
        if info.data.get('global_discount_type') == DiscountType.PERCENT and v > 100:
            raise ValueError('El descuento global en porcentaje debe estar entre 0 y 100')
        return v


class DocumentIn(AdjustmentsIn):
    sections: List[SectionIn] = Field(default_factory=list)


class DocumentTotalsOut(BaseModel):
    """Totales calculados del documento"""
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    global_discount: Decimal = Decimal('0.00')
    shipping_cost: Decimal = Decimal('0.00')
    installation_cost: Decimal = Decimal('0.00')

    class Config:
        from_attributes = True


class SectionBreakdown(BaseModel):
    name: str
    lines: List[LineAmountsOut]
    total: Decimal


class DocumentPricingOut(BaseModel):
    sections: List[SectionBreakdown]
    totals: DocumentTotalsOut


class BalanceOut(BaseModel):
    total: Decimal
    total_paid: Decimal
    outstanding: Decimal
    is_overpaid: bool = False

    class Config:
        from_attributes = True


class ComponentDetail(BaseModel):
    component_name: str
    type: str
    name: str
    upcharge_percentage: Decimal
    upcharge_amount: Decimal


class CustomPriceOut(BaseModel):
    base_price: Decimal
    total_upcharge: Decimal
    custom_price: Decimal
    component_details: List[ComponentDetail] = []

    class Config:
        from_attributes = True
