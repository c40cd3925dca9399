from pydantic import AliasChoices, BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.pricing.calculator import DiscountType
from app.modules.pricing.schemas import LineAmountsOut, DocumentTotalsOut, BalanceOut
from app.modules.sales_orders.models import SalesOrderStatus, PaymentMethod


# ===== Pagos =====

class PaymentCreate(BaseModel):
    """Pago recibido: {amount, method, date, notes}"""
    amount: Decimal = Field(..., decimal_places=2)
    method: PaymentMethod
    payment_date: Optional[date] = Field(None, validation_alias=AliasChoices("date", "payment_date"))
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=0, description="payments_version leído por el cliente")


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, decimal_places=2)
    method: Optional[PaymentMethod] = None
    payment_date: Optional[date] = Field(None, validation_alias=AliasChoices("date", "payment_date"))
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=0)


class PaymentOut(BaseModel):
    id: UUID
    amount: Decimal
    method: PaymentMethod
    payment_date: date = Field(
        ..., validation_alias=AliasChoices("date", "payment_date"), serialization_alias="date"
    )
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentsOut(BaseModel):
    """Pagos del pedido con su saldo y la versión actual"""
    payments: List[PaymentOut]
    payments_version: int
    balance: BalanceOut


# ===== Líneas y secciones =====

class SalesOrderItemOut(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    product_sku: Optional[str] = None
    description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    tax_rate: Decimal
    notes: Optional[str] = None
    position: int
    amounts: LineAmountsOut

    class Config:
        from_attributes = True


class SalesOrderSectionOut(BaseModel):
    id: UUID
    name: str
    position: int
    items: List[SalesOrderItemOut]
    totals: DocumentTotalsOut

    class Config:
        from_attributes = True


# ===== Pedidos =====

class SalesOrderCreate(BaseModel):
    """Conversión de una cotización aceptada en pedido"""
    quotation_id: UUID
    expected_delivery_date: Optional[date] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    down_payment_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Anticipo registrado como primer pago")
    down_payment_method: Optional[PaymentMethod] = None
    down_payment_date: Optional[date] = None
    down_payment_notes: Optional[str] = None


class SalesOrderStatusUpdate(BaseModel):
    status: SalesOrderStatus
    shipped_date: Optional[date] = None
    delivered_date: Optional[date] = None
    tracking_number: Optional[str] = Field(None, max_length=100)


class SalesOrderSummary(BaseModel):
    id: UUID
    number: str
    quotation_id: Optional[UUID] = None
    contact_id: UUID
    status: SalesOrderStatus
    order_date: date
    expected_delivery_date: Optional[date] = None
    currency: str
    total_amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class SalesOrderOut(SalesOrderSummary):
    shipped_date: Optional[date] = None
    delivered_date: Optional[date] = None
    tracking_number: Optional[str] = None
    global_discount_type: DiscountType
    global_discount_value: Decimal
    shipping_cost: Decimal
    installation_cost: Decimal
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    payments_version: int
    updated_at: datetime
    sections: List[SalesOrderSectionOut]
    totals: DocumentTotalsOut
    payments: List[PaymentOut]
    balance: BalanceOut


class SalesOrderList(BaseModel):
    items: List[SalesOrderSummary]
    total: int
    limit: int
    offset: int


class SalesOrderStats(BaseModel):
    """Estadísticas de los pedidos de los últimos 30 días"""
    total_orders: int
    in_progress_count: int
    preparing_count: int
    shipped_count: int
    delivered_count: int
    completed_count: int
    cancelled_count: int
    active_revenue: Decimal
    completed_revenue: Decimal
    average_order_value: Decimal
