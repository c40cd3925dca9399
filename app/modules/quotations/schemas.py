from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.core.config import settings
from app.modules.pricing.calculator import DiscountType
from app.modules.pricing.schemas import AdjustmentsIn, LineAmountsOut, DocumentTotalsOut
from app.modules.quotations.models import QuotationStatus


# ===== Líneas =====

class QuotationLineBase(BaseModel):
    product_id: Optional[UUID] = None
    product_name: str = Field(..., min_length=1, max_length=200)
    product_sku: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    quantity: Decimal = Field(Decimal('1'), ge=0, decimal_places=3)
    unit_price: Decimal = Field(Decimal('0'), ge=0, decimal_places=2, description="Precio unitario sin impuestos")
    discount_percent: Decimal = Field(Decimal('0'), ge=0, le=100, decimal_places=2)
    tax_rate: Decimal = Field(default_factory=lambda: settings.DEFAULT_TAX_RATE, ge=0, decimal_places=2, description="Tasa de impuesto en %")
    notes: Optional[str] = None


class QuotationLineCreate(QuotationLineBase):
    pass


class QuotationLineUpdate(BaseModel):
    """Edición parcial de una línea: solo se aplican los campos enviados"""
    product_id: Optional[UUID] = None
    product_name: Optional[str] = Field(None, min_length=1, max_length=200)
    product_sku: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    quantity: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    notes: Optional[str] = None


class QuotationLineOut(QuotationLineBase):
    id: UUID
    section_id: UUID
    position: int
    amounts: LineAmountsOut

    class Config:
        from_attributes = True


# ===== Secciones =====

class QuotationSectionCreate(BaseModel):
    name: str = Field("", max_length=200)
    lines: List[QuotationLineCreate] = Field(default_factory=list)


class QuotationSectionOut(BaseModel):
    id: UUID
    name: str
    position: int
    lines: List[QuotationLineOut]
    totals: DocumentTotalsOut

    class Config:
        from_attributes = True


# ===== Cotizaciones =====

class QuotationCreate(AdjustmentsIn):
    contact_id: UUID
    validity_days: Optional[int] = Field(None, ge=1, le=365, description="Por defecto QUOTATION_VALIDITY_DAYS")
    sections: List[QuotationSectionCreate] = Field(default_factory=list)
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    payment_terms: Optional[str] = Field(None, max_length=100)
    delivery_terms: Optional[str] = Field(None, max_length=100)
    delivery_address: Optional[str] = None


class QuotationUpdate(QuotationCreate):
    """Reemplazo completo de cabecera y secciones"""
    expiration_date: Optional[date] = None


class QuotationStatusUpdate(BaseModel):
    status: QuotationStatus


class QuotationSummary(BaseModel):
    id: UUID
    number: str
    contact_id: UUID
    status: QuotationStatus
    issue_date: date
    expiration_date: Optional[date] = None
    currency: str
    total_amount: Decimal
    sales_order_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class QuotationOut(QuotationSummary):
    global_discount_type: DiscountType
    global_discount_value: Decimal
    shipping_cost: Decimal
    installation_cost: Decimal
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    delivery_address: Optional[str] = None
    converted_at: Optional[datetime] = None
    updated_at: datetime
    sections: List[QuotationSectionOut]
    totals: DocumentTotalsOut


class QuotationList(BaseModel):
    items: List[QuotationSummary]
    total: int
    limit: int
    offset: int
    counts_by_status: Dict[str, int]


class QuotationStats(BaseModel):
    """Estadísticas de los últimos 30 días"""
    total_quotations: int
    draft_count: int
    sent_count: int
    accepted_count: int
    rejected_count: int
    expired_count: int
    accepted_revenue: Decimal
    potential_revenue: Decimal
    average_quotation_value: Decimal
    conversion_rate: Optional[Decimal] = None
