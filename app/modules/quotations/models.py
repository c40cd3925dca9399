from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Enum, Date, DateTime, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.pricing.calculator import DiscountType, adjustments_from, aggregate_document, calculate_line
import enum


class QuotationStatus(str, enum.Enum):
    DRAFT = "draft"          # Borrador, editable
    SENT = "sent"            # Enviada al cliente, editable
    ACCEPTED = "accepted"    # Aceptada, se puede convertir en pedido
    REJECTED = "rejected"
    EXPIRED = "expired"      # Vencida por fecha de expiración


EDITABLE_STATUSES = (QuotationStatus.DRAFT, QuotationStatus.SENT)


class Quotation(Base, TenantMixin, TimestampMixin):
    __tablename__ = "quotations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    number = Column(String(30), nullable=False)
    contact_id = Column(Uuid, nullable=False, index=True)
    status = Column(Enum(QuotationStatus), nullable=False, default=QuotationStatus.DRAFT)

    issue_date = Column(Date, nullable=False, default=date.today)
    expiration_date = Column(Date, nullable=True)

    # Ajustes de cabecera (los totales no se guardan: se recalculan)
    global_discount_type = Column(Enum(DiscountType), nullable=False, default=DiscountType.PERCENT)
    global_discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(15, 2), nullable=False, default=0)
    installation_cost = Column(Numeric(15, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")

    notes = Column(Text, nullable=True)
    terms_conditions = Column(Text, nullable=True)
    payment_terms = Column(String(100), nullable=True)
    delivery_terms = Column(String(100), nullable=True)
    delivery_address = Column(Text, nullable=True)

    # Conversión a pedido
    sales_order_id = Column(Uuid, nullable=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)

    sections = relationship(
        "QuotationSection", back_populates="quotation",
        cascade="all, delete-orphan", order_by="QuotationSection.position"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_quotation_tenant_number"),
    )

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    @property
    def totals(self):
        """Totales recalculados a partir de las secciones"""
        return aggregate_document([section.lines for section in self.sections], adjustments_from(self))

    @property
    def total_amount(self):
        return self.totals.total


class QuotationSection(Base, TimestampMixin):
    __tablename__ = "quotation_sections"

    id = Column(Uuid, primary_key=True, default=uuid4)
    quotation_id = Column(Uuid, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    position = Column(Integer, nullable=False, default=0)

    quotation = relationship("Quotation", back_populates="sections")
    lines = relationship(
        "QuotationLine", back_populates="section",
        cascade="all, delete-orphan", order_by="QuotationLine.position"
    )

    @property
    def totals(self):
        return aggregate_document([self.lines])


class QuotationLine(Base, TimestampMixin):
    __tablename__ = "quotation_lines"

    id = Column(Uuid, primary_key=True, default=uuid4)
    section_id = Column(Uuid, ForeignKey("quotation_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    # Snapshot del producto
    product_name = Column(String(200), nullable=False)
    product_sku = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)

    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)  # Sin impuestos
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    section = relationship("QuotationSection", back_populates="lines")

    @property
    def amounts(self):
        return calculate_line(self)
