from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Enum, Date, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.pricing.calculator import DiscountType, adjustments_from, aggregate_document, calculate_line
import enum


class SalesOrderStatus(str, enum.Enum):
    EN_COURS = "en_cours"                # Recién creado desde la cotización
    EN_PREPARATION = "en_preparation"
    EXPEDIE = "expedie"                  # Enviado
    LIVRE = "livre"                      # Entregado
    TERMINE = "termine"                  # Finalizado, pagos inmutables
    ANNULE = "annule"                    # Anulado, pagos inmutables


FINALIZED_STATUSES = (SalesOrderStatus.TERMINE, SalesOrderStatus.ANNULE)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"


class SalesOrder(Base, TenantMixin, TimestampMixin):
    __tablename__ = "sales_orders"

    id = Column(Uuid, primary_key=True, default=uuid4)
    number = Column(String(30), nullable=False)
    quotation_id = Column(Uuid, ForeignKey("quotations.id", ondelete="SET NULL"), nullable=True, index=True)
    contact_id = Column(Uuid, nullable=False, index=True)
    status = Column(Enum(SalesOrderStatus), nullable=False, default=SalesOrderStatus.EN_COURS)

    order_date = Column(Date, nullable=False, default=date.today)
    expected_delivery_date = Column(Date, nullable=True)
    shipped_date = Column(Date, nullable=True)
    delivered_date = Column(Date, nullable=True)
    tracking_number = Column(String(100), nullable=True)

    # Ajustes copiados de la cotización
    global_discount_type = Column(Enum(DiscountType), nullable=False, default=DiscountType.PERCENT)
    global_discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(15, 2), nullable=False, default=0)
    installation_cost = Column(Numeric(15, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")

    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    payment_terms = Column(String(100), nullable=True)
    delivery_terms = Column(String(100), nullable=True)

    # Se incrementa en cada alta/edición/baja de pago (control optimista)
    payments_version = Column(Integer, nullable=False, default=0)

    sections = relationship(
        "SalesOrderSection", back_populates="sales_order",
        cascade="all, delete-orphan", order_by="SalesOrderSection.position"
    )
    payments = relationship(
        "SalesOrderPayment", back_populates="sales_order",
        cascade="all, delete-orphan", order_by="SalesOrderPayment.payment_date"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_sales_order_tenant_number"),
    )

    @property
    def is_finalized(self) -> bool:
        return self.status in FINALIZED_STATUSES

    @property
    def items(self):
        return [item for section in self.sections for item in section.items]

    @property
    def totals(self):
        return aggregate_document([section.items for section in self.sections], adjustments_from(self))

    @property
    def total_amount(self):
        return self.totals.total

    @property
    def balance(self):
        from app.modules.sales_orders.ledger import compute_balance
        return compute_balance(self)


class SalesOrderSection(Base, TimestampMixin):
    __tablename__ = "sales_order_sections"

    id = Column(Uuid, primary_key=True, default=uuid4)
    sales_order_id = Column(Uuid, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    position = Column(Integer, nullable=False, default=0)

    sales_order = relationship("SalesOrder", back_populates="sections")
    items = relationship(
        "SalesOrderItem", back_populates="section",
        cascade="all, delete-orphan", order_by="SalesOrderItem.position"
    )

    @property
    def totals(self):
        return aggregate_document([self.items])


class SalesOrderItem(Base, TimestampMixin):
    __tablename__ = "sales_order_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    section_id = Column(Uuid, ForeignKey("sales_order_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    product_name = Column(String(200), nullable=False)
    product_sku = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)

    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    section = relationship("SalesOrderSection", back_populates="items")

    @property
    def amounts(self):
        return calculate_line(self)


class SalesOrderPayment(Base, TimestampMixin):
    __tablename__ = "sales_order_payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    sales_order_id = Column(Uuid, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)  # Siempre > 0, validado en el ledger
    method = Column(Enum(PaymentMethod), nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)

    sales_order = relationship("SalesOrder", back_populates="payments")
