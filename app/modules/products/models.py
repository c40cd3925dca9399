from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Enum, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class MovementType(str, enum.Enum):
    IN = "in"     # Entrada (compra, anulación de pedido)
    OUT = "out"   # Salida (venta)
    ADJ = "adj"   # Ajuste manual


class Product(Base, TenantMixin, TimestampMixin):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    sku = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta HT
    stock_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    movements = relationship(
        "InventoryMovement", back_populates="product",
        cascade="all, delete-orphan", order_by="InventoryMovement.created_at"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
    )


class Material(Base, TenantMixin, TimestampMixin):
    __tablename__ = "materials"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    upcharge_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_material_tenant_name"),
    )


class Finish(Base, TenantMixin, TimestampMixin):
    __tablename__ = "finishes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    upcharge_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_finish_tenant_name"),
    )


class InventoryMovement(Base, TenantMixin, TimestampMixin):
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    movement_type = Column(Enum(MovementType), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)  # Negativo para salidas
    quantity_before = Column(Numeric(12, 3), nullable=False)
    quantity_after = Column(Numeric(12, 3), nullable=False)
    reason = Column(String(100), nullable=True)
    reference = Column(String(50), nullable=True)  # Número de pedido, etc.
    notes = Column(String(255), nullable=True)

    product = relationship("Product", back_populates="movements")
