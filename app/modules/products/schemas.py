from pydantic import BaseModel, Field, RootModel, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Literal, Union, Annotated
from uuid import UUID
from datetime import datetime
from app.modules.products.models import MovementType


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Precio de venta sin impuestos")
    stock_quantity: Decimal = Field(Decimal('0'), ge=0, decimal_places=3)

    @field_validator('sku')
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper()


class ProductOut(BaseModel):
    id: UUID
    name: str
    sku: str
    description: Optional[str] = None
    price: Decimal
    stock_quantity: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    items: List[ProductOut]
    total: int
    limit: int
    offset: int


class UpchargeOptionCreate(BaseModel):
    """Material o acabado con su recargo porcentual"""
    name: str = Field(..., min_length=1, max_length=100)
    upcharge_percentage: Decimal = Field(Decimal('0'), ge=0, le=1000, decimal_places=2)


class UpchargeOptionOut(BaseModel):
    id: UUID
    name: str
    upcharge_percentage: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class InventoryMovementOut(BaseModel):
    id: UUID
    product_id: UUID
    movement_type: MovementType
    quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ===== Personalización =====

class CustomComponent(BaseModel):
    component_name: str = Field(..., min_length=1, max_length=100)
    material_id: Optional[UUID] = None
    finish_id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_choice(self):
        if self.material_id is None and self.finish_id is None:
            raise ValueError('Cada componente debe indicar un material o un acabado')
        return self


class CreateCustomization(BaseModel):
    """Personalización nueva de un producto"""
    mode: Literal["create"]
    components: List[CustomComponent] = Field(..., min_length=1)


class EditCustomization(BaseModel):
    """Edición de una personalización existente (ej. línea de pedido ya personalizada)"""
    mode: Literal["edit"]
    existing: List[CustomComponent] = Field(..., min_length=1)
    components: List[CustomComponent] = Field(default_factory=list)

    def merged_components(self) -> List[CustomComponent]:
        """Los componentes nuevos reemplazan a los existentes con el mismo nombre"""
        replaced = {component.component_name: component for component in self.components}
        merged = [replaced.pop(component.component_name, component) for component in self.existing]
        merged.extend(replaced.values())
        return merged


class CustomizationRequest(RootModel[Annotated[Union[CreateCustomization, EditCustomization], Field(discriminator="mode")]]):
    """Cuerpo de /custom-price: el campo `mode` elige la variante"""
