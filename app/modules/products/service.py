from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID
import logging

from app.common.exceptions import NotFoundError, ValidationError
from app.modules.products.models import Product, Material, Finish, InventoryMovement, MovementType
from app.modules.products.schemas import (
    ProductCreate, UpchargeOptionCreate, CreateCustomization, EditCustomization
)
from app.modules.pricing.calculator import ComponentUpcharge, CustomPrice, calculate_custom_price

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def create_product(self, product_data: ProductCreate, tenant_id: UUID) -> Product:
        """Crear un producto con su stock inicial"""
        try:
            existing = self.db.query(Product).filter(
                Product.tenant_id == tenant_id,
                Product.sku == product_data.sku
            ).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Ya existe un producto con el SKU '{product_data.sku}'"
                )

            product = Product(tenant_id=tenant_id, **product_data.model_dump())
            self.db.add(product)
            self.db.commit()
            self.db.refresh(product)
            logger.info(f"Product created: {product.sku} (stock={product.stock_quantity})")
            return product

        except HTTPException:
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Error de integridad: {str(e.orig)}"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating product: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando producto: {str(e)}"
            )

    def get_products(self, tenant_id: UUID, search: Optional[str] = None,
                     limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Product).filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True)
        )
        if search:
            query = query.filter(or_(
                Product.name.ilike(f"%{search}%"),
                Product.sku.ilike(f"%{search}%")
            ))

        total = query.count()
        items = query.order_by(Product.name).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def get_product_by_id(self, product_id: UUID, tenant_id: UUID) -> Product:
        product = self.db.query(Product).filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id
        ).first()
        if not product:
            raise NotFoundError("Producto no encontrado")
        return product

    def get_product_movements(self, product_id: UUID, tenant_id: UUID) -> List[InventoryMovement]:
        product = self.get_product_by_id(product_id, tenant_id)
        return list(product.movements)

    # ===== Materiales y acabados =====

    def _create_option(self, model, option_data: UpchargeOptionCreate, tenant_id: UUID):
        existing = self.db.query(model).filter(
            model.tenant_id == tenant_id,
            model.name == option_data.name
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Ya existe '{option_data.name}' en esta empresa"
            )

        option = model(tenant_id=tenant_id, **option_data.model_dump())
        self.db.add(option)
        self.db.commit()
        self.db.refresh(option)
        return option

    def create_material(self, option_data: UpchargeOptionCreate, tenant_id: UUID) -> Material:
        return self._create_option(Material, option_data, tenant_id)

    def create_finish(self, option_data: UpchargeOptionCreate, tenant_id: UUID) -> Finish:
        return self._create_option(Finish, option_data, tenant_id)

    def get_materials(self, tenant_id: UUID) -> List[Material]:
        return self.db.query(Material).filter(
            Material.tenant_id == tenant_id, Material.is_active.is_(True)
        ).order_by(Material.name).all()

    def get_finishes(self, tenant_id: UUID) -> List[Finish]:
        return self.db.query(Finish).filter(
            Finish.tenant_id == tenant_id, Finish.is_active.is_(True)
        ).order_by(Finish.name).all()

    # ===== Personalización =====

    def price_customization(
        self,
        product_id: UUID,
        request: Union[CreateCustomization, EditCustomization],
        tenant_id: UUID
    ) -> CustomPrice:
        """
        Calcular el precio de un producto personalizado

        Args:
            product_id: Producto base (su precio de venta es la base)
            request: Personalización nueva o edición de una existente
            tenant_id: ID de la empresa

        Returns:
            CustomPrice con el detalle del recargo por componente
        """
        product = self.get_product_by_id(product_id, tenant_id)

        if isinstance(request, EditCustomization):
            components = request.merged_components()
        else:
            components = request.components

        upcharges = []
        for component in components:
            if component.material_id:
                material = self._get_option(Material, component.material_id, tenant_id, "Material")
                upcharges.append(ComponentUpcharge(
                    component_name=component.component_name,
                    kind="material",
                    name=material.name,
                    upcharge_percentage=material.upcharge_percentage,
                ))
            if component.finish_id:
                finish = self._get_option(Finish, component.finish_id, tenant_id, "Acabado")
                upcharges.append(ComponentUpcharge(
                    component_name=component.component_name,
                    kind="finish",
                    name=finish.name,
                    upcharge_percentage=finish.upcharge_percentage,
                ))

        return calculate_custom_price(product.price, upcharges)

    def _get_option(self, model, option_id: UUID, tenant_id: UUID, label: str):
        option = self.db.query(model).filter(
            model.id == option_id,
            model.tenant_id == tenant_id
        ).first()
        if not option:
            raise NotFoundError(f"{label} no encontrado")
        return option


class StockService:
    """Movimientos de stock asociados a pedidos (sin commit: lo hace el llamador)"""

    def __init__(self, db: Session):
        self.db = db

    def find_shortages(self, lines, tenant_id: UUID) -> List[str]:
        """Listar los productos sin stock suficiente para las líneas dadas"""
        shortages = []
        for line in lines:
            if not line.product_id:
                continue
            product = self.db.query(Product).filter(
                Product.id == line.product_id,
                Product.tenant_id == tenant_id
            ).first()
            if product is None:
                continue
            if Decimal(product.stock_quantity) < Decimal(line.quantity):
                shortages.append(
                    f"{line.product_name}: {product.stock_quantity} disponible(s), {line.quantity} requerido(s)"
                )
        return shortages

    def move(self, product_id: UUID, quantity: Decimal, movement_type: MovementType,
             tenant_id: UUID, reason: str, reference: Optional[str], notes: Optional[str] = None) -> Optional[InventoryMovement]:
        """
        Aplicar un movimiento de stock y registrarlo

        quantity es siempre positiva; el signo lo da movement_type.
        """
        product = self.db.query(Product).filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id
        ).first()
        if product is None:
            logger.warning(f"Stock movement skipped: product {product_id} not found")
            return None

        quantity = Decimal(quantity)
        if quantity < 0:
            raise ValidationError("La cantidad de un movimiento no puede ser negativa")

        signed = -quantity if movement_type == MovementType.OUT else quantity
        before = Decimal(product.stock_quantity)
        after = before + signed
        product.stock_quantity = after

        movement = InventoryMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            movement_type=movement_type,
            quantity=signed,
            quantity_before=before,
            quantity_after=after,
            reason=reason,
            reference=reference,
            notes=notes,
        )
        self.db.add(movement)
        logger.info(f"Stock {movement_type.value} for {product.sku}: {before} -> {after} ({reference})")
        return movement
