from fastapi import APIRouter, Query, status
from typing import List, Optional
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency, tenant_dependency
from app.modules.products.service import ProductService
from app.modules.products.schemas import (
    ProductCreate, ProductOut, ProductList, UpchargeOptionCreate, UpchargeOptionOut,
    InventoryMovementOut, CustomizationRequest
)
from app.modules.pricing.schemas import CustomPriceOut

product_router = APIRouter(prefix="/products", tags=["Products"])


# --- MATERIALES Y ACABADOS (antes de /{product_id}) ---

@product_router.post("/materials", response_model=UpchargeOptionOut, status_code=status.HTTP_201_CREATED)
def create_material(option_data: UpchargeOptionCreate, db: db_dependency, tenant_id: tenant_dependency):
    """Crear un material con su recargo porcentual"""
    return ProductService(db).create_material(option_data, tenant_id)


@product_router.get("/materials", response_model=List[UpchargeOptionOut])
def list_materials(db: db_dependency, tenant_id: tenant_dependency):
    return ProductService(db).get_materials(tenant_id)


@product_router.post("/finishes", response_model=UpchargeOptionOut, status_code=status.HTTP_201_CREATED)
def create_finish(option_data: UpchargeOptionCreate, db: db_dependency, tenant_id: tenant_dependency):
    """Crear un acabado con su recargo porcentual"""
    return ProductService(db).create_finish(option_data, tenant_id)


@product_router.get("/finishes", response_model=List[UpchargeOptionOut])
def list_finishes(db: db_dependency, tenant_id: tenant_dependency):
    return ProductService(db).get_finishes(tenant_id)


# --- PRODUCTOS ---

@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(product_data: ProductCreate, db: db_dependency, tenant_id: tenant_dependency):
    return ProductService(db).create_product(product_data, tenant_id)


@product_router.get("/", response_model=ProductList)
def list_products(
    db: db_dependency,
    tenant_id: tenant_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre o SKU"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    return ProductService(db).get_products(tenant_id, search, limit, offset)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return ProductService(db).get_product_by_id(product_id, tenant_id)


@product_router.get("/{product_id}/movements", response_model=List[InventoryMovementOut])
def get_product_movements(product_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    """
    Historial de movimientos de inventario de un producto
    """
    return ProductService(db).get_product_movements(product_id, tenant_id)


@product_router.post("/{product_id}/custom-price", response_model=CustomPriceOut)
def calculate_custom_price(
    product_id: UUID,
    db: db_dependency,
    tenant_id: tenant_dependency,
    request: CustomizationRequest,
):
    """
    Calcular el precio de un producto personalizado

    precio = precio base + Σ(precio base × recargo% de cada material/acabado).
    El cuerpo indica el modo: `create` para una personalización nueva o
    `edit` con los componentes existentes que se van a modificar.
    """
    return ProductService(db).price_customization(product_id, request.root, tenant_id)
