from fastapi import APIRouter, Query, status
from datetime import date
from typing import Optional
from uuid import UUID

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency, tenant_dependency
from app.modules.pricing.schemas import BalanceOut
from app.modules.sales_orders.models import SalesOrderStatus
from app.modules.sales_orders.service import SalesOrderService
from app.modules.sales_orders.schemas import (
    SalesOrderCreate, SalesOrderStatusUpdate, SalesOrderOut, SalesOrderList, SalesOrderStats,
    PaymentCreate, PaymentUpdate, PaymentOut, PaymentsOut
)

sales_order_router = APIRouter(prefix="/sales-orders", tags=["Sales Orders"])


@sales_order_router.get("/stats/overview", response_model=SalesOrderStats)
def get_sales_order_stats(db: db_dependency, tenant_id: tenant_dependency):
    return SalesOrderService(db).get_stats(tenant_id)


@sales_order_router.post("/", response_model=SalesOrderOut, status_code=status.HTTP_201_CREATED)
def create_sales_order(order_data: SalesOrderCreate, db: db_dependency, tenant_id: tenant_dependency):
    """
    Crear un pedido a partir de una cotización aceptada

    - Verifica el stock de todos los productos antes de crear el pedido
    - Descuenta el stock y registra los movimientos de inventario
    - Registra el anticipo (down_payment_*) como primer pago
    """
    return SalesOrderService(db).create_from_quotation(order_data, tenant_id)


@sales_order_router.get("/", response_model=SalesOrderList)
def list_sales_orders(
    db: db_dependency,
    tenant_id: tenant_dependency,
    status_filter: Optional[SalesOrderStatus] = Query(None, alias="status"),
    contact_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Buscar por número, notas o seguimiento"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    return SalesOrderService(db).get_sales_orders(
        tenant_id, status_filter, contact_id, search, date_from, date_to, limit, offset
    )


@sales_order_router.get("/{order_id}", response_model=SalesOrderOut)
def get_sales_order(order_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    """
    Detalle del pedido con totales, pagos y saldo
    """
    return SalesOrderService(db).get_sales_order(order_id, tenant_id)


@sales_order_router.patch("/{order_id}/status", response_model=SalesOrderOut)
def update_sales_order_status(
    order_id: UUID,
    status_data: SalesOrderStatusUpdate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return SalesOrderService(db).update_status(order_id, status_data, tenant_id)


@sales_order_router.post("/{order_id}/cancel", response_model=SalesOrderOut)
def cancel_sales_order(order_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return SalesOrderService(db).cancel_sales_order(order_id, tenant_id)


@sales_order_router.delete("/{order_id}")
def delete_sales_order(order_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return SalesOrderService(db).delete_sales_order(order_id, tenant_id)


# --- PAGOS ---

@sales_order_router.get("/{order_id}/payments", response_model=PaymentsOut)
def list_payments(order_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return SalesOrderService(db).get_payments(order_id, tenant_id)


@sales_order_router.post("/{order_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def add_payment(order_id: UUID, payment_data: PaymentCreate, db: db_dependency, tenant_id: tenant_dependency):
    """
    Registrar un pago. Si se envía expected_version y no coincide con
    payments_version del pedido, responde 409 y no se aplica nada.
    """
    return SalesOrderService(db).add_payment(order_id, payment_data, tenant_id)


@sales_order_router.patch("/{order_id}/payments/{payment_id}", response_model=PaymentOut)
def update_payment(
    order_id: UUID,
    payment_id: UUID,
    payment_data: PaymentUpdate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return SalesOrderService(db).update_payment(order_id, payment_id, payment_data, tenant_id)


@sales_order_router.delete("/{order_id}/payments/{payment_id}", response_model=PaymentsOut)
def delete_payment(
    order_id: UUID,
    payment_id: UUID,
    db: db_dependency,
    tenant_id: tenant_dependency,
    expected_version: Optional[int] = Query(None, ge=0),
):
    return SalesOrderService(db).delete_payment(order_id, payment_id, tenant_id, expected_version)


@sales_order_router.get("/{order_id}/balance", response_model=BalanceOut)
def get_balance(order_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return SalesOrderService(db).get_balance(order_id, tenant_id)
