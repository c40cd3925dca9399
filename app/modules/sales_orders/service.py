from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID
import logging

from app.core.config import settings
from app.common.exceptions import DomainError, NotFoundError, StateError, ValidationError
from app.common.sequences import next_document_number
from app.modules.pricing.calculator import ZERO, quantize_money
from app.modules.products.models import MovementType
from app.modules.products.service import StockService
from app.modules.quotations.models import Quotation, QuotationStatus
from app.modules.sales_orders import ledger
from app.modules.sales_orders.models import (
    SalesOrder, SalesOrderSection, SalesOrderItem, SalesOrderPayment, SalesOrderStatus, FINALIZED_STATUSES
)
from app.modules.sales_orders.schemas import (
    SalesOrderCreate, SalesOrderStatusUpdate, PaymentCreate, PaymentUpdate
)

logger = logging.getLogger(__name__)

ITEM_FIELDS = (
    "product_id", "product_name", "product_sku", "description", "quantity",
    "unit_price", "discount_percent", "tax_rate", "notes", "position",
)


class SalesOrderService:
    def __init__(self, db: Session):
        self.db = db
        self.stock = StockService(db)

    def _get(self, order_id: UUID, tenant_id: UUID) -> SalesOrder:
        order = self.db.query(SalesOrder).filter(
            SalesOrder.id == order_id,
            SalesOrder.tenant_id == tenant_id
        ).first()
        if not order:
            raise NotFoundError("Pedido no encontrado")
        return order

    def _commit(self, action: str):
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error on sales order {action}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error guardando pedido: {str(e)}"
            )

    def _restore_stock(self, order: SalesOrder, tenant_id: UUID, reason: str, note: str) -> None:
        for item in order.items:
            if item.product_id:
                self.stock.move(
                    item.product_id, item.quantity, MovementType.IN, tenant_id,
                    reason=reason,
                    reference=order.number,
                    notes=f"{note} {order.number} - {item.product_name}",
                )

    # ===== Conversión desde cotización =====

    def create_from_quotation(self, order_data: SalesOrderCreate, tenant_id: UUID) -> SalesOrder:
        """
        Convertir una cotización aceptada en pedido

        Proceso:
        1. Validar que la cotización esté aceptada y no convertida
        2. Verificar stock de todas las líneas con producto
        3. Copiar ajustes, secciones y líneas
        4. Descontar stock (movimientos 'out')
        5. Registrar el anticipo como primer pago
        6. Enlazar la cotización con el pedido
        """
        try:
            quotation = self.db.query(Quotation).filter(
                Quotation.id == order_data.quotation_id,
                Quotation.tenant_id == tenant_id
            ).first()
            if not quotation:
                raise NotFoundError("Cotización no encontrada")
            if quotation.status != QuotationStatus.ACCEPTED:
                raise StateError("Solo las cotizaciones aceptadas se pueden convertir en pedido")
            if quotation.sales_order_id:
                raise StateError("La cotización ya fue convertida en pedido")

            lines = [line for section in quotation.sections for line in section.lines]
            shortages = self.stock.find_shortages(lines, tenant_id)
            if shortages:
                raise ValidationError(f"Stock insuficiente: {'; '.join(shortages)}")

            down_payment = order_data.down_payment_amount or ZERO
            if down_payment > 0 and order_data.down_payment_method is None:
                raise ValidationError("El anticipo requiere un método de pago")

            order = SalesOrder(
                tenant_id=tenant_id,
                number=next_document_number(self.db, tenant_id, "sales_order", settings.SALES_ORDER_PREFIX),
                quotation_id=quotation.id,
                contact_id=quotation.contact_id,
                status=SalesOrderStatus.EN_COURS,
                order_date=date.today(),
                expected_delivery_date=order_data.expected_delivery_date,
                global_discount_type=quotation.global_discount_type,
                global_discount_value=quotation.global_discount_value,
                shipping_cost=quotation.shipping_cost,
                installation_cost=quotation.installation_cost,
                currency=quotation.currency,
                delivery_address=order_data.delivery_address or quotation.delivery_address,
                notes=order_data.notes or quotation.notes,
                payment_terms=quotation.payment_terms or settings.DEFAULT_PAYMENT_TERMS,
                delivery_terms=quotation.delivery_terms or settings.DEFAULT_DELIVERY_TERMS,
                payments_version=0,
            )
            order.sections = [
                SalesOrderSection(
                    name=section.name,
                    position=section.position,
                    items=[
                        SalesOrderItem(**{field: getattr(line, field) for field in ITEM_FIELDS})
                        for line in section.lines
                    ]
                )
                for section in quotation.sections
            ]
            self.db.add(order)
            self.db.flush()

            for line in lines:
                if line.product_id:
                    self.stock.move(
                        line.product_id, line.quantity, MovementType.OUT, tenant_id,
                        reason="Sales Order",
                        reference=order.number,
                        notes=f"Salida por pedido {order.number} - {line.product_name}",
                    )

            if down_payment > 0:
                ledger.add_payment(
                    order, down_payment, order_data.down_payment_method,
                    order_data.down_payment_date, order_data.down_payment_notes or "Anticipo",
                    payment_cls=SalesOrderPayment,
                )

            quotation.sales_order_id = order.id
            quotation.converted_at = datetime.now(timezone.utc)

            self.db.commit()
            self.db.refresh(order)
            logger.info(f"Sales order {order.number} created from quotation {quotation.number} (total={order.total_amount})")
            return order

        except DomainError:
            self.db.rollback()
            raise
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating sales order: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando pedido: {str(e)}"
            )

    # ===== Consultas =====

    def get_sales_orders(
        self,
        tenant_id: UUID,
        status_filter: Optional[SalesOrderStatus] = None,
        contact_id: Optional[UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self.db.query(SalesOrder).filter(SalesOrder.tenant_id == tenant_id)

        if status_filter:
            query = query.filter(SalesOrder.status == status_filter)
        if contact_id:
            query = query.filter(SalesOrder.contact_id == contact_id)
        if search:
            query = query.filter(or_(
                SalesOrder.number.ilike(f"%{search}%"),
                SalesOrder.notes.ilike(f"%{search}%"),
                SalesOrder.tracking_number.ilike(f"%{search}%")
            ))
        if date_from:
            query = query.filter(SalesOrder.order_date >= date_from)
        if date_to:
            query = query.filter(SalesOrder.order_date <= date_to)

        total = query.count()
        items = query.order_by(SalesOrder.created_at.desc(), SalesOrder.number.desc()).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def get_sales_order(self, order_id: UUID, tenant_id: UUID) -> SalesOrder:
        return self._get(order_id, tenant_id)

    # ===== Estado =====

    def update_status(self, order_id: UUID, status_data: SalesOrderStatusUpdate, tenant_id: UUID) -> SalesOrder:
        """
        Cambiar el estado del pedido

        Los estados terminales (termine, annule) no se pueden abandonar.
        Pasar a 'annule' equivale a cancelar el pedido (se repone el stock).
        """
        order = self._get(order_id, tenant_id)

        if order.status in FINALIZED_STATUSES and status_data.status != order.status:
            raise StateError(f"El pedido {order.number} está en estado terminal '{order.status.value}'")

        if status_data.status == SalesOrderStatus.ANNULE and order.status != SalesOrderStatus.ANNULE:
            return self.cancel_sales_order(order_id, tenant_id)

        previous = order.status
        order.status = status_data.status
        if status_data.shipped_date:
            order.shipped_date = status_data.shipped_date
        if status_data.delivered_date:
            order.delivered_date = status_data.delivered_date
        if status_data.tracking_number:
            order.tracking_number = status_data.tracking_number

        self._commit("status update")
        self.db.refresh(order)
        logger.info(f"Sales order {order.number} status {previous.value} -> {order.status.value}")
        return order

    def cancel_sales_order(self, order_id: UUID, tenant_id: UUID) -> SalesOrder:
        """Anular el pedido y reponer el stock de sus productos (movimientos 'in')"""
        order = self._get(order_id, tenant_id)

        if order.status == SalesOrderStatus.ANNULE:
            raise StateError("El pedido ya está anulado")
        if order.status == SalesOrderStatus.TERMINE:
            raise StateError("No se puede anular un pedido terminado")

        try:
            self._restore_stock(order, tenant_id, "Sales Order Cancelled", "Reposición por anulación del pedido")
            order.status = SalesOrderStatus.ANNULE
        except DomainError:
            self.db.rollback()
            raise

        self._commit("cancellation")
        self.db.refresh(order)
        logger.info(f"Sales order {order.number} cancelled")
        return order

    def delete_sales_order(self, order_id: UUID, tenant_id: UUID) -> dict:
        """
        Eliminar el pedido. Si no estaba anulado se repone el stock; la
        cotización de origen queda libre para convertirse de nuevo.
        """
        order = self._get(order_id, tenant_id)
        number = order.number

        try:
            if order.status != SalesOrderStatus.ANNULE:
                self._restore_stock(order, tenant_id, "Sales Order Deleted", "Reposición por eliminación del pedido")

            if order.quotation_id:
                quotation = self.db.query(Quotation).filter(
                    Quotation.id == order.quotation_id,
                    Quotation.tenant_id == tenant_id
                ).first()
                if quotation and quotation.sales_order_id == order.id:
                    quotation.sales_order_id = None
                    quotation.converted_at = None

            self.db.delete(order)
        except DomainError:
            self.db.rollback()
            raise

        self._commit("deletion")
        logger.info(f"Sales order {number} deleted")
        return {"message": f"Pedido {number} eliminado"}

    # ===== Pagos =====

    def add_payment(self, order_id: UUID, payment_data: PaymentCreate, tenant_id: UUID) -> SalesOrderPayment:
        order = self._get(order_id, tenant_id)
        try:
            payment = ledger.add_payment(
                order,
                payment_data.amount,
                payment_data.method,
                payment_data.payment_date,
                payment_data.notes,
                expected_version=payment_data.expected_version,
                payment_cls=SalesOrderPayment,
            )
        except DomainError:
            self.db.rollback()
            raise

        self._commit("payment creation")
        self.db.refresh(payment)
        return payment

    def update_payment(self, order_id: UUID, payment_id: UUID, payment_data: PaymentUpdate,
                       tenant_id: UUID) -> SalesOrderPayment:
        order = self._get(order_id, tenant_id)
        fields = payment_data.model_dump(exclude_unset=True, exclude={"expected_version"})
        try:
            payment = ledger.update_payment(
                order, payment_id, fields, expected_version=payment_data.expected_version
            )
        except DomainError:
            self.db.rollback()
            raise

        self._commit("payment update")
        self.db.refresh(payment)
        return payment

    def delete_payment(self, order_id: UUID, payment_id: UUID, tenant_id: UUID,
                       expected_version: Optional[int] = None) -> dict:
        order = self._get(order_id, tenant_id)
        try:
            ledger.delete_payment(order, payment_id, expected_version=expected_version)
        except DomainError:
            self.db.rollback()
            raise

        self._commit("payment deletion")
        self.db.refresh(order)
        return self.get_payments(order_id, tenant_id)

    def get_payments(self, order_id: UUID, tenant_id: UUID) -> dict:
        order = self._get(order_id, tenant_id)
        return {
            "payments": order.payments,
            "payments_version": order.payments_version,
            "balance": order.balance,
        }

    def get_balance(self, order_id: UUID, tenant_id: UUID) -> ledger.Balance:
        return self._get(order_id, tenant_id).balance

    # ===== Estadísticas =====

    def get_stats(self, tenant_id: UUID) -> dict:
        """Estadísticas de los pedidos de los últimos 30 días"""
        since = date.today() - timedelta(days=30)
        orders = self.db.query(SalesOrder).filter(
            SalesOrder.tenant_id == tenant_id,
            SalesOrder.order_date >= since
        ).all()

        counts = {s: 0 for s in SalesOrderStatus}
        active_revenue = ZERO
        completed_revenue = ZERO
        total_value = ZERO
        for order in orders:
            counts[order.status] += 1
            total = order.total_amount
            total_value += total
            if order.status != SalesOrderStatus.ANNULE:
                active_revenue += total
            if order.status == SalesOrderStatus.TERMINE:
                completed_revenue += total

        average = quantize_money(total_value / len(orders)) if orders else Decimal('0.00')

        return {
            "total_orders": len(orders),
            "in_progress_count": counts[SalesOrderStatus.EN_COURS],
            "preparing_count": counts[SalesOrderStatus.EN_PREPARATION],
            "shipped_count": counts[SalesOrderStatus.EXPEDIE],
            "delivered_count": counts[SalesOrderStatus.LIVRE],
            "completed_count": counts[SalesOrderStatus.TERMINE],
            "cancelled_count": counts[SalesOrderStatus.ANNULE],
            "active_revenue": quantize_money(active_revenue),
            "completed_revenue": quantize_money(completed_revenue),
            "average_order_value": average,
        }
