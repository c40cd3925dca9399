"""
Registro de pagos de un pedido y saldo derivado.

Las funciones operan sobre cualquier documento con `status`, `total_amount`
y una lista `payments` (un SalesOrder del ORM o un LedgerDocument en
memoria). Todas las validaciones se hacen antes de modificar nada: si una
operación falla, el documento queda igual.

El saldo nunca se guarda; se calcula con compute_balance y puede ser
negativo cuando hay sobrepago.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4
import logging

from app.common.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from app.modules.pricing.calculator import ZERO, quantize_money, to_decimal
from app.modules.sales_orders.models import FINALIZED_STATUSES, PaymentMethod

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("amount", "method", "payment_date", "notes")


@dataclass
class PaymentRecord:
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    notes: Optional[str] = None
    id: UUID = field(default_factory=uuid4)


@dataclass
class LedgerDocument:
    """Documento mínimo para usar el ledger fuera de la base de datos"""
    status: str
    total_amount: Decimal
    payments: List[Any] = field(default_factory=list)
    payments_version: int = 0


@dataclass(frozen=True)
class Balance:
    total: Decimal
    total_paid: Decimal
    outstanding: Decimal
    is_overpaid: bool = False


def _validate_amount(amount: Any) -> Decimal:
    value = to_decimal(amount, "amount")
    if value <= 0:
        raise ValidationError("payment amount must be positive")
    # Se guarda con 2 decimales: 0.001 quedaría en 0.00
    if value != quantize_money(value):
        raise ValidationError("payment amount must have at most 2 decimal places")
    return value


def _validate_method(method: Any) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise ValidationError(f"unknown payment method '{method}'")


def _ensure_open(document: Any) -> None:
    if document.status in FINALIZED_STATUSES:
        status = getattr(document.status, "value", document.status)
        raise StateError(f"payments are read-only on a document in status '{status}'")


def _ensure_version(document: Any, expected_version: Optional[int]) -> None:
    if expected_version is None:
        return
    current = getattr(document, "payments_version", 0) or 0
    if current != expected_version:
        raise ConflictError(
            f"payments were modified concurrently (expected version {expected_version}, current {current})"
        )


def _bump_version(document: Any) -> None:
    if hasattr(document, "payments_version"):
        document.payments_version = (document.payments_version or 0) + 1


def _find_payment(document: Any, payment_id: UUID):
    for payment in document.payments:
        if str(payment.id) == str(payment_id):
            return payment
    raise NotFoundError("payment not found")


def add_payment(
    document: Any,
    amount: Any,
    method: Any,
    payment_date: Optional[date] = None,
    notes: Optional[str] = None,
    expected_version: Optional[int] = None,
    payment_cls=PaymentRecord,
):
    """
    Registrar un pago en el documento

    Raises:
        ValidationError: importe <= 0 o método desconocido
        StateError: documento finalizado o anulado
        ConflictError: expected_version no coincide con payments_version
    """
    value = _validate_amount(amount)
    payment_method = _validate_method(method)
    _ensure_open(document)
    _ensure_version(document, expected_version)

    payment = payment_cls(
        id=uuid4(),
        amount=value,
        method=payment_method,
        payment_date=payment_date or date.today(),
        notes=notes,
    )
    document.payments.append(payment)
    _bump_version(document)

    logger.info(f"Payment {payment.id} added: {value} ({payment_method.value})")
    return payment


def update_payment(
    document: Any,
    payment_id: UUID,
    fields: Mapping[str, Any],
    expected_version: Optional[int] = None,
):
    """
    Modificar importe, método, fecha o notas de un pago existente

    `fields` acepta `date` como sinónimo de `payment_date`.
    """
    payment = _find_payment(document, payment_id)
    _ensure_open(document)
    _ensure_version(document, expected_version)

    changes = {}
    for key, value in fields.items():
        key = "payment_date" if key == "date" else key
        if key not in UPDATABLE_FIELDS:
            raise ValidationError(f"field '{key}' cannot be updated")
        changes[key] = value

    if "amount" in changes:
        changes["amount"] = _validate_amount(changes["amount"])
    if "method" in changes:
        changes["method"] = _validate_method(changes["method"])
    if "payment_date" in changes and changes["payment_date"] is None:
        raise ValidationError("payment date is required")

    for key, value in changes.items():
        setattr(payment, key, value)
    _bump_version(document)

    logger.info(f"Payment {payment.id} updated: {', '.join(changes) or 'no changes'}")
    return payment


def delete_payment(document: Any, payment_id: UUID, expected_version: Optional[int] = None):
    """Eliminar un pago; el documento no debe estar finalizado ni anulado"""
    payment = _find_payment(document, payment_id)
    _ensure_open(document)
    _ensure_version(document, expected_version)

    document.payments.remove(payment)
    _bump_version(document)

    logger.info(f"Payment {payment.id} deleted ({payment.amount})")
    return payment


def compute_balance(document: Any) -> Balance:
    """total_paid = Σ pagos; outstanding = total - total_paid (puede ser negativo)"""
    total = to_decimal(document.total_amount, "total_amount")
    total_paid = sum((to_decimal(payment.amount, "amount") for payment in document.payments), ZERO)
    outstanding = quantize_money(total - total_paid)
    return Balance(
        total=quantize_money(total),
        total_paid=quantize_money(total_paid),
        outstanding=outstanding,
        is_overpaid=outstanding < 0,
    )
