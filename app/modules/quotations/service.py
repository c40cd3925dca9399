from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
import logging

from app.core.config import settings
from app.common.exceptions import DomainError, NotFoundError, StateError
from app.common.sequences import next_document_number
from app.modules.pricing.calculator import ZERO, HUNDRED, quantize_money
from app.modules.quotations.models import Quotation, QuotationSection, QuotationLine, QuotationStatus
from app.modules.quotations.schemas import (
    QuotationCreate, QuotationUpdate, QuotationSectionCreate, QuotationLineCreate, QuotationLineUpdate
)

logger = logging.getLogger(__name__)

HEADER_FIELDS = (
    "contact_id", "global_discount_type", "global_discount_value", "shipping_cost",
    "installation_cost", "notes", "terms_conditions", "payment_terms",
    "delivery_terms", "delivery_address",
)

LINE_FIELDS = (
    "product_id", "product_name", "product_sku", "description", "quantity",
    "unit_price", "discount_percent", "tax_rate", "notes",
)

REQUIRED_LINE_FIELDS = ("product_name", "quantity", "unit_price", "discount_percent", "tax_rate")


class QuotationService:
    def __init__(self, db: Session):
        self.db = db

    # ===== Helpers =====

    def _get(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        quotation = self.db.query(Quotation).filter(
            Quotation.id == quotation_id,
            Quotation.tenant_id == tenant_id
        ).first()
        if not quotation:
            raise NotFoundError("Cotización no encontrada")
        return quotation

    def _get_editable(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        quotation = self._get(quotation_id, tenant_id)
        if not quotation.is_editable:
            raise StateError(
                f"La cotización {quotation.number} no se puede modificar en estado '{quotation.status.value}'"
            )
        return quotation

    def _get_section(self, quotation: Quotation, section_id: UUID) -> QuotationSection:
        for section in quotation.sections:
            if section.id == section_id:
                return section
        raise NotFoundError("Sección no encontrada")

    def _get_line(self, quotation: Quotation, line_id: UUID) -> QuotationLine:
        for section in quotation.sections:
            for line in section.lines:
                if line.id == line_id:
                    return line
        raise NotFoundError("Línea no encontrada")

    @staticmethod
    def _build_line(line_data: QuotationLineCreate, position: int) -> QuotationLine:
        return QuotationLine(position=position, **line_data.model_dump())

    def _build_sections(self, sections: List[QuotationSectionCreate]) -> List[QuotationSection]:
        built = []
        for section_position, section_data in enumerate(sections):
            section = QuotationSection(name=section_data.name, position=section_position)
            section.lines = [
                self._build_line(line_data, line_position)
                for line_position, line_data in enumerate(section_data.lines)
            ]
            built.append(section)
        return built

    @staticmethod
    def _renumber(items) -> None:
        for position, item in enumerate(items):
            item.position = position

    def _save(self, quotation: Quotation, action: str) -> Quotation:
        """Confirmar la transacción y recargar la cotización"""
        try:
            # Valida los importes antes del commit (ValidationError si algo está fuera de rango)
            totals = quotation.totals
            self.db.commit()
            self.db.refresh(quotation)
            logger.info(f"Quotation {quotation.number} {action} (total={totals.total})")
            return quotation
        except DomainError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error on quotation {action}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error guardando cotización: {str(e)}"
            )

    # ===== CRUD =====

    def create_quotation(self, quotation_data: QuotationCreate, tenant_id: UUID) -> Quotation:
        """
        Crear una cotización en borrador con sus secciones y líneas

        El número (DEV-<año>-<secuencia>) se asigna por empresa y la fecha
        de expiración es hoy + validity_days.
        """
        validity_days = quotation_data.validity_days or settings.QUOTATION_VALIDITY_DAYS
        quotation = Quotation(
            tenant_id=tenant_id,
            number=next_document_number(self.db, tenant_id, "quotation", settings.QUOTATION_PREFIX),
            status=QuotationStatus.DRAFT,
            issue_date=date.today(),
            expiration_date=date.today() + timedelta(days=validity_days),
            currency=settings.DEFAULT_CURRENCY,
            **{field: getattr(quotation_data, field) for field in HEADER_FIELDS}
        )
        quotation.sections = self._build_sections(quotation_data.sections)
        self.db.add(quotation)

        return self._save(quotation, "created")

    def get_quotations(
        self,
        tenant_id: UUID,
        status_filter: Optional[QuotationStatus] = None,
        contact_id: Optional[UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self.db.query(Quotation).filter(Quotation.tenant_id == tenant_id)

        if contact_id:
            query = query.filter(Quotation.contact_id == contact_id)
        if search:
            query = query.filter(or_(
                Quotation.number.ilike(f"%{search}%"),
                Quotation.notes.ilike(f"%{search}%")
            ))
        if date_from:
            query = query.filter(Quotation.issue_date >= date_from)
        if date_to:
            query = query.filter(Quotation.issue_date <= date_to)

        # Conteo por estado con los demás filtros aplicados
        counts = {s.value: 0 for s in QuotationStatus}
        for quotation_status, count in query.with_entities(
            Quotation.status, func.count(Quotation.id)
        ).group_by(Quotation.status).all():
            counts[quotation_status.value] = count

        if status_filter:
            query = query.filter(Quotation.status == status_filter)

        total = query.count()
        items = query.order_by(Quotation.created_at.desc(), Quotation.number.desc()).offset(offset).limit(limit).all()

        return {
            "items": items,
            "total": total,
            "limit": limit,
            "offset": offset,
            "counts_by_status": counts,
        }

    def get_quotation(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        return self._get(quotation_id, tenant_id)

    def update_quotation(self, quotation_id: UUID, quotation_data: QuotationUpdate, tenant_id: UUID) -> Quotation:
        """Reemplazar cabecera y secciones de una cotización editable"""
        quotation = self._get_editable(quotation_id, tenant_id)

        for field in HEADER_FIELDS:
            setattr(quotation, field, getattr(quotation_data, field))
        if quotation_data.expiration_date:
            quotation.expiration_date = quotation_data.expiration_date
        elif quotation_data.validity_days:
            quotation.expiration_date = quotation.issue_date + timedelta(days=quotation_data.validity_days)

        quotation.sections = self._build_sections(quotation_data.sections)
        return self._save(quotation, "updated")

    def update_status(self, quotation_id: UUID, new_status: QuotationStatus, tenant_id: UUID) -> Quotation:
        quotation = self._get(quotation_id, tenant_id)

        if quotation.sales_order_id and new_status != QuotationStatus.ACCEPTED:
            raise StateError("La cotización ya fue convertida en pedido")

        previous = quotation.status
        quotation.status = new_status
        quotation = self._save(quotation, f"status {previous.value} -> {new_status.value}")
        return quotation

    def duplicate_quotation(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        """Copiar una cotización como nuevo borrador (nuevo número, expiración a 30 días)"""
        original = self._get(quotation_id, tenant_id)

        duplicate = Quotation(
            tenant_id=tenant_id,
            number=next_document_number(self.db, tenant_id, "quotation", settings.QUOTATION_PREFIX),
            status=QuotationStatus.DRAFT,
            issue_date=date.today(),
            expiration_date=date.today() + timedelta(days=settings.QUOTATION_VALIDITY_DAYS),
            currency=original.currency,
            **{field: getattr(original, field) for field in HEADER_FIELDS}
        )
        duplicate.sections = [
            QuotationSection(
                name=section.name,
                position=section.position,
                lines=[self._copy_line(line, line.position) for line in section.lines]
            )
            for section in original.sections
        ]
        self.db.add(duplicate)
        return self._save(duplicate, f"duplicated from {original.number}")

    def delete_quotation(self, quotation_id: UUID, tenant_id: UUID) -> dict:
        quotation = self._get(quotation_id, tenant_id)
        if quotation.sales_order_id:
            raise StateError("No se puede eliminar una cotización convertida en pedido")

        number = quotation.number
        try:
            self.db.delete(quotation)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting quotation {number}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error eliminando cotización: {str(e)}"
            )

        logger.info(f"Quotation {number} deleted")
        return {"message": f"Cotización {number} eliminada"}

    # ===== Secciones =====

    def add_section(self, quotation_id: UUID, section_data: QuotationSectionCreate, tenant_id: UUID) -> Quotation:
        quotation = self._get_editable(quotation_id, tenant_id)
        section = QuotationSection(name=section_data.name, position=len(quotation.sections))
        section.lines = [
            self._build_line(line_data, position) for position, line_data in enumerate(section_data.lines)
        ]
        quotation.sections.append(section)
        return self._save(quotation, f"section '{section.name}' added")

    def remove_section(self, quotation_id: UUID, section_id: UUID, tenant_id: UUID) -> Quotation:
        quotation = self._get_editable(quotation_id, tenant_id)
        section = self._get_section(quotation, section_id)
        quotation.sections.remove(section)
        self._renumber(quotation.sections)
        return self._save(quotation, f"section '{section.name}' removed")

    # ===== Líneas =====

    @staticmethod
    def _copy_line(line: QuotationLine, position: int) -> QuotationLine:
        return QuotationLine(position=position, **{field: getattr(line, field) for field in LINE_FIELDS})

    def add_line(self, quotation_id: UUID, section_id: UUID, line_data: QuotationLineCreate, tenant_id: UUID) -> Quotation:
        quotation = self._get_editable(quotation_id, tenant_id)
        section = self._get_section(quotation, section_id)
        section.lines.append(self._build_line(line_data, len(section.lines)))
        return self._save(quotation, f"line added to '{section.name}'")

    def update_line(self, quotation_id: UUID, line_id: UUID, line_data: QuotationLineUpdate, tenant_id: UUID) -> Quotation:
        """Editar los campos enviados de una línea y recalcular los totales"""
        quotation = self._get_editable(quotation_id, tenant_id)
        line = self._get_line(quotation, line_id)
        for field, value in line_data.model_dump(exclude_unset=True).items():
            if value is None and field in REQUIRED_LINE_FIELDS:
                continue
            setattr(line, field, value)
        return self._save(quotation, f"line {line_id} updated")

    def remove_line(self, quotation_id: UUID, line_id: UUID, tenant_id: UUID) -> Quotation:
        quotation = self._get_editable(quotation_id, tenant_id)
        line = self._get_line(quotation, line_id)
        section = line.section
        section.lines.remove(line)
        self._renumber(section.lines)
        return self._save(quotation, f"line {line_id} removed")

    def duplicate_line(self, quotation_id: UUID, line_id: UUID, tenant_id: UUID) -> Quotation:
        """Insertar una copia de la línea justo después de la original"""
        quotation = self._get_editable(quotation_id, tenant_id)
        line = self._get_line(quotation, line_id)
        section = line.section
        index = section.lines.index(line)
        section.lines.insert(index + 1, self._copy_line(line, index + 1))
        self._renumber(section.lines)
        return self._save(quotation, f"line {line_id} duplicated")

    # ===== Expiración y estadísticas =====

    def expire_quotations(self, today: Optional[date] = None, tenant_id: Optional[UUID] = None) -> int:
        """
        Marcar como vencidas las cotizaciones enviadas cuya fecha de expiración pasó

        Sin tenant_id procesa todas las empresas (tarea periódica).
        """
        today = today or date.today()
        query = self.db.query(Quotation).filter(
            Quotation.status == QuotationStatus.SENT,
            Quotation.expiration_date.isnot(None),
            Quotation.expiration_date < today
        )
        if tenant_id:
            query = query.filter(Quotation.tenant_id == tenant_id)

        expired = query.all()
        try:
            for quotation in expired:
                quotation.status = QuotationStatus.EXPIRED
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error expiring quotations: {str(e)}", exc_info=True)
            raise

        if expired:
            logger.info(f"{len(expired)} quotation(s) expired: {', '.join(q.number for q in expired)}")
        return len(expired)

    def get_stats(self, tenant_id: UUID) -> dict:
        """Estadísticas de las cotizaciones emitidas en los últimos 30 días"""
        since = date.today() - timedelta(days=30)
        quotations = self.db.query(Quotation).filter(
            Quotation.tenant_id == tenant_id,
            Quotation.issue_date >= since
        ).all()

        counts = {s: 0 for s in QuotationStatus}
        accepted_revenue = ZERO
        potential_revenue = ZERO
        for quotation in quotations:
            counts[quotation.status] += 1
            total = quotation.total_amount
            potential_revenue += total
            if quotation.status == QuotationStatus.ACCEPTED:
                accepted_revenue += total

        decided = counts[QuotationStatus.ACCEPTED] + counts[QuotationStatus.REJECTED]
        conversion_rate = None
        if decided:
            conversion_rate = quantize_money(Decimal(counts[QuotationStatus.ACCEPTED]) * HUNDRED / decided)

        average = quantize_money(potential_revenue / len(quotations)) if quotations else Decimal('0.00')

        return {
            "total_quotations": len(quotations),
            "draft_count": counts[QuotationStatus.DRAFT],
            "sent_count": counts[QuotationStatus.SENT],
            "accepted_count": counts[QuotationStatus.ACCEPTED],
            "rejected_count": counts[QuotationStatus.REJECTED],
            "expired_count": counts[QuotationStatus.EXPIRED],
            "accepted_revenue": quantize_money(accepted_revenue),
            "potential_revenue": quantize_money(potential_revenue),
            "average_quotation_value": average,
            "conversion_rate": conversion_rate,
        }
