"""
Numeración secuencial de documentos por empresa, tipo y año
"""
from datetime import date
from sqlalchemy import Column, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Session
from uuid import UUID, uuid4

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


class DocumentSequence(Base, TenantMixin, TimestampMixin):
    """Último número emitido por empresa, tipo de documento y año"""
    __tablename__ = "document_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    kind = Column(String(20), nullable=False)  # quotation | sales_order
    year = Column(Integer, nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", "year", name="uq_sequence_tenant_kind_year"),
    )


def next_document_number(db: Session, tenant_id: UUID, kind: str, prefix: str) -> str:
    """Reservar el siguiente número, ej. DEV-2026-0001 (sin commit)"""
    year = date.today().year
    sequence = db.query(DocumentSequence).filter(
        DocumentSequence.tenant_id == tenant_id,
        DocumentSequence.kind == kind,
        DocumentSequence.year == year
    ).with_for_update().first()

    if not sequence:
        sequence = DocumentSequence(tenant_id=tenant_id, kind=kind, year=year, current_number=0)
        db.add(sequence)
        db.flush()

    sequence.current_number += 1
    return f"{prefix}-{year}-{sequence.current_number:04d}"
