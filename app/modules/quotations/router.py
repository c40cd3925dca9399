from fastapi import APIRouter, Query, status
from datetime import date
from typing import Optional
from uuid import UUID

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency, tenant_dependency
from app.modules.quotations.models import QuotationStatus
from app.modules.quotations.service import QuotationService
from app.modules.quotations.schemas import (
    QuotationCreate, QuotationUpdate, QuotationStatusUpdate, QuotationOut, QuotationList,
    QuotationStats, QuotationSectionCreate, QuotationLineCreate, QuotationLineUpdate
)

quotation_router = APIRouter(prefix="/quotations", tags=["Quotations"])


@quotation_router.get("/stats/overview", response_model=QuotationStats)
def get_quotation_stats(db: db_dependency, tenant_id: tenant_dependency):
    """
    Estadísticas de los últimos 30 días: conteo por estado, ingresos
    aceptados y potenciales, valor promedio y tasa de conversión
    """
    return QuotationService(db).get_stats(tenant_id)


@quotation_router.post("/", response_model=QuotationOut, status_code=status.HTTP_201_CREATED)
def create_quotation(quotation_data: QuotationCreate, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).create_quotation(quotation_data, tenant_id)


@quotation_router.get("/", response_model=QuotationList)
def list_quotations(
    db: db_dependency,
    tenant_id: tenant_dependency,
    status_filter: Optional[QuotationStatus] = Query(None, alias="status"),
    contact_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Buscar por número o notas"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    """
    Listar cotizaciones con filtros y conteo por estado
    """
    return QuotationService(db).get_quotations(
        tenant_id, status_filter, contact_id, search, date_from, date_to, limit, offset
    )


@quotation_router.get("/{quotation_id}", response_model=QuotationOut)
def get_quotation(quotation_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).get_quotation(quotation_id, tenant_id)


@quotation_router.put("/{quotation_id}", response_model=QuotationOut)
def update_quotation(
    quotation_id: UUID,
    quotation_data: QuotationUpdate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    """
    Reemplazar cabecera y secciones (solo en estado draft o sent)
    """
    return QuotationService(db).update_quotation(quotation_id, quotation_data, tenant_id)


@quotation_router.patch("/{quotation_id}/status", response_model=QuotationOut)
def update_quotation_status(
    quotation_id: UUID,
    status_data: QuotationStatusUpdate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return QuotationService(db).update_status(quotation_id, status_data.status, tenant_id)


@quotation_router.post("/{quotation_id}/duplicate", response_model=QuotationOut, status_code=status.HTTP_201_CREATED)
def duplicate_quotation(quotation_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).duplicate_quotation(quotation_id, tenant_id)


@quotation_router.delete("/{quotation_id}")
def delete_quotation(quotation_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).delete_quotation(quotation_id, tenant_id)


# --- SECCIONES ---

@quotation_router.post("/{quotation_id}/sections", response_model=QuotationOut, status_code=status.HTTP_201_CREATED)
def add_section(
    quotation_id: UUID,
    section_data: QuotationSectionCreate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return QuotationService(db).add_section(quotation_id, section_data, tenant_id)


@quotation_router.delete("/{quotation_id}/sections/{section_id}", response_model=QuotationOut)
def remove_section(quotation_id: UUID, section_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).remove_section(quotation_id, section_id, tenant_id)


# --- LÍNEAS (los totales se recalculan en cada cambio) ---

@quotation_router.post(
    "/{quotation_id}/sections/{section_id}/lines",
    response_model=QuotationOut,
    status_code=status.HTTP_201_CREATED
)
def add_line(
    quotation_id: UUID,
    section_id: UUID,
    line_data: QuotationLineCreate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return QuotationService(db).add_line(quotation_id, section_id, line_data, tenant_id)


@quotation_router.patch("/{quotation_id}/lines/{line_id}", response_model=QuotationOut)
def update_line(
    quotation_id: UUID,
    line_id: UUID,
    line_data: QuotationLineUpdate,
    db: db_dependency,
    tenant_id: tenant_dependency
):
    return QuotationService(db).update_line(quotation_id, line_id, line_data, tenant_id)


@quotation_router.delete("/{quotation_id}/lines/{line_id}", response_model=QuotationOut)
def remove_line(quotation_id: UUID, line_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).remove_line(quotation_id, line_id, tenant_id)


@quotation_router.post(
    "/{quotation_id}/lines/{line_id}/duplicate",
    response_model=QuotationOut,
    status_code=status.HTTP_201_CREATED
)
def duplicate_line(quotation_id: UUID, line_id: UUID, db: db_dependency, tenant_id: tenant_dependency):
    return QuotationService(db).duplicate_line(quotation_id, line_id, tenant_id)
