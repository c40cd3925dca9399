from fastapi import APIRouter

from app.modules.pricing.calculator import (
    LineItem, Section, DocumentAdjustments, calculate_line, aggregate_document
)
from app.modules.pricing.schemas import (
    LineItemIn, LineAmountsOut, DocumentIn, DocumentPricingOut, DocumentTotalsOut, SectionBreakdown
)

pricing_router = APIRouter(prefix="/pricing", tags=["Pricing"])


def _to_line(item: LineItemIn) -> LineItem:
    return LineItem(**item.model_dump())


@pricing_router.post("/line", response_model=LineAmountsOut)
def price_line(item: LineItemIn):
    """
    Calcular descuento, base gravable, impuesto y total de una línea
    """
    return calculate_line(_to_line(item))


@pricing_router.post("/document", response_model=DocumentPricingOut)
def price_document(document: DocumentIn):
    """
    Calcular totales de un documento por secciones

    Retorna el detalle por línea, el total de cada sección y los totales
    del documento (subtotal, descuento, impuesto, total) incluyendo el
    descuento global y los costos de envío/instalación si se envían.
    """
    sections = [
        Section(name=section.name, items=tuple(_to_line(item) for item in section.items))
        for section in document.sections
    ]
    adjustments = DocumentAdjustments(
        global_discount_type=document.global_discount_type,
        global_discount_value=document.global_discount_value,
        shipping_cost=document.shipping_cost,
        installation_cost=document.installation_cost,
    )

    breakdown = []
    for section in sections:
        section_totals = aggregate_document([section])
        breakdown.append(SectionBreakdown(
            name=section.name,
            lines=[LineAmountsOut.model_validate(calculate_line(item)) for item in section],
            total=section_totals.total,
        ))

    totals = aggregate_document(sections, adjustments)
    return DocumentPricingOut(
        sections=breakdown,
        totals=DocumentTotalsOut.model_validate(totals),
    )
