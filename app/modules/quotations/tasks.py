"""
Tareas periódicas de Celery para las cotizaciones.
"""
import logging
from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.quotations.service import QuotationService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def expire_quotations_task(self):
    """
    Marcar como vencidas las cotizaciones enviadas con fecha de expiración pasada.
    Programada diariamente en el beat_schedule.
    """
    db = SessionLocal()
    try:
        expired = QuotationService(db).expire_quotations()
        logger.info(f"Quotation expiration run finished: {expired} expired")
        return {"status": "success", "expired": expired}

    except Exception as exc:
        logger.error(f"Quotation expiration failed: {str(exc)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc)}
    finally:
        db.close()
