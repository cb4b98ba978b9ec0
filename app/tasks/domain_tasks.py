import logging
from uuid import UUID

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.scheduler import VerificationScheduler

logger = logging.getLogger(__name__)


@celery_app.task
def recheck_domains():
    """
    Beat task: fan out one verify_domain_task per due custom domain.

    Selection is cheap (indexed on status / last_checked_at); the DNS work
    happens in the per-domain tasks so one slow zone cannot stall the batch.
    """
    scheduler = VerificationScheduler(SessionLocal)
    due = scheduler.due()
    for domain_id in due:
        verify_domain_task.delay(str(domain_id))
    if due:
        logger.info("Queued %d custom domain checks", len(due))
    return {"queued": len(due)}


@celery_app.task(bind=True, max_retries=0)
def verify_domain_task(self, domain_id: str):
    """Run one scheduled DNS check; skipped when another worker is already on it."""
    scheduler = VerificationScheduler(SessionLocal)
    report = scheduler.check(UUID(domain_id))
    if report is None:
        return {"status": "skipped", "domain_id": domain_id}
    return {
        "status": report.status.value,
        "domain_id": domain_id,
        "outcome": report.outcome,
        "error": report.error_code,
    }
