"""
Celery tasks for background processing

This module contains Celery tasks for capital call maintenance that runs
outside the request cycle: portfolio weight recalculation and the daily
overdue sweep.
"""
import asyncio
import logging
from datetime import date
from typing import Dict, Any, Optional
from celery import Task
from app.celery_app import celery_app
from app.core.config import CapitalCallSettings
from app.db.session import SessionLocal
from app.services.capital_call_service import CapitalCallService
from app.services.storage import SqlAlchemyStorage

logger = logging.getLogger(__name__)


class CallbackTask(Task):
    """Base task with callbacks for state updates"""

    def on_success(self, retval, task_id, args, kwargs):
        """Called when task succeeds"""
        logger.info(f"Task {task_id} completed successfully")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Called when task fails"""
        logger.error(f"Task {task_id} failed: {exc}")

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        """Called when task is retried"""
        logger.warning(f"Task {task_id} retrying due to: {exc}")


def _build_service(db) -> CapitalCallService:
    return CapitalCallService(SqlAlchemyStorage(db), CapitalCallSettings.from_settings())


@celery_app.task(
    bind=True,
    base=CallbackTask,
    name='app.tasks.recalculate_portfolio_weights_task',
    max_retries=3,
    default_retry_delay=60  # Retry after 1 minute
)
def recalculate_portfolio_weights_task(self, fund_id: int) -> Dict[str, Any]:
    """
    Recalculate portfolio weights for every allocation in a fund

    Args:
        fund_id: Fund ID

    Returns:
        Mapping of allocation id to weight (as strings)
    """
    try:
        logger.info(f"Starting portfolio weight recalculation for fund_id={fund_id}")

        db = SessionLocal()
        try:
            service = _build_service(db)
            weights = asyncio.run(service.recalculate_fund_weights(fund_id))
        finally:
            db.close()

        return {
            'status': 'completed',
            'fund_id': fund_id,
            'weights': {str(allocation_id): str(weight) for allocation_id, weight in weights.items()},
        }

    except Exception as exc:
        logger.error(f"Error recalculating portfolio weights for fund {fund_id}: {exc}", exc_info=True)

        if self.request.retries < self.max_retries:
            logger.info(f"Retrying task for fund_id={fund_id} (attempt {self.request.retries + 1}/{self.max_retries})")
            raise self.retry(exc=exc)
        else:
            logger.error(f"Task failed after {self.max_retries} retries for fund_id={fund_id}")
            raise


@celery_app.task(
    bind=True,
    base=CallbackTask,
    name='app.tasks.mark_overdue_capital_calls_task'
)
def mark_overdue_capital_calls_task(self, as_of: Optional[str] = None) -> Dict[str, Any]:
    """
    Move issued capital calls past their due date to overdue

    Args:
        as_of: ISO date to evaluate against (defaults to today)

    Returns:
        Number and ids of calls marked overdue
    """
    as_of_date = date.fromisoformat(as_of) if as_of else date.today()
    logger.info(f"Starting overdue sweep as of {as_of_date}")

    db = SessionLocal()
    try:
        service = _build_service(db)
        marked = asyncio.run(service.mark_overdue_calls(as_of_date))
    finally:
        db.close()

    return {
        'status': 'completed',
        'as_of': as_of_date.isoformat(),
        'marked_overdue': len(marked),
        'capital_call_ids': [call.id for call in marked],
    }


@celery_app.task(name='app.tasks.health_check')
def health_check() -> Dict[str, str]:
    """
    Simple health check task

    Returns:
        Status message
    """
    return {'status': 'healthy', 'message': 'Celery worker is running'}
