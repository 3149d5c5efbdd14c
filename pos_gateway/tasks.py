"""
Celery Tasks
Background export of closed-shift summaries to the report workbook.
"""

import logging
import time
from typing import Any

from pos_gateway.celery_worker import celery_app
from pos_gateway.services.reports import ShiftReportManager
from pos_gateway.timeutils import utcnow_iso

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def export_shift_report(self, summary: dict[str, Any]) -> dict[str, Any]:
    """
    Append a shift summary to the Excel report.

    Args:
        summary: Summary returned by close_shift_with_sales

    Returns:
        dict: Export result with task id and processing time
    """
    task_id = self.request.id
    shift_id = summary.get("shift_id", "unknown")

    logger.info(f"Task {task_id}: exporting shift {shift_id}")
    start_time = time.time()

    result = ShiftReportManager().export_shift_summary(summary)

    elapsed = round(time.time() - start_time, 3)
    result["task_id"] = task_id
    result["processing_time_seconds"] = elapsed

    if result["success"]:
        logger.info(f"Task {task_id}: shift {shift_id} exported in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: shift {shift_id} not exported - {result['message']}")

    return result


@celery_app.task
def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "worker": "celery",
        "timestamp": utcnow_iso(),
    }


@celery_app.task
def clear_shift_reports() -> dict[str, Any]:
    """Remove the report workbook (testing/reset)."""
    success = ShiftReportManager().clear_all()
    return {
        "success": success,
        "message": "Shift reports cleared" if success else "Failed to clear shift reports",
        "timestamp": utcnow_iso(),
    }
