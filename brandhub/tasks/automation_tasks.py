"""
Celery tasks for automation runs and submission dispatch

Each task opens its own session and runner client and drives the async
services with asyncio.run.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from brandhub.core.exceptions import BrandHubError
from brandhub.core.http_client import AutomationRunnerClient
from brandhub.services.automation_registry import AutomationRegistry
from brandhub.services.dispatch_service import DispatchService
from brandhub.tasks.celery_app import celery_app
from brandhub.tasks.db_session import get_celery_db_session

logger = logging.getLogger(__name__)


async def _run_due_automations() -> Dict[str, Any]:
    client = AutomationRunnerClient()
    try:
        with get_celery_db_session() as db:
            return await AutomationRegistry(db, client=client).run_due_schedules()
    finally:
        await client.close()


async def _run_automation(schedule_id: int) -> Dict[str, Any]:
    client = AutomationRunnerClient()
    try:
        with get_celery_db_session() as db:
            return await AutomationRegistry(db, client=client).run_schedule(schedule_id)
    finally:
        await client.close()


async def _dispatch_submission(submission_id: int, webhook_url: Optional[str]) -> Dict[str, Any]:
    client = AutomationRunnerClient()
    try:
        with get_celery_db_session() as db:
            entry = await DispatchService(db, client=client).dispatch_submission(
                submission_id, webhook_url=webhook_url
            )
            return entry.to_dict()
    finally:
        await client.close()


async def _retry_failed_submissions() -> Dict[str, Any]:
    client = AutomationRunnerClient()
    try:
        with get_celery_db_session() as db:
            return await DispatchService(db, client=client).retry_failed_submissions()
    finally:
        await client.close()


@celery_app.task(name='brandhub.tasks.automation_tasks.run_due_automations')
def run_due_automations() -> Dict[str, Any]:
    """Run every active schedule whose next_run_at has passed"""
    result = asyncio.run(_run_due_automations())
    if result["schedules_run"] or result["schedules_failed"]:
        logger.info(f"Due automation scan: {result['schedules_run']} run, {result['schedules_failed']} failed")
    return result


@celery_app.task(name='brandhub.tasks.automation_tasks.run_automation')
def run_automation(schedule_id: int) -> Dict[str, Any]:
    """Run one schedule now (manual trigger)"""
    try:
        return asyncio.run(_run_automation(schedule_id))
    except BrandHubError as e:
        logger.error(f"Automation schedule {schedule_id} run failed: {e}", extra={"schedule_id": schedule_id})
        return {"schedule_id": schedule_id, "status": "error", "error": str(e)}


@celery_app.task(name='brandhub.tasks.automation_tasks.dispatch_submission')
def dispatch_submission(submission_id: int, webhook_url: Optional[str] = None) -> Dict[str, Any]:
    """Dispatch one submitted submission"""
    try:
        return asyncio.run(_dispatch_submission(submission_id, webhook_url))
    except BrandHubError as e:
        logger.warning(f"Dispatch of submission {submission_id} not performed: {e}",
                       extra={"submission_id": submission_id})
        return {"submission_id": submission_id, "status": "not_dispatched", "error": str(e)}


@celery_app.task(name='brandhub.tasks.automation_tasks.retry_failed_submissions')
def retry_failed_submissions() -> Dict[str, Any]:
    """Retry failed submissions whose backoff has elapsed"""
    return asyncio.run(_retry_failed_submissions())
