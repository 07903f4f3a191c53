"""
Automation Registry

Scheduling metadata for recurring automations and the run that dispatches
their linked submissions. Nothing here runs on its own: runs are started
by the Celery beat scan or a manual API call.

Cron semantics come from croniter. Human labels map to the standard
@hourly/@daily/@weekly/@monthly aliases; an explicit cron expression wins
over the label.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from croniter import croniter
from sqlalchemy.orm import Session

from brandhub.core.config import Settings, get_settings
from brandhub.core.exceptions import (
    BrandHubError,
    BrandNotFoundError,
    ConcurrentDispatchError,
    InvalidScheduleError,
    InvalidStatusTransitionError,
    PersistenceError,
    RetryLimitExceededError,
    ScheduleNotFoundError,
)
from brandhub.core.http_client import AutomationRunnerClient
from brandhub.core.logging import get_logger
from brandhub.core.metrics import track_automation_run
from brandhub.db.models import AutomationSchedule, Brand, LedgerStatus, Submission, SubmissionStatus, SubmissionType
from brandhub.db.repository import Repository, as_utc
from brandhub.services.dispatch_service import DispatchService

logger = logging.getLogger(__name__)

SCHEDULE_ALIASES = {
    "hourly": "@hourly",
    "daily": "@daily",
    "weekly": "@weekly",
    "monthly": "@monthly",
}

UPDATABLE_FIELDS = {"automation_name", "automation_type", "schedule", "cron_expression", "automation_config"}


def compute_next_run(schedule: Optional[str], cron_expression: Optional[str],
                     base: Optional[datetime] = None) -> Optional[datetime]:
    """
    Next fire time after base.

    Returns None for schedules with neither a label nor an expression
    (manual-only automations).

    Raises:
        InvalidScheduleError: Unknown label or unparseable cron expression
    """
    base = as_utc(base) or datetime.now(timezone.utc)

    if cron_expression:
        expression = cron_expression.strip()
    elif schedule:
        expression = SCHEDULE_ALIASES.get(schedule.strip().lower())
        if expression is None:
            raise InvalidScheduleError(
                f"Schedule '{schedule}' needs a cron expression (known labels: {', '.join(SCHEDULE_ALIASES)})"
            )
    else:
        return None

    if not croniter.is_valid(expression):
        raise InvalidScheduleError(f"Invalid cron expression '{expression}'")
    return croniter(expression, base).get_next(datetime)


class AutomationRegistry:
    """Service for automation schedules and their runs"""

    def __init__(self, db: Session, client: Optional[AutomationRunnerClient] = None,
                 settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.repository = Repository(db)
        self.dispatcher = DispatchService(db, client=client, settings=self.settings)

    def get_schedule(self, schedule_id: int) -> AutomationSchedule:
        schedule = self.repository.get(AutomationSchedule, schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(f"Automation schedule {schedule_id} not found")
        return schedule

    def list_brand_schedules(self, brand_id: str) -> List[AutomationSchedule]:
        return self.repository.list_by_brand(AutomationSchedule, brand_id)

    def create_schedule(
        self,
        brand_id: str,
        automation_name: str,
        automation_type: Optional[str] = None,
        schedule: Optional[str] = None,
        cron_expression: Optional[str] = None,
        linked_submission_ids: Optional[Dict[str, List[int]]] = None,
        automation_config: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
        now: Optional[datetime] = None,
    ) -> AutomationSchedule:
        if self.repository.get(Brand, brand_id) is None:
            raise BrandNotFoundError(f"Brand '{brand_id}' not found")

        links: Dict[str, List[int]] = {}
        for submission_type, ids in (linked_submission_ids or {}).items():
            links[self._validate_type(submission_type)] = _unique_ids(ids)

        entity = AutomationSchedule(
            brand_id=brand_id,
            automation_name=automation_name,
            automation_type=automation_type,
            schedule=schedule,
            cron_expression=cron_expression,
            linked_submission_ids=links,
            automation_config=automation_config or {},
            is_active=is_active,
            execution_logs=[],
            next_run_at=compute_next_run(schedule, cron_expression, now),
        )
        entity = self.repository.upsert(entity)
        logger.info(f"Created automation schedule {entity.id} '{automation_name}' for brand {brand_id}",
                    extra={"schedule_id": entity.id, "brand_id": brand_id})
        return entity

    def update_schedule(self, schedule_id: int, now: Optional[datetime] = None, **changes: Any) -> AutomationSchedule:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        schedule = self.get_schedule(schedule_id)
        if "schedule" in changes or "cron_expression" in changes:
            schedule.next_run_at = compute_next_run(
                changes.get("schedule", schedule.schedule),
                changes.get("cron_expression", schedule.cron_expression),
                now,
            )
        for name, value in changes.items():
            setattr(schedule, name, value)
        return self.repository.upsert(schedule)

    def activate(self, schedule_id: int, now: Optional[datetime] = None) -> AutomationSchedule:
        schedule = self.get_schedule(schedule_id)
        schedule.is_active = True
        schedule.next_run_at = compute_next_run(schedule.schedule, schedule.cron_expression, now)
        logger.info(f"Activated automation schedule {schedule_id}", extra={"schedule_id": schedule_id})
        return self.repository.upsert(schedule)

    def deactivate(self, schedule_id: int) -> AutomationSchedule:
        """Flag flip only; the schedule and its history are kept"""
        schedule = self.get_schedule(schedule_id)
        schedule.is_active = False
        logger.info(f"Deactivated automation schedule {schedule_id}", extra={"schedule_id": schedule_id})
        return self.repository.upsert(schedule)

    def link_submissions(self, schedule_id: int, submission_type: str, submission_ids: List[int]) -> AutomationSchedule:
        """Add submission ids to a schedule; ids are weak references and are not checked here"""
        submission_type = self._validate_type(submission_type)
        schedule = self.get_schedule(schedule_id)
        links = dict(schedule.linked_submission_ids or {})
        links[submission_type] = _unique_ids(list(links.get(submission_type, [])) + list(submission_ids))
        schedule.linked_submission_ids = links
        return self.repository.upsert(schedule)

    def get_due_schedules(self, now: Optional[datetime] = None) -> List[AutomationSchedule]:
        """Active schedules whose next_run_at has passed; inactive ones are never returned"""
        now = as_utc(now) or datetime.now(timezone.utc)
        return [
            schedule for schedule in self.repository.list_active_schedules()
            if schedule.next_run_at is not None and as_utc(schedule.next_run_at) <= now
        ]

    def get_execution_history(self, schedule_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Execution log entries, newest first"""
        logs = list(self.get_schedule(schedule_id).execution_logs or [])
        return list(reversed(logs))[:limit]

    async def run_schedule(self, schedule_id: int, now: Optional[datetime] = None,
                           concurrency: Optional[int] = None) -> Dict[str, Any]:
        """
        Dispatch every eligible linked submission and log the run.

        Draft submissions are submitted first. Missing or ineligible ids are
        recorded as skipped; no single submission can fail the whole run.

        Returns:
            The execution log entry appended for this run
        """
        now = as_utc(now) or datetime.now(timezone.utc)
        schedule = self.get_schedule(schedule_id)
        started = time.monotonic()

        if not schedule.is_active:
            entry = self._log_entry(now, "skipped", started, skipped=[], errors=["schedule inactive"])
            self.repository.append_log(schedule_id, entry)
            track_automation_run(schedule.automation_type, "skipped")
            return entry

        eligible: List[int] = []
        skipped: List[int] = []
        errors: List[str] = []

        for submission_type, ids in (schedule.linked_submission_ids or {}).items():
            for submission_id in ids:
                submission = self.repository.get(Submission, submission_id)
                if submission is None or submission.submission_type != submission_type:
                    skipped.append(submission_id)
                    errors.append(f"{submission_type} {submission_id}: not found")
                    continue
                if submission.status == SubmissionStatus.DRAFT.value:
                    try:
                        self.dispatcher.submissions.submit(submission_id)
                    except InvalidStatusTransitionError as e:
                        skipped.append(submission_id)
                        errors.append(str(e))
                        continue
                elif submission.status != SubmissionStatus.SUBMITTED.value:
                    skipped.append(submission_id)
                    continue
                eligible.append(submission_id)

        semaphore = asyncio.Semaphore(concurrency or self.settings.automation_concurrency)

        async def dispatch_one(submission_id: int):
            async with semaphore:
                try:
                    entry = await self.dispatcher.dispatch_submission(submission_id)
                    return submission_id, entry.status == LedgerStatus.SUCCESS.value, entry.error_message, False
                except (ConcurrentDispatchError, InvalidStatusTransitionError, RetryLimitExceededError) as e:
                    return submission_id, False, str(e), True
                except PersistenceError as e:
                    return submission_id, False, str(e), False
                except Exception as e:
                    # One broken dispatch must not cost the run its log entry
                    logger.error(f"Unexpected error dispatching submission {submission_id}: {e!r}", exc_info=True,
                                 extra={"submission_id": submission_id, "schedule_id": schedule_id})
                    return submission_id, False, f"{type(e).__name__}: {e}", False

        results = await asyncio.gather(*(dispatch_one(submission_id) for submission_id in eligible))

        processed: List[int] = []
        failed: List[int] = []
        for submission_id, succeeded, error, was_skipped in results:
            if was_skipped:
                skipped.append(submission_id)
            elif succeeded:
                processed.append(submission_id)
            else:
                failed.append(submission_id)
            if error:
                errors.append(f"{submission_id}: {error}")

        if processed and not failed:
            status = "success"
        elif processed and failed:
            status = "partial"
        elif failed:
            status = "failed"
        else:
            status = "skipped"

        entry = self._log_entry(now, status, started, processed=processed, failed=failed,
                                skipped=skipped, errors=errors)
        self.repository.append_log(schedule_id, entry)

        schedule = self.get_schedule(schedule_id)
        schedule.last_run_at = now
        schedule.next_run_at = compute_next_run(schedule.schedule, schedule.cron_expression, now)
        self.repository.upsert(schedule)

        track_automation_run(schedule.automation_type, status)
        run_logger = get_logger(__name__, schedule_id=schedule_id, brand_id=schedule.brand_id)
        run_logger.info(
            f"Automation schedule {schedule_id} run {status}: "
            f"{len(processed)} processed, {len(failed)} failed, {len(skipped)} skipped",
            extra={"duration_ms": entry["execution_time_ms"]},
        )
        return entry

    async def run_due_schedules(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now) or datetime.now(timezone.utc)
        results: Dict[str, Any] = {"schedules_run": 0, "schedules_failed": 0, "runs": []}

        for schedule in self.get_due_schedules(now):
            try:
                entry = await self.run_schedule(schedule.id, now=now)
                results["schedules_run"] += 1
                results["runs"].append({"schedule_id": schedule.id, "status": entry["status"]})
            except BrandHubError as e:
                logger.error(f"Automation schedule {schedule.id} run failed: {e}",
                             extra={"schedule_id": schedule.id})
                results["schedules_failed"] += 1
                results["runs"].append({"schedule_id": schedule.id, "status": "error", "error": str(e)})

        return results

    @staticmethod
    def _validate_type(submission_type: str) -> str:
        try:
            return SubmissionType(submission_type).value
        except ValueError:
            raise InvalidScheduleError(f"Unknown submission type '{submission_type}'")

    @staticmethod
    def _log_entry(now: datetime, status: str, started: float, processed: Optional[List[int]] = None,
                   failed: Optional[List[int]] = None, skipped: Optional[List[int]] = None,
                   errors: Optional[List[str]] = None) -> Dict[str, Any]:
        processed = processed or []
        failed = failed or []
        skipped = skipped or []
        return {
            "timestamp": now.isoformat(),
            "status": status,
            "items_processed": len(processed),
            "items_failed": len(failed),
            "items_skipped": len(skipped),
            "submission_ids": {"processed": processed, "failed": failed, "skipped": skipped},
            "execution_time_ms": int((time.monotonic() - started) * 1000),
            "error_details": errors or None,
        }


def _unique_ids(ids: List[int]) -> List[int]:
    seen = []
    for submission_id in ids:
        if int(submission_id) not in seen:
            seen.append(int(submission_id))
    return seen
