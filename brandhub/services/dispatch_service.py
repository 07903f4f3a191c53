"""
Dispatch Service

Sends submissions to the automation runner:

1. claim the submission (compare-and-set to processing, single writer)
2. dispatch through the Integration Ledger, which records the attempt
3. apply the outcome: success -> completed, timeout -> submitted,
   any other failure -> failed

Any failure after the claim puts the submission back to submitted, and
release_stale_claims recovers claims left behind by a worker that died
mid-dispatch, so a submission never stays stuck in processing.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from brandhub.core.config import Settings, get_settings
from brandhub.core.exceptions import (
    ConcurrentDispatchError,
    InvalidStatusTransitionError,
    PersistenceError,
    RetryLimitExceededError,
)
from brandhub.core.http_client import AutomationRunnerClient
from brandhub.core.metrics import track_transition
from brandhub.db.models import IntegrationLogEntry, LedgerStatus, Submission, SubmissionStatus
from brandhub.db.repository import as_utc
from brandhub.services.integration_ledger import IntegrationLedger
from brandhub.services.retry_policy import RetryPolicy
from brandhub.services.submission_service import SubmissionService, validate_webhook_url

logger = logging.getLogger(__name__)


class DispatchService:
    """Claims, dispatches and settles submissions"""

    def __init__(
        self,
        db: Session,
        client: Optional[AutomationRunnerClient] = None,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or get_settings()
        self.submissions = SubmissionService(db)
        self.ledger = IntegrationLedger(db, client, default_timeout=self.settings.dispatch_timeout_seconds)
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)

    def build_payload(self, submission: Submission) -> Dict[str, Any]:
        """Request body for the runner; the ledger adds the idempotency key"""
        return {
            "submission_id": submission.id,
            "submission_type": submission.submission_type,
            "brand_id": submission.brand_id,
            "user_id": submission.user_id,
            "display_name": submission.display_name,
            "profile_image_url": submission.profile_image_url,
            "image_data": submission.image_data,
            "mime_type": submission.mime_type,
            "mood": submission.mood,
            "user_words": submission.user_words,
            "multilingual_level": submission.multilingual_level,
            "platform": submission.platform,
            "content_category": submission.content_category,
        }

    def resolve_url(self, submission: Submission, webhook_url: Optional[str] = None) -> str:
        return webhook_url or submission.webhook_url or self.settings.automation_runner_url

    async def dispatch_submission(
        self,
        submission_id: int,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        sources: Iterable[str] = (SubmissionStatus.SUBMITTED.value,),
    ) -> IntegrationLogEntry:
        """
        Dispatch one submission and record the attempt.

        Args:
            submission_id: Submission to dispatch
            webhook_url: Override for the runner endpoint
            timeout: Per-call timeout in seconds
            sources: Statuses the claim may start from

        Returns:
            The ledger entry written for this attempt

        Raises:
            ConcurrentDispatchError: Another worker holds the claim
            InvalidStatusTransitionError: Submission is not dispatchable
            RetryLimitExceededError: Retry policy exhausted
            InvalidSubmissionError: The webhook_url override is not a usable URL
            PersistenceError: Storage failed; the submission was put back to submitted

        Any exception raised after the claim returns the submission to submitted
        before propagating.
        """
        validate_webhook_url(webhook_url)
        submission = self.submissions.get_submission(submission_id)
        attempts = self.ledger.count_attempts(submission.submission_type, submission_id)
        if not self.retry_policy.can_retry(attempts):
            raise RetryLimitExceededError(submission_id, attempts, self.retry_policy.max_attempts)

        if not self.submissions.claim(submission_id, sources):
            latest = self.submissions.get_submission(submission_id)
            if latest.status == SubmissionStatus.PROCESSING.value:
                raise ConcurrentDispatchError(submission_id)
            raise InvalidStatusTransitionError(submission_id, latest.status, SubmissionStatus.PROCESSING.value)

        try:
            entry = await self.ledger.record_attempt(
                self.resolve_url(submission, webhook_url),
                self.build_payload(submission),
                submission_type=submission.submission_type,
                submission_id=submission_id,
                brand_id=submission.brand_id,
                retry_count=attempts,
                timeout=timeout,
            )
            self._apply_outcome(submission_id, entry)
        except BaseException:
            # Cancellation and worker time limits included
            self._release_claim(submission_id)
            raise

        return entry

    def _apply_outcome(self, submission_id: int, entry: IntegrationLogEntry) -> None:
        try:
            if entry.status == LedgerStatus.SUCCESS.value:
                body = entry.response_payload if isinstance(entry.response_payload, dict) else {}
                self.submissions.mark_completed(submission_id, body)
            elif entry.error_message == "timeout":
                self.submissions.revert_to_submitted(submission_id)
            else:
                self.submissions.mark_failed(submission_id, {
                    "error": entry.error_message,
                    "status": entry.response_status,
                    "ledger_entry_id": entry.id,
                })
        except InvalidStatusTransitionError as e:
            # Cancelled while in flight; the ledger entry stands as written
            logger.warning(
                f"Outcome of ledger entry {entry.id} not applied to submission {submission_id}: {e}",
                extra={"submission_id": submission_id},
            )

    def _release_claim(self, submission_id: int) -> None:
        try:
            self.submissions.revert_to_submitted(submission_id)
        except (PersistenceError, InvalidStatusTransitionError) as e:
            logger.error(
                f"Could not return submission {submission_id} to submitted: {e}",
                extra={"submission_id": submission_id},
            )

    def release_stale_claims(self, now: Optional[datetime] = None,
                             limit: Optional[int] = None) -> List[int]:
        """
        Return abandoned processing claims to submitted.

        A claim is abandoned once it is older than the dispatch timeout plus
        CLAIM_GRACE_SECONDS; a live dispatch settles well before that.

        Returns:
            Ids of the released submissions
        """
        now = as_utc(now) or datetime.now(timezone.utc)
        cutoff = now - timedelta(
            seconds=self.settings.dispatch_timeout_seconds + self.settings.claim_grace_seconds
        )
        released = self.submissions.repository.release_stale_claims(
            cutoff, SubmissionStatus.SUBMITTED.value, limit=limit or self.settings.automation_batch_size
        )
        for submission in released:
            track_transition(submission.submission_type, SubmissionStatus.PROCESSING.value,
                             SubmissionStatus.SUBMITTED.value)
            logger.warning(f"Released stale processing claim on submission {submission.id}",
                           extra={"submission_id": submission.id})
        return [submission.id for submission in released]

    async def retry_submission(self, submission_id: int, timeout: Optional[float] = None) -> IntegrationLogEntry:
        """Re-dispatch a failed submission within the retry policy"""
        submission = self.submissions.get_submission(submission_id)
        if submission.status != SubmissionStatus.FAILED.value:
            raise InvalidStatusTransitionError(submission_id, submission.status, SubmissionStatus.PROCESSING.value)
        return await self.dispatch_submission(
            submission_id,
            timeout=timeout,
            sources=[SubmissionStatus.FAILED.value],
        )

    async def retry_failed_submissions(self, now: Optional[datetime] = None,
                                       limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Retry every failed submission whose backoff has elapsed.

        Abandoned processing claims are released first.

        Returns:
            Counts of released claims, then checked, retried, succeeded, still
            failing, not yet due, exhausted and skipped submissions
        """
        now = now or datetime.now(timezone.utc)
        stats = {
            "released": len(self.release_stale_claims(now=now)),
            "checked": 0, "retried": 0, "succeeded": 0, "failed": 0,
            "not_due": 0, "exhausted": 0, "skipped": 0,
        }

        candidates = self.submissions.repository.list_submissions_by_status(
            SubmissionStatus.FAILED.value, limit=limit or self.settings.automation_batch_size
        )
        for submission in candidates:
            stats["checked"] += 1
            entries = self.ledger.get_entries(submission.submission_type, submission.id)
            attempts = len(entries)

            if not self.retry_policy.can_retry(attempts):
                stats["exhausted"] += 1
                continue

            last_attempt_at = as_utc(entries[-1].created_at if entries else submission.updated_at)
            if last_attempt_at and not self.retry_policy.is_due(attempts, last_attempt_at, now):
                stats["not_due"] += 1
                continue

            try:
                entry = await self.retry_submission(submission.id)
            except (ConcurrentDispatchError, InvalidStatusTransitionError, RetryLimitExceededError) as e:
                logger.info(f"Skipping retry of submission {submission.id}: {e}")
                stats["skipped"] += 1
                continue

            stats["retried"] += 1
            if entry.status == LedgerStatus.SUCCESS.value:
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1

        if stats["retried"]:
            logger.info(f"Retry scan finished: {stats}")
        return stats
