"""
Integration Ledger

Every outbound call to the automation runner goes through record_attempt,
which performs the call and writes exactly one complete ledger entry for
it. Transport failures (timeout, connection error, non-2xx) and any other
error raised by the client become failed entries instead of exceptions;
what to do about a failure is the caller's decision. Cancellation is
recorded too, then re-raised.

Entries are append-only. Retries of the same submission produce new
entries whose retry_count is the number of entries written before them.
"""
import asyncio
import hashlib
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from brandhub.core.exceptions import LedgerEntryNotFoundError, TransportError
from brandhub.core.http_client import AutomationRunnerClient, get_runner_client
from brandhub.core.metrics import track_dispatch
from brandhub.db.models import IntegrationLogEntry, LedgerStatus
from brandhub.db.repository import Repository

logger = logging.getLogger(__name__)


def build_idempotency_key(submission_type: str, submission_id: Any, attempt_ordinal: int) -> str:
    """
    Stable key for one dispatch attempt of one submission.

    The runner is not guaranteed idempotent, so the key travels in the request
    payload and lets it drop duplicates of the same attempt.
    """
    key_components = {
        'submission_type': submission_type,
        'submission_id': submission_id,
        'attempt': attempt_ordinal,
    }
    key_string = json.dumps(key_components, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(key_string.encode()).hexdigest()


def categorize_failure(status_code: Optional[int], error_message: Optional[str]) -> str:
    """Categorize a failed dispatch for retry decisions and metrics"""
    if status_code:
        if status_code == 429:
            return "rate_limited"
        elif status_code in [401, 403]:
            return "auth_failure"
        elif status_code in [400, 422]:
            return "invalid_payload"
        elif status_code >= 500:
            return "server_error"
        elif status_code >= 400:
            return "client_error"

    if error_message:
        error_lower = error_message.lower()
        if 'timeout' in error_lower:
            return "timeout"
        elif 'connection' in error_lower:
            return "connection_error"
        elif 'rate' in error_lower:
            return "rate_limited"
        elif 'auth' in error_lower:
            return "auth_failure"

    return "unknown_error"


class IntegrationLedger:
    """Records dispatch attempts against the automation runner"""

    def __init__(self, db: Session, client: Optional[AutomationRunnerClient] = None,
                 default_timeout: Optional[float] = None):
        self.repository = Repository(db)
        self.client = client or get_runner_client()
        self.default_timeout = default_timeout

    async def record_attempt(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        submission_type: str,
        submission_id: Optional[int],
        brand_id: Optional[str] = None,
        retry_count: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> IntegrationLogEntry:
        """
        Dispatch a payload and record the outcome.

        Args:
            url: Runner webhook URL
            payload: JSON body; an idempotency_key is added when absent
            submission_type: caption_factory or content_factory
            submission_id: Submission the attempt is for (lookup key only)
            brand_id: Owning brand, if known
            retry_count: Prior attempts; counted from the ledger when omitted
            timeout: Per-call timeout in seconds

        Returns:
            The stored entry, already carrying its terminal status

        Raises:
            PersistenceError: The entry could not be written
            asyncio.CancelledError: After recording the cancelled attempt
        """
        if retry_count is None:
            retry_count = (
                self.repository.count_ledger_entries(submission_type, submission_id)
                if submission_id is not None else 0
            )

        request_payload = dict(payload)
        idempotency_key = request_payload.setdefault(
            'idempotency_key',
            build_idempotency_key(submission_type, submission_id, retry_count + 1),
        )

        entry = IntegrationLogEntry(
            brand_id=brand_id,
            submission_type=submission_type,
            submission_id=submission_id,
            webhook_url=url,
            idempotency_key=idempotency_key,
            request_payload=request_payload,
            retry_count=retry_count,
        )

        started = time.monotonic()
        failure_category = None
        try:
            response = await self.client.dispatch(url, request_payload, timeout=timeout or self.default_timeout)
            entry.status = LedgerStatus.SUCCESS.value
            entry.response_status = response.status
            entry.response_payload = response.body
            entry.processing_time_ms = response.duration_ms
        except TransportError as e:
            entry.status = LedgerStatus.FAILED.value
            entry.response_status = e.status
            entry.response_payload = None
            entry.processing_time_ms = e.duration_ms
            # Timeouts carry the bare marker so operators and callers can match on it
            entry.error_message = "timeout" if e.kind == TransportError.TIMEOUT else str(e)
            failure_category = categorize_failure(e.status, entry.error_message)
            if e.body is not None:
                logger.debug(f"Runner error body for submission {submission_id}: {e.body}")
        except asyncio.CancelledError:
            self._mark_unexpected(entry, started, "dispatch cancelled")
            self._store(entry, retry_count, "cancelled")
            raise
        except Exception as e:
            logger.error(f"Unexpected error dispatching {submission_type} {submission_id}: {e!r}", exc_info=True)
            self._mark_unexpected(entry, started, f"dispatch error: {type(e).__name__}: {e}")
            failure_category = "unexpected_error"

        return self._store(entry, retry_count, failure_category)

    @staticmethod
    def _mark_unexpected(entry: IntegrationLogEntry, started: float, message: str) -> None:
        entry.status = LedgerStatus.FAILED.value
        entry.response_status = None
        entry.response_payload = None
        entry.processing_time_ms = int((time.monotonic() - started) * 1000)
        entry.error_message = message

    def _store(self, entry: IntegrationLogEntry, retry_count: int,
               failure_category: Optional[str]) -> IntegrationLogEntry:
        submission_type, submission_id = entry.submission_type, entry.submission_id
        brand_id, idempotency_key = entry.brand_id, entry.idempotency_key
        entry = self.repository.add_ledger_entry(entry)

        track_dispatch(
            submission_type=submission_type,
            status=entry.status,
            attempt_number=retry_count + 1,
            failure_category=failure_category,
            duration_seconds=(entry.processing_time_ms / 1000.0) if entry.processing_time_ms is not None else None,
            status_code=entry.response_status,
        )

        log = logger.info if entry.status == LedgerStatus.SUCCESS.value else logger.warning
        log(
            f"Dispatch attempt {retry_count + 1} for {submission_type} {submission_id}: {entry.status}"
            + (f" ({entry.error_message})" if entry.error_message else ""),
            extra={
                "submission_id": submission_id,
                "brand_id": brand_id,
                "duration_ms": entry.processing_time_ms,
                "idempotency_key": idempotency_key,
            },
        )
        return entry

    def get_entries(self, submission_type: str, submission_id: int) -> List[IntegrationLogEntry]:
        """All attempts for a submission, oldest first"""
        return self.repository.list_ledger_entries(submission_type, submission_id)

    def get_entry(self, entry_id: int) -> IntegrationLogEntry:
        entry = self.repository.get(IntegrationLogEntry, entry_id)
        if entry is None:
            raise LedgerEntryNotFoundError(f"Ledger entry {entry_id} not found")
        return entry

    def count_attempts(self, submission_type: str, submission_id: int) -> int:
        return self.repository.count_ledger_entries(submission_type, submission_id)

    def get_stats(self, hours: int = 24, brand_id: Optional[str] = None) -> Dict[str, Any]:
        """Success/failure counts and average duration over a trailing window"""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        entries = self.repository.list_recent_ledger_entries(since=since, brand_id=brand_id)

        successful = [e for e in entries if e.status == LedgerStatus.SUCCESS.value]
        failed = [e for e in entries if e.status == LedgerStatus.FAILED.value]
        durations = [e.processing_time_ms for e in entries if e.processing_time_ms is not None]

        failure_categories: Dict[str, int] = {}
        for entry in failed:
            category = categorize_failure(entry.response_status, entry.error_message)
            failure_categories[category] = failure_categories.get(category, 0) + 1

        return {
            "window_hours": hours,
            "total_attempts": len(entries),
            "successful": len(successful),
            "failed": len(failed),
            "success_rate": round(len(successful) / len(entries), 4) if entries else 0.0,
            "average_duration_ms": round(sum(durations) / len(durations), 2) if durations else None,
            "failure_categories": failure_categories,
        }
