"""
Tests for DispatchService: claim, record, settle
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from brandhub.core.exceptions import (
    ConcurrentDispatchError,
    InvalidStatusTransitionError,
    InvalidSubmissionError,
    PersistenceError,
    RetryLimitExceededError,
    TransportError,
)
from brandhub.core.http_client import AutomationRunnerClient, RunnerResponse
from brandhub.db.models import IntegrationLogEntry
from brandhub.services.dispatch_service import DispatchService
from brandhub.services.retry_policy import RetryPolicy
from brandhub.services.submission_service import SubmissionService


def entries_for(db_session, submission_id):
    return (
        db_session.query(IntegrationLogEntry)
        .filter(IntegrationLogEntry.submission_id == submission_id)
        .order_by(IntegrationLogEntry.id)
        .all()
    )


class TestDispatchSubmission:

    @pytest.mark.asyncio
    async def test_success_completes_submission(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        service = DispatchService(db_session, client=runner, settings=settings)

        entry = await service.dispatch_submission(submission.id)

        refreshed = service.submissions.get_submission(submission.id)
        assert entry.status == "success"
        assert refreshed.status == "completed"
        assert refreshed.generated_caption == "Where ideas brew"
        assert refreshed.generated_caption_th == "ที่ที่ไอเดียเกิดขึ้น"
        assert refreshed.hashtags == ["#ArtCoffeeStudio"]

        call = runner.calls[0]
        assert call["url"] == settings.automation_runner_url
        assert call["timeout"] == settings.dispatch_timeout_seconds
        assert call["payload"]["submission_id"] == submission.id
        assert call["payload"]["mood"] == "CALM"
        assert call["payload"]["idempotency_key"] == entry.idempotency_key

    @pytest.mark.asyncio
    async def test_webhook_override(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted", webhook_url="https://hook.make.com/brand")
        service = DispatchService(db_session, client=runner, settings=settings)

        await service.dispatch_submission(submission.id)
        await service.dispatch_submission(make_submission(status="submitted").id, webhook_url="https://x.test/a")

        assert runner.calls[0]["url"] == "https://hook.make.com/brand"
        assert runner.calls[1]["url"] == "https://x.test/a"

    @pytest.mark.asyncio
    async def test_timeout_returns_submission_to_submitted(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_error(TransportError.TIMEOUT, "timeout")
        service = DispatchService(db_session, client=runner, settings=settings)

        entry = await service.dispatch_submission(submission.id, timeout=1.0)

        assert service.submissions.get_submission(submission.id).status == "submitted"
        entries = entries_for(db_session, submission.id)
        assert len(entries) == 1
        assert entries[0].id == entry.id
        assert entries[0].status == "failed"
        assert entries[0].error_message == "timeout"

    @pytest.mark.asyncio
    async def test_runner_error_fails_submission(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_error(TransportError.HTTP_STATUS, "runner returned HTTP 500", status=500)
        service = DispatchService(db_session, client=runner, settings=settings)

        entry = await service.dispatch_submission(submission.id)

        refreshed = service.submissions.get_submission(submission.id)
        assert entry.status == "failed"
        assert refreshed.status == "failed"
        assert refreshed.generated_caption is None
        assert refreshed.webhook_response["status"] == 500

    @pytest.mark.asyncio
    async def test_draft_is_not_dispatchable(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="draft")

        with pytest.raises(InvalidStatusTransitionError):
            await DispatchService(db_session, client=runner, settings=settings).dispatch_submission(submission.id)

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_dispatch_single_winner(self, db_session, runner, settings, make_submission):
        runner.delay = 0.01
        submission = make_submission(status="submitted")
        service = DispatchService(db_session, client=runner, settings=settings)

        results = await asyncio.gather(
            service.dispatch_submission(submission.id),
            service.dispatch_submission(submission.id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        entries = [r for r in results if isinstance(r, IntegrationLogEntry)]
        assert len(entries) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], ConcurrentDispatchError)
        assert len(runner.calls) == 1
        assert len(entries_for(db_session, submission.id)) == 1

    @pytest.mark.asyncio
    async def test_processing_submission_rejected(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="processing")

        with pytest.raises(ConcurrentDispatchError):
            await DispatchService(db_session, client=runner, settings=settings).dispatch_submission(submission.id)

    @pytest.mark.asyncio
    async def test_write_failure_releases_claim(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        service = DispatchService(db_session, client=runner, settings=settings)

        with patch.object(service.ledger.repository, "add_ledger_entry", side_effect=PersistenceError("db down")):
            with pytest.raises(PersistenceError):
                await service.dispatch_submission(submission.id)

        assert service.submissions.get_submission(submission.id).status == "submitted"

    @pytest.mark.asyncio
    async def test_cancel_during_flight_keeps_ledger_entry(self, db_session, settings, make_submission):
        submission = make_submission(status="submitted")

        class CancellingRunner:
            async def dispatch(self, url, payload, timeout=None):
                SubmissionService(db_session).cancel(payload["submission_id"])
                return RunnerResponse(status=200, body={"generated_caption": "late"}, duration_ms=5)

        service = DispatchService(db_session, client=CancellingRunner(), settings=settings)
        entry = await service.dispatch_submission(submission.id)

        refreshed = service.submissions.get_submission(submission.id)
        assert refreshed.status == "cancelled"
        assert refreshed.generated_caption is None
        assert entry.status == "success"
        assert len(entries_for(db_session, submission.id)) == 1


class TestUnexpectedFailures:

    @pytest.mark.asyncio
    async def test_malformed_stored_url_fails_submission(self, db_session, settings, make_submission):
        submission = make_submission(status="submitted", webhook_url="https://runner.test/hook\x00")
        client = AutomationRunnerClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        service = DispatchService(db_session, client=client, settings=settings)
        try:
            entry = await service.dispatch_submission(submission.id)
        finally:
            await client.close()

        assert entry.status == "failed"
        assert service.submissions.get_submission(submission.id).status == "failed"
        assert len(entries_for(db_session, submission.id)) == 1

    @pytest.mark.asyncio
    async def test_client_bug_fails_submission(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_exception(RuntimeError("boom"))
        service = DispatchService(db_session, client=runner, settings=settings)

        entry = await service.dispatch_submission(submission.id)

        assert entry.status == "failed"
        assert "RuntimeError" in entry.error_message
        assert service.submissions.get_submission(submission.id).status == "failed"

    @pytest.mark.asyncio
    async def test_cancellation_releases_claim(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_exception(asyncio.CancelledError())
        service = DispatchService(db_session, client=runner, settings=settings)

        with pytest.raises(asyncio.CancelledError):
            await service.dispatch_submission(submission.id)

        assert service.submissions.get_submission(submission.id).status == "submitted"
        entries = entries_for(db_session, submission.id)
        assert [e.error_message for e in entries] == ["dispatch cancelled"]

    @pytest.mark.asyncio
    async def test_error_while_settling_releases_claim(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        service = DispatchService(db_session, client=runner, settings=settings)

        with patch.object(service.submissions, "mark_completed", side_effect=RuntimeError("worker time limit")):
            with pytest.raises(RuntimeError):
                await service.dispatch_submission(submission.id)

        assert service.submissions.get_submission(submission.id).status == "submitted"
        assert len(entries_for(db_session, submission.id)) == 1

    @pytest.mark.asyncio
    async def test_invalid_override_rejected_before_claim(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        service = DispatchService(db_session, client=runner, settings=settings)

        with pytest.raises(InvalidSubmissionError):
            await service.dispatch_submission(submission.id, webhook_url="ftp://runner.test/hook")

        assert service.submissions.get_submission(submission.id).status == "submitted"
        assert runner.calls == []


class TestStaleClaims:

    NOW = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_abandoned_claim_released(self, db_session, runner, settings, make_submission):
        stale = make_submission(status="processing", updated_at=self.NOW - timedelta(hours=1))
        live = make_submission(status="processing", updated_at=self.NOW - timedelta(seconds=5))
        service = DispatchService(db_session, client=runner, settings=settings)

        released = service.release_stale_claims(now=self.NOW)

        assert released == [stale.id]
        assert service.submissions.get_submission(stale.id).status == "submitted"
        assert service.submissions.get_submission(live.id).status == "processing"

    @pytest.mark.asyncio
    async def test_retry_scan_recovers_abandoned_claim(self, db_session, runner, settings, make_submission):
        stale = make_submission(status="processing", updated_at=self.NOW - timedelta(hours=1))
        service = DispatchService(db_session, client=runner, settings=settings)

        stats = await service.retry_failed_submissions(now=self.NOW)
        assert stats["released"] == 1

        entry = await service.dispatch_submission(stale.id)
        assert entry.status == "success"
        assert service.submissions.get_submission(stale.id).status == "completed"


class TestRetry:

    @pytest.mark.asyncio
    async def test_retry_adds_entry_with_incremented_count(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_error(TransportError.HTTP_STATUS, "runner returned HTTP 503", status=503)
        service = DispatchService(db_session, client=runner, settings=settings)

        first = await service.dispatch_submission(submission.id)
        assert service.submissions.get_submission(submission.id).status == "failed"

        second = await service.retry_submission(submission.id)

        assert (first.retry_count, second.retry_count) == (0, 1)
        assert service.submissions.get_submission(submission.id).status == "completed"
        assert service.ledger.get_entry(first.id).status == "failed"
        assert service.ledger.get_entry(second.id).status == "success"
        assert runner.calls[0]["payload"]["idempotency_key"] != runner.calls[1]["payload"]["idempotency_key"]

    @pytest.mark.asyncio
    async def test_retry_only_from_failed(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")

        with pytest.raises(InvalidStatusTransitionError):
            await DispatchService(db_session, client=runner, settings=settings).retry_submission(submission.id)

    @pytest.mark.asyncio
    async def test_retry_limit(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        for _ in range(2):
            runner.queue_error(TransportError.HTTP_STATUS, "runner returned HTTP 500", status=500)
        service = DispatchService(db_session, client=runner, settings=settings,
                                  retry_policy=RetryPolicy(max_attempts=2, base_delay=0))

        await service.dispatch_submission(submission.id)
        await service.retry_submission(submission.id)

        with pytest.raises(RetryLimitExceededError) as exc_info:
            await service.retry_submission(submission.id)

        assert exc_info.value.attempts == 2
        assert service.submissions.get_submission(submission.id).status == "failed"
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_retry_scan_respects_backoff(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_error(TransportError.HTTP_STATUS, "runner returned HTTP 500", status=500)
        service = DispatchService(db_session, client=runner, settings=settings,
                                  retry_policy=RetryPolicy(max_attempts=3, base_delay=60))
        await service.dispatch_submission(submission.id)

        not_yet = await service.retry_failed_submissions(now=datetime.now(timezone.utc))
        assert not_yet["not_due"] == 1
        assert not_yet["retried"] == 0

        later = await service.retry_failed_submissions(now=datetime.now(timezone.utc) + timedelta(hours=1))
        assert later["retried"] == 1
        assert later["succeeded"] == 1
        assert service.submissions.get_submission(submission.id).status == "completed"

    @pytest.mark.asyncio
    async def test_retry_scan_counts_exhausted(self, db_session, runner, settings, make_submission):
        submission = make_submission(status="submitted")
        runner.queue_error(TransportError.HTTP_STATUS, "runner returned HTTP 500", status=500)
        service = DispatchService(db_session, client=runner, settings=settings,
                                  retry_policy=RetryPolicy(max_attempts=1))
        await service.dispatch_submission(submission.id)

        stats = await service.retry_failed_submissions(now=datetime.now(timezone.utc) + timedelta(days=1))

        assert stats["exhausted"] == 1
        assert stats["retried"] == 0
        assert len(runner.calls) == 1
