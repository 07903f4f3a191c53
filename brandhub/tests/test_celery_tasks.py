"""
Tests for Celery configuration and task wiring
"""
from contextlib import contextmanager
from unittest.mock import AsyncMock, Mock, patch

from brandhub.core.exceptions import ConcurrentDispatchError
from brandhub.tasks import automation_tasks
from brandhub.tasks.celery_app import celery_app


@contextmanager
def fake_session():
    yield Mock()


class TestCeleryBeatSchedule:

    def test_automation_due_scan(self):
        schedule = celery_app.conf.beat_schedule.get('automation-due-scan')

        assert schedule is not None
        assert schedule['task'] == 'brandhub.tasks.automation_tasks.run_due_automations'
        assert schedule['schedule'] == 60.0
        assert schedule['options']['queue'] == 'automations'

    def test_submission_retry_scan(self):
        schedule = celery_app.conf.beat_schedule.get('submission-retry-scan')

        assert schedule is not None
        assert schedule['task'] == 'brandhub.tasks.automation_tasks.retry_failed_submissions'
        assert schedule['schedule'] == 300.0

    def test_beat_tasks_are_registered(self):
        for entry in celery_app.conf.beat_schedule.values():
            assert entry['task'] in celery_app.tasks

    def test_reliability_settings(self):
        assert celery_app.conf.task_acks_late is True
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.enable_utc is True


class TestAutomationTasks:

    @patch.object(automation_tasks, "get_celery_db_session", fake_session)
    @patch.object(automation_tasks, "DispatchService")
    def test_dispatch_submission_task(self, mock_service_cls):
        entry = Mock()
        entry.to_dict.return_value = {"id": 1, "status": "success"}
        mock_service_cls.return_value.dispatch_submission = AsyncMock(return_value=entry)

        result = automation_tasks.dispatch_submission(5)

        assert result == {"id": 1, "status": "success"}
        mock_service_cls.return_value.dispatch_submission.assert_awaited_once_with(5, webhook_url=None)

    @patch.object(automation_tasks, "get_celery_db_session", fake_session)
    @patch.object(automation_tasks, "DispatchService")
    def test_dispatch_submission_task_reports_conflict(self, mock_service_cls):
        mock_service_cls.return_value.dispatch_submission = AsyncMock(side_effect=ConcurrentDispatchError(5))

        result = automation_tasks.dispatch_submission(5)

        assert result["status"] == "not_dispatched"
        assert "already being processed" in result["error"]

    @patch.object(automation_tasks, "get_celery_db_session", fake_session)
    @patch.object(automation_tasks, "AutomationRegistry")
    def test_run_due_automations_task(self, mock_registry_cls):
        summary = {"schedules_run": 2, "schedules_failed": 0, "runs": []}
        mock_registry_cls.return_value.run_due_schedules = AsyncMock(return_value=summary)

        assert automation_tasks.run_due_automations() == summary

    @patch.object(automation_tasks, "get_celery_db_session", fake_session)
    @patch.object(automation_tasks, "AutomationRegistry")
    def test_run_automation_task(self, mock_registry_cls):
        mock_registry_cls.return_value.run_schedule = AsyncMock(return_value={"status": "success"})

        assert automation_tasks.run_automation(3) == {"status": "success"}
        mock_registry_cls.return_value.run_schedule.assert_awaited_once_with(3)

    @patch.object(automation_tasks, "get_celery_db_session", fake_session)
    @patch.object(automation_tasks, "DispatchService")
    def test_retry_failed_submissions_task(self, mock_service_cls):
        mock_service_cls.return_value.retry_failed_submissions = AsyncMock(return_value={"retried": 1})

        assert automation_tasks.retry_failed_submissions() == {"retried": 1}
