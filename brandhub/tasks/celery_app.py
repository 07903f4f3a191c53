import os

from celery import Celery

from brandhub.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "brandhub",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=[
        "brandhub.tasks.automation_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=1800,  # 30 minutes
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,

    worker_concurrency=int(os.getenv('CELERY_WORKER_CONCURRENCY', '4')),
    worker_prefetch_multiplier=int(os.getenv('CELERY_WORKER_PREFETCH', '1')),
    worker_max_tasks_per_child=int(os.getenv('CELERY_MAX_TASKS_PER_CHILD', '100')),

    # Acknowledge only after completion; a lost worker's claim is released by the retry scan
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_routes={
        'brandhub.tasks.automation_tasks.run_due_automations': {'queue': 'automations'},
        'brandhub.tasks.automation_tasks.run_automation': {'queue': 'automations'},
        'brandhub.tasks.automation_tasks.dispatch_submission': {'queue': 'dispatch'},
        'brandhub.tasks.automation_tasks.retry_failed_submissions': {'queue': 'dispatch'},
    },
    task_default_queue='default',
    task_create_missing_queues=True,
)

# Beat is the external trigger for automation runs; the app has no scheduler thread
celery_app.conf.beat_schedule = {
    'automation-due-scan': {
        'task': 'brandhub.tasks.automation_tasks.run_due_automations',
        'schedule': 60.0,  # Every minute
        'options': {'queue': 'automations'},
    },
    'submission-retry-scan': {
        'task': 'brandhub.tasks.automation_tasks.retry_failed_submissions',
        'schedule': 60.0 * 5,  # Every 5 minutes
        'options': {'queue': 'dispatch'},
    },
}
