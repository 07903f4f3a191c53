"""
Prometheus metrics for dispatch, automation runs and submission lifecycle
"""
import logging
from typing import Optional

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# ============================================================================
# Dispatch / Integration Ledger
# ============================================================================

DISPATCH_ATTEMPTS = Counter(
    'automation_dispatch_attempts_total',
    'Outbound dispatches to the automation runner by outcome',
    ['submission_type', 'status', 'failure_category', 'attempt_number']
)

DISPATCH_LATENCY = Histogram(
    'automation_dispatch_duration_seconds',
    'Automation runner round-trip time',
    ['submission_type', 'status_code_class'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30]
)

# ============================================================================
# Automation Registry
# ============================================================================

AUTOMATION_RUNS = Counter(
    'automation_schedule_runs_total',
    'Automation schedule executions by outcome',
    ['automation_type', 'status']
)

# ============================================================================
# Submission lifecycle
# ============================================================================

SUBMISSION_TRANSITIONS = Counter(
    'submission_status_transitions_total',
    'Submission status transitions',
    ['submission_type', 'from_status', 'to_status']
)


def track_dispatch(submission_type: str, status: str, attempt_number: int,
                   failure_category: Optional[str] = None,
                   duration_seconds: Optional[float] = None,
                   status_code: Optional[int] = None) -> None:
    """Track one ledger-recorded dispatch attempt"""
    DISPATCH_ATTEMPTS.labels(
        submission_type=submission_type,
        status=status,
        failure_category=failure_category or "none",
        attempt_number=str(min(attempt_number, 5)),  # Cap for cardinality
    ).inc()

    if duration_seconds is not None:
        status_code_class = f"{status_code // 100}xx" if status_code else "unknown"
        DISPATCH_LATENCY.labels(
            submission_type=submission_type,
            status_code_class=status_code_class,
        ).observe(duration_seconds)


def track_automation_run(automation_type: Optional[str], status: str) -> None:
    AUTOMATION_RUNS.labels(automation_type=automation_type or "unknown", status=status).inc()


def track_transition(submission_type: str, from_status: str, to_status: str) -> None:
    SUBMISSION_TRANSITIONS.labels(
        submission_type=submission_type,
        from_status=from_status,
        to_status=to_status,
    ).inc()
