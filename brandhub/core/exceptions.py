"""
Error taxonomy

Distributor errors are programmer-facing and fail fast. Dispatch-path
transport errors are operational: the Integration Ledger records them as
failed entries and never lets them escape to the submission pipeline.
"""
from typing import Any, Optional


class BrandHubError(Exception):
    """Base class for all brandhub errors"""


class ConfigurationError(BrandHubError):
    """Required configuration is missing or invalid at process start"""


class SchemaIncompleteError(BrandHubError):
    """A knowledge record is missing a field a context view references"""

    def __init__(self, path: str, view: Optional[str] = None):
        self.path = path
        self.view = view
        where = f" (view '{view}')" if view else ""
        super().__init__(f"Knowledge schema is missing required field '{path}'{where}")


class KnowledgeValidationError(BrandHubError):
    """A knowledge update did not validate; nothing was written"""

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(BrandHubError):
    """Requested record does not exist"""


class BrandNotFoundError(NotFoundError):
    pass


class SubmissionNotFoundError(NotFoundError):
    pass


class ScheduleNotFoundError(NotFoundError):
    pass


class LedgerEntryNotFoundError(NotFoundError):
    pass


class InvalidStatusTransitionError(BrandHubError):
    """Submission lifecycle rule violated"""

    def __init__(self, submission_id: Any, current: str, target: str):
        self.submission_id = submission_id
        self.current = current
        self.target = target
        super().__init__(
            f"Submission {submission_id} cannot move from '{current}' to '{target}'"
        )


class ConcurrentDispatchError(BrandHubError):
    """Another writer already claimed the submission for processing"""

    def __init__(self, submission_id: Any):
        self.submission_id = submission_id
        super().__init__(f"Submission {submission_id} is already being processed")


class RetryLimitExceededError(BrandHubError):
    """Bounded retry policy exhausted for a submission"""

    def __init__(self, submission_id: Any, attempts: int, max_attempts: int):
        self.submission_id = submission_id
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(
            f"Submission {submission_id} reached {attempts}/{max_attempts} dispatch attempts"
        )


class TransportError(BrandHubError):
    """External automation runner unreachable, timed out, or returned non-2xx"""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"

    def __init__(
        self,
        kind: str,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        duration_ms: Optional[int] = None,
    ):
        self.kind = kind
        self.status = status
        self.body = body
        self.duration_ms = duration_ms
        super().__init__(message)


class PersistenceError(BrandHubError):
    """Storage boundary failure"""


class InvalidScheduleError(BrandHubError):
    """Schedule label or cron expression cannot be evaluated"""


class InvalidSubmissionError(BrandHubError):
    """Submission input rejected at intake"""
