"""
Submission Service

Lifecycle of caption/content factory submissions:

    draft -> submitted -> processing -> completed
                                     -> failed -> processing (retry)
    processing -> submitted   (timeout or write failure during dispatch)
    any non-terminal state -> cancelled

completed and cancelled are terminal. Every status write is a
compare-and-set at the storage boundary, so concurrent workers in
different processes never both win the same transition.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy.orm import Session

from brandhub.core.exceptions import (
    InvalidStatusTransitionError,
    InvalidSubmissionError,
    SubmissionNotFoundError,
)
from brandhub.core.metrics import track_transition
from brandhub.db.models import (
    SUBMISSION_TRANSITIONS,
    Submission,
    SubmissionStatus,
    SubmissionType,
)
from brandhub.db.repository import Repository

logger = logging.getLogger(__name__)

# Result fields copied from a successful runner response
RESULT_FIELDS = ("generated_caption", "generated_caption_th", "hashtags", "mood_analysis")


class SubmissionCreateRequest:
    """Request object for creating submissions"""

    def __init__(
        self,
        user_id: str,
        submission_type: str = SubmissionType.CAPTION_FACTORY.value,
        brand_id: Optional[str] = None,
        display_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        image_data: Optional[str] = None,
        mime_type: Optional[str] = None,
        mood: Optional[str] = None,
        user_words: Optional[str] = None,
        multilingual_level: Optional[int] = None,
        platform: Optional[str] = None,
        content_category: Optional[str] = None,
        webhook_url: Optional[str] = None,
    ):
        self.user_id = user_id
        self.submission_type = submission_type
        self.brand_id = brand_id
        self.display_name = display_name
        self.profile_image_url = profile_image_url
        self.image_data = image_data
        self.mime_type = mime_type
        self.mood = mood
        self.user_words = user_words
        self.multilingual_level = multilingual_level
        self.platform = platform
        self.content_category = content_category
        self.webhook_url = webhook_url


def validate_webhook_url(url: Optional[str]) -> Optional[str]:
    """Reject runner URLs httpx could not send to; None means use the default"""
    if url is None:
        return None
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidSubmissionError(f"Invalid webhook_url: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidSubmissionError("webhook_url must be an absolute http(s) URL")
    return url


def extract_result_fields(body: Any) -> Dict[str, Any]:
    """Pick caption results out of a runner body; absent fields are simply skipped"""
    if not isinstance(body, dict):
        return {}
    return {name: body[name] for name in RESULT_FIELDS if body.get(name) is not None}


class SubmissionService:
    """Service for the submission lifecycle"""

    def __init__(self, db: Session):
        self.repository = Repository(db)

    def get_submission(self, submission_id: int) -> Submission:
        submission = self.repository.get(Submission, submission_id)
        if submission is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return submission

    def list_brand_submissions(self, brand_id: str, limit: Optional[int] = None) -> List[Submission]:
        return self.repository.list_by_brand(Submission, brand_id, limit=limit)

    def create_submission(self, request: SubmissionCreateRequest) -> Submission:
        """Create a submission; draft is the only creation state"""
        if not request.user_id:
            raise InvalidSubmissionError("user_id is required")
        try:
            submission_type = SubmissionType(request.submission_type).value
        except ValueError:
            raise InvalidSubmissionError(f"Unknown submission type '{request.submission_type}'")
        if request.multilingual_level is not None and not 0 <= request.multilingual_level <= 100:
            raise InvalidSubmissionError("multilingual_level must be between 0 and 100")
        validate_webhook_url(request.webhook_url)

        submission = Submission(
            submission_type=submission_type,
            brand_id=request.brand_id,
            user_id=request.user_id,
            display_name=request.display_name,
            profile_image_url=request.profile_image_url,
            image_data=request.image_data,
            mime_type=request.mime_type,
            mood=request.mood,
            user_words=request.user_words,
            multilingual_level=request.multilingual_level,
            platform=request.platform,
            content_category=request.content_category,
            webhook_url=request.webhook_url,
            status=SubmissionStatus.DRAFT.value,
        )
        submission = self.repository.upsert(submission)
        logger.info(f"Created {submission_type} submission {submission.id}",
                    extra={"submission_id": submission.id, "brand_id": request.brand_id})
        return submission

    def transition(
        self,
        submission_id: int,
        target: str,
        sources: Optional[Iterable[str]] = None,
        **fields: Any,
    ) -> Submission:
        """
        Move a submission to target with a compare-and-set on its current status.

        Args:
            submission_id: Submission to move
            target: New status
            sources: Statuses the move is allowed from; defaults to every state
                whose transition table includes target
            **fields: Columns written in the same update

        Raises:
            SubmissionNotFoundError: Unknown submission
            InvalidStatusTransitionError: Rule violated, or another writer moved it first
        """
        submission = self.get_submission(submission_id)
        current = submission.status
        allowed = set(sources) if sources is not None else {
            state for state, targets in SUBMISSION_TRANSITIONS.items() if target in targets
        }

        if current not in allowed or not submission.can_transition_to(target):
            raise InvalidStatusTransitionError(submission_id, current, target)

        if not self.repository.compare_and_set_status(submission_id, [current], target, **fields):
            latest = self.get_submission(submission_id)
            raise InvalidStatusTransitionError(submission_id, latest.status, target)

        track_transition(submission.submission_type, current, target)
        logger.info(f"Submission {submission_id}: {current} -> {target}",
                    extra={"submission_id": submission_id})
        return self.get_submission(submission_id)

    def submit(self, submission_id: int) -> Submission:
        return self.transition(submission_id, SubmissionStatus.SUBMITTED.value,
                               sources=[SubmissionStatus.DRAFT.value])

    def claim(self, submission_id: int, sources: Iterable[str]) -> bool:
        """Atomically move a submission into processing; True when this caller won"""
        submission = self.get_submission(submission_id)
        won = self.repository.compare_and_set_status(
            submission_id, list(sources), SubmissionStatus.PROCESSING.value
        )
        if won:
            track_transition(submission.submission_type, submission.status, SubmissionStatus.PROCESSING.value)
        return won

    def mark_completed(self, submission_id: int, result: Optional[Dict[str, Any]] = None) -> Submission:
        result = result or {}
        return self.transition(
            submission_id,
            SubmissionStatus.COMPLETED.value,
            sources=[SubmissionStatus.PROCESSING.value],
            webhook_response=result,
            **extract_result_fields(result),
        )

    def mark_failed(self, submission_id: int, response: Optional[Dict[str, Any]] = None) -> Submission:
        return self.transition(
            submission_id,
            SubmissionStatus.FAILED.value,
            sources=[SubmissionStatus.PROCESSING.value],
            webhook_response=response,
        )

    def revert_to_submitted(self, submission_id: int) -> Submission:
        """Return a claimed submission to the queue after a timeout or write failure"""
        return self.transition(submission_id, SubmissionStatus.SUBMITTED.value,
                               sources=[SubmissionStatus.PROCESSING.value])

    def cancel(self, submission_id: int) -> Submission:
        """Cancel a submission; an in-flight dispatch keeps its ledger entry"""
        return self.transition(
            submission_id,
            SubmissionStatus.CANCELLED.value,
            cancelled_at=datetime.now(timezone.utc),
        )

    def delete_submission(self, submission_id: int) -> None:
        """Remove a submission; its ledger history is kept"""
        submission = self.get_submission(submission_id)
        if submission.status == SubmissionStatus.PROCESSING.value:
            raise InvalidStatusTransitionError(submission_id, submission.status, "deleted")
        self.repository.delete(submission)
        logger.info(f"Deleted submission {submission_id}", extra={"submission_id": submission_id})
