"""
Submissions API

Intake and lifecycle of caption/content factory submissions, plus the
ledger of dispatch attempts made for each one.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from sqlalchemy.orm import Session

from brandhub.api.dependencies import get_automation_client
from brandhub.core.http_client import AutomationRunnerClient
from brandhub.db.database import get_db
from brandhub.services.dispatch_service import DispatchService
from brandhub.services.submission_service import SubmissionCreateRequest, SubmissionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/submissions", tags=["Submissions"])


# Request/Response Models

class SubmissionCreate(BaseModel):
    """Request to create a submission"""
    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., min_length=1, description="Requester id (e.g. LINE user id)")
    submission_type: str = Field("caption_factory", pattern="^(caption_factory|content_factory)$")
    brand_id: Optional[str] = Field(None, description="Owning brand")
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    image_data: Optional[str] = Field(None, description="Base64 image payload")
    mime_type: Optional[str] = None
    mood: Optional[str] = Field(None, description="Mood tag, e.g. VIBRANT, CALM, LUXURY")
    user_words: Optional[str] = Field(None, description="Free-text context from the user")
    multilingual_level: Optional[int] = Field(None, ge=0, le=100, description="0-100 language mix")
    platform: Optional[str] = None
    content_category: Optional[str] = None
    webhook_url: Optional[HttpUrl] = Field(None, description="Override for the runner endpoint")


class SubmissionResponse(BaseModel):
    """Submission details response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    submission_type: str
    brand_id: Optional[str]
    user_id: str
    display_name: Optional[str]
    mood: Optional[str]
    user_words: Optional[str]
    multilingual_level: Optional[int]
    platform: Optional[str]
    content_category: Optional[str]
    status: str
    generated_caption: Optional[str]
    generated_caption_th: Optional[str]
    hashtags: Optional[Any]
    mood_analysis: Optional[Any]
    created_at: Optional[str]
    updated_at: Optional[str]


class DispatchRequest(BaseModel):
    webhook_url: Optional[HttpUrl] = Field(None, description="Override for the runner endpoint")
    timeout: Optional[float] = Field(None, gt=0, le=120, description="Per-call timeout in seconds")


class LedgerEntryResponse(BaseModel):
    """One recorded dispatch attempt"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    submission_type: str
    submission_id: Optional[int]
    webhook_url: str
    idempotency_key: str
    response_status: Optional[int]
    response_payload: Optional[Any]
    error_message: Optional[str]
    processing_time_ms: Optional[int]
    retry_count: int
    status: str
    created_at: Optional[str]


class DispatchResponse(BaseModel):
    submission: SubmissionResponse
    attempt: LedgerEntryResponse


# API Endpoints

@router.post("", response_model=SubmissionResponse, status_code=201)
async def create_submission(request: SubmissionCreate, db: Session = Depends(get_db)):
    """Create a submission in draft"""
    submission = SubmissionService(db).create_submission(SubmissionCreateRequest(**request.model_dump(mode="json")))
    return SubmissionResponse(**submission.to_dict())


@router.get("", response_model=List[SubmissionResponse])
async def list_submissions(
    brand_id: str = Query(..., description="Brand to list submissions for"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    submissions = SubmissionService(db).list_brand_submissions(brand_id, limit=limit)
    return [SubmissionResponse(**s.to_dict()) for s in submissions]


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(submission_id: int, db: Session = Depends(get_db)):
    return SubmissionResponse(**SubmissionService(db).get_submission(submission_id).to_dict())


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
async def submit_submission(submission_id: int, db: Session = Depends(get_db)):
    return SubmissionResponse(**SubmissionService(db).submit(submission_id).to_dict())


@router.post("/{submission_id}/cancel", response_model=SubmissionResponse)
async def cancel_submission(submission_id: int, db: Session = Depends(get_db)):
    return SubmissionResponse(**SubmissionService(db).cancel(submission_id).to_dict())


@router.delete("/{submission_id}", status_code=204)
async def delete_submission(submission_id: int, db: Session = Depends(get_db)):
    """Delete a submission; its ledger history is kept"""
    SubmissionService(db).delete_submission(submission_id)
    return Response(status_code=204)


@router.post("/{submission_id}/dispatch", response_model=DispatchResponse)
async def dispatch_submission(
    submission_id: int,
    request: Optional[DispatchRequest] = None,
    db: Session = Depends(get_db),
    client: AutomationRunnerClient = Depends(get_automation_client),
):
    """
    Dispatch a submitted submission to the automation runner

    Transport failures are not errors here: the attempt is recorded and the
    response reports it. 409 means another worker holds the submission.
    """
    request = request or DispatchRequest()
    service = DispatchService(db, client=client)
    webhook_url = str(request.webhook_url) if request.webhook_url else None
    entry = await service.dispatch_submission(submission_id, webhook_url=webhook_url,
                                              timeout=request.timeout)
    submission = service.submissions.get_submission(submission_id)
    return DispatchResponse(
        submission=SubmissionResponse(**submission.to_dict()),
        attempt=LedgerEntryResponse(**entry.to_dict()),
    )


@router.post("/{submission_id}/retry", response_model=DispatchResponse)
async def retry_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    client: AutomationRunnerClient = Depends(get_automation_client),
):
    """Retry a failed submission within the retry policy"""
    service = DispatchService(db, client=client)
    entry = await service.retry_submission(submission_id)
    submission = service.submissions.get_submission(submission_id)
    return DispatchResponse(
        submission=SubmissionResponse(**submission.to_dict()),
        attempt=LedgerEntryResponse(**entry.to_dict()),
    )


@router.get("/{submission_id}/ledger", response_model=List[LedgerEntryResponse])
async def get_submission_ledger(
    submission_id: int,
    submission_type: str = Query("caption_factory", pattern="^(caption_factory|content_factory)$"),
    db: Session = Depends(get_db),
):
    """
    Every dispatch attempt for a submission, oldest first

    Entries outlive their submission, so this works for deleted ids too.
    """
    entries = DispatchService(db).ledger.get_entries(submission_type, submission_id)
    return [LedgerEntryResponse(**e.to_dict()) for e in entries]


@router.get("/ledger/stats")
async def get_ledger_stats(
    hours: int = Query(24, ge=1, le=24 * 30),
    brand_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return DispatchService(db).ledger.get_stats(hours=hours, brand_id=brand_id)
