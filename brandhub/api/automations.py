"""
Automation schedules API
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from brandhub.api.dependencies import get_automation_client
from brandhub.core.http_client import AutomationRunnerClient
from brandhub.db.database import get_db
from brandhub.services.automation_registry import AutomationRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/automations", tags=["Automations"])


class AutomationCreate(BaseModel):
    """Request to create an automation schedule"""
    brand_id: str = Field(..., min_length=1)
    automation_name: str = Field(..., min_length=1, max_length=255)
    automation_type: Optional[str] = Field(None, description="caption_factory, content_factory, post_scheduling")
    schedule: Optional[str] = Field(None, description="hourly, daily, weekly, monthly or custom")
    cron_expression: Optional[str] = Field(None, description="Cron expression, wins over the label")
    linked_submission_ids: Dict[str, List[int]] = Field(default_factory=dict)
    automation_config: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class AutomationUpdate(BaseModel):
    automation_name: Optional[str] = Field(None, min_length=1, max_length=255)
    automation_type: Optional[str] = None
    schedule: Optional[str] = None
    cron_expression: Optional[str] = None
    automation_config: Optional[Dict[str, Any]] = None


class LinkSubmissionsRequest(BaseModel):
    submission_type: str = Field(..., pattern="^(caption_factory|content_factory)$")
    submission_ids: List[int] = Field(..., min_length=1)


class AutomationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    brand_id: str
    automation_name: str
    automation_type: Optional[str]
    is_active: bool
    schedule: Optional[str]
    cron_expression: Optional[str]
    linked_submission_ids: Dict[str, List[int]]
    automation_config: Dict[str, Any]
    last_run_at: Optional[str]
    next_run_at: Optional[str]


@router.post("", response_model=AutomationResponse, status_code=201)
async def create_automation(request: AutomationCreate, db: Session = Depends(get_db)):
    schedule = AutomationRegistry(db).create_schedule(**request.model_dump())
    return AutomationResponse(**schedule.to_dict())


@router.get("", response_model=List[AutomationResponse])
async def list_automations(brand_id: str = Query(...), db: Session = Depends(get_db)):
    return [AutomationResponse(**s.to_dict()) for s in AutomationRegistry(db).list_brand_schedules(brand_id)]


@router.get("/due", response_model=List[AutomationResponse])
async def list_due_automations(
    now: Optional[datetime] = Query(None, description="Reference time, defaults to now"),
    db: Session = Depends(get_db),
):
    return [AutomationResponse(**s.to_dict()) for s in AutomationRegistry(db).get_due_schedules(now)]


@router.get("/{schedule_id}", response_model=AutomationResponse)
async def get_automation(schedule_id: int, db: Session = Depends(get_db)):
    return AutomationResponse(**AutomationRegistry(db).get_schedule(schedule_id).to_dict())


@router.patch("/{schedule_id}", response_model=AutomationResponse)
async def update_automation(schedule_id: int, request: AutomationUpdate, db: Session = Depends(get_db)):
    changes = request.model_dump(exclude_unset=True)
    return AutomationResponse(**AutomationRegistry(db).update_schedule(schedule_id, **changes).to_dict())


@router.post("/{schedule_id}/activate", response_model=AutomationResponse)
async def activate_automation(schedule_id: int, db: Session = Depends(get_db)):
    return AutomationResponse(**AutomationRegistry(db).activate(schedule_id).to_dict())


@router.post("/{schedule_id}/deactivate", response_model=AutomationResponse)
async def deactivate_automation(schedule_id: int, db: Session = Depends(get_db)):
    return AutomationResponse(**AutomationRegistry(db).deactivate(schedule_id).to_dict())


@router.post("/{schedule_id}/links", response_model=AutomationResponse)
async def link_submissions(schedule_id: int, request: LinkSubmissionsRequest, db: Session = Depends(get_db)):
    schedule = AutomationRegistry(db).link_submissions(schedule_id, request.submission_type, request.submission_ids)
    return AutomationResponse(**schedule.to_dict())


@router.post("/{schedule_id}/run")
async def run_automation(
    schedule_id: int,
    db: Session = Depends(get_db),
    client: AutomationRunnerClient = Depends(get_automation_client),
) -> Dict[str, Any]:
    """Run a schedule now; returns the execution log entry written for the run"""
    return await AutomationRegistry(db, client=client).run_schedule(schedule_id)


@router.get("/{schedule_id}/logs")
async def get_automation_logs(
    schedule_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Execution history, newest first"""
    return AutomationRegistry(db).get_execution_history(schedule_id, limit=limit)
