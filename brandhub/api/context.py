"""
Brand knowledge and agent context API

Agents call one of these endpoints and get back exactly the view their role
is entitled to.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from brandhub.db.database import get_db
from brandhub.knowledge.distributor import ContextView
from brandhub.knowledge.service import KnowledgeService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/brands", tags=["Brand Knowledge"])


class KnowledgeUpdateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    brand_id: str
    updated_at: str
    updated_by: Optional[str]


class AgentContextResponse(BaseModel):
    agent_id: str
    view: ContextView
    context: Dict[str, Any]


@router.get("/{brand_id}/knowledge")
async def get_knowledge(brand_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Full knowledge record (owner/orchestrator use only)"""
    return KnowledgeService(db).get_schema(brand_id).model_dump(mode="json")


@router.put("/{brand_id}/knowledge", response_model=KnowledgeUpdateResponse)
async def replace_knowledge(
    brand_id: str,
    record: Dict[str, Any],
    updated_by: Optional[str] = Query(None, description="Email of the editor"),
    db: Session = Depends(get_db),
):
    """
    Replace a brand's knowledge record

    The record is validated in full; an invalid record is rejected with 422
    and nothing is stored.
    """
    schema = KnowledgeService(db).update_schema(brand_id, record, updated_by=updated_by)
    return KnowledgeUpdateResponse(
        brand_id=schema.brand_id,
        updated_at=schema.updated_at.isoformat(),
        updated_by=updated_by,
    )


@router.get("/{brand_id}/context/{view}")
async def get_context_view(
    brand_id: str,
    view: ContextView = Path(..., description="strategy, creative, growth, orchestrator or minimal"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return KnowledgeService(db).get_context(brand_id, view)


@router.get("/{brand_id}/agents/{agent_id}/context", response_model=AgentContextResponse)
async def get_agent_context(
    brand_id: str,
    agent_id: str = Path(..., description="Agent role id, e.g. caption-creator"),
    db: Session = Depends(get_db),
):
    """Context for one agent role; unknown roles get the minimal view"""
    return KnowledgeService(db).get_agent_context(brand_id, agent_id)
