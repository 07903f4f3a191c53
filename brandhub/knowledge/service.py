"""
Knowledge Service

Loads, replaces and projects the per-brand knowledge record. Updates are
all-or-nothing: the incoming record is validated in full and stored whole,
never merged field by field.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from brandhub.core.exceptions import BrandNotFoundError, KnowledgeValidationError
from brandhub.db.models import Brand, BrandKnowledge
from brandhub.db.repository import Repository
from brandhub.knowledge.distributor import ContextView, build_context, get_view_for_agent
from brandhub.knowledge.schema import BrandKnowledgeSchema

logger = logging.getLogger(__name__)


def _error_details(error: ValidationError) -> List[Dict[str, Any]]:
    """Field locations and messages only; the rejected input is not echoed back"""
    return [
        {"loc": [str(part) for part in item["loc"]], "msg": item["msg"], "type": item["type"]}
        for item in error.errors()
    ]


class KnowledgeService:
    """Brand knowledge storage and context distribution"""

    def __init__(self, db: Session):
        self.repository = Repository(db)

    def _get_record(self, brand_id: str) -> BrandKnowledge:
        record = self.repository.get(BrandKnowledge, brand_id)
        if record is None:
            raise BrandNotFoundError(f"No knowledge record for brand '{brand_id}'")
        return record

    def get_schema(self, brand_id: str) -> BrandKnowledgeSchema:
        record = self._get_record(brand_id)
        try:
            return BrandKnowledgeSchema.model_validate(record.schema_data)
        except ValidationError as e:
            raise KnowledgeValidationError(
                f"Stored knowledge for brand '{brand_id}' is invalid", errors=_error_details(e)
            )

    def update_schema(
        self,
        brand_id: str,
        data: Union[BrandKnowledgeSchema, Mapping[str, Any]],
        updated_by: Optional[str] = None,
    ) -> BrandKnowledgeSchema:
        """
        Replace a brand's knowledge record.

        Args:
            brand_id: Brand the record belongs to; must match data['brand_id']
            data: Complete knowledge record
            updated_by: Email of whoever made the change

        Returns:
            The stored record with a fresh updated_at

        Raises:
            KnowledgeValidationError: Record is incomplete or malformed; nothing is written
            PersistenceError: Storage failed; neither the brand nor the record changed
        """
        try:
            payload = data.model_dump(mode="json") if isinstance(data, BrandKnowledgeSchema) else dict(data)
            payload["updated_at"] = datetime.now(timezone.utc).isoformat()
            schema = BrandKnowledgeSchema.model_validate(payload)
        except ValidationError as e:
            raise KnowledgeValidationError(
                f"Knowledge record for brand '{brand_id}' failed validation",
                errors=_error_details(e),
            )

        if schema.brand_id != brand_id:
            raise KnowledgeValidationError(
                f"Record brand_id '{schema.brand_id}' does not match brand '{brand_id}'"
            )

        brand = self.repository.get(Brand, brand_id)
        if brand is None:
            brand = Brand(id=brand_id)
        brand.brand_name_th = schema.brand_name_th
        brand.brand_name_en = schema.brand_name_en

        record = self.repository.get(BrandKnowledge, brand_id)
        if record is None:
            record = BrandKnowledge(brand_id=brand_id, version=0, created_by=updated_by or schema.created_by)
        record.schema_data = schema.model_dump(mode="json")
        record.version = (record.version or 0) + 1
        # Brand names and record commit together so neither is written alone
        self.repository.upsert_all(brand, record)

        logger.info(
            f"Knowledge record for brand {brand_id} replaced (version {record.version})",
            extra={"brand_id": brand_id},
        )
        return schema

    def get_context(self, brand_id: str, view: Union[ContextView, str]) -> Dict[str, Any]:
        """Project the stored record; the raw mapping is used so corruption surfaces as SchemaIncompleteError"""
        return build_context(self._get_record(brand_id).schema_data, view)

    def get_agent_context(self, brand_id: str, agent_id: str) -> Dict[str, Any]:
        view = get_view_for_agent(agent_id)
        return {
            "agent_id": agent_id,
            "view": view.value,
            "context": self.get_context(brand_id, view),
        }
