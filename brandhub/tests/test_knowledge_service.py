"""
Tests for the knowledge schema models and KnowledgeService
"""
import copy
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from brandhub.core.exceptions import (
    BrandNotFoundError,
    KnowledgeValidationError,
    PersistenceError,
    SchemaIncompleteError,
)
from brandhub.db.models import Brand, BrandKnowledge
from brandhub.knowledge.sample import EXAMPLE_BRAND_RECORD, EXAMPLE_BRAND_SCHEMA
from brandhub.knowledge.schema import BrandKnowledgeSchema
from brandhub.knowledge.service import KnowledgeService


class TestBrandKnowledgeSchema:

    def test_example_record_validates(self):
        assert EXAMPLE_BRAND_SCHEMA.brand_id == "coffee-shop-01"
        assert EXAMPLE_BRAND_SCHEMA.strategy_data.usp.tagline == "Where Coffee Meets Art"
        assert EXAMPLE_BRAND_SCHEMA.growth_data.platform_strategy.line_oa.broadcast_frequency == "2x per week"

    def test_schema_is_frozen(self):
        with pytest.raises(ValidationError):
            EXAMPLE_BRAND_SCHEMA.brand_name_en = "Other"

    def test_unknown_fields_rejected(self):
        record = copy.deepcopy(EXAMPLE_BRAND_RECORD)
        record["strategy_data"]["surprise"] = True

        with pytest.raises(ValidationError):
            BrandKnowledgeSchema.model_validate(record)

    def test_missing_bucket_rejected(self):
        record = copy.deepcopy(EXAMPLE_BRAND_RECORD)
        del record["growth_data"]

        with pytest.raises(ValidationError):
            BrandKnowledgeSchema.model_validate(record)

    def test_language_level_bounds(self):
        record = copy.deepcopy(EXAMPLE_BRAND_RECORD)
        record["growth_data"]["communication"]["language_level"] = 9

        with pytest.raises(ValidationError):
            BrandKnowledgeSchema.model_validate(record)


class TestKnowledgeService:

    def setup_method(self):
        self.record = copy.deepcopy(EXAMPLE_BRAND_RECORD)

    def test_first_update_creates_brand_and_record(self, db_session):
        service = KnowledgeService(db_session)

        schema = service.update_schema("coffee-shop-01", self.record, updated_by="owner@artcoffee.com")

        brand = db_session.get(Brand, "coffee-shop-01")
        stored = db_session.get(BrandKnowledge, "coffee-shop-01")
        assert brand.brand_name_en == "Art Coffee Studio"
        assert stored.version == 1
        assert stored.created_by == "owner@artcoffee.com"
        assert schema.updated_at > EXAMPLE_BRAND_SCHEMA.updated_at

    def test_update_replaces_whole_record_and_bumps_version(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        changed = copy.deepcopy(self.record)
        changed["growth_data"]["communication"]["tone_of_voice"] = "Bold"
        changed["cross_data"]["brand_values"] = []
        service.update_schema("coffee-shop-01", changed)

        stored = db_session.get(BrandKnowledge, "coffee-shop-01")
        assert stored.version == 2
        assert service.get_context("coffee-shop-01", "minimal")["tone"] == "Bold"
        assert service.get_schema("coffee-shop-01").cross_data.brand_values == []

    def test_invalid_update_writes_nothing(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        broken = copy.deepcopy(self.record)
        del broken["strategy_data"]["usp"]

        with pytest.raises(KnowledgeValidationError) as exc_info:
            service.update_schema("coffee-shop-01", broken)

        assert exc_info.value.errors
        stored = db_session.get(BrandKnowledge, "coffee-shop-01")
        assert stored.version == 1
        assert stored.schema_data["strategy_data"]["usp"]["primary"] == "Premium specialty coffee with artist workspace"

    def test_failed_write_leaves_brand_and_record_unchanged(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        renamed = copy.deepcopy(self.record)
        renamed["brand_name_en"] = "Art Coffee Gallery"
        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("db down")):
            with pytest.raises(PersistenceError):
                service.update_schema("coffee-shop-01", renamed)

        assert db_session.get(Brand, "coffee-shop-01").brand_name_en == "Art Coffee Studio"
        stored = db_session.get(BrandKnowledge, "coffee-shop-01")
        assert stored.version == 1
        assert stored.schema_data["brand_name_en"] == "Art Coffee Studio"

    def test_mismatched_brand_id_rejected(self, db_session):
        with pytest.raises(KnowledgeValidationError):
            KnowledgeService(db_session).update_schema("another-brand", self.record)

        assert db_session.get(Brand, "another-brand") is None

    def test_update_accepts_model(self, db_session):
        schema = KnowledgeService(db_session).update_schema("coffee-shop-01", EXAMPLE_BRAND_SCHEMA)

        assert schema.brand_name_th == "คาเฟ่อาร์ต"

    def test_get_context_for_example_brand(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        assert service.get_context("coffee-shop-01", "minimal") == {
            "brand_id": "coffee-shop-01",
            "brand_name_th": "คาเฟ่อาร์ต",
            "usp": "Premium specialty coffee with artist workspace",
            "tone": "เป็นกันเองแต่สุภาพ, Thoughtful, Artistic",
            "mood": ["warm", "artistic", "cozy", "creative", "sophisticated"],
        }

    def test_get_agent_context(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        result = service.get_agent_context("coffee-shop-01", "caption-creator")

        assert result["view"] == "growth"
        assert result["context"]["communication"]["signature_hashtags"][0] == "#ArtCoffeeStudio"

    def test_corrupted_stored_record_surfaces_missing_path(self, db_session):
        service = KnowledgeService(db_session)
        service.update_schema("coffee-shop-01", self.record)

        stored = db_session.get(BrandKnowledge, "coffee-shop-01")
        data = copy.deepcopy(stored.schema_data)
        del data["creative_data"]["visual_identity"]["mood_keywords"]
        stored.schema_data = data
        db_session.commit()

        with pytest.raises(SchemaIncompleteError) as exc_info:
            service.get_context("coffee-shop-01", "minimal")
        assert exc_info.value.path == "creative_data.visual_identity.mood_keywords"

    def test_unknown_brand(self, db_session):
        with pytest.raises(BrandNotFoundError):
            KnowledgeService(db_session).get_context("nobody", "minimal")
