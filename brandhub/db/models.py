from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from typing import Dict, Any, List
from enum import Enum

from brandhub.db.database import Base


class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SubmissionType(str, Enum):
    CAPTION_FACTORY = "caption_factory"
    CONTENT_FACTORY = "content_factory"


class LedgerStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# Lifecycle: processing -> submitted only on timeout / write failure during dispatch
SUBMISSION_TRANSITIONS: Dict[str, List[str]] = {
    SubmissionStatus.DRAFT.value: [SubmissionStatus.SUBMITTED.value, SubmissionStatus.CANCELLED.value],
    SubmissionStatus.SUBMITTED.value: [SubmissionStatus.PROCESSING.value, SubmissionStatus.CANCELLED.value],
    SubmissionStatus.PROCESSING.value: [
        SubmissionStatus.COMPLETED.value,
        SubmissionStatus.FAILED.value,
        SubmissionStatus.SUBMITTED.value,
        SubmissionStatus.CANCELLED.value,
    ],
    SubmissionStatus.FAILED.value: [SubmissionStatus.PROCESSING.value, SubmissionStatus.CANCELLED.value],
    SubmissionStatus.COMPLETED.value: [],  # Terminal state
    SubmissionStatus.CANCELLED.value: [],  # Terminal state
}


class Brand(Base):
    __tablename__ = "brands"

    id = Column(String(100), primary_key=True)  # e.g. coffee-shop-01
    brand_name_th = Column(String(255), nullable=False)
    brand_name_en = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    knowledge = relationship("BrandKnowledge", back_populates="brand", uselist=False,
                             cascade="all, delete-orphan")
    automation_schedules = relationship("AutomationSchedule", back_populates="brand",
                                        cascade="all, delete-orphan")


class BrandKnowledge(Base):
    """The canonical knowledge record of one brand, stored whole"""
    __tablename__ = "brand_knowledge"

    brand_id = Column(String(100), ForeignKey("brands.id", ondelete="CASCADE"), primary_key=True)
    schema_data = Column(JSON, nullable=False)  # strategy/creative/growth/cross buckets + identity
    version = Column(Integer, default=1, nullable=False)
    created_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    brand = relationship("Brand", back_populates="knowledge")


class Submission(Base):
    """A single end-user request for generated content"""
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    submission_type = Column(String(50), nullable=False, default=SubmissionType.CAPTION_FACTORY.value, index=True)
    brand_id = Column(String(100), ForeignKey("brands.id", ondelete="CASCADE"), nullable=True, index=True)

    # Requester identity (LINE LIFF profile for caption requests)
    user_id = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    profile_image_url = Column(Text, nullable=True)

    # Raw input
    image_data = Column(Text, nullable=True)  # Base64 image payload
    mime_type = Column(String(100), nullable=True)
    mood = Column(String(50), nullable=True)  # VIBRANT, CALM, FUN, LUXURY, AESTHETIC, ...
    user_words = Column(Text, nullable=True)
    multilingual_level = Column(Integer, nullable=True)  # 0-100 language mix
    platform = Column(String(50), nullable=True)
    content_category = Column(String(50), nullable=True)  # knowledge, sales (content factory)

    status = Column(String(50), default=SubmissionStatus.DRAFT.value, nullable=False, index=True)

    # Results, populated on completion only
    generated_caption = Column(Text, nullable=True)
    generated_caption_th = Column(Text, nullable=True)
    hashtags = Column(JSON, nullable=True)
    mood_analysis = Column(JSON, nullable=True)

    # Runner integration
    webhook_url = Column(Text, nullable=True)  # Overrides the configured runner endpoint
    webhook_response = Column(JSON, nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_submissions_brand_status', 'brand_id', 'status'),
    )

    def can_transition_to(self, new_status: str) -> bool:
        """Check if status transition is allowed"""
        return new_status in SUBMISSION_TRANSITIONS.get(self.status, [])

    @property
    def is_terminal(self) -> bool:
        return not SUBMISSION_TRANSITIONS.get(self.status, [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "submission_type": self.submission_type,
            "brand_id": self.brand_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "profile_image_url": self.profile_image_url,
            "mime_type": self.mime_type,
            "mood": self.mood,
            "user_words": self.user_words,
            "multilingual_level": self.multilingual_level,
            "platform": self.platform,
            "content_category": self.content_category,
            "status": self.status,
            "generated_caption": self.generated_caption,
            "generated_caption_th": self.generated_caption_th,
            "hashtags": self.hashtags,
            "mood_analysis": self.mood_analysis,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AutomationSchedule(Base):
    """Recurring automation owned by a brand; deactivation is a flag flip"""
    __tablename__ = "automation_schedules"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(String(100), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    automation_name = Column(String(255), nullable=False)
    automation_type = Column(String(100), nullable=True)  # caption_factory, content_factory, post_scheduling
    is_active = Column(Boolean, default=True, nullable=False)

    schedule = Column(String(100), nullable=True)  # hourly, daily, weekly, monthly, custom
    cron_expression = Column(String(255), nullable=True)  # e.g. "0 9 * * 1-5"

    # Weak references: {"caption_factory": [1, 2], "content_factory": [7]}
    linked_submission_ids = Column(JSON, nullable=False, default=dict)
    automation_config = Column(JSON, nullable=True)

    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True, index=True)
    execution_logs = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    brand = relationship("Brand", back_populates="automation_schedules")

    __table_args__ = (
        Index('idx_automation_schedules_due', 'is_active', 'next_run_at'),
    )

    def linked_ids(self, submission_type: str) -> List[int]:
        return list((self.linked_submission_ids or {}).get(submission_type, []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "automation_name": self.automation_name,
            "automation_type": self.automation_type,
            "is_active": self.is_active,
            "schedule": self.schedule,
            "cron_expression": self.cron_expression,
            "linked_submission_ids": self.linked_submission_ids or {},
            "automation_config": self.automation_config or {},
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }


class IntegrationLogEntry(Base):
    """
    One dispatch attempt against the automation runner.

    submission_id is a lookup key, not a foreign key: the entry outlives the
    submission it describes and may point at a row that no longer exists.
    """
    __tablename__ = "integration_log_entries"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(String(100), ForeignKey("brands.id", ondelete="SET NULL"), nullable=True, index=True)

    submission_type = Column(String(50), nullable=False)
    submission_id = Column(Integer, nullable=True)

    webhook_url = Column(Text, nullable=False)
    idempotency_key = Column(String(64), nullable=False, index=True)
    request_payload = Column(JSON, nullable=True)
    response_payload = Column(JSON, nullable=True)
    response_status = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    status = Column(String(50), nullable=False)  # success, failed

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_integration_log_submission', 'submission_type', 'submission_id'),
        Index('idx_integration_log_status_created', 'status', 'created_at'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "submission_type": self.submission_type,
            "submission_id": self.submission_id,
            "webhook_url": self.webhook_url,
            "idempotency_key": self.idempotency_key,
            "request_payload": self.request_payload,
            "response_payload": self.response_payload,
            "response_status": self.response_status,
            "error_message": self.error_message,
            "processing_time_ms": self.processing_time_ms,
            "retry_count": self.retry_count,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
