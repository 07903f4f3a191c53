"""
Storage interface shared by the services.

Every method either completes or raises PersistenceError; callers never see
raw SQLAlchemy exceptions.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from brandhub.core.exceptions import PersistenceError, ScheduleNotFoundError
from brandhub.db.models import AutomationSchedule, IntegrationLogEntry, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Repository:
    """Thin persistence wrapper around a SQLAlchemy session"""

    def __init__(self, session: Session):
        self.session = session

    def _fail(self, operation: str, error: SQLAlchemyError) -> PersistenceError:
        self.session.rollback()
        logger.error(f"Persistence failure during {operation}: {error}")
        return PersistenceError(f"{operation} failed: {error}")

    # Generic records

    def get(self, model: Type[T], record_id: Any) -> Optional[T]:
        try:
            return self.session.get(model, record_id)
        except SQLAlchemyError as e:
            raise self._fail(f"get {model.__name__}", e)

    def upsert(self, entity: T) -> T:
        try:
            self.session.add(entity)
            self.session.commit()
            self.session.refresh(entity)
            return entity
        except SQLAlchemyError as e:
            raise self._fail(f"upsert {type(entity).__name__}", e)

    def upsert_all(self, *entities: Any) -> None:
        """Write several records in one transaction; all land or none do"""
        try:
            self.session.add_all(entities)
            self.session.commit()
            for entity in entities:
                self.session.refresh(entity)
        except SQLAlchemyError as e:
            raise self._fail("upsert " + ", ".join(type(entity).__name__ for entity in entities), e)

    def delete(self, entity: Any) -> None:
        try:
            self.session.delete(entity)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"delete {type(entity).__name__}", e)

    def list_by_brand(self, model: Type[T], brand_id: str, limit: Optional[int] = None) -> List[T]:
        try:
            query = self.session.query(model).filter(model.brand_id == brand_id).order_by(model.id.desc())
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            raise self._fail(f"list {model.__name__}", e)

    # Submissions

    def compare_and_set_status(
        self,
        submission_id: int,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        """
        Atomically move a submission to new_status if its current status is in expected.

        Returns True when this caller won the transition. Extra fields are written
        in the same UPDATE so results never land without the status change.
        """
        values: Dict[Any, Any] = {Submission.status: new_status, Submission.updated_at: utcnow()}
        for name, value in fields.items():
            values[getattr(Submission, name)] = value
        try:
            updated = (
                self.session.query(Submission)
                .filter(Submission.id == submission_id, Submission.status.in_(list(expected)))
                .update(values, synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail("submission status update", e)

        # Drop cached copies so the next read sees the row as stored
        self.session.expire_all()
        return updated == 1

    def release_stale_claims(self, cutoff: datetime, release_to: str,
                             limit: Optional[int] = None) -> List[Submission]:
        """
        Move processing submissions last touched before cutoff to release_to.

        Each row is released with its own conditional UPDATE, so a claim that
        is refreshed or settled in the meantime is left alone.
        """
        try:
            query = (
                self.session.query(Submission)
                .filter(Submission.status == SubmissionStatus.PROCESSING.value, Submission.updated_at < cutoff)
                .order_by(Submission.id)
            )
            if limit:
                query = query.limit(limit)
            candidates = query.all()

            released = []
            for submission in candidates:
                updated = (
                    self.session.query(Submission)
                    .filter(
                        Submission.id == submission.id,
                        Submission.status == SubmissionStatus.PROCESSING.value,
                        Submission.updated_at < cutoff,
                    )
                    .update({Submission.status: release_to, Submission.updated_at: utcnow()},
                            synchronize_session=False)
                )
                if updated == 1:
                    released.append(submission)
            self.session.commit()
        except SQLAlchemyError as e:
            raise self._fail("stale claim release", e)

        self.session.expire_all()
        return released

    def list_submissions_by_status(self, status: str, limit: Optional[int] = None) -> List[Submission]:
        try:
            query = self.session.query(Submission).filter(Submission.status == status).order_by(Submission.id)
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            raise self._fail("list submissions by status", e)

    # Integration ledger (append-only)

    def add_ledger_entry(self, entry: IntegrationLogEntry) -> IntegrationLogEntry:
        try:
            self.session.add(entry)
            self.session.commit()
            self.session.refresh(entry)
            return entry
        except SQLAlchemyError as e:
            raise self._fail("ledger append", e)

    def list_ledger_entries(self, submission_type: str, submission_id: int) -> List[IntegrationLogEntry]:
        try:
            return (
                self.session.query(IntegrationLogEntry)
                .filter(
                    IntegrationLogEntry.submission_type == submission_type,
                    IntegrationLogEntry.submission_id == submission_id,
                )
                .order_by(IntegrationLogEntry.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("ledger read", e)

    def count_ledger_entries(self, submission_type: str, submission_id: int) -> int:
        try:
            return (
                self.session.query(IntegrationLogEntry)
                .filter(
                    IntegrationLogEntry.submission_type == submission_type,
                    IntegrationLogEntry.submission_id == submission_id,
                )
                .count()
            )
        except SQLAlchemyError as e:
            raise self._fail("ledger count", e)

    def list_recent_ledger_entries(self, since: Optional[datetime] = None,
                                   brand_id: Optional[str] = None) -> List[IntegrationLogEntry]:
        try:
            query = self.session.query(IntegrationLogEntry)
            if since is not None:
                query = query.filter(IntegrationLogEntry.created_at >= since)
            if brand_id is not None:
                query = query.filter(IntegrationLogEntry.brand_id == brand_id)
            return query.order_by(IntegrationLogEntry.id).all()
        except SQLAlchemyError as e:
            raise self._fail("ledger scan", e)

    # Automation schedules

    def list_active_schedules(self) -> List[AutomationSchedule]:
        try:
            return (
                self.session.query(AutomationSchedule)
                .filter(AutomationSchedule.is_active.is_(True))
                .order_by(AutomationSchedule.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("list active schedules", e)

    def append_log(self, schedule_id: int, entry: Dict[str, Any]) -> AutomationSchedule:
        """Append an execution log entry; the list is reassigned so the JSON column is flagged dirty"""
        try:
            schedule = (
                self.session.query(AutomationSchedule)
                .filter(AutomationSchedule.id == schedule_id)
                .with_for_update()
                .first()
            )
            if schedule is None:
                raise ScheduleNotFoundError(f"Automation schedule {schedule_id} not found")
            schedule.execution_logs = list(schedule.execution_logs or []) + [entry]
            self.session.commit()
            self.session.refresh(schedule)
            return schedule
        except SQLAlchemyError as e:
            raise self._fail("execution log append", e)
