"""
Shared fixtures: in-memory database, example brand, fake automation runner
"""
import asyncio
import os

# Required configuration must exist before brandhub modules read settings
os.environ.setdefault("BRAND_ID", "coffee-shop-01")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTOMATION_RUNNER_URL", "https://runner.test/hook")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from typing import Any, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from brandhub.core.config import get_settings  # noqa: E402
from brandhub.core.exceptions import TransportError  # noqa: E402
from brandhub.core.http_client import RunnerResponse  # noqa: E402
from brandhub.db.database import Base  # noqa: E402
from brandhub.db.models import Brand, Submission, SubmissionStatus  # noqa: E402


class FakeRunnerClient:
    """
    Stands in for AutomationRunnerClient.

    Queue outcomes with queue_response / queue_error; once the queue is empty
    every call succeeds with the default body.
    """

    def __init__(self, default_body: Optional[Dict[str, Any]] = None, delay: float = 0):
        self.default_body = default_body if default_body is not None else {
            "generated_caption": "Where ideas brew",
            "generated_caption_th": "ที่ที่ไอเดียเกิดขึ้น",
            "hashtags": ["#ArtCoffeeStudio"],
            "mood_analysis": {"mood": "warm"},
        }
        self.delay = delay
        self.outcomes: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def queue_response(self, body: Any, status: int = 200, duration_ms: int = 42):
        self.outcomes.append(RunnerResponse(status=status, body=body, duration_ms=duration_ms))

    def queue_error(self, kind: str, message: str = "runner failure", status: Optional[int] = None):
        self.outcomes.append(TransportError(kind, message, status=status, duration_ms=10))

    def queue_exception(self, error: BaseException):
        """Raise error as is, the way a broken client or a cancelled task would"""
        self.outcomes.append(error)

    async def dispatch(self, url, payload, timeout=None):
        self.calls.append({"url": url, "payload": payload, "timeout": timeout})
        # Yield so concurrent dispatches interleave
        await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else RunnerResponse(
            status=200, body=self.default_body, duration_ms=42
        )
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        pass


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def brand(db_session):
    brand = Brand(id="coffee-shop-01", brand_name_th="คาเฟ่อาร์ต", brand_name_en="Art Coffee Studio")
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture
def runner():
    return FakeRunnerClient()


@pytest.fixture
def make_submission(db_session, brand):
    """Insert a submission directly in the given status"""

    def _make(status: str = SubmissionStatus.SUBMITTED.value, submission_type: str = "caption_factory",
              **fields) -> Submission:
        submission = Submission(
            submission_type=submission_type,
            brand_id=brand.id,
            user_id=fields.pop("user_id", "U1234567890"),
            display_name=fields.pop("display_name", "Nok"),
            mood=fields.pop("mood", "CALM"),
            user_words=fields.pop("user_words", "Latte art for Monday morning"),
            multilingual_level=fields.pop("multilingual_level", 30),
            status=status,
            **fields,
        )
        db_session.add(submission)
        db_session.commit()
        db_session.refresh(submission)
        return submission

    return _make
