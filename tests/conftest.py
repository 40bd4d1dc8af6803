from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mathjourney import models  # noqa: F401
from mathjourney.db import Base
from mathjourney.deps import get_completion_client, get_progress_client, get_store
from mathjourney.gemini_client import Completion
from mathjourney.main import app
from mathjourney.progression import create_journey
from mathjourney.schemas import Difficulty, WorksheetResult
from mathjourney.store import DocumentStore
from mathjourney.topics import worksheet_id

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeCompletionClient:
    """Stands in for GeminiClient; returns queued responses in order."""

    def __init__(self):
        self.responses = []
        self.calls = []

    def queue(self, text):
        self.responses.append(text)

    async def complete(self, system_prompt, user_prompt, *, max_output_tokens, temperature):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_output_tokens": max_output_tokens,
                "temperature": temperature,
            }
        )
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return Completion(text=response, input_tokens=120, output_tokens=80, model="fake-model")

    async def aclose(self):
        pass


@pytest.fixture
def session():
    """In-memory SQLite session shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture
def store(session):
    return DocumentStore(session)


@pytest.fixture
def completion():
    return FakeCompletionClient()


@pytest.fixture
def client(store, completion):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_completion_client] = lambda: completion
    app.dependency_overrides[get_progress_client] = lambda: completion
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def journey():
    """Fresh journey: three Binomial Theorem resources (days 1-3) and a medium worksheet (day 4)."""
    return create_journey(
        journey_id="j1",
        user_id="u1",
        unit="Number & Algebra",
        course_level="HL",
        goals=["pass the exam"],
        preferences={"pace": "steady"},
        start_date="2025-03-01",
        now=NOW,
    )


@pytest.fixture
def make_result():
    def _make(journey, topic="Binomial Theorem", difficulty=Difficulty.MEDIUM, percentage=70, result_id="r1"):
        return WorksheetResult(
            id=result_id,
            user_id=journey.user_id,
            journey_id=journey.id,
            worksheet_id=worksheet_id(topic, difficulty),
            topic=topic,
            difficulty=difficulty,
            timestamp=NOW,
            total_score=percentage,
            total_possible_score=100,
            percentage_score=percentage,
        )

    return _make
