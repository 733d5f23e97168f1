import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quizcraft.core.sessions import registry
from quizcraft.db.base import Base
from quizcraft.db.session import get_db
from quizcraft.main import app


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    registry.clear()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    registry.clear()


async def auth_headers(client: AsyncClient, email: str, password: str = "secret-pass") -> dict:
    """Sign up a user and return bearer headers for it."""
    response = await client.post("/api/signup", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def create_quiz(
    client: AsyncClient,
    headers: dict,
    questions: list,
    settings: dict | None = None,
    is_public: bool = True,
    publish: bool = True,
    title: str = "Capitals",
) -> dict:
    """Create a quiz with ``questions`` and optionally publish it; returns the quiz JSON."""
    body = {"title": title, "description": "Test quiz", "is_public": is_public}
    if settings is not None:
        body["settings"] = settings
    response = await client.post("/api/quizzes", json=body, headers=headers)
    assert response.status_code == 200, response.text
    quiz = response.json()

    for question in questions:
        response = await client.post(f"/api/quizzes/{quiz['id']}/questions", json=question, headers=headers)
        assert response.status_code == 200, response.text

    if publish:
        response = await client.post(f"/api/quizzes/{quiz['id']}/publish", headers=headers)
        assert response.status_code == 200, response.text
        quiz = response.json()
    return quiz


SINGLE_CHOICE = {
    "content": "Capital of France?",
    "question_type": "single_choice",
    "points": 1,
    "options": [{"id": "A", "text": "Paris"}, {"id": "B", "text": "Rome"}, {"id": "C", "text": "Oslo"}],
    "correct_answers": ["A"],
}

MULTIPLE_CHOICE = {
    "content": "Which are prime?",
    "question_type": "multiple_choice",
    "points": 1,
    "options": [{"id": "A", "text": "2"}, {"id": "B", "text": "4"}, {"id": "C", "text": "5"}],
    "correct_answers": ["A", "C"],
}

FREE_TEXT = {
    "content": "Describe the water cycle.",
    "question_type": "text",
    "points": 5,
    "correct_answers": ["Evaporation, condensation, precipitation"],
}
