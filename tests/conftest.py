"""Shared test fixtures."""

from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from mindease.core.config import Settings
from mindease.core.rate_limit import InMemoryRateStore, RateGovernor
from mindease.db.session import init_db, make_engine, make_session_factory
from mindease.llm.client import LLMError
from mindease.main import create_app


class FakeLLM:
    """
    Scripted completion client. Picks an answer by the kind of system prompt:
    mood scoring, task generation, or a chat reply. An Exception instance as
    an answer is raised instead of returned.
    """

    def __init__(self, reply="I'm here for you.", mood="7", tasks='["Walk for 10 minutes", "Drink water"]'):
        self.reply = reply
        self.mood = mood
        self.tasks = tasks
        self.calls: list[dict] = []

    def kind(self, messages) -> str:
        system = messages[0]["content"]
        if "1 to 10" in system or "от 1 до 10" in system:
            return "mood"
        if "JSON array" in system or "JSON массива" in system:
            return "tasks"
        return "reply"

    async def complete(self, messages, *, temperature=0.7, max_tokens=500, top_p=1.0):
        kind = self.kind(messages)
        self.calls.append(
            {"kind": kind, "messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        answer = getattr(self, kind)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def calls_of(self, kind: str) -> list[dict]:
        return [c for c in self.calls if c["kind"] == kind]


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def llm_down() -> LLMError:
    return LLMError("Groq call failed after retries: boom")


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    """Session factory over a fresh SQLite file with all tables created."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        "LLM_PROVIDER": "mock",
        "AUTH_PROVIDER": "header",
        "RATE_LIMIT_BACKEND": "memory",
        "TIMEZONE": "UTC",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FrozenClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def client_factory(tmp_path: Path, fake_llm: FakeLLM, clock: FrozenClock):
    """Build a TestClient around create_app(); keyword args override Settings fields."""
    clients = []

    def _make(**overrides) -> TestClient:
        settings = make_settings(tmp_path, **overrides)
        governor = RateGovernor(InMemoryRateStore(), clock=clock, rng=lambda: 1.0)
        app = create_app(settings, llm=fake_llm, governor=governor)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture
def client(client_factory) -> TestClient:
    return client_factory()
