import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from fastapi.testclient import TestClient

# Load .env, then force test values regardless of it
load_dotenv()
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["NOTIFIER_BACKEND"] = "log"
os.environ.pop("PROMPT_INTERVAL_OVERRIDE", None)

from deadswitch import database  # noqa: E402
from deadswitch.config import Settings, get_settings  # noqa: E402
from deadswitch.crud import MessageStore  # noqa: E402
from deadswitch.features.reminders import ReminderScheduler  # noqa: E402

T0 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingNotifier:
    """Notifier double that records every call and can be told to fail."""

    def __init__(self):
        self.prompts = []
        self.contents = []
        self.prompt_ok = True
        self.content_ok = True

    async def send_prompt(self, recipients, token, time_to_respond):
        self.prompts.append((list(recipients), token, time_to_respond))
        return self.prompt_ok

    async def send_content(self, recipients, subject, content):
        self.contents.append((list(recipients), subject, content))
        return self.content_ok


def make_settings(**overrides) -> Settings:
    values = {
        "escalation_window": "24h",
        "prompt_interval_override": None,
        "escalate_on_prompt_failure": True,
        "scheduler_max_concurrent_firings": 4,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def settings():
    return make_settings()


@pytest_asyncio.fixture()
async def store(tmp_path):
    engine = database.make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.init_db_async(engine)
    yield MessageStore(database.make_sessionmaker(engine))
    await database.shutdown_db_async(engine)


@pytest_asyncio.fixture()
async def scheduler(store, notifier, settings, clock):
    # Started paused: jobs are registered but never run on their own,
    # tests drive the firing handlers directly.
    engine = ReminderScheduler(store, notifier, settings, clock=clock)
    engine.start(paused=True)
    yield engine
    engine.shutdown()


@pytest_asyncio.fixture()
async def owner(store):
    return await store.upsert_user("owner@example.com")


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    get_settings.cache_clear()
    from deadswitch.main import app
    with TestClient(app) as c:
        yield c
    get_settings.cache_clear()
