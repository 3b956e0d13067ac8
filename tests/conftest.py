import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from src.helpdesk.config import reset_settings  # noqa: E402
from src.helpdesk.infrastructure.record_store import InMemoryRecordStore, set_record_store  # noqa: E402
from src.helpdesk.security.auth import hash_password, reset_session_manager  # noqa: E402
from src.helpdesk.services.text_generator import set_text_generator  # noqa: E402

from .utils import ADMIN_PASSWORD  # noqa: E402

# Low iteration count keeps login tests fast.
ADMIN_PASSWORD_HASH = hash_password(ADMIN_PASSWORD, iterations=1000)

ARTICLE_TEXT = (
    "Title: Keeping Your Laptop Healthy\n\n"
    "## Introduction\nA few habits go a long way.\n\n"
    "1. Restart weekly\n2. Install updates\n"
)


class StubGenerator:
    """Deterministic stand-in for the LLM-backed TextGenerator."""

    def __init__(self) -> None:
        self.label = "IT Support"
        self.reply = "Try restarting your router."
        self.article = ARTICLE_TEXT
        self.classify_error = None
        self.generate_error = None
        self.classified = []
        self.prompts = []

    async def classify(self, text):
        self.classified.append(text)
        if self.classify_error is not None:
            raise self.classify_error
        return self.label

    async def generate(self, prompt, image=None, purpose="conversation"):
        self.prompts.append({"prompt": prompt, "image": image, "purpose": purpose})
        if self.generate_error is not None:
            raise self.generate_error
        return self.article if purpose == "article" else self.reply


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for key in ("DB_MODE", "HELPDESK_STORE_IMPL", "HELPDESK_MESSAGE_CAP", "ADMIN_USERNAME", "JWT_EXPIRES_HOURS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("ADMIN_PASSWORD_HASH", ADMIN_PASSWORD_HASH)
    monkeypatch.setenv("HELPDESK_SCHEDULER_ENABLED", "0")
    reset_settings()
    reset_session_manager()
    yield
    reset_settings()
    reset_session_manager()


@pytest.fixture(autouse=True)
def store(_isolated_env):
    mem = InMemoryRecordStore()
    set_record_store(mem)
    yield mem
    set_record_store(None)


@pytest.fixture(autouse=True)
def generator(_isolated_env):
    stub = StubGenerator()
    set_text_generator(stub)
    yield stub
    set_text_generator(None)


@pytest.fixture
def app():
    from src.helpdesk.api.main import app as fastapi_app

    fastapi_app.state.scheduler = None
    yield fastapi_app
    fastapi_app.state.scheduler = None


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
