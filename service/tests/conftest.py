"""
Shared fixtures and fakes for the diagnosis service tests.
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from shirokuma.config import DEFAULT_DATA_DIR, get_settings
from shirokuma.services.assets import load_assets
from shirokuma.services.completion import CompletionClient
from shirokuma.services.diagnosis import DiagnosisService
from shirokuma.services.job_guard import InMemoryRecentJobStore, UserLockRegistry
from shirokuma.services.storage import UploadError
from shirokuma.line_bot.handlers import DiagnosisDispatcher
from shirokuma.utils.masking import clear_registered_secrets

SCENARIO_A = "《《《無料トータル診断》》》\n生年月日：1996年4月24日\nMBTI：ENFP"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    monkeypatch.setenv("CHANNEL_ACCESS_TOKEN", "test-channel-access-token")
    monkeypatch.setenv("CHANNEL_SECRET", "test-channel-secret")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai-key-0000")
    monkeypatch.delenv("SECONDARY_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    clear_registered_secrets()


@pytest.fixture(scope="session")
def assets():
    return load_assets(DEFAULT_DATA_DIR)


# =========================================================================
# FAKES
# =========================================================================

def api_status_error(status: int, headers: dict | None = None) -> openai.APIStatusError:
    """Build the exception the OpenAI SDK raises for an HTTP error status."""
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request, headers=headers or {})
    if status == 429:
        cls = openai.RateLimitError
    elif status >= 500:
        cls = openai.InternalServerError
    else:
        cls = openai.BadRequestError
    return cls(f"HTTP {status}", response=response, body=None)


def completion_response(text: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class FakeCompletions:
    """Stands in for AsyncOpenAI().chat.completions; plays back outcomes in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return completion_response(outcome)


def fake_openai(outcomes):
    completions = FakeCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeLineClient:
    def __init__(self, display_name: str = "しろくま", fail_reply_tokens: set | None = None):
        self.display_name = display_name
        self.fail_reply_tokens = fail_reply_tokens or set()
        self.replies: list[tuple[str, str]] = []
        self.pushes: list[tuple[str, str]] = []

    async def reply_text(self, reply_token: str, text: str) -> None:
        if reply_token in self.fail_reply_tokens:
            raise httpx.ConnectError("reply failed")
        self.replies.append((reply_token, text))

    async def push_text(self, user_id: str, text: str) -> None:
        self.pushes.append((user_id, text))

    async def get_profile(self, user_id: str) -> dict:
        return {"userId": user_id, "displayName": self.display_name}


class FakeUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[str, bytes]] = []

    async def upload_pdf(self, pdf_bytes: bytes, file_name: str) -> str:
        if self.fail:
            raise UploadError("storage down")
        self.uploads.append((file_name, pdf_bytes))
        return f"https://storage.example.com/reports/{file_name}"


def text_event(text: str, user_id: str = "U-user-1", reply_token: str = "reply-1") -> dict:
    return {
        "type": "message",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": user_id},
        "message": {"type": "text", "id": "1", "text": text},
    }


class Harness(SimpleNamespace):
    """Dispatcher wired to fakes."""


@pytest.fixture
def make_harness(assets):
    def _make(outcomes=("あなたは好奇心いっぱいの診断結果です。",), max_retries=3, uploader=None, clock=None):
        client, completions = fake_openai(outcomes)
        sleep = SleepRecorder()
        completion = CompletionClient(client=client, max_retries=max_retries, sleep=sleep)
        uploader = uploader or FakeUploader()
        line = FakeLineClient()
        job_store = InMemoryRecentJobStore(ttl_seconds=120, clock=clock or (lambda: 1000.0))
        diagnosis = DiagnosisService(assets, completion, uploader)
        dispatcher = DiagnosisDispatcher(
            diagnosis=diagnosis,
            line=line,
            job_store=job_store,
            locks=UserLockRegistry(),
        )
        return Harness(
            dispatcher=dispatcher,
            diagnosis=diagnosis,
            completions=completions,
            sleep=sleep,
            line=line,
            uploader=uploader,
            job_store=job_store,
        )
    return _make
