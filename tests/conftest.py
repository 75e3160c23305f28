"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from agent.tracing import NoOpTracer  # noqa: E402
from inference import ScriptedModelBackend  # noqa: E402
from infra import InfraBootstrap, InfraConfig  # noqa: E402
from transport.base import ChatTransport, ChatTransportError, EventHandler  # noqa: E402
from transport.schemas import (  # noqa: E402
    AI_INDICATOR_STOP,
    MESSAGE_NEW,
    AIState,
    ChatEvent,
    ChatUser,
    InboundMessage,
    OutboundMessage,
)
from transport.stream_chat import StreamChatClient  # noqa: E402


class FakeChatTransport(ChatTransport):
    """
    In-memory ChatTransport recording every outbound call.

    updates: [(message_id, text)] in call order
    events:  [(message_id, AIState)] in call order
    """

    def __init__(self, cid: str = "messaging:test", bot_user_id: str = "ai-bot-test"):
        self.cid = cid
        self.bot_user_id = bot_user_id
        self.sent: List[OutboundMessage] = []
        self.updates: List[Tuple[str, str]] = []
        self.events: List[Tuple[str, AIState]] = []
        self.handlers: Dict[str, List[EventHandler]] = {}
        self.disconnected = False
        self.fail_updates = False
        self.fail_events = False
        self.fail_send = False

    async def send_message(self, text: str, ai_generated: bool = True) -> OutboundMessage:
        if self.fail_send:
            raise ChatTransportError("send failed")
        message = OutboundMessage(id=f"msg-{len(self.sent) + 1}", cid=self.cid, text=text)
        self.sent.append(message)
        return message

    async def partial_update_message(self, message_id: str, text: str) -> None:
        if self.fail_updates:
            raise ChatTransportError("update failed")
        self.updates.append((message_id, text))

    async def send_event(self, message: OutboundMessage, state: AIState) -> None:
        if self.fail_events:
            raise ChatTransportError("event failed")
        self.events.append((message.id, state))

    def on(self, event_type: str, handler: EventHandler) -> None:
        handlers = self.handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        handlers = self.handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def disconnect(self) -> None:
        self.handlers.clear()
        self.disconnected = True

    # ── Test helpers ──────────────────────────────────────────

    async def emit(self, event: ChatEvent) -> None:
        for handler in list(self.handlers.get(event.type, [])):
            await handler(event)

    def handler_count(self, event_type: str) -> int:
        return len(self.handlers.get(event_type, []))

    def texts_for(self, message_id: str) -> List[str]:
        return [text for mid, text in self.updates if mid == message_id]

    def states_for(self, message_id: str) -> List[AIState]:
        return [state for mid, state in self.events if mid == message_id]

    def final_text(self, message_id: str) -> Optional[str]:
        texts = self.texts_for(message_id)
        return texts[-1] if texts else None


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def chat_transport() -> FakeChatTransport:
    return FakeChatTransport()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_message_event():
    """Factory for message.new events from a human user."""

    def _make(text: str, cid: str = "messaging:test", writing_task: Optional[str] = None, ai_generated: bool = False) -> ChatEvent:
        custom = {"writingTask": writing_task} if writing_task else {}
        return ChatEvent(
            type=MESSAGE_NEW,
            cid=cid,
            message=InboundMessage(
                id="user-msg-1",
                text=text,
                user=ChatUser(id="user-1", name="Alice"),
                ai_generated=ai_generated,
                custom=custom,
            ),
        )

    return _make


@pytest.fixture
def stop_event():
    """Factory for ai_indicator.stop events targeting a message."""

    def _make(message_id: str, cid: str = "messaging:test") -> ChatEvent:
        return ChatEvent(type=AI_INDICATOR_STOP, cid=cid, message_id=message_id)

    return _make


# ─────────────────────────────────────────────────────
# HTTP-level fixtures (FastAPI app against a fake Stream API)
# ─────────────────────────────────────────────────────

TEST_STREAM_KEY = "test-key"
TEST_STREAM_SECRET = "test-secret"


class FakeStreamAPI:
    """
    httpx.MockTransport handler standing in for the Stream Chat REST API.

    Records (method, path, body) for every request; message creation
    returns ids "bot-msg-N". Paths listed in fail_paths answer 500.
    """

    def __init__(self):
        self.requests: List[Tuple[str, str, dict]] = []
        self.fail_paths: List[str] = []
        self._message_count = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        self.requests.append((request.method, path, body))

        if path in self.fail_paths:
            return httpx.Response(500, json={"message": "internal error"})

        if request.method == "POST" and path.endswith("/message"):
            self._message_count += 1
            _, _, channel_type, channel_id, _ = path.split("/")
            return httpx.Response(
                201,
                json={
                    "message": {
                        "id": f"bot-msg-{self._message_count}",
                        "cid": f"{channel_type}:{channel_id}",
                        "text": body["message"]["text"],
                    }
                },
            )
        return httpx.Response(201, json={})

    def calls(self, method: str, path: str) -> List[dict]:
        return [body for m, p, body in list(self.requests) if m == method and p == path]

    def ai_states(self, message_id: str) -> List[str]:
        return [
            body["event"]["ai_state"]
            for method, path, body in list(self.requests)
            if method == "POST" and path.endswith("/event") and body["event"].get("message_id") == message_id
        ]

    def texts(self, message_id: str) -> List[str]:
        return [body["set"]["text"] for body in self.calls("PUT", f"/messages/{message_id}")]


def make_test_config(**overrides) -> InfraConfig:
    values = dict(
        llm_backend="stub",
        gemini_api_key=None,
        model_base_url="http://model.invalid/v1/",
        model_name="test-model",
        tavily_api_key=None,
        tavily_search_url="http://search.invalid/search",
        search_timeout_s=1.0,
        stream_api_key=TEST_STREAM_KEY,
        stream_api_secret=TEST_STREAM_SECRET,
        stream_base_url="http://stream.invalid",
        inactivity_threshold_s=8 * 60 * 60,
        sweep_interval_s=60.0,
        history_max_messages=20,
    )
    values.update(overrides)
    return InfraConfig(**values)


def sign_body(body: bytes, secret: str = TEST_STREAM_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll from the test thread while the app's event loop does the work."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


@pytest.fixture
def stream_api() -> FakeStreamAPI:
    return FakeStreamAPI()


@pytest.fixture
def install_bootstrap(stream_api):
    """
    Factory installing an InfraBootstrap wired to the fake Stream API.

    Usage:
        bootstrap = install_bootstrap(model_backend=ScriptedModelBackend([...]))
        with TestClient(app) as client:
            ...
    """

    def _install(model_backend=None, **config_overrides) -> InfraBootstrap:
        chat_client = StreamChatClient(
            TEST_STREAM_KEY,
            TEST_STREAM_SECRET,
            base_url="http://stream.invalid",
            transport=httpx.MockTransport(stream_api),
        )
        bootstrap = InfraBootstrap(
            config=make_test_config(**config_overrides),
            chat_client=chat_client,
            llm_backend=model_backend or ScriptedModelBackend(),
            tracer=NoOpTracer(),
        )
        return InfraBootstrap.install(bootstrap)

    yield _install
    InfraBootstrap.reset()


@pytest.fixture
def webhook_signer():
    """Returns X-Signature values for raw webhook bodies."""
    return sign_body


@pytest.fixture
def eventually():
    return wait_until
