from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from inference_relay.core.config import Settings
from inference_relay.core.rate_limit import limiter
from inference_relay.gateway.types import UpstreamResult
from inference_relay.main import create_app

TEST_TOKEN = "test-token-123"


class FakeRelay:
    """Stands in for RelayClient: records calls and returns canned results."""

    def __init__(self):
        self.text_result = UpstreamResult.text("Hello!")
        self.image_result = UpstreamResult.picture(b"\x89PNG\r\n", "image/png")
        self.text_calls: list[tuple[str, str]] = []
        self.image_calls: list[str] = []
        self.raise_error: Exception | None = None

    @property
    def call_count(self) -> int:
        return len(self.text_calls) + len(self.image_calls)

    async def call_text(self, model_id, prompt, should_cancel=None):
        if self.raise_error is not None:
            raise self.raise_error
        self.text_calls.append((model_id, prompt))
        return self.text_result

    async def call_image(self, prompt, should_cancel=None):
        if self.raise_error is not None:
            raise self.raise_error
        self.image_calls.append(prompt)
        return self.image_result


def make_settings(**overrides) -> Settings:
    values = {
        "upstream_base_url": "https://upstream.test/models",
        "default_model_id": "org/default-model",
        "model_map": {"Nexari G1": "org/nexari-g1"},
        "image_model_id": "org/image-model",
        "auth_mode": "token",
        "inbound_tokens": TEST_TOKEN,
        "rate_limit": "",
        "enable_metrics": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def reset_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def app(settings: Settings, relay: FakeRelay):
    return create_app(settings, relay_client=relay)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
