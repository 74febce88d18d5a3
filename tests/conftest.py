"""
Shared test fixtures.

Fixtures:
  - test_settings:      Settings(env="local") with inline test RSA keys
  - fake_redis_client:  fakeredis.FakeRedis instance
  - lti_storage:        RedisLaunchDataStorage backed by fake Redis
  - platform_store:     RedisPlatformStore backed by the same fake Redis
  - fake_provider:      in-memory LTI Advantage provider recording its calls
  - make_token:         factory for LaunchToken
  - app / client:       FastAPI app with patched singletons + httpx client
  - seed_launch:        factory populating launch_info in Redis
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Optional
from unittest.mock import patch

import fakeredis
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

import vsearch_lti.lti.routes as lti_routes_mod
from vsearch_lti.app import get_app
from vsearch_lti.auth import LaunchToken
from vsearch_lti.lti.models import LineItem, PlatformRegistration, Score
from vsearch_lti.lti.storage import RedisLaunchDataStorage, RedisPlatformStore
from vsearch_lti.settings import Settings, clear_settings_cache

LMS_URL = "https://lms.example.com"


# ---------------------------------------------------------------------------
# Keys / settings
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_keys() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture(scope="function")
def test_settings(rsa_keys) -> Settings:
    clear_settings_cache()
    private_pem, public_pem = rsa_keys
    return Settings(
        env="local",
        redis_url="redis://fake",
        platforms="",
        lti_private_key=private_pem,
        lti_public_key=public_pem,
        frontend_url="http://localhost:3000/static/index.html",
        log_dir="",
    )


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def fake_redis_client() -> fakeredis.FakeRedis:
    server = fakeredis.FakeServer()
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture(scope="function")
def lti_storage(fake_redis_client: fakeredis.FakeRedis) -> RedisLaunchDataStorage:
    return RedisLaunchDataStorage(fake_redis_client)


@pytest.fixture(scope="function")
def platform_store(fake_redis_client: fakeredis.FakeRedis) -> RedisPlatformStore:
    return RedisPlatformStore(fake_redis_client)


# ---------------------------------------------------------------------------
# Provider double
# ---------------------------------------------------------------------------


class FakeProvider:
    """In-memory stand-in for the grade service and trust store."""

    def __init__(self):
        self.line_items: list[LineItem] = []
        self.platforms: dict[str, PlatformRegistration] = {}
        self.scores: list[tuple[str, Score]] = []
        self.calls: list[tuple] = []
        self.submit_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.failing_urls: set[str] = set()

    def get_line_items(self, token, resource_link_id, tag=None):
        self.calls.append(("get_line_items", resource_link_id, tag))
        if self.list_error:
            raise self.list_error
        return [
            item
            for item in self.line_items
            if item.resource_link_id == resource_link_id and (tag is None or item.tag == tag)
        ]

    def create_line_item(self, token, line_item):
        self.calls.append(("create_line_item", line_item.resource_link_id, line_item.tag))
        created = line_item.model_copy(
            update={"id": f"{LMS_URL}/lineitems/{len(self.line_items) + 1}"}
        )
        self.line_items.append(created)
        return created

    def submit_score(self, token, line_item_id, score):
        self.calls.append(("submit_score", line_item_id))
        if self.submit_error:
            raise self.submit_error
        self.scores.append((line_item_id, score))
        return {"resultUrl": f"{line_item_id}/results/{score.user_id}"}

    def get_platform(self, url):
        self.calls.append(("get_platform", url))
        return self.platforms.get(url)

    def register_platform(self, registration):
        self.calls.append(("register_platform", registration.url))
        if registration.url in self.failing_urls:
            raise ConnectionError("trust store unavailable")
        self.platforms.setdefault(registration.url, registration)
        return self.platforms[registration.url]

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_token():
    """Factory fixture: make_token(user=..., resource=..., endpoint=...) → LaunchToken."""

    def _make(
        user: str = "user-42",
        resource: Optional[dict[str, Any]] = None,
        endpoint: Optional[dict[str, Any]] = None,
        launch_id: str = "launch-001",
    ) -> LaunchToken:
        return LaunchToken(
            launch_id=launch_id,
            user=user,
            issuer=LMS_URL,
            client_id="client-1",
            deployment_id="dep-1",
            resource={"id": "rl-1"} if resource is None else resource,
            endpoint=endpoint or {},
        )

    return _make


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def app(
    test_settings: Settings,
    lti_storage: RedisLaunchDataStorage,
    platform_store: RedisPlatformStore,
    fake_provider: FakeProvider,
) -> AsyncGenerator:
    """App from ``get_app()`` with patched singletons (no lifespan)."""
    with patch("vsearch_lti.settings.get_settings", return_value=test_settings), \
         patch("vsearch_lti.app.get_settings", return_value=test_settings), \
         patch("vsearch_lti.lti.routes.get_settings", return_value=test_settings), \
         patch("vsearch_lti.lti.config.get_settings", return_value=test_settings), \
         patch.object(lti_routes_mod, "_launch_data_storage", lti_storage), \
         patch.object(lti_routes_mod, "_platform_store", platform_store), \
         patch.object(lti_routes_mod, "_provider", fake_provider):
        yield get_app()
    clear_settings_cache()


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator:
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Convenience: seed a launch session in Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def seed_launch(lti_storage: RedisLaunchDataStorage):
    """Factory fixture: seed_launch(launch_id, sub, ...) → launch_id."""

    def _seed(
        launch_id: str = "test-launch-001",
        sub: str = "user-42",
        resource_link: Optional[dict] = None,
        ags: Optional[dict] = None,
        **extras,
    ) -> str:
        data = {
            "sub": sub,
            "iss": LMS_URL,
            "client_id": "client-1",
            "deployment_id": "dep-1",
            "resource_link": {"id": "rl-1"} if resource_link is None else resource_link,
            "ags": ags or {},
            **extras,
        }
        lti_storage.set_value(f"launch_info:{launch_id}", data, exp=3600)
        return launch_id

    return _seed
