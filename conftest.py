import json
import os
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Optional overrides for local runs (e.g. TEST_DATABASE_URL pointing at Postgres)
env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
os.environ["ENVIRONMENT"] = "development"
os.environ["PUBLIC_SITE_URL"] = "https://shop.example.com"
os.environ["PUBLIC_API_URL"] = "https://api.example.com"
os.environ["ASSET_BASE_URL"] = "https://cdn.example.com/designs"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["PRODIGI_API_KEY"] = "test-prodigi-key"
os.environ["PRODIGI_API_URL"] = "https://prodigi.test/v4.0"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()
settings = get_settings()

from services.orders_service import models as _order_models  # noqa: E402,F401
from services.orders_service.app.main import app  # noqa: E402
from services.orders_service.image_resolver import (  # noqa: E402
    ImageResolver,
    get_image_resolver,
)
from services.orders_service.prodigi_client import (  # noqa: E402
    ProdigiClient,
    get_prodigi_client,
)
from services.orders_service.stripe_client import (  # noqa: E402
    StripeCheckoutClient,
    get_payment_client,
)


@pytest_asyncio.fixture
async def test_engine():
    """
    A fresh in-memory database per test (a single shared connection via StaticPool).
    """
    if settings.DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            settings.DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(settings.DATABASE_URL, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


class FakeProdigiApi:
    """
    Records requests sent to Prodigi and answers from a route table.

    Routes map ``(METHOD, path)`` to ``(status_code, json_body)``; the path is
    relative to the API base URL.
    """

    base_url = "https://prodigi.test/v4.0"

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], tuple[int, dict]] = {}

    def respond(self, method: str, path: str, status_code: int, body: dict) -> None:
        self.routes[(method.upper(), path)] = (status_code, body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        prefix = httpx.URL(self.base_url).path
        return [
            r
            for r in self.requests
            if r.method == method.upper() and r.url.path == f"{prefix}{path}"
        ]

    def json_bodies(self, method: str, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.calls(method, path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = httpx.URL(self.base_url).path
        path = request.url.path[len(prefix):]
        status_code, body = self.routes.get(
            (request.method, path), (404, {"outcome": "NotFound"})
        )
        return httpx.Response(status_code, json=body)

    def client(self, api_key: Optional[str] = "test-prodigi-key") -> ProdigiClient:
        return ProdigiClient(
            api_key=api_key,
            base_url=self.base_url,
            callback_url="https://api.example.com/webhooks/prodigi",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def prodigi_api() -> FakeProdigiApi:
    return FakeProdigiApi()


@pytest.fixture
def payment_client() -> AsyncMock:
    """Stands in for StripeCheckoutClient; set ``retrieve_session`` per test."""
    return AsyncMock(spec=StripeCheckoutClient)


@pytest.fixture
def image_resolver() -> ImageResolver:
    return ImageResolver(
        site_url="https://shop.example.com",
        asset_base_url="https://cdn.example.com/designs",
    )


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make(role: str = "admin", sub: str = "admin-user", **claims) -> str:
        payload = {"sub": sub, "role": role, "email": f"{sub}@example.com", **claims}
        return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm="HS256")

    return _make


@pytest.fixture
def admin_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(role='admin')}"}


@pytest_asyncio.fixture
async def client(
    db_session, payment_client, prodigi_api, image_resolver
) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient over the orders app with the database and both providers overridden.
    """
    from libs.db.session import get_async_db

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    app.dependency_overrides[get_prodigi_client] = lambda: prodigi_api.client()
    app.dependency_overrides[get_image_resolver] = lambda: image_resolver

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
