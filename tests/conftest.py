# tests/conftest.py
from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable, Generator, Iterator
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FEDERATION_INSTANCE_ID", "test-instance")

from launchpad_federation.api.v1.dependencies import (  # noqa: E402
    get_partner_client_dep,
    get_payment_gateway_dep,
)
from launchpad_federation.db.session import Base  # noqa: E402
from launchpad_federation.db.session import get_db as app_get_session  # noqa: E402
from launchpad_federation.db.time import utcnow  # noqa: E402
from launchpad_federation.main import app as fastapi_app  # noqa: E402
from launchpad_federation.models import FederationInstance  # noqa: E402
from launchpad_federation.models.federation import INSTANCE_STATUS_ACTIVE  # noqa: E402
from launchpad_federation.services.catalog import clear_discovery_cache  # noqa: E402
from launchpad_federation.services.partner_client import (  # noqa: E402
    DIRECTORIES_PATH,
    HEALTH_PATH,
    INFO_PATH,
    SUBMIT_PATH,
    PartnerClient,
    PartnerClientConfig,
)
from launchpad_federation.services.payments import HttpPaymentGateway, PaymentSession  # noqa: E402

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(autouse=True)
def reset_federation_state() -> Iterator[None]:
    """Start every test with an empty listing cache."""
    clear_discovery_cache()
    yield
    clear_discovery_cache()


class PartnerNetwork:
    """In-memory stand-in for a set of partner instances.

    Instances are keyed by base URL. Anything not configured answers like a
    healthy partner that accepts every submission and lists no directories.
    """

    def __init__(self) -> None:
        self.directories: dict[str, Any] = {}
        # base_url -> "accept" | "error" | "decline" | "no-id" | "garbage"
        self.submit_behaviour: dict[str, str] = {}
        self.health: dict[str, dict[str, Any]] = {}
        self.info: dict[str, dict[str, Any]] = {}
        self.down: set[str] = set()
        self.delays: dict[str, float] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def origin(request: httpx.Request) -> str:
        return f"{request.url.scheme}://{request.url.host}"

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        origin = self.origin(request)
        if origin in self.delays:
            await asyncio.sleep(self.delays[origin])
        if origin in self.down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == DIRECTORIES_PATH:
            return httpx.Response(200, json=self.directories.get(origin, []))
        if path == HEALTH_PATH:
            return httpx.Response(
                200,
                json=self.health.get(
                    origin, {"status": "healthy", "version": "2.1.0", "api_version": "v1"}
                ),
            )
        if path == INFO_PATH:
            return httpx.Response(
                200,
                json=self.info.get(
                    origin,
                    {"federation_enabled": True, "supported_features": ["submissions"]},
                ),
            )
        if path == SUBMIT_PATH:
            return self._submit(origin, json.loads(request.content))
        return httpx.Response(404, json={"error": "Not found"})

    def _submit(self, origin: str, body: dict[str, Any]) -> httpx.Response:
        behaviour = self.submit_behaviour.get(origin, "accept")
        if behaviour == "error":
            return httpx.Response(500, json={"error": "Internal error"})
        if behaviour == "decline":
            return httpx.Response(200, json={"success": False, "error": "Duplicate submission"})
        if behaviour == "no-id":
            return httpx.Response(200, json={"success": True})
        if behaviour == "garbage":
            return httpx.Response(200, content=b"<html>oops</html>")
        return httpx.Response(
            201,
            json={
                "success": True,
                "submission_id": f"{body['directory_id']}-{len(self.requests)}",
                "status": "pending",
            },
        )

    def submissions_to(self, base_url: str) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path == SUBMIT_PATH and self.origin(request) == base_url
        ]

    def listing_calls(self, base_url: str) -> int:
        return sum(
            1
            for request in self.requests
            if request.url.path == DIRECTORIES_PATH and self.origin(request) == base_url
        )


@pytest.fixture()
def partner_network() -> PartnerNetwork:
    return PartnerNetwork()


@pytest.fixture()
def partner_client(partner_network: PartnerNetwork) -> PartnerClient:
    config = PartnerClientConfig(
        instance_id="test-instance",
        user_agent="LaunchPadder-Federation/1.0",
        timeout_seconds=2.0,
    )
    return PartnerClient(config, transport=httpx.MockTransport(partner_network.handler))


@pytest.fixture()
def payment_gateway() -> AsyncMock:
    gateway = AsyncMock(spec=HttpPaymentGateway)
    gateway.create_session.return_value = PaymentSession(
        session_id="sess_123",
        checkout_url="https://pay.example/checkout/sess_123",
    )
    gateway.is_settled.return_value = True
    return gateway


@pytest.fixture()
def make_instance(db_session: Session) -> Callable[..., FederationInstance]:
    """Create persisted instances; earlier calls sort first in registry order."""
    created: list[FederationInstance] = []
    base_time = utcnow()

    def _make(
        base_url: str,
        *,
        name: str | None = None,
        status: str = INSTANCE_STATUS_ACTIVE,
    ) -> FederationInstance:
        instance = FederationInstance(
            name=name or base_url.split("//", 1)[-1],
            base_url=base_url,
            admin_email="admin@" + base_url.split("//", 1)[-1],
            status=status,
            last_seen_at=base_time - timedelta(minutes=len(created)),
        )
        db_session.add(instance)
        db_session.flush()
        created.append(instance)
        return instance

    return _make


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def override_partners(
    app: FastAPI,
    partner_client: PartnerClient,
    payment_gateway: AsyncMock,
) -> Iterator[None]:
    """Route the API's partner and payment traffic to the in-memory fakes."""
    app.dependency_overrides[get_partner_client_dep] = lambda: partner_client
    app.dependency_overrides[get_payment_gateway_dep] = lambda: payment_gateway
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_partner_client_dep, None)
        app.dependency_overrides.pop(get_payment_gateway_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
