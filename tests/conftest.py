"""
Shared fixtures: an in-memory gateway and a controllable clock.
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import pytest

from collabzy.cache import CacheCoordinator, ResourceKind
from collabzy.data_service import DataService
from collabzy.session import Session


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self):
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeGateway:
    """
    Gateway that serves canned responses and records every call.

    A response may be a list, an exception to raise, or a callable taking
    the filters.
    """

    def __init__(self):
        self.responses: Dict[ResourceKind, Any] = {}
        self.mutation_responses: Dict[Any, Any] = {}
        self.get_responses: Dict[str, Any] = {}
        self.fetch_calls: List[Tuple[ResourceKind, Dict[str, Any]]] = []
        self.mutate_calls: List[Tuple[Any, Any, Any]] = []
        self.get_calls: List[Tuple[str, Any]] = []
        self.closed = False

    def fetch(self, kind, filters):
        self.fetch_calls.append((kind, dict(filters)))
        response = self.responses.get(kind, [])
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(filters)
        return list(response)

    def mutate(self, operation, payload=None, path_params=None):
        self.mutate_calls.append((operation, payload, path_params))
        response = self.mutation_responses.get(operation, {"_id": "new-record"})
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, path, params=None, record_type=None):
        self.get_calls.append((path, params))
        response = self.get_responses.get(path)
        if isinstance(response, Exception):
            raise response
        return response

    def calls_for(self, kind: ResourceKind) -> int:
        return sum(1 for called_kind, _ in self.fetch_calls if called_kind == kind)

    def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def session():
    return Session(token="token-brand", user={"_id": "u1", "role": "brand"})


@pytest.fixture
def coordinator(gateway, session, clock):
    return CacheCoordinator(
        gateway,
        is_authenticated=lambda: session.is_authenticated,
        ttl_seconds=300,
        clock=clock,
        coalesce_timeout=5.0,
    )


@pytest.fixture
def service(gateway, session, coordinator):
    return DataService(gateway, session, coordinator)


@pytest.fixture
def api_gateways():
    """FakeGateway per bearer token, created as the app sees new sessions."""
    return defaultdict(FakeGateway)


@pytest.fixture
def client(api_gateways):
    from fastapi.testclient import TestClient

    from collabzy.main import create_app
    from collabzy.session import SessionRegistry

    def factory(session):
        gateway = api_gateways[session.token]
        return DataService(gateway, session)

    return TestClient(create_app(SessionRegistry(factory=factory)))
