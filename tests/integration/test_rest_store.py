"""
Integration Tests for RestRecordStore.

The hosted store is replaced by an httpx.MockTransport that speaks just enough
PostgREST (eq./is.null filters, Prefer: return=representation).
"""

import json

import httpx
import pytest

from neuroplay.engine.errors import SessionNotFoundError, StoreError
from neuroplay.engine.lifecycle import SessionLifecycleManager
from neuroplay.engine.recovery import RecoveryLocator
from neuroplay.store.rest import RestRecordStore

pytestmark = pytest.mark.integration

BASE_URL = "https://store.test/rest/v1"


class FakePostgrest:
    """In-memory tables behind a MockTransport handler."""

    def __init__(self):
        self.tables = {"game_sessions": [], "behavioral_metrics": []}
        self.requests = []
        self.fail_with = None

    def _matches(self, row, params):
        for key, condition in params.items():
            if key in ("order", "limit", "select"):
                continue
            if condition == "is.null":
                if row.get(key) is not None:
                    return False
            elif condition.startswith("eq."):
                if str(row.get(key)) != condition[3:]:
                    return False
        return True

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with == "connect":
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with == "500":
            return httpx.Response(500, text="internal error")

        table = self.tables[request.url.path.rsplit("/", 1)[-1]]
        params = dict(request.url.params)
        wants_rows = "return=representation" in request.headers.get("Prefer", "")

        if request.method == "POST":
            row = json.loads(request.content)
            table.append(row)
            return httpx.Response(201, json=[row]) if wants_rows else httpx.Response(201)

        matched = [row for row in table if self._matches(row, params)]
        if request.method == "PATCH":
            for row in matched:
                row.update(json.loads(request.content))
            return httpx.Response(200, json=matched)

        return httpx.Response(200, json=matched)


@pytest.fixture
def backend():
    return FakePostgrest()


@pytest.fixture
def rest_store(backend):
    client = httpx.Client(transport=httpx.MockTransport(backend), base_url=BASE_URL)
    with RestRecordStore(BASE_URL, api_key="anon-key", client=client) as store:
        yield store


def row(session_id="s-1", actor_id="actor-1"):
    return {
        "id": session_id,
        "game_id": "silaba-magica",
        "actor_id": actor_id,
        "level": 1,
        "score": 0,
        "status": "active",
        "performance_snapshot": {},
        "context": {},
        "started_at": "2025-01-01T12:00:00+00:00",
        "last_checkpoint_at": "2025-01-01T12:00:00+00:00",
        "ended_at": None,
    }


class TestRequests:
    def test_auth_headers_sent(self, rest_store, backend):
        rest_store.create_session(row())
        request = backend.requests[-1]
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        assert request.headers["Prefer"] == "return=representation"
        assert request.url.path == "/rest/v1/game_sessions"

    def test_update_uses_id_filter(self, rest_store, backend):
        rest_store.create_session(row())
        updated = rest_store.update_session("s-1", {"score": 20, "id": "ignored"})

        request = backend.requests[-1]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.s-1"
        assert "id" not in json.loads(request.content)
        assert updated["score"] == 20

    def test_update_missing_raises(self, rest_store):
        with pytest.raises(SessionNotFoundError):
            rest_store.update_session("missing", {"score": 1})

    def test_query_filters(self, rest_store, backend):
        rest_store.create_session(row("a"))
        rest_store.create_session(row("b", actor_id=None))

        assert [r["id"] for r in rest_store.query_sessions("actor-1", "silaba-magica", "active")] == ["a"]
        assert backend.requests[-1].url.params["order"] == "last_checkpoint_at.desc"
        assert [r["id"] for r in rest_store.query_sessions(None)] == ["b"]
        assert backend.requests[-1].url.params["actor_id"] == "is.null"

    def test_metrics_posted_minimal(self, rest_store, backend):
        rest_store.append_metric({"metric_type": "correct_response", "value": 1.0, "game_id": "silaba-magica"})
        assert backend.tables["behavioral_metrics"][0]["metric_type"] == "correct_response"
        assert backend.requests[-1].headers["Prefer"] == "return=minimal"


class TestFailures:
    def test_http_error_wrapped(self, rest_store, backend):
        backend.fail_with = "500"
        with pytest.raises(StoreError):
            rest_store.get_session("s-1")

    def test_connection_error_wrapped(self, rest_store, backend):
        backend.fail_with = "connect"
        with pytest.raises(StoreError):
            rest_store.query_sessions("actor-1")

    def test_from_settings_requires_url(self, settings):
        with pytest.raises(StoreError):
            RestRecordStore.from_settings(settings)


class TestLifecycleOverRest:
    def test_checkpoint_outage_then_recovery(self, rest_store, backend, clock):
        manager = SessionLifecycleManager(rest_store, clock, "actor-1")
        session_id = manager.start("silaba-magica")

        backend.fail_with = "connect"
        assert manager.checkpoint({"score": 40, "level": 3}, significant=True) is True
        assert manager.failed_writes == 1

        backend.fail_with = None
        clock.advance(10_000)
        manager.tick()

        clock.advance(60_000)
        locator = RecoveryLocator(rest_store, clock)
        assert [r.id for r in locator.find_unfinished("actor-1", "silaba-magica")] == [session_id]
        state = locator.resume(session_id)
        assert (state.score, state.level) == (40, 3)
