"""
Tests — User Directory gateway (HTTP lookups, cache, circuit breaker).

A fake ``requests.Session`` stands in for the network.
"""

import pytest
import requests

from teamhub.integrations.user_directory import UserDirectoryGateway, display_name, to_snapshot


class _FakeResponse:
    def __init__(self, status_code=200, body=None, json_error=False):
        self.status_code = status_code
        self._body = body
        self._json_error = json_error

    def json(self):
        if self._json_error:
            raise ValueError("not json")
        return self._body


class _FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, timeout=None, headers=None):
        self.calls.append((url, timeout))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


PROFILE = {
    "firstName": "Alice",
    "lastName": "Nguyen",
    "university": "State U",
    "profilePicture": "https://cdn.example/alice.png",
    "email": "alice@example.com",
}


def _gateway(*responses):
    session = _FakeSession(*responses)
    return UserDirectoryGateway("http://directory.test/api/", timeout=1.5, session=session), session


class TestResolveUser:

    def test_success_keeps_display_fields_only(self):
        gw, session = _gateway(_FakeResponse(body=PROFILE))
        snap = gw.resolve_user("u-1")
        assert snap == to_snapshot(PROFILE)
        assert "email" not in snap
        assert session.calls == [("http://directory.test/api/users/u-1", 1.5)]

    def test_data_envelope_unwrapped(self):
        gw, _ = _gateway(_FakeResponse(body={"data": PROFILE}))
        assert gw.resolve_user("u-1")["firstName"] == "Alice"

    def test_cached(self):
        gw, session = _gateway(_FakeResponse(body=PROFILE))
        gw.resolve_user("u-1")
        gw.resolve_user("u-1")
        assert len(session.calls) == 1
        gw.clear_cache()
        gw.resolve_user("u-1")
        assert len(session.calls) == 2

    def test_expired_entries_pruned_on_insert(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr("teamhub.integrations.user_directory.time.monotonic", lambda: clock[0])
        session = _FakeSession(_FakeResponse(body=PROFILE))
        gw = UserDirectoryGateway("http://directory.test/api", cache_ttl=10, session=session)
        gw.resolve_user("u-1")
        gw.resolve_user("u-2")
        clock[0] += 11
        gw.resolve_user("u-3")
        assert set(gw._cache) == {"u-3"}

    def test_cache_size_is_bounded(self):
        session = _FakeSession(_FakeResponse(body=PROFILE))
        gw = UserDirectoryGateway("http://directory.test/api", cache_max_entries=2, session=session)
        for uid in ("u-1", "u-2", "u-3"):
            gw.resolve_user(uid)
        assert list(gw._cache) == ["u-2", "u-3"]
        gw.resolve_user("u-1")
        assert len(session.calls) == 4

    @pytest.mark.parametrize("response", [
        _FakeResponse(status_code=404),
        _FakeResponse(status_code=503),
        _FakeResponse(json_error=True),
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
    ])
    def test_failures_return_none(self, response):
        gw, _ = _gateway(response)
        assert gw.resolve_user("u-1") is None

    def test_misses_are_not_cached(self):
        gw, session = _gateway(_FakeResponse(status_code=404))
        gw.resolve_user("u-1")
        gw.resolve_user("u-1")
        assert len(session.calls) == 2

    def test_disabled_without_url(self):
        gw = UserDirectoryGateway("", session=_FakeSession(_FakeResponse(body=PROFILE)))
        assert gw.enabled is False
        assert gw.resolve_user("u-1") is None

    def test_resolve_many_dedupes(self):
        gw, session = _gateway(_FakeResponse(body=PROFILE))
        result = gw.resolve_many(["u-1", "u-2", "u-1"])
        assert set(result) == {"u-1", "u-2"}
        assert len(session.calls) == 2


class TestCircuitBreaker:

    def test_opens_after_repeated_failures(self):
        gw, session = _gateway(requests.ConnectionError("down"))
        for i in range(5):
            assert gw.resolve_user(f"u-{i}") is None
        assert len(session.calls) == 5
        # Circuit is now open: no further network calls
        assert gw.resolve_user("u-99") is None
        assert gw.resolve_user("u-100") is None
        assert len(session.calls) == 5

    def test_unknown_user_does_not_trip_breaker(self):
        gw, session = _gateway(_FakeResponse(status_code=404))
        for i in range(8):
            gw.resolve_user(f"u-{i}")
        assert len(session.calls) == 8


class TestHelpers:

    def test_display_name(self):
        assert display_name({"firstName": "Alice", "lastName": "Nguyen"}) == "Alice Nguyen"
        assert display_name({"firstName": "", "lastName": None}) == "A user"
        assert display_name(None, fallback="Someone") == "Someone"

    def test_from_config(self, app):
        gw = UserDirectoryGateway.from_config({"USER_DIRECTORY_URL": "http://x/", "USER_DIRECTORY_TIMEOUT": "3"})
        assert gw.base_url == "http://x"
        assert gw.timeout == 3.0
        assert app.extensions["user_directory"].enabled is False
