"""Tests for the session provider."""

from datetime import datetime, timedelta, timezone

import pytest

from crypticdocs.configuration import SessionSettings
from crypticdocs.errors import SessionAcquisitionError
from crypticdocs.session import SessionProvider, SessionStrategy, is_plausible


class StubStrategy(SessionStrategy):
    def __init__(self, name, candidate=None, error=None):
        self.name = name
        self._candidate = candidate
        self._error = error
        self.calls = 0

    def extract(self):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._candidate


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 13, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def test_is_plausible():
    assert is_plausible({"session_id": "S"})
    assert is_plausible({"context_id": "C"})
    assert not is_plausible({"user_id": "U"})
    assert not is_plausible(None)


class TestAcquire:
    def test_first_plausible_candidate_wins(self, clock):
        first = StubStrategy("first", {"user_id": "ONLY_USER"})
        second = StubStrategy("second", {"session_id": "SESSION!ABCDEFGHIJ", "user_id": "AGENT"})
        third = StubStrategy("third", {"session_id": "OTHER"})
        provider = SessionProvider([first, second, third], clock=clock)

        credentials = provider.acquire()

        assert credentials.session_id == "SESSION!ABCDEFGHIJ"
        assert credentials.user_id == "AGENT"
        assert credentials.source == "second"
        assert credentials.acquired_at == clock.now
        assert third.calls == 0

    def test_candidates_are_not_merged(self, clock):
        first = StubStrategy("first", {"office_id": "JEDSV0100"})
        second = StubStrategy("second", {"context_id": "ctx.second.1"})
        provider = SessionProvider([first, second], clock=clock)

        credentials = provider.acquire()

        assert credentials.office_id == "RUHSV0401"

    def test_defaults_fill_missing_fields(self, clock):
        provider = SessionProvider([StubStrategy("only", {"context_id": "ctx.a.b.c.d"})], clock=clock)

        credentials = provider.acquire()

        assert credentials.user_id == "UNKNOWN"
        assert credentials.organization == "SV"
        assert credentials.gds_code == "AMADEUS"
        assert credentials.prohibited_list_id == "SITE_JCPCRYPTIC_PROHIBITED_COMMANDS_LIST_1"

    def test_failing_strategy_is_skipped(self, clock):
        broken = StubStrategy("broken", error=ValueError("bad json"))
        good = StubStrategy("good", {"session_id": "SESSION!ABCDEFGHIJ"})
        provider = SessionProvider([broken, good], clock=clock)

        assert provider.acquire().source == "good"

    def test_candidate_without_identifiers_is_rejected(self, clock):
        provider = SessionProvider(
            [StubStrategy("a", {"user_id": "U"}), StubStrategy("b", None)], clock=clock
        )

        with pytest.raises(SessionAcquisitionError) as exc_info:
            provider.acquire()

        assert exc_info.value.attempted == ["a", "b"]
        assert provider.current is None

    def test_cached_credentials_are_reused(self, clock):
        strategy = StubStrategy("only", {"session_id": "SESSION!ABCDEFGHIJ"})
        provider = SessionProvider([strategy], clock=clock)

        first = provider.acquire()
        second = provider.acquire()

        assert first is second
        assert strategy.calls == 1
        assert provider.acquisition_count == 1


class TestValidity:
    def test_fresh_credentials_are_valid(self, clock):
        provider = SessionProvider([StubStrategy("s", {"session_id": "S!1234567890"})], clock=clock)
        credentials = provider.acquire()

        assert provider.is_valid(credentials)

    def test_stale_credentials_are_invalid(self, clock):
        provider = SessionProvider(
            [StubStrategy("s", {"session_id": "S!1234567890"})], freshness_seconds=60, clock=clock
        )
        credentials = provider.acquire()

        clock.now += timedelta(seconds=61)

        assert not provider.is_valid(credentials)

    def test_stale_credentials_are_reacquired(self, clock):
        strategy = StubStrategy("s", {"session_id": "S!1234567890"})
        provider = SessionProvider([strategy], freshness_seconds=60, clock=clock)
        provider.acquire()

        clock.now += timedelta(seconds=120)
        refreshed = provider.acquire()

        assert strategy.calls == 2
        assert refreshed.acquired_at == clock.now

    def test_none_is_invalid(self, clock):
        assert not SessionProvider([], clock=clock).is_valid(None)

    def test_invalidate_forces_new_acquisition(self, clock):
        strategy = StubStrategy("s", {"session_id": "S!1234567890"})
        provider = SessionProvider([strategy], clock=clock)
        provider.acquire()

        provider.invalidate()

        assert provider.current is None
        provider.acquire()
        assert strategy.calls == 2


def test_from_settings_builds_strategy_chain(fixtures_dir, clock):
    settings = SessionSettings(
        intercepted_request_path=fixtures_dir / "session" / "absent.json",
        page_snapshot_path=fixtures_dir / "session" / "terminal_page.html",
    )

    provider = SessionProvider.from_settings(settings, environ={}, clock=clock)

    assert provider.strategy_names == [
        "intercepted_request",
        "page_structure",
        "script_state",
        "persisted_storage",
    ]
    credentials = provider.acquire()
    assert credentials.source == "page_structure"
    assert credentials.office_id == "JEDSV0100"


def test_from_settings_falls_back_to_environment(clock):
    provider = SessionProvider.from_settings(
        SessionSettings(), environ={"CRYPTICDOCS_CONTEXT_ID": "ctx.env.0001"}, clock=clock
    )

    credentials = provider.acquire()

    assert credentials.source == "persisted_storage"
    assert credentials.context_id == "ctx.env.0001"
