"""Tests for credential extraction strategies."""

import json

import pytest

from crypticdocs.session import (
    InterceptedRequestStrategy,
    PageStructureStrategy,
    PersistedStorageStrategy,
    ScriptStateStrategy,
)
from crypticdocs.session.strategies import field_for_key


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("jSessionId", "session_id"),
        ("contextId", "context_id"),
        ("gds", "gds_code"),
        ("amadeus_session_token", "session_id"),
        ("currentOffice", "office_id"),
        ("userName", "user_id"),
        ("theme", None),
    ],
)
def test_field_for_key(key, expected):
    assert field_for_key(key) == expected


class TestInterceptedRequestStrategy:
    def test_reads_capture_file(self, fixtures_dir):
        strategy = InterceptedRequestStrategy(fixtures_dir / "session" / "intercepted_request.json")

        candidate = strategy.extract()

        assert candidate["session_id"] == "ABCD1234!EFGH5678!1700000000000"
        assert candidate["context_id"] == "ctx.0001.example"
        assert candidate["user_id"] == "AGENT42"
        assert candidate["gds_code"] == "AMADEUS"
        assert candidate["cookies"] == {"JSESSIONID": "cookie-value"}

    def test_accepts_bare_payload_mapping(self):
        strategy = InterceptedRequestStrategy({"jSessionId": "S1", "contextId": ""})

        assert strategy.extract() == {"session_id": "S1"}

    def test_missing_file_yields_nothing(self, tmp_path):
        assert InterceptedRequestStrategy(tmp_path / "absent.json").extract() is None

    def test_no_source(self):
        assert InterceptedRequestStrategy().extract() is None


class TestPageStrategies:
    def test_page_structure(self, fixtures_dir):
        strategy = PageStructureStrategy(fixtures_dir / "session" / "terminal_page.html")

        candidate = strategy.extract()

        assert candidate == {
            "office_id": "JEDSV0100",
            "user_id": "AGENT7",
            "session_id": "PAGE1234!SESSION!1700000000000",
            "context_id": "ctx.page.0002",
        }

    def test_page_structure_ignores_scripts(self, fixtures_dir):
        strategy = PageStructureStrategy(fixtures_dir / "session" / "script_page.html")

        assert strategy.extract() is None

    def test_script_state(self, fixtures_dir):
        strategy = ScriptStateStrategy(fixtures_dir / "session" / "script_page.html")

        candidate = strategy.extract()

        assert candidate == {
            "session_id": "SCRIPT99!STATE!1700000000000",
            "context_id": "ctx.script.0003",
        }

    def test_script_state_from_inline_html(self):
        html = '<script>window.jSessionId = "INLINE!1"; var userId="U9";</script>'

        candidate = ScriptStateStrategy(html=html).extract()

        assert candidate == {"session_id": "INLINE!1", "user_id": "U9"}


class TestPersistedStorageStrategy:
    def test_session_storage_wins_over_local_storage(self, tmp_path):
        dump = tmp_path / "storage.json"
        dump.write_text(
            json.dumps(
                {
                    "localStorage": {"jSessionId": "OLD", "officeId": "RUHSV0401"},
                    "sessionStorage": {"jSessionId": "NEW"},
                }
            )
        )

        candidate = PersistedStorageStrategy(dump, environ={}).extract()

        assert candidate == {"session_id": "NEW", "office_id": "RUHSV0401"}

    def test_flat_dump(self):
        candidate = PersistedStorageStrategy({"contextId": "ctx.flat.1"}, environ={}).extract()

        assert candidate == {"context_id": "ctx.flat.1"}

    def test_dump_with_ids_ignores_environment(self):
        environ = {"CRYPTICDOCS_SESSION_ID": "ENV!1", "CRYPTICDOCS_USER_ID": "ENVUSER"}

        candidate = PersistedStorageStrategy(
            {"contextId": "ctx.dump.1"}, environ=environ
        ).extract()

        assert candidate == {"context_id": "ctx.dump.1"}

    def test_environment_used_when_dump_has_no_ids(self):
        environ = {"CRYPTICDOCS_SESSION_ID": "ENV!1", "CRYPTICDOCS_CONTEXT_ID": "ctx.env.1"}

        candidate = PersistedStorageStrategy(
            {"officeId": "RUHSV0401"}, environ=environ
        ).extract()

        assert candidate == {"session_id": "ENV!1", "context_id": "ctx.env.1"}

    def test_dump_without_ids_and_empty_environment(self):
        candidate = PersistedStorageStrategy({"officeId": "RUHSV0401"}, environ={}).extract()

        assert candidate == {"office_id": "RUHSV0401"}

    def test_environment_can_be_disabled(self):
        strategy = PersistedStorageStrategy(
            None, environ={"CRYPTICDOCS_SESSION_ID": "ENV!1"}, read_environment=False
        )

        assert strategy.extract() is None
