"""Tests for resolver.py module."""

import pytest

import config
from resolver import (
    PriorityOrder,
    WorkSetResolver,
    determine_start_position,
    normalize_identifiers,
    validate_log_streams,
)


NOW_MS = 1_700_000_000_000


class MockDiscoveryClient:
    """Serves log group listings page by page per prefix."""

    def __init__(self, pages_by_prefix=None, streams_by_group=None):
        self._pages = pages_by_prefix or {}
        self._streams = streams_by_group or {}
        self.calls = []

    def list_units_by_prefix(self, prefix, next_token):
        self.calls.append((prefix, next_token))
        pages = self._pages.get(prefix, [[]])
        index = int(next_token) if next_token else 0
        following = str(index + 1) if index + 1 < len(pages) else None
        return list(pages[index]), following

    def list_available_units(self, group_id):
        return list(self._streams.get(group_id, []))


class TestNormalizeIdentifiers:

    def test_single_string_becomes_list(self):
        assert normalize_identifiers("sample-log-group-string") == ["sample-log-group-string"]

    def test_list_passes_through(self):
        assert normalize_identifiers(["a", "b"]) == ["a", "b"]

    def test_none_becomes_empty(self):
        assert normalize_identifiers(None) == []


class TestPriorityOrder:

    def test_unknown_unit_has_priority_minus_one(self):
        order = PriorityOrder()
        assert order.index_of("A") is None
        assert order.priority_of("A") == -1

    def test_move_to_end_appends_and_relocates(self):
        order = PriorityOrder()
        order.move_to_end("A")
        order.move_to_end("B")
        order.move_to_end("A")
        assert list(order) == ["B", "A"]
        assert order.index_of("B") == 0
        assert order.index_of("A") == 1
        assert len(order) == 2

    def test_sort_puts_unknown_first_and_most_recent_last(self):
        order = PriorityOrder()
        for unit in ["A", "B", "C"]:
            order.move_to_end(unit)
        order.move_to_end("A")
        assert order.sort(["A", "B", "C", "NEW"]) == ["NEW", "B", "C", "A"]

    def test_sort_is_stable_for_unknown_units(self):
        assert PriorityOrder().sort(["z", "a", "m"]) == ["z", "a", "m"]

    def test_iteration_is_over_a_copy(self):
        order = PriorityOrder()
        order.move_to_end("A")
        order.move_to_end("B")
        for unit in order:
            order.move_to_end(unit)
        assert list(order) == ["A", "B"]

    def test_retain_forgets_units_outside_the_work_set(self):
        order = PriorityOrder()
        for unit in ["A", "B", "C"]:
            order.move_to_end(unit)
        order.retain(["C", "A", "NEW"])
        assert list(order) == ["A", "C"]
        assert order.priority_of("B") == -1


class TestWorkSetResolverStatic:

    def test_static_mode_returns_configured_order(self):
        resolver = WorkSetResolver(["web-2", "web-1"])
        assert resolver.resolve() == ["web-2", "web-1"]

    def test_static_mode_accepts_single_string(self):
        assert WorkSetResolver("sample-log-group").resolve() == ["sample-log-group"]

    def test_static_mode_ignores_priority(self):
        resolver = WorkSetResolver(["A", "B"])
        resolver.mark_processed("A")
        assert resolver.resolve() == ["A", "B"]
        assert len(resolver.priority) == 0


class TestWorkSetResolverPrefix:

    def test_discovery_follows_tokens_and_unions_prefixes(self):
        client = MockDiscoveryClient({
            "/aws/lambda/": [["/aws/lambda/a", "/aws/lambda/b"], ["/aws/lambda/c"]],
            "/app/": [["/app/x"]],
        })
        resolver = WorkSetResolver(["/aws/lambda/", "/app/"], client, prefix=True)

        assert resolver.resolve() == [
            "/aws/lambda/a", "/aws/lambda/b", "/aws/lambda/c", "/app/x"
        ]
        assert client.calls == [("/aws/lambda/", None), ("/aws/lambda/", "1"), ("/app/", None)]

    def test_overlapping_prefixes_do_not_duplicate_units(self):
        client = MockDiscoveryClient({
            "/aws/": [["/aws/a", "/aws/b"]],
            "/aws/a": [["/aws/a"]],
        })
        resolver = WorkSetResolver(["/aws/", "/aws/a"], client, prefix=True)
        assert resolver.resolve() == ["/aws/a", "/aws/b"]

    def test_most_recently_completed_unit_sorts_last(self):
        client = MockDiscoveryClient({"g": [["A", "B"]]})
        resolver = WorkSetResolver("g", client, prefix=True)

        first = resolver.resolve()
        assert first == ["A", "B"]
        for unit in first:
            resolver.mark_processed(unit)

        # B finished last, so it goes last again; A comes first
        assert resolver.resolve() == ["A", "B"]

        resolver.mark_processed("A")
        assert resolver.resolve() == ["B", "A"]

    def test_new_units_are_serviced_first(self):
        client = MockDiscoveryClient({"g": [["A", "B", "C"]]})
        resolver = WorkSetResolver("g", client, prefix=True)
        resolver.mark_processed("A")
        resolver.mark_processed("B")
        assert resolver.resolve() == ["C", "A", "B"]

    def test_priority_survives_across_cycles(self):
        client = MockDiscoveryClient({"g": [["A", "B", "C"]]})
        resolver = WorkSetResolver("g", client, prefix=True)
        for unit in ["C", "A", "B"]:
            resolver.mark_processed(unit)
        assert resolver.resolve() == ["C", "A", "B"]
        resolver.mark_processed("C")
        assert resolver.resolve() == ["A", "B", "C"]

    def test_vanished_groups_are_dropped_from_priority(self):
        client = MockDiscoveryClient({"g": [["A", "B"]]})
        resolver = WorkSetResolver("g", client, prefix=True)
        for unit in resolver.resolve():
            resolver.mark_processed(unit)

        client._pages = {"g": [["B"]]}
        assert resolver.resolve() == ["B"]
        assert list(resolver.priority) == ["B"]

        # A reappearing group is treated as never processed
        client._pages = {"g": [["B", "A"]]}
        assert resolver.resolve() == ["A", "B"]


class TestDetermineStartPosition:

    def test_beginning_sets_zero(self):
        cursors = {}
        determine_start_position(["A"], cursors, "beginning", now_ms=NOW_MS)
        assert cursors == {"A": 0}

    def test_end_sets_now(self):
        cursors = {}
        determine_start_position(["A"], cursors, "end", now_ms=NOW_MS)
        assert cursors == {"A": NOW_MS}

    def test_integer_looks_back_seconds(self):
        cursors = {}
        determine_start_position(["A"], cursors, 100, now_ms=NOW_MS)
        assert cursors == {"A": NOW_MS - 100_000}

    @pytest.mark.parametrize("start_position", ["beginning", "end", 100, 0])
    def test_known_units_are_never_overwritten(self, start_position):
        cursors = {"A": 42, "B": 7}
        determine_start_position(["A", "B", "C"], cursors, start_position, now_ms=NOW_MS)
        assert cursors["A"] == 42
        assert cursors["B"] == 7
        assert "C" in cursors

    def test_every_unknown_unit_gets_an_entry(self):
        cursors = {"A": 1}
        determine_start_position(["A", "B", "C", "D"], cursors, "end", now_ms=NOW_MS)
        assert set(cursors) == {"A", "B", "C", "D"}

    def test_untracked_units_outside_the_list_are_ignored(self):
        cursors = {}
        determine_start_position(["A"], cursors, "beginning", now_ms=NOW_MS)
        assert "B" not in cursors

    def test_defaults_to_wall_clock(self):
        cursors = {}
        determine_start_position(["A"], cursors, "end")
        assert cursors["A"] > NOW_MS


class TestValidateLogStreams:

    def test_all_available_returns_streams(self):
        client = MockDiscoveryClient(streams_by_group={"g": ["a", "b", "c"]})
        assert validate_log_streams(client, "g", ["a", "c"], False) == ["a", "c"]

    def test_missing_streams_raise_config_error(self):
        client = MockDiscoveryClient(streams_by_group={"g": ["a"]})
        with pytest.raises(config.ConfigError, match="not available"):
            validate_log_streams(client, "g", ["a", "b"], False)

    def test_missing_streams_dropped_when_ignored(self, caplog):
        client = MockDiscoveryClient(streams_by_group={"g": ["a"]})
        assert validate_log_streams(client, "g", ["a", "b"], True) == ["a"]
        assert "['b']" in caplog.text
