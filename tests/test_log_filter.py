"""Tests for the message filter and the live filtered view."""

import pytest
from PyQt5.QtCore import Qt

from conftest import Collector, make_record
from remote_log_view.errors import FilterCompileError
from remote_log_view.log_filter import FilteredLogView, LogFilter
from remote_log_view.log_store import LogStore

MESSAGES = ["connect failed", "connect ok", "disk full"]


def _messages(view):
    return [r.message for r in view.records()]


@pytest.fixture
def store():
    s = LogStore(capacity=100)
    for m in MESSAGES:
        s.append(make_record(m))
    return s


class TestLogFilter:
    def test_default_matches_all(self):
        f = LogFilter()
        assert f.matches(make_record("anything"))
        assert f.matches(make_record(""))

    def test_create_substring(self):
        f = LogFilter.create("ok", use_regex=False)
        assert f.matches(make_record("connect ok"))
        assert not f.matches(make_record("connect failed"))

    def test_create_invalid_regex(self):
        with pytest.raises(FilterCompileError):
            LogFilter.create("[", use_regex=True)


class TestFilteredLogView:
    def test_empty_pattern_yields_all_in_order(self, store):
        view = FilteredLogView(store)
        assert _messages(view) == MESSAGES

    def test_substring_filter(self, store):
        view = FilteredLogView(store)
        view.set_pattern("connect")
        assert _messages(view) == ["connect failed", "connect ok"]

    def test_regex_filter(self, store):
        view = FilteredLogView(store)
        view.set_regex_mode(True)
        view.set_pattern("^disk")
        assert _messages(view) == ["disk full"]

    def test_regex_anchor_is_literal_without_regex_mode(self, store):
        view = FilteredLogView(store)
        view.set_pattern("^disk")
        assert _messages(view) == []

    def test_live_on_append(self, store):
        view = FilteredLogView(store)
        view.set_pattern("connect")
        store.append(make_record("connect retry"))
        store.append(make_record("cpu hot"))
        assert _messages(view) == ["connect failed", "connect ok", "connect retry"]

    def test_live_on_eviction(self):
        store = LogStore(capacity=2)
        view = FilteredLogView(store)
        view.set_pattern("keep")
        store.append(make_record("keep 1"))
        store.append(make_record("drop"))
        store.append(make_record("keep 2"))
        assert _messages(view) == ["keep 2"]

    def test_clear_resets_filtered_view(self):
        store = LogStore(capacity=100)
        for m in ["alpha", "beta", "alpha two", "gamma", "delta"]:
            store.append(make_record(m))
        view = FilteredLogView(store)
        view.set_pattern("alpha")
        assert len(view) == 2

        store.clear()

        assert len(store) == 0
        assert view.records() == ()

    def test_view_changed_emitted(self, store):
        view = FilteredLogView(store)
        changes = Collector()
        view.view_changed.connect(lambda: changes(1), Qt.DirectConnection)

        view.set_pattern("disk")
        store.append(make_record("x"))
        store.clear()
        view.refresh()

        assert len(changes.snapshot()) == 4

    def test_unchanged_filter_does_not_refilter(self, store):
        view = FilteredLogView(store)
        view.set_pattern("disk")
        changes = Collector()
        view.view_changed.connect(lambda: changes(1), Qt.DirectConnection)
        view.set_pattern("disk")
        assert changes.snapshot() == []


class TestFilterCompileFailure:
    def test_invalid_pattern_keeps_previous_view(self, store):
        view = FilteredLogView(store)
        view.set_regex_mode(True)
        view.set_pattern("connect (ok|failed)")
        errors = Collector()
        view.filter_error.connect(errors, Qt.DirectConnection)

        with pytest.raises(FilterCompileError):
            view.set_pattern("connect (")

        assert view.pattern == "connect (ok|failed)"
        assert _messages(view) == ["connect failed", "connect ok"]
        assert len(errors.snapshot()) == 1

    def test_enabling_regex_with_invalid_pattern_is_rejected(self, store):
        view = FilteredLogView(store)
        view.set_pattern("disk[")
        assert _messages(view) == []

        with pytest.raises(FilterCompileError):
            view.set_regex_mode(True)

        assert view.regex_enabled is False
        assert view.pattern == "disk["

    def test_valid_pattern_after_failure(self, store):
        view = FilteredLogView(store)
        view.set_regex_mode(True)
        with pytest.raises(FilterCompileError):
            view.set_pattern("*")
        view.set_pattern("full$")
        assert _messages(view) == ["disk full"]

    def test_set_filter_switches_both(self, store):
        view = FilteredLogView(store)
        view.set_filter("ok$", use_regex=True)
        assert view.regex_enabled
        assert _messages(view) == ["connect ok"]
