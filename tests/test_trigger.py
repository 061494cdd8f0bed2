"""Trigger evaluation: exact branch matching per event kind."""

import pytest

from gateci.dsl import on_pull_request, on_push, pipeline, sh
from gateci.errors import ConfigError, InvalidEvent
from gateci.model import Event, TriggerRule
from gateci.trigger import rule_matches, should_trigger, validate_event


@pytest.fixture
def ci():
    return pipeline(
        "ci",
        sh("test", "true"),
        on=[on_push("main", "release"), on_pull_request("main")],
    )


class TestPush:
    def test_matches_listed_branch(self, ci):
        assert should_trigger(ci, Event.push("main"))
        assert should_trigger(ci, Event.push("release"))

    def test_other_branch_does_not_match(self, ci):
        assert not should_trigger(ci, Event.push("dev"))

    def test_matching_is_case_sensitive(self, ci):
        assert not should_trigger(ci, Event.push("Main"))

    def test_no_prefix_or_wildcard_matching(self, ci):
        assert not should_trigger(ci, Event.push("main-feature"))
        assert not should_trigger(ci, Event.push("mai"))


class TestPullRequest:
    def test_matches_on_target_branch(self, ci):
        assert should_trigger(ci, Event.pull_request("main", branch="feature/x"))

    def test_source_branch_is_irrelevant(self, ci):
        # head branch named main but targeting dev: no match
        assert not should_trigger(ci, Event.pull_request("dev", branch="main"))

    def test_push_rule_does_not_match_pull_request(self):
        p = pipeline("p", sh("a", "true"), on=[on_push("release")])
        assert not should_trigger(p, Event.pull_request("release"))

    def test_pull_request_rule_does_not_match_push(self):
        p = pipeline("p", sh("a", "true"), on=[on_pull_request("main")])
        assert not should_trigger(p, Event.push("main"))


class TestInvalidEvents:
    def test_push_without_branch(self, ci):
        with pytest.raises(InvalidEvent, match="no branch"):
            should_trigger(ci, Event(kind="push"))

    def test_pull_request_without_target(self, ci):
        with pytest.raises(InvalidEvent, match="no target branch"):
            should_trigger(ci, Event(kind="pull_request", branch="feature"))

    def test_unknown_kind(self):
        with pytest.raises(InvalidEvent, match="unsupported event kind"):
            validate_event(Event(kind="tag", branch="v1"))


class TestRules:
    def test_empty_branch_set_rejected(self):
        with pytest.raises(ConfigError, match="at least one branch"):
            TriggerRule(event="push", branches=frozenset())

    def test_unknown_event_rejected(self):
        with pytest.raises(ConfigError, match="unknown trigger event"):
            TriggerRule(event="schedule", branches=frozenset({"main"}))

    def test_rule_matches_is_pure(self):
        rule = TriggerRule(event="push", branches=frozenset({"main"}))
        event = Event.push("main")
        assert rule_matches(rule, event)
        assert rule_matches(rule, event)
        assert rule.branches == frozenset({"main"})
