# trigger.py
from __future__ import annotations

from .errors import InvalidEvent
from .model import Event, EventKind, Pipeline, TriggerRule


def validate_event(event: Event) -> None:
    """Reject malformed events before any run starts."""
    if event.kind == EventKind.PUSH.value:
        if not event.branch:
            raise InvalidEvent("push event has no branch", kind=event.kind)
    elif event.kind == EventKind.PULL_REQUEST.value:
        if not event.target_branch:
            raise InvalidEvent("pull_request event has no target branch", kind=event.kind)
    else:
        raise InvalidEvent(f"unsupported event kind: {event.kind!r}")


def rule_matches(rule: TriggerRule, event: Event) -> bool:
    if rule.event != event.kind:
        return False
    # push matches on the pushed branch, pull_request on the branch it targets
    if event.kind == EventKind.PUSH.value:
        return event.branch in rule.branches
    return event.target_branch in rule.branches


def should_trigger(pipeline: Pipeline, event: Event) -> bool:
    """
    Decide whether `event` activates `pipeline`.

    Raises InvalidEvent for malformed events; otherwise True when any
    trigger rule matches (exact, case-sensitive branch names).
    """
    validate_event(event)
    return any(rule_matches(rule, event) for rule in pipeline.triggers)
