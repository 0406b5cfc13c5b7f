"""
Tests for the connection state machine and lifecycle events.
"""

import pytest

from connection_management import (
    ConnectionState,
    ConnectionError,
    IllegalStateTransitionError,
    LifecycleEvent,
    LifecycleEventType,
    can_transition,
)
from connection_management.connection_state import ensure_transition, event_for_transition
from lifecycle_exceptions import LifecycleMisuseError

S = ConnectionState

LEGAL_EDGES = [
    (S.DISCONNECTED, S.CONNECTING),
    (S.DISCONNECTED, S.DRAINING),
    (S.CONNECTING, S.CONNECTED),
    (S.CONNECTING, S.DISCONNECTED),
    (S.CONNECTING, S.DRAINING),
    (S.CONNECTED, S.RECONNECTING),
    (S.CONNECTED, S.DRAINING),
    (S.RECONNECTING, S.CONNECTED),
    (S.RECONNECTING, S.DISCONNECTED),
    (S.RECONNECTING, S.DRAINING),
    (S.DRAINING, S.CLOSED),
]


@pytest.mark.parametrize("current,target", LEGAL_EDGES)
def test_legal_edges(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


def test_every_other_edge_is_illegal():
    legal = set(LEGAL_EDGES)
    for current in ConnectionState:
        for target in ConnectionState:
            if (current, target) not in legal:
                assert not can_transition(current, target), f"{current} -> {target}"


@pytest.mark.parametrize("target", list(ConnectionState))
def test_closed_is_terminal(target):
    assert S.CLOSED.is_terminal()
    with pytest.raises(IllegalStateTransitionError):
        ensure_transition(S.CLOSED, target)


def test_illegal_transition_is_a_misuse_error_not_a_connection_error():
    with pytest.raises(IllegalStateTransitionError) as exc_info:
        ensure_transition(S.DISCONNECTED, S.CONNECTED)

    error = exc_info.value
    assert isinstance(error, LifecycleMisuseError)
    assert not isinstance(error, ConnectionError)
    assert error.current is S.DISCONNECTED
    assert error.target is S.CONNECTED


def test_only_connected_accepts_operations():
    assert [state for state in ConnectionState if state.accepts_operations()] == [S.CONNECTED]


@pytest.mark.parametrize("previous,current,expected", [
    (S.DISCONNECTED, S.CONNECTING, LifecycleEventType.CONNECTING),
    (S.CONNECTING, S.CONNECTED, LifecycleEventType.CONNECTED),
    (S.RECONNECTING, S.CONNECTED, LifecycleEventType.RECONNECTED),
    (S.CONNECTED, S.RECONNECTING, LifecycleEventType.RECONNECTING),
    (S.RECONNECTING, S.DISCONNECTED, LifecycleEventType.DISCONNECTED),
    (S.CONNECTED, S.DRAINING, LifecycleEventType.SHUTTING_DOWN),
    (S.DRAINING, S.CLOSED, LifecycleEventType.SHUTDOWN_COMPLETE),
])
def test_event_for_transition(previous, current, expected):
    assert event_for_transition(previous, current) is expected


def test_event_to_dict():
    event = LifecycleEvent(
        event=LifecycleEventType.DISCONNECTED,
        previous=S.CONNECTING,
        current=S.DISCONNECTED,
        timestamp=123.0,
        error="connection refused",
        details={"attempts": 3},
    )

    assert event.is_transition
    assert event.to_dict() == {
        "event": "disconnected",
        "previous": "connecting",
        "current": "disconnected",
        "timestamp": 123.0,
        "error": "connection refused",
        "details": {"attempts": 3},
    }


def test_health_event_is_not_a_transition():
    event = LifecycleEvent(LifecycleEventType.HEALTH_CHECK_FAILED, S.CONNECTED, S.CONNECTED)

    assert not event.is_transition
