"""Connection handler state machine.

Defines the valid transitions for a single accepted connection.
Transitions are enforced via :func:`assert_transition`.

Usage::

    from bootserve.core.state import CONNECTION_TRANSITIONS, assert_transition
    from bootserve.core.types import ConnectionState

    assert_transition(
        ConnectionState.READING, ConnectionState.RESPONDING,
        CONNECTION_TRANSITIONS,
    )
"""

from __future__ import annotations

from bootserve.core.types import ConnectionState

# ---------------------------------------------------------------------------
# Connection: reading -> responding/closed, responding -> reading/closed.
#             closed is terminal.
# ---------------------------------------------------------------------------

CONNECTION_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.READING: frozenset(
        {ConnectionState.RESPONDING, ConnectionState.CLOSED},
    ),
    ConnectionState.RESPONDING: frozenset(
        {ConnectionState.READING, ConnectionState.CLOSED},
    ),
    ConnectionState.CLOSED: frozenset(),
}


def assert_transition(
    current: ConnectionState,
    target: ConnectionState,
    table: dict = CONNECTION_TRANSITIONS,
) -> None:
    """Raise :class:`ValueError` if *current* -> *target* is not allowed."""
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown state {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(msg)
