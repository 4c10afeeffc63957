"""Connection ready-state machine.

DISCONNECTED ──[connect()]──→ CONNECTING ──[200 + text/event-stream]──→ CONNECTED
     ↑                             │                                       │
     └────[bad response / error]───┘                                       │
     └──────────────[stream end / error / heartbeat expiry]────────────────┘
"""

from __future__ import annotations

import enum

import structlog

log = structlog.get_logger()


class ReadyState(enum.Enum):
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


# Valid transitions: (from_state, to_state)
VALID_TRANSITIONS: set[tuple[ReadyState, ReadyState]] = {
    (ReadyState.DISCONNECTED, ReadyState.CONNECTING),
    (ReadyState.CONNECTING, ReadyState.CONNECTED),
    (ReadyState.CONNECTING, ReadyState.DISCONNECTED),  # rejected response or transport failure
    (ReadyState.CONNECTED, ReadyState.DISCONNECTED),
}


class InvalidTransition(Exception):
    """Raised when an invalid ready-state transition is attempted."""

    def __init__(self, from_state: ReadyState, to_state: ReadyState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} → {to_state.value}")


def validate_transition(from_state: ReadyState, to_state: ReadyState) -> None:
    """Validate a ready-state transition, raising InvalidTransition if not allowed."""
    if (from_state, to_state) not in VALID_TRANSITIONS:
        raise InvalidTransition(from_state, to_state)


def transition(
    current: ReadyState,
    target: ReadyState,
    url: str,
    trigger: str = "",
) -> ReadyState:
    """Execute a validated ready-state transition, logging the change."""
    validate_transition(current, target)
    log.debug(
        "ready_state_transition",
        url=url,
        from_state=current.value,
        to_state=target.value,
        trigger=trigger,
    )
    return target
