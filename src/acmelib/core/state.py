"""Issuance state machine.

Defines the valid transitions an :class:`~acmelib.services.order.OrderCoordinator`
run may take.  All transitions are enforced via :func:`assert_transition`
and reported through :func:`log_transition`.

Usage::

    from acmelib.core.state import ISSUANCE_TRANSITIONS, assert_transition
    from acmelib.core.types import IssuanceState

    assert_transition(
        IssuanceState.CREATED, IssuanceState.AUTHORIZATIONS_PENDING,
        ISSUANCE_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from acmelib.core.types import IssuanceState

log = logging.getLogger(__name__)

_S = IssuanceState

# ---------------------------------------------------------------------------
# created → authorizations_pending → challenge_selected → challenge_published
#         → polling → finalizing → valid.  Every non-terminal state may fail
# (invalid) or be aborted (cancelled).  Authorizations that the CA already
# reports valid let a run skip straight to finalizing.
# ---------------------------------------------------------------------------

_FAIL = frozenset({_S.INVALID, _S.CANCELLED})

ISSUANCE_TRANSITIONS: dict[IssuanceState, frozenset[IssuanceState]] = {
    _S.CREATED: frozenset({_S.AUTHORIZATIONS_PENDING}) | _FAIL,
    _S.AUTHORIZATIONS_PENDING: frozenset({_S.CHALLENGE_SELECTED, _S.FINALIZING}) | _FAIL,
    _S.CHALLENGE_SELECTED: frozenset({_S.CHALLENGE_PUBLISHED}) | _FAIL,
    _S.CHALLENGE_PUBLISHED: frozenset({_S.POLLING}) | _FAIL,
    _S.POLLING: frozenset({_S.FINALIZING}) | _FAIL,
    _S.FINALIZING: frozenset({_S.VALID}) | _FAIL,
    _S.VALID: frozenset(),
    _S.INVALID: frozenset(),
    _S.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(
    state for state, targets in ISSUANCE_TRANSITIONS.items() if not targets
)


def assert_transition(
    current: IssuanceState,
    target: IssuanceState,
    table: dict = ISSUANCE_TRANSITIONS,
) -> None:
    """Raise :class:`ValueError` if *current* → *target* is not allowed."""
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown status {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(
            msg,
        )


def log_transition(
    order_url: str | None,
    from_status,
    to_status,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for an issuance state transition.

    Parameters
    ----------
    order_url:
        The CA order URL, or ``None`` before the order exists.
    from_status:
        The previous state.
    to_status:
        The new state.
    reason:
        Optional human-readable reason for the transition.

    """
    extra = {
        "event": "state_transition",
        "order_url": order_url or "-",
        "from_status": from_status.value if hasattr(from_status, "value") else str(from_status),
        "to_status": to_status.value if hasattr(to_status, "value") else str(to_status),
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "issuance %s: %s -> %s%s",
        extra["order_url"],
        extra["from_status"],
        extra["to_status"],
        f" ({reason})" if reason else "",
        extra=extra,
    )
