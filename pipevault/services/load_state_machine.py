"""Trucking load state machine.

States::

    NEW -> APPROVED -> IN_TRANSIT -> ARRIVED   (INBOUND only)  -> COMPLETED
                                  -> DELIVERED (OUTBOUND only) -> COMPLETED

CANCELLED is reachable from NEW, APPROVED and IN_TRANSIT. REJECTED is reachable
only from NEW. COMPLETED, CANCELLED and REJECTED are terminal.

The machine validates and applies status changes only; quantities belong to
reconciliation.
"""

import logging

from pipevault.models.enums import LoadDirection, LoadStatus
from pipevault.models.trucking_load import TruckingLoad
from pipevault.services.errors import InvalidStateTransitionError

logger = logging.getLogger(__name__)

TERMINAL_STATES = frozenset({LoadStatus.COMPLETED, LoadStatus.CANCELLED, LoadStatus.REJECTED})

_TRANSITIONS: dict[LoadStatus, frozenset[LoadStatus]] = {
    LoadStatus.NEW: frozenset({LoadStatus.APPROVED, LoadStatus.REJECTED, LoadStatus.CANCELLED}),
    LoadStatus.APPROVED: frozenset({LoadStatus.IN_TRANSIT, LoadStatus.CANCELLED}),
    LoadStatus.IN_TRANSIT: frozenset(
        {LoadStatus.ARRIVED, LoadStatus.DELIVERED, LoadStatus.CANCELLED}
    ),
    LoadStatus.ARRIVED: frozenset({LoadStatus.COMPLETED}),
    LoadStatus.DELIVERED: frozenset({LoadStatus.COMPLETED}),
    LoadStatus.COMPLETED: frozenset(),
    LoadStatus.CANCELLED: frozenset(),
    LoadStatus.REJECTED: frozenset(),
}

# Arrival states that only make sense for one direction
_DIRECTION_ONLY: dict[LoadStatus, LoadDirection] = {
    LoadStatus.ARRIVED: LoadDirection.INBOUND,
    LoadStatus.DELIVERED: LoadDirection.OUTBOUND,
}


def allowed_targets(current: LoadStatus, direction: LoadDirection) -> frozenset[LoadStatus]:
    """Get the statuses a load may move to next."""
    return frozenset(
        target
        for target in _TRANSITIONS[LoadStatus(current)]
        if _DIRECTION_ONLY.get(target, LoadDirection(direction)) == LoadDirection(direction)
    )


def can_transition(
    current: LoadStatus,
    target: LoadStatus,
    direction: LoadDirection,
) -> bool:
    """Check whether ``current -> target`` is legal for a load going ``direction``."""
    return LoadStatus(target) in allowed_targets(current, direction)


def is_terminal(status: LoadStatus) -> bool:
    return LoadStatus(status) in TERMINAL_STATES


def arrival_state(direction: LoadDirection) -> LoadStatus:
    """State a load reaches at the end of its trip (ARRIVED or DELIVERED)."""
    if LoadDirection(direction) == LoadDirection.INBOUND:
        return LoadStatus.ARRIVED
    return LoadStatus.DELIVERED


def transition(load: TruckingLoad, target: LoadStatus) -> LoadStatus:
    """Move ``load`` to ``target`` if the transition table allows it.

    Args:
        load: Load to update (mutated in place)
        target: Requested status

    Returns:
        The new status

    Raises:
        InvalidStateTransitionError: Naming the current and attempted status
    """
    current = LoadStatus(load.status)
    target = LoadStatus(target)
    direction = LoadDirection(load.direction)

    if not can_transition(current, target, direction):
        raise InvalidStateTransitionError(
            current=current.value,
            attempted=target.value,
            direction=direction.value,
        )

    load.status = target.value
    logger.info(
        "Load %s (%s #%s) %s -> %s",
        load.id,
        direction.value,
        load.sequence_number,
        current.value,
        target.value,
    )
    return target
