"""Deal state machine: pure logic, no DB dependency.

Defines the 10-status deal lifecycle and the fixed table of allowed
transitions. Every status write in the deal service is checked against
this table using the deal's currently stored status.
"""

from enum import StrEnum

from admarket.core.errors import InvalidTransitionError


class DealStatus(StrEnum):
    # Awaiting advertiser's payment to the escrow wallet
    PENDING_PAYMENT = "pending_payment"
    # Payment never arrived or failed on-chain
    HOLD_FAILED = "hold_failed"
    # Payment confirmed; publisher must review the creative
    PENDING_REVIEW = "pending_review"
    # Publisher asked for edits; advertiser must revise
    CHANGES_REQUESTED = "changes_requested"
    # Publisher approved; can no longer be cancelled
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    # Ad is live; verification window active
    POSTED = "posted"
    COMPLETED = "completed"
    # Post deleted or modified during verification
    DISPUTE = "dispute"


# Mapping: current_status → statuses it may move to
TRANSITIONS: dict[DealStatus, frozenset[DealStatus]] = {
    DealStatus.PENDING_PAYMENT: frozenset({
        DealStatus.PENDING_REVIEW,
        DealStatus.HOLD_FAILED,
        DealStatus.CANCELLED,
    }),
    DealStatus.PENDING_REVIEW: frozenset({
        DealStatus.APPROVED,
        DealStatus.REJECTED,
        DealStatus.CHANGES_REQUESTED,
        DealStatus.CANCELLED,
    }),
    DealStatus.CHANGES_REQUESTED: frozenset({
        DealStatus.PENDING_REVIEW,
        DealStatus.CANCELLED,
    }),
    DealStatus.APPROVED: frozenset({DealStatus.POSTED}),
    DealStatus.POSTED: frozenset({DealStatus.COMPLETED, DealStatus.DISPUTE}),
    DealStatus.HOLD_FAILED: frozenset(),
    DealStatus.REJECTED: frozenset(),
    DealStatus.CANCELLED: frozenset(),
    DealStatus.COMPLETED: frozenset(),
    DealStatus.DISPUTE: frozenset(),
}

TERMINAL_STATUSES: frozenset[DealStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Statuses from which the advertiser may still withdraw
CANCELLABLE_STATUSES: frozenset[DealStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if DealStatus.CANCELLED in targets
)


def allowed_targets(current: DealStatus | str) -> frozenset[DealStatus]:
    """Return the statuses reachable in one step from ``current``."""
    return TRANSITIONS[DealStatus(current)]


def can_transition(current: DealStatus | str, target: DealStatus | str) -> bool:
    return DealStatus(target) in allowed_targets(current)


def validate_transition(
    current: DealStatus | str, target: DealStatus | str
) -> DealStatus:
    """Validate and return the new status for a transition.

    Raises InvalidTransitionError if the transition is not allowed.
    """
    try:
        current_status = DealStatus(current)
        target_status = DealStatus(target)
    except ValueError:
        raise InvalidTransitionError(current, target)

    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransitionError(current_status, target_status)

    return target_status
