"""
InvoiceFlow - Status Policy

Which role may move an invoice from one status to another.

The policy is a closed table from (current, target) to the minimum role
allowed to make that move. Pairs missing from the table are denied.
Admin may make any move except a self-transition.
"""

from typing import Dict, List, Optional, Tuple

from invoiceflow.models.invoice import ACTIVE_STATUSES, InvoiceStatus
from invoiceflow.models.user import UserRole


S = InvoiceStatus

_TRANSITIONS: Dict[Tuple[InvoiceStatus, InvoiceStatus], UserRole] = {
    # Happy path
    (S.SUBMITTED, S.UNDER_REVIEW): UserRole.PM,
    (S.UNDER_REVIEW, S.APPROVED): UserRole.PM,
    (S.UNDER_REVIEW, S.REJECTED): UserRole.PM,
    (S.APPROVED, S.IN_PROGRESS): UserRole.PM,
    (S.IN_PROGRESS, S.PMO_REVIEW): UserRole.PM,
    (S.PMO_REVIEW, S.COMPLETED): UserRole.PMO,
    (S.PMO_REVIEW, S.REJECTED): UserRole.PMO,
}

for _status in ACTIVE_STATUSES:
    _TRANSITIONS[(_status, S.ON_HOLD)] = UserRole.HEAD
    # The engine narrows this to the state the invoice was held from
    _TRANSITIONS[(S.ON_HOLD, _status)] = UserRole.HEAD
    _TRANSITIONS[(_status, S.CANCELLED)] = UserRole.HEAD

_TRANSITIONS[(S.ON_HOLD, S.CANCELLED)] = UserRole.HEAD

del _status


class StatusPolicy:
    """Role-based transition rules for invoice statuses."""

    def __init__(self, transitions: Optional[Dict[Tuple[InvoiceStatus, InvoiceStatus], UserRole]] = None):
        self._transitions = dict(transitions if transitions is not None else _TRANSITIONS)

    def minimum_role(self, current: InvoiceStatus, target: InvoiceStatus) -> Optional[UserRole]:
        """Lowest role allowed to make the move, or None if no rule exists."""
        return self._transitions.get((current, target))

    def can_transition(
        self,
        current: InvoiceStatus,
        target: InvoiceStatus,
        actor_role: UserRole,
    ) -> bool:
        if current == target:
            return False

        if actor_role == UserRole.ADMIN:
            return True

        minimum = self.minimum_role(current, target)
        if minimum is None:
            return False
        return actor_role.at_least(minimum)

    def valid_targets(self, current: InvoiceStatus, actor_role: UserRole) -> List[InvoiceStatus]:
        """Every status `actor_role` may move an invoice in `current` to."""
        return [
            target for target in InvoiceStatus
            if self.can_transition(current, target, actor_role)
        ]


default_policy = StatusPolicy()
