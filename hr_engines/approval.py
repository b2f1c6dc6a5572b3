"""
hr_engines.approval -- pure approval rule evaluation.

Responsibility:
    Decide whether an actor may approve or reject a day record or its
    overtime, and resolve state-machine transitions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Administrators bypass the hierarchy.
    - Any other approver must hold an approving role whose level is above
      the employee's.
    - Supervisors act only within their own outlet or department.
    - A transition is resolved only from the workflow definition.

Failure modes:
    - Returns ``ApprovalCheck(permitted=False, reason=...)``; callers raise.
"""

from __future__ import annotations

from dataclasses import dataclass

from hr_kernel.domain.actor import Actor, ActorRole
from hr_kernel.domain.attendance import OTStatus
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.workflow import Transition, Workflow

APPROVER_ROLES = frozenset({
    ActorRole.SUPERVISOR,
    ActorRole.MANAGER,
    ActorRole.DIRECTOR,
    ActorRole.ADMIN,
})


@dataclass(frozen=True)
class ApprovalCheck:
    permitted: bool
    reason: str | None = None


def can_approve_ot(role: ActorRole) -> bool:
    return role in APPROVER_ROLES


def check_approver(actor: Actor, employee: Employee) -> ApprovalCheck:
    """Evaluate whether ``actor`` may decide on ``employee``'s records."""
    if actor.is_admin:
        return ApprovalCheck(permitted=True)
    if actor.role not in APPROVER_ROLES:
        return ApprovalCheck(False, f"role {actor.role.value} cannot approve")
    if actor.role.level <= employee.role.level:
        return ApprovalCheck(
            False,
            f"role {actor.role.value} does not outrank employee role "
            f"{employee.role.value}",
        )
    if actor.role == ActorRole.SUPERVISOR and actor.grouping_id != employee.grouping_id:
        return ApprovalCheck(False, "supervisor outside own grouping")
    return ApprovalCheck(permitted=True)


def resolve_transition(workflow: Workflow, state: str, action: str) -> Transition | None:
    for transition in workflow.transitions:
        if transition.from_state == state and transition.action == action:
            return transition
    return None


def initial_ot_status(ot_minutes: int) -> OTStatus:
    """OT status for a record entering COMPLETED or AUTO_CLOSED."""
    return OTStatus.PENDING if ot_minutes > 0 else OTStatus.NONE


def payable_ot_minutes(ot_minutes: int, ot_status: OTStatus) -> int:
    """Only approved OT is paid."""
    return ot_minutes if ot_status == OTStatus.APPROVED else 0
