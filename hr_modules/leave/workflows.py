"""Leave Workflows.

State machine for leave requests.  Balances move with the transitions:
pending on submit, used on approve, released on reject or cancel.
"""

from hr_kernel.domain.leave import LeaveRequestStatus
from hr_kernel.domain.workflow import Guard, Transition, Workflow
from hr_kernel.logging_config import get_logger

logger = get_logger("modules.leave.workflows")


BALANCE_SUFFICIENT = Guard(
    name="balance_sufficient",
    description="Available balance covers the request unless advance is allowed",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A rejection carries a reason",
)


_PENDING = LeaveRequestStatus.PENDING.value
_APPROVED = LeaveRequestStatus.APPROVED.value
_REJECTED = LeaveRequestStatus.REJECTED.value
_CANCELLED = LeaveRequestStatus.CANCELLED.value

LEAVE_REQUEST_WORKFLOW = Workflow(
    name="leave_request",
    description="Leave request from submission to decision or cancellation",
    initial_state=_PENDING,
    states=(_PENDING, _APPROVED, _REJECTED, _CANCELLED),
    transitions=(
        Transition(_PENDING, _APPROVED, action="approve", guard=BALANCE_SUFFICIENT),
        Transition(_PENDING, _REJECTED, action="reject", guard=REASON_GIVEN),
        Transition(_PENDING, _CANCELLED, action="cancel"),
        Transition(_APPROVED, _CANCELLED, action="cancel"),
    ),
    terminal_states=(_REJECTED, _CANCELLED),
)

logger.info(
    "leave_workflows_defined",
    extra={"workflows": [LEAVE_REQUEST_WORKFLOW.name]},
)
