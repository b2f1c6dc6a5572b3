"""Attendance Workflows.

State machines for day records and their overtime.
"""

from hr_kernel.domain.attendance import OTStatus, RecordStatus
from hr_kernel.domain.workflow import Guard, Transition, Workflow
from hr_kernel.logging_config import get_logger

logger = get_logger("modules.attendance.workflows")


REVIEW_CLEARED = Guard(
    name="review_cleared",
    description="No open review flag on the day record",
)

APPROVER_OUTRANKS_EMPLOYEE = Guard(
    name="approver_outranks_employee",
    description="Approver role is above the employee's, within scope",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A rejection carries a reason",
)


_IN = RecordStatus.IN_PROGRESS.value
_DONE = RecordStatus.COMPLETED.value
_AUTO = RecordStatus.AUTO_CLOSED.value
_OK = RecordStatus.APPROVED.value
_NO = RecordStatus.REJECTED.value

DAY_RECORD_WORKFLOW = Workflow(
    name="day_record",
    description="Day record lifecycle from first clock-in to decision",
    initial_state=_IN,
    states=(_IN, _DONE, _AUTO, _OK, _NO),
    transitions=(
        Transition(_IN, _DONE, action="complete"),
        Transition(_IN, _AUTO, action="auto_close"),
        Transition(_DONE, _OK, action="approve", guard=REVIEW_CLEARED),
        Transition(_DONE, _NO, action="reject", guard=REASON_GIVEN),
        Transition(_AUTO, _OK, action="approve", guard=REVIEW_CLEARED),
        Transition(_AUTO, _NO, action="reject", guard=REASON_GIVEN),
    ),
    terminal_states=(_OK, _NO),
)


OVERTIME_WORKFLOW = Workflow(
    name="overtime",
    description="Overtime approval, independent of the day record decision",
    initial_state=OTStatus.NONE.value,
    states=tuple(s.value for s in OTStatus),
    transitions=(
        Transition(OTStatus.NONE.value, OTStatus.PENDING.value, action="flag"),
        Transition(OTStatus.PENDING.value, OTStatus.NONE.value, action="clear"),
        Transition(
            OTStatus.PENDING.value, OTStatus.APPROVED.value,
            action="approve", guard=APPROVER_OUTRANKS_EMPLOYEE,
        ),
        Transition(
            OTStatus.PENDING.value, OTStatus.REJECTED.value,
            action="reject", guard=APPROVER_OUTRANKS_EMPLOYEE,
        ),
    ),
    terminal_states=(OTStatus.APPROVED.value, OTStatus.REJECTED.value),
)

logger.info(
    "attendance_workflows_defined",
    extra={"workflows": [DAY_RECORD_WORKFLOW.name, OVERTIME_WORKFLOW.name]},
)
