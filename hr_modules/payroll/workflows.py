"""Payroll Workflows.

State machines for payroll runs and pay components.
"""

from hr_kernel.domain.workflow import Guard, Transition, Workflow
from hr_kernel.logging_config import get_logger
from hr_modules.payroll.models import PayComponentStatus, PayrollRunStatus

logger = get_logger("modules.payroll.workflows")


SCOPE_LOCK_HELD = Guard(
    name="scope_lock_held",
    description="The (tenant, period, scope) finalisation lock is held",
)

ITEMS_PRESENT = Guard(
    name="items_present",
    description="The run has at least one payroll item",
)


_DRAFT = PayrollRunStatus.DRAFT.value
_FINALISED = PayrollRunStatus.FINALISED.value
_PAID = PayrollRunStatus.PAID.value

PAYROLL_RUN_WORKFLOW = Workflow(
    name="payroll_run",
    description="Payroll run from draft build to payment",
    initial_state=_DRAFT,
    states=(_DRAFT, _FINALISED, _PAID),
    transitions=(
        Transition(_DRAFT, _DRAFT, action="rebuild"),
        Transition(_DRAFT, _FINALISED, action="finalise", guard=SCOPE_LOCK_HELD),
        Transition(_FINALISED, _PAID, action="mark_paid", guard=ITEMS_PRESENT),
    ),
    terminal_states=(_PAID,),
)


_PENDING = PayComponentStatus.PENDING.value
_APPROVED = PayComponentStatus.APPROVED.value
_INCLUDED = PayComponentStatus.INCLUDED.value
_REJECTED = PayComponentStatus.REJECTED.value

PAY_COMPONENT_WORKFLOW = Workflow(
    name="pay_component",
    description="Claim, allowance or commission from submission to payment",
    initial_state=_PENDING,
    states=(_PENDING, _APPROVED, _INCLUDED, _REJECTED),
    transitions=(
        Transition(_PENDING, _APPROVED, action="approve"),
        Transition(_PENDING, _REJECTED, action="reject"),
        Transition(_APPROVED, _APPROVED, action="reassign"),
        Transition(_APPROVED, _INCLUDED, action="include"),
    ),
    terminal_states=(_INCLUDED, _REJECTED),
)

logger.info(
    "payroll_workflows_defined",
    extra={"workflows": [PAYROLL_RUN_WORKFLOW.name, PAY_COMPONENT_WORKFLOW.name]},
)
