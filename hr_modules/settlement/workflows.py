"""Settlement Workflow.

A settlement is recomputed freely while DRAFT; processing freezes it.
"""

from hr_kernel.domain.workflow import Guard, Transition, Workflow
from hr_kernel.logging_config import get_logger
from hr_modules.settlement.models import SettlementStatus

logger = get_logger("modules.settlement.workflows")


WAIVER_CONSISTENT = Guard(
    name="waiver_consistent",
    description="Stored buyout figures agree with the resignation's waiver flag",
)


_DRAFT = SettlementStatus.DRAFT.value
_PROCESSED = SettlementStatus.PROCESSED.value

SETTLEMENT_WORKFLOW = Workflow(
    name="settlement",
    description="Full-and-final settlement from draft to processed",
    initial_state=_DRAFT,
    states=(_DRAFT, _PROCESSED),
    transitions=(
        Transition(_DRAFT, _DRAFT, action="rebuild"),
        Transition(_DRAFT, _DRAFT, action="toggle_waiver"),
        Transition(_DRAFT, _PROCESSED, action="process", guard=WAIVER_CONSISTENT),
    ),
    terminal_states=(_PROCESSED,),
)

logger.info("settlement_workflows_defined", extra={"workflows": [SETTLEMENT_WORKFLOW.name]})
