"""
Plan tools.

Both tools target the plan subsystem: the orchestrator resolves the conversation's plan, injects it
into ``ToolInput.plan`` and persists it after the call.  The functions here only read or mutate the
in-memory plan.
"""

from enum import Enum
from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from tessera.core.errors import ToolError
from tessera.core.schema import (
    Plan,
    Step,
    StepStatus,
)
from tessera.tools import (
    ToolInput,
    register_tool,
)

PLAN_READ = "plan_read"
PLAN_WRITE = "plan_write"


class WriteAction(str, Enum):
    """Mutations supported by ``plan_write``."""

    SET_STATUS = "set_status"
    ADD_STEPS = "add_steps"
    REMOVE_STEPS = "remove_steps"
    REORDER_STEPS = "reorder_steps"


class PlanReadInput(BaseModel):
    """``plan_read`` takes no arguments."""


class PlanStepInput(BaseModel):
    """A step to add to the plan."""

    id: str = Field("", description="Short unique identifier, e.g. 'step-1'.")
    description: str = Field("", description="What needs to be done.")
    acceptance_criteria: List[str] = Field(
        default_factory=list, description="Conditions that make the step DONE."
    )


class PlanWriteInput(BaseModel):
    """Arguments for ``plan_write``."""

    write_action: str = Field(
        ...,
        description="One of: set_status, add_steps, remove_steps, reorder_steps.",
    )
    step_id: str = Field("", description="Step to update (set_status).")
    status: str = Field("", description="New status, TODO or DONE (set_status).")
    steps_to_add: List[PlanStepInput] = Field(
        default_factory=list, description="Steps to append (add_steps)."
    )
    step_ids_to_remove: List[str] = Field(
        default_factory=list, description="Step ids to delete (remove_steps)."
    )
    step_ids_order: List[str] = Field(
        default_factory=list, description="Every step id in the new order (reorder_steps)."
    )


def _require_plan(tool_input: ToolInput) -> Plan:
    if tool_input.plan is None:
        raise ToolError("no plan is attached to this call")
    return tool_input.plan


@register_tool(PLAN_READ, PlanReadInput, label="Plan", targets_plan=True)
def plan_read(tool_input: ToolInput) -> str:
    """
    Read the current plan for this conversation as a markdown checklist. Use it before deciding
    what to work on next.
    """
    plan = _require_plan(tool_input)
    rendered = plan.render()
    next_step = plan.next_step()
    if plan.is_completed():
        rendered += "\n\nAll steps are DONE."
    elif next_step is not None:
        rendered += f"\n\nNext step: {next_step.id}"
    return rendered


@register_tool(PLAN_WRITE, PlanWriteInput, label="Plan", targets_plan=True)
def plan_write(tool_input: ToolInput) -> str:
    """
    Create or update the plan for this conversation. Break complex tasks into steps with
    'add_steps', mark progress with 'set_status', and keep the plan tidy with 'remove_steps' and
    'reorder_steps'.
    """
    args = tool_input.decode(PlanWriteInput)
    try:
        action = WriteAction(args.write_action)
    except ValueError as exc:
        raise ToolError(f"plan_write: unknown action '{args.write_action}'") from exc

    plan = _require_plan(tool_input)

    if action is WriteAction.SET_STATUS:
        if not args.step_id:
            raise ToolError("plan_write: 'set_status' requires 'step_id'")
        try:
            status = StepStatus(args.status.upper())
        except ValueError as exc:
            raise ToolError(f"plan_write: invalid status '{args.status}'") from exc
        try:
            plan.set_status(args.step_id, status)
        except ValueError as exc:
            raise ToolError(f"plan_write: {exc}") from exc
        return f"Step '{args.step_id}' in plan '{plan.id}' set to {status.value}"

    if action is WriteAction.ADD_STEPS:
        if not args.steps_to_add:
            raise ToolError("plan_write: 'add_steps' requires 'steps_to_add'")
        steps = []
        for i, item in enumerate(args.steps_to_add):
            if not item.id:
                raise ToolError(f"plan_write: missing 'id' in step at index {i}")
            if not item.description:
                raise ToolError(f"plan_write: missing 'description' in step at index {i}")
            steps.append(
                Step(
                    id=item.id,
                    description=item.description,
                    acceptance_criteria=item.acceptance_criteria,
                )
            )
        try:
            added = plan.add_steps(steps)
        except ValueError as exc:
            raise ToolError(f"plan_write: {exc}") from exc
        return f"Added {added} steps to plan '{plan.id}'"

    if action is WriteAction.REMOVE_STEPS:
        if not args.step_ids_to_remove:
            raise ToolError("plan_write: 'remove_steps' requires 'step_ids_to_remove'")
        removed = plan.remove_steps(args.step_ids_to_remove)
        return f"Removed {removed} steps from plan '{plan.id}'"

    # WriteAction.REORDER_STEPS
    try:
        plan.reorder_steps(args.step_ids_order)
    except ValueError as exc:
        raise ToolError(f"plan_write: {exc}") from exc
    return f"Reordered {len(plan.steps)} steps in plan '{plan.id}'"
