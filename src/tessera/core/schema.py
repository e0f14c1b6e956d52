"""
Schema definitions for user <-> model <-> tool messages, conversations and plans.

These data models are the contract between the orchestration loop, the provider adapters and the
store.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import uuid
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Annotated,
    Iterable,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    MODEL = "model"


class TextBlock(BaseModel):
    """Plain text produced by the user or the model."""

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the model."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: str = Field("{}", description="Raw JSON arguments, passed to the tool untouched")
    thought: Optional[str] = Field(
        None, description="Opaque continuation token some providers require to be echoed back"
    )


class ToolResultBlock(BaseModel):
    """The outcome of one tool invocation, answering the ToolUseBlock with the same id."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    tool_name: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """One message in a conversation."""

    role: Role
    content: List[ContentBlock] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    sequence: Optional[int] = None

    @classmethod
    def user_text(cls, text: str) -> "Message":
        """Build a user message holding a single text block."""
        return cls(role=Role.USER, content=[TextBlock(text=text)])

    def tool_uses(self) -> List[ToolUseBlock]:
        """Return the tool-use blocks of this message, in order."""
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    def text(self) -> str:
        """Concatenate every text block."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


class Conversation(BaseModel):
    """Ordered message history plus the running token count."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    messages: List[Message] = Field(default_factory=list)
    token_count: int = 0
    created_at: datetime = Field(default_factory=_now)

    def append(self, msg: Message) -> None:
        """Stamp *msg* with its creation time and sequence number, then append it."""
        msg.created_at = _now()
        msg.sequence = len(self.messages)
        self.messages.append(msg)


class ConversationMetadata(BaseModel):
    """Summary row used when listing stored conversations."""

    id: str
    created_at: datetime
    message_count: int = 0
    latest_message_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------
class StepStatus(str, Enum):
    """Completion state of a plan step."""

    TODO = "TODO"
    DONE = "DONE"


class Step(BaseModel):
    """A single unit of work in a plan."""

    id: str
    description: str
    status: StepStatus = StepStatus.TODO
    acceptance_criteria: List[str] = Field(default_factory=list)


class Plan(BaseModel):
    """An ordered checklist attached to a conversation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    conversation_id: str
    steps: List[Step] = Field(default_factory=list)

    def get_step(self, step_id: str) -> Step | None:
        """Return the step with *step_id*, or None."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def next_step(self) -> Step | None:
        """Return the first step that is still TODO."""
        for step in self.steps:
            if step.status == StepStatus.TODO:
                return step
        return None

    def is_completed(self) -> bool:
        """True when every step is DONE (an empty plan is not completed)."""
        return bool(self.steps) and all(s.status == StepStatus.DONE for s in self.steps)

    def add_steps(self, steps: Iterable[Step]) -> int:
        """Append *steps*; ids must be unique within the plan."""
        added = 0
        for step in steps:
            if self.get_step(step.id) is not None:
                raise ValueError(f"step '{step.id}' already exists in plan '{self.id}'")
            self.steps.append(step)
            added += 1
        return added

    def remove_steps(self, step_ids: Iterable[str]) -> int:
        """Remove the steps whose ids are in *step_ids*; return how many were removed."""
        wanted = set(step_ids)
        before = len(self.steps)
        self.steps = [s for s in self.steps if s.id not in wanted]
        return before - len(self.steps)

    def reorder_steps(self, step_ids: List[str]) -> None:
        """Reorder steps to match *step_ids*, which must name every step exactly once."""
        current = {s.id: s for s in self.steps}
        if sorted(step_ids) != sorted(current):
            raise ValueError(
                f"new order must list every step of plan '{self.id}' exactly once, "
                f"got {step_ids} for {list(current)}"
            )
        self.steps = [current[step_id] for step_id in step_ids]

    def set_status(self, step_id: str, status: StepStatus) -> Step:
        """Set the status of one step."""
        step = self.get_step(step_id)
        if step is None:
            raise ValueError(f"step '{step_id}' not found in plan '{self.id}'")
        step.status = status
        return step

    def render(self) -> str:
        """Render the plan as a markdown checklist."""
        if not self.steps:
            return f"Plan '{self.id}' has no steps."
        lines = [f"# Plan {self.id}"]
        for step in self.steps:
            mark = "x" if step.status == StepStatus.DONE else " "
            lines.append(f"- [{mark}] {step.id}: {step.description}")
            for criterion in step.acceptance_criteria:
                lines.append(f"    - {criterion}")
        return "\n".join(lines)


class PlanMetadata(BaseModel):
    """Summary row used when listing stored plans."""

    id: str
    conversation_id: str
    step_count: int = 0
    done_count: int = 0

    @classmethod
    def of(cls, plan: Plan) -> "PlanMetadata":
        return cls(
            id=plan.id,
            conversation_id=plan.conversation_id,
            step_count=len(plan.steps),
            done_count=sum(1 for s in plan.steps if s.status == StepStatus.DONE),
        )
