# models.py
# Data contracts for the scene agent client.
# No business logic lives here. Pure schema and validation.
#
# Action kinds live in actions.py; this module holds the envelopes and flat
# records that travel alongside them.

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scene_agent.actions import ActionBase

SessionStatus = Literal["ready_to_execute", "awaiting_approval", "completed", "failed", ""]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OperationResult(BaseModel):
    """One-shot outcome of a client operation. Delivered exactly once."""

    ok: bool
    message: str = Field(default="", description="Human-readable outcome.")
    error: str = Field(default="", description="Error class name when ok is False.")


class PlanResult(BaseModel):
    """A parsed plan reply. Failures carry the server error as `message`."""

    ok: bool
    message: str = ""
    summary: str = ""
    steps: list[str] = Field(default_factory=list)
    actions: list[ActionBase] = Field(default_factory=list)
    action_indices: list[int] = Field(
        default_factory=list,
        description="Position of each kept action in the server's action list.",
    )


class SessionDecision(BaseModel):
    """A parsed session-step reply."""

    ok: bool
    error: str = ""
    session_id: str = ""
    status: SessionStatus = ""
    summary: str = ""
    steps: list[str] = Field(default_factory=list)
    message: str = ""
    action_index: int | None = None
    action: ActionBase | None = None

    @property
    def finished(self) -> bool:
        """
        True when the server closed the session. A reply without a status
        and without an action also ends it; a dropped action under an open
        status does not.
        """
        if self.status in ("completed", "failed"):
            return True
        return not self.status and self.action is None and self.action_index is None


class ChatSummary(_Record):
    id: str
    title: str = ""
    archived: bool = False
    last_activity_at: str = ""


class ChatHistoryEntry(_Record):
    role: str = Field(..., validation_alias=AliasChoices("role", "kind"))
    text: str = Field(default="", validation_alias=AliasChoices("text", "summary"))
    provider: str = ""
    model: str = ""
    timestamp: str = Field(default="", validation_alias=AliasChoices("timestamp", "createdAt"))


class ModelOption(_Record):
    provider: str
    model: str


class ContextUsage(_Record):
    """Token budget snapshot as reported by the agent service."""

    provider: str = ""
    model: str = ""
    used_tokens: int = Field(default=0, ge=0)
    context_window_tokens: int = Field(default=0, ge=0)
    remaining_tokens: int = Field(default=0, ge=0)
    used_percent: float = 0.0
    status: str = "ok"
    estimated: bool = True
