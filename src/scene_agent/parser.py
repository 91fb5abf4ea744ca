# parser.py
# Turns loosely-typed agent replies into typed results.
#
# Plans come from a probabilistic planner, so parsing is best-effort: every
# action descriptor is parsed on its own and a descriptor that names an
# unknown command or fails validation is dropped. One bad entry never
# invalidates the rest of the plan, and the order of valid entries is kept.

import json
import logging
from typing import Any

from scene_agent.actions import ActionBase, build_action
from scene_agent.errors import ActionValidationError, MalformedResponseError, UnknownCommandError
from scene_agent.models import PlanResult, SessionDecision

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Agent service rejected the request."

_SESSION_STATUSES = {"ready_to_execute", "awaiting_approval", "completed", "failed"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def decode_body(raw: Any) -> dict[str, Any]:
    """
    Accept an already-decoded dict, or JSON text/bytes holding an object.
    Raises MalformedResponseError for anything else.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise MalformedResponseError(f"Unexpected response type: {type(raw).__name__}")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("Response JSON is not an object.")
    return data


def server_error(body: dict[str, Any]) -> str:
    error = body.get("error")
    if isinstance(error, str) and error.strip():
        return error.strip()
    return DEFAULT_ERROR


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def format_plan_message(summary: str, steps: list[str]) -> str:
    """Summary line followed by numbered steps, one per line."""
    if not steps:
        return summary
    lines = [summary]
    lines.extend(f"{number}. {step}" for number, step in enumerate(steps, start=1))
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Action descriptors
# ---------------------------------------------------------------------------


def parse_action_descriptor(descriptor: Any) -> ActionBase:
    """
    Parse one `{command, params, risk}` descriptor.
    Raises UnknownCommandError or ActionValidationError.
    """
    if not isinstance(descriptor, dict):
        raise ActionValidationError("Action descriptor is not an object.")
    return build_action(
        descriptor.get("command"),
        descriptor.get("params"),
        descriptor.get("risk"),
    )


def parse_indexed_actions(descriptors: Any) -> list[tuple[int, ActionBase]]:
    """
    Parse every valid descriptor, silently dropping the rest. Each kept
    action is paired with its position in the server's list.
    """
    if not isinstance(descriptors, list):
        return []

    parsed: list[tuple[int, ActionBase]] = []
    for position, descriptor in enumerate(descriptors):
        try:
            parsed.append((position, parse_action_descriptor(descriptor)))
        except (UnknownCommandError, ActionValidationError) as exc:
            logger.debug("Dropped action descriptor %d: %s", position, exc)
    return parsed


def parse_actions(descriptors: Any) -> list[ActionBase]:
    return [action for _, action in parse_indexed_actions(descriptors)]


# ---------------------------------------------------------------------------
# Plan replies
# ---------------------------------------------------------------------------


def parse_plan_response(raw: Any) -> PlanResult:
    """
    Parse a `/v1/task/plan` style reply.

    `{ok, error?, plan: {summary, steps, actions}}`. The plan fields are also
    accepted at the top level of the body.
    """
    body = decode_body(raw)

    if body.get("ok") is not True:
        return PlanResult(ok=False, message=server_error(body))

    plan = body.get("plan")
    if not isinstance(plan, dict):
        plan = body

    summary = _string(plan.get("summary"))
    steps = _string_list(plan.get("steps"))
    indexed = parse_indexed_actions(plan.get("actions"))

    return PlanResult(
        ok=True,
        message=format_plan_message(summary, steps),
        summary=summary,
        steps=steps,
        actions=[action for _, action in indexed],
        action_indices=[position for position, _ in indexed],
    )


# ---------------------------------------------------------------------------
# Session replies
# ---------------------------------------------------------------------------


def _first(body: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in body and body[key] is not None:
            return body[key]
    return None


def parse_session_response(raw: Any) -> SessionDecision:
    """
    Parse a `/v1/session/*` reply.

    `{ok, error?, sessionId?, status?, action?, actionIndex?, message?}`. The
    agent's `nextAction*` spelling is accepted too, along with the server's
    view of the action's approval, state and attempt count.
    """
    body = decode_body(raw)

    if body.get("ok") is not True:
        return SessionDecision(ok=False, error=server_error(body), message=server_error(body))

    status = _string(body.get("status"))
    if status not in _SESSION_STATUSES:
        status = ""

    index = _first(body, "actionIndex", "nextActionIndex")
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        index = None

    action: ActionBase | None = None
    descriptor = _first(body, "action", "nextAction")
    if descriptor is not None:
        try:
            action = parse_action_descriptor(descriptor)
        except (UnknownCommandError, ActionValidationError) as exc:
            logger.debug("Dropped session action %s: %s", index, exc)
        else:
            _apply_server_state(action, body)

    return SessionDecision(
        ok=True,
        session_id=_string(body.get("sessionId")),
        status=status,
        summary=_string(body.get("summary")),
        steps=_string_list(body.get("steps")),
        message=_string(body.get("message")),
        action_index=index,
        action=action,
    )


def _apply_server_state(action: ActionBase, body: dict[str, Any]) -> None:
    approved = body.get("nextActionApproved")
    if isinstance(approved, bool):
        action.approved = approved

    state = body.get("nextActionState")
    if state in ("pending", "succeeded", "failed"):
        action.state = state

    attempts = body.get("nextActionAttempts")
    if isinstance(attempts, int) and not isinstance(attempts, bool) and attempts >= 0:
        action.attempt_count = attempts
