# session.py
# Request/response state machine for agent sessions.
#
#   IDLE ──start──▶ AWAITING_SERVER ──reply──▶ AWAITING_APPROVAL ──next/approve──▶ ...
#                                       └─────▶ IDLE (one-shot plan, completion, error)
#
# The machine owns the session identity and writes into the ActionQueue it
# is given. State changes happen when a reply arrives, never when a request
# is issued. A transport or parse failure restores the state that was in
# place before the request, so a failed call never corrupts the queue or
# the session.
#
# All operations return an OperationResult; AgentError never escapes.

import enum
import logging
import threading
from typing import Any, Callable

from pydantic import BaseModel, Field

from scene_agent.action_queue import ActionIndex, ActionQueue
from scene_agent.errors import (
    AgentError,
    HttpStatusError,
    NoActiveSessionError,
    ServerRejectedError,
    SessionBusyError,
    SessionNotFoundError,
)
from scene_agent.models import OperationResult, SessionDecision
from scene_agent.parser import parse_plan_response, parse_session_response
from scene_agent.transport import AgentTransport
from scene_agent.usage import ContextUsageTracker

logger = logging.getLogger(__name__)

PLAN_ROUTE = "/v1/task/plan"
SESSION_START_ROUTE = "/v1/session/start"
SESSION_NEXT_ROUTE = "/v1/session/next"
SESSION_APPROVE_ROUTE = "/v1/session/approve"
SESSION_RESUME_ROUTE = "/v1/session/resume"


class SessionState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_SERVER = "awaiting_server"
    AWAITING_APPROVAL = "awaiting_approval"


class Session(BaseModel):
    """Identity of the in-flight negotiation. An empty id means no session."""

    session_id: str = ""
    current_index: int | None = Field(default=None, description="Server action index awaiting a decision.")
    targets: list[str] = Field(default_factory=list)
    status: str = ""
    summary: str = ""
    steps: list[str] = Field(default_factory=list)

    @property
    def active(self) -> bool:
        return bool(self.session_id)


def format_session_message(decision: SessionDecision) -> str:
    """`Session: <status>` first, then summary and server message."""
    status = decision.status or ("completed" if decision.finished else "awaiting_approval")
    lines = [f"Session: {status}", decision.summary]
    if decision.message:
        lines.append(decision.message)
    return "\n".join(lines)


def _is_not_found(exc: AgentError) -> bool:
    # A bare 404 also comes back for unknown routes, so the text must name the session.
    text = (exc.server_error if isinstance(exc, HttpStatusError) else str(exc)).lower()
    if "session" not in text:
        return False
    if isinstance(exc, HttpStatusError) and exc.status_code == 404:
        return True
    return "not found" in text


class SessionStateMachine:
    """
    Drives plan and session round trips against the agent service.

    One operation may be outstanding at a time. A second operation started
    while one is in flight fails immediately with SessionBusyError instead
    of racing on the shared queue and session fields.
    """

    def __init__(
        self,
        transport: AgentTransport,
        queue: ActionQueue,
        usage: ContextUsageTracker | None = None,
        max_retries: int = 2,
    ) -> None:
        self._transport = transport
        self._queue = queue
        self._usage = usage or ContextUsageTracker()
        self._max_retries = max_retries
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session = Session()
        self._last_summary = ""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def session(self) -> Session:
        with self._lock:
            return self._session.model_copy(deep=True)

    @property
    def last_summary(self) -> str:
        with self._lock:
            return self._last_summary

    def has_active_session(self) -> bool:
        with self._lock:
            return self._session.active

    def current_queue_index(self) -> ActionIndex | None:
        """Queue position of the action the session is waiting on."""
        with self._lock:
            key = self._session.current_index
        if key is None:
            return None
        return self._queue.index_of_key(key)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start(
        self,
        prompt: str,
        mode: str = "chat",
        targets: list[str] | None = None,
        provider: str = "",
        model: str = "",
        chat_id: str = "",
    ) -> OperationResult:
        targets = list(targets or [])
        body: dict[str, Any] = {
            "prompt": prompt,
            "mode": mode,
            "context": {"selection": targets},
        }
        if provider:
            body["provider"] = provider
        if model:
            body["model"] = model
        if chat_id:
            body["chatId"] = chat_id

        if mode == "agent":
            body["maxRetries"] = self._max_retries
            route = SESSION_START_ROUTE
        else:
            route = PLAN_ROUTE

        return self._run(lambda: self._start(route, body, targets), require_session=False)

    def next(
        self,
        has_prior_result: bool = False,
        prior_result_ok: bool = False,
        prior_result_message: str = "",
    ) -> OperationResult:
        def step() -> OperationResult:
            body: dict[str, Any] = {"sessionId": self._session.session_id}
            if has_prior_result:
                body["result"] = {
                    "actionIndex": self._session.current_index,
                    "ok": bool(prior_result_ok),
                    "message": prior_result_message,
                }
            return self._session_step(SESSION_NEXT_ROUTE, body)

        return self._run(step)

    def approve(self, approved: bool) -> OperationResult:
        def step() -> OperationResult:
            if self._session.current_index is None:
                raise NoActiveSessionError("No session action is awaiting a decision.")
            body = {
                "sessionId": self._session.session_id,
                "actionIndex": self._session.current_index,
                "approved": bool(approved),
            }
            return self._session_step(SESSION_APPROVE_ROUTE, body)

        return self._run(step)

    def resume(self) -> OperationResult:
        def step() -> OperationResult:
            body = {"sessionId": self._session.session_id}
            try:
                return self._session_step(SESSION_RESUME_ROUTE, body)
            except (HttpStatusError, ServerRejectedError) as exc:
                if not _is_not_found(exc):
                    raise
                missing = self._session.session_id
                self._close_session()
                raise SessionNotFoundError(f"Session {missing} was not found.") from exc

        return self._run(step)

    def adopt(self, session_id: str, targets: list[str] | None = None) -> None:
        """Point the machine at an existing server session before resume()."""
        with self._lock:
            self._session = Session(session_id=session_id, targets=list(targets or []))

    def reset(self) -> None:
        with self._lock:
            self._session = Session()
            self._state = SessionState.IDLE
            self._last_summary = ""
        self._queue.clear()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, operation: Callable[[], OperationResult], require_session: bool = True) -> OperationResult:
        with self._lock:
            if self._state is SessionState.AWAITING_SERVER:
                return _failure(SessionBusyError("Another session request is already in flight."))
            if require_session and not self._session.active:
                return _failure(NoActiveSessionError("No active session."))
            previous = self._state
            self._state = SessionState.AWAITING_SERVER

        try:
            return operation()
        except AgentError as exc:
            logger.warning("%s: %s", exc.__class__.__name__, exc)
            return _failure(exc)
        finally:
            with self._lock:
                if self._state is SessionState.AWAITING_SERVER:
                    self._state = previous

    def _start(self, route: str, body: dict[str, Any], targets: list[str]) -> OperationResult:
        reply = self._transport.post(route, body)
        plan = parse_plan_response(reply)

        # A reply arrived: whatever was queued before belongs to a stale request.
        self._queue.clear()
        with self._lock:
            self._session = Session()
            self._last_summary = ""

        if not plan.ok:
            with self._lock:
                self._state = SessionState.IDLE
            raise ServerRejectedError(plan.message)

        self._usage.update_from_body(reply)
        for position, action in zip(plan.action_indices, plan.actions):
            self._queue.append(action, key=position)

        with self._lock:
            self._last_summary = plan.summary

        if not reply.get("sessionId"):
            with self._lock:
                self._state = SessionState.IDLE
            return OperationResult(ok=True, message=plan.message)

        decision = parse_session_response(reply)
        with self._lock:
            self._session.targets = targets
        return self._apply_decision(decision)

    def _session_step(self, route: str, body: dict[str, Any]) -> OperationResult:
        reply = self._transport.post(route, body)
        decision = parse_session_response(reply)
        if decision.ok:
            self._usage.update_from_body(reply)
        return self._apply_decision(decision)

    def _apply_decision(self, decision: SessionDecision) -> OperationResult:
        """Fold one session reply into the queue and session fields."""
        if not decision.ok:
            raise ServerRejectedError(decision.error)

        index = decision.action_index
        if decision.action is not None:
            if index is None:
                index = self._queue.next_key()
            self._queue.upsert(index, decision.action)
        elif index is not None and not decision.finished:
            logger.warning("Session action %d could not be parsed; it can still be rejected", index)

        with self._lock:
            if decision.session_id:
                self._session.session_id = decision.session_id
            if decision.summary:
                self._session.summary = decision.summary
                self._last_summary = decision.summary
            if decision.steps:
                self._session.steps = decision.steps
            self._session.status = decision.status

        # A failed session is still a successful round trip; the status line
        # in the message tells the caller how it ended.
        message = format_session_message(decision)
        if decision.finished:
            logger.debug("Session closed (%s)", decision.status or "no further action")
            self._close_session()
            return OperationResult(ok=True, message=message)

        with self._lock:
            self._session.current_index = index
            self._state = SessionState.AWAITING_APPROVAL
        return OperationResult(ok=True, message=message)

    def _close_session(self) -> None:
        with self._lock:
            self._session.session_id = ""
            self._session.current_index = None
            self._state = SessionState.IDLE


def _failure(exc: AgentError) -> OperationResult:
    return OperationResult(ok=False, message=str(exc), error=exc.__class__.__name__)
