# client.py
# The orchestration boundary between an editor UI and the agent service.
#
# AgentClient owns the only ActionQueue, SessionStateMachine and
# ContextUsageTracker. Every network operation runs on one worker thread and
# resolves a Future[OperationResult]; an optional callback receives the same
# result exactly once. Queue accessors are synchronous and hand out copies.
#
# UI layers and executors refer to planned actions by integer index only.

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol

import httpx

from scene_agent.action_queue import ActionIndex, ActionQueue
from scene_agent.actions import ActionBase, preview_text
from scene_agent.config import Settings
from scene_agent.errors import AgentError, ServerRejectedError
from scene_agent.models import ChatHistoryEntry, ChatSummary, ModelOption, OperationResult
from scene_agent.parser import server_error
from scene_agent.session import SessionState, SessionStateMachine
from scene_agent.transport import AgentTransport
from scene_agent.usage import ContextUsageTracker

logger = logging.getLogger(__name__)

Callback = Callable[[OperationResult], None]

PROVIDER_LABELS = {"openai": "OpenAI", "gemini": "Gemini", "local": "Local"}

# Upper bound on round trips in one run_agent_loop() call.
MAX_LOOP_STEPS = 200


def provider_label(provider: str) -> str:
    return PROVIDER_LABELS.get(provider.lower(), provider)


class Executor(Protocol):
    """Applies one planned action to the scene. Returns (ok, message)."""

    def execute(self, action: ActionBase) -> tuple[bool, str]: ...


class DryRunExecutor:
    """Executor that changes nothing and reports every action as applied."""

    def execute(self, action: ActionBase) -> tuple[bool, str]:
        return True, f"Dry run: {preview_text(action)}"


class AgentClient:
    """
    Editor-side client for the agent service.

    Example:
        client = AgentClient(Settings.from_env())
        result = client.plan_task("move selected up 100", targets=["Cube_1"]).result()
        for index in range(client.planned_action_count()):
            print(client.preview_text(index))
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: AgentTransport | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._transport = transport or AgentTransport(
            self.settings.base_url,
            timeout=self.settings.timeout,
            transport=http_transport,
        )
        self._queue = ActionQueue()
        self._usage = ContextUsageTracker()
        self._session = SessionStateMachine(
            self._transport,
            self._queue,
            self._usage,
            max_retries=self.settings.max_retries,
        )
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scene-agent")

        self._chats: list[ChatSummary] = []
        self._active_chat_id = ""
        self._chat_history: list[ChatHistoryEntry] = []
        self._models: list[ModelOption] = []
        self._preferred_models: list[ModelOption] = []

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self._transport.close()

    def __enter__(self) -> "AgentClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _submit(self, operation: Callable[[], OperationResult], on_complete: Callback | None) -> Future:
        def task() -> OperationResult:
            try:
                result = operation()
            except AgentError as exc:
                logger.warning("%s: %s", exc.__class__.__name__, exc)
                result = OperationResult(ok=False, message=str(exc), error=exc.__class__.__name__)
            except Exception as exc:
                logger.exception("Operation failed unexpectedly")
                result = OperationResult(ok=False, message=f"Unexpected error: {exc}", error=exc.__class__.__name__)

            if on_complete is not None:
                try:
                    on_complete(result)
                except Exception:
                    logger.exception("Completion callback raised")
            return result

        return self._pool.submit(task)

    def _call(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Round trip for the simple CRUD endpoints. Raises on `ok: false`."""
        if method == "GET":
            reply = self._transport.get(path)
        else:
            reply = self._transport.post(path, body or {})
        if reply.get("ok") is not True:
            raise ServerRejectedError(server_error(reply))
        return reply

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def check_health(self, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            reply = self._call("GET", "/health")
            provider = reply.get("provider")
            if isinstance(provider, str) and provider:
                return OperationResult(ok=True, message=f"Agent service is healthy (provider: {provider_label(provider)}).")
            return OperationResult(ok=True, message="Agent service is healthy.")

        return self._submit(operation, on_complete)

    # ------------------------------------------------------------------
    # Plans and sessions
    # ------------------------------------------------------------------

    def plan_task(
        self,
        prompt: str,
        targets: list[str] | None = None,
        provider: str = "",
        model: str = "",
        on_complete: Callback | None = None,
    ) -> Future:
        """One-shot plan: the whole action list arrives in a single reply."""
        return self.start_session(prompt, "chat", targets, provider, model, on_complete)

    def start_session(
        self,
        prompt: str,
        mode: str = "agent",
        targets: list[str] | None = None,
        provider: str = "",
        model: str = "",
        on_complete: Callback | None = None,
    ) -> Future:
        provider = provider or self.settings.provider
        model = model or self.settings.model
        return self._submit(
            lambda: self._session.start(prompt, mode, targets, provider, model, self._active_chat_id),
            on_complete,
        )

    def next_session(
        self,
        has_prior_result: bool = False,
        prior_result_ok: bool = False,
        prior_result_message: str = "",
        on_complete: Callback | None = None,
    ) -> Future:
        return self._submit(
            lambda: self._session.next(has_prior_result, prior_result_ok, prior_result_message),
            on_complete,
        )

    def approve_current_action(self, approved: bool, on_complete: Callback | None = None) -> Future:
        return self._submit(lambda: self._session.approve(approved), on_complete)

    def resume_session(self, session_id: str = "", on_complete: Callback | None = None) -> Future:
        """Resume the current session, or adopt `session_id` first (e.g. after a restart)."""

        def operation() -> OperationResult:
            if session_id:
                self._session.adopt(session_id)
            return self._session.resume()

        return self._submit(operation, on_complete)

    def run_agent_loop(
        self,
        executor: Executor,
        resume_only: bool = False,
        prompt: str = "",
        targets: list[str] | None = None,
        on_complete: Callback | None = None,
    ) -> Future:
        """
        Drive a session until it needs a human decision or ends.

        Actions the server marks ready are executed through `executor`, their
        outcome is recorded in the queue and reported with the next request.
        Retries are counted server-side against Settings.max_retries.
        """

        def operation() -> OperationResult:
            if resume_only:
                result = self._session.resume()
            else:
                result = self._session.start(
                    prompt, "agent", targets, self.settings.provider, self.settings.model, self._active_chat_id
                )
            for _ in range(MAX_LOOP_STEPS):
                if not result.ok or self._session.state is not SessionState.AWAITING_APPROVAL:
                    return result
                if self._session.session.status != "ready_to_execute":
                    return result
                index = self._session.current_queue_index()
                if index is None:
                    # The ready action did not parse; leave it to approve(False).
                    return result
                result = self._execute_current(executor, index)
            return OperationResult(ok=False, message="Agent loop stopped: too many steps.", error="AgentError")

        return self._submit(operation, on_complete)

    def _execute_current(self, executor: Executor, index: ActionIndex) -> OperationResult:
        action = self._queue.get(index)
        try:
            ok, message = executor.execute(action)
        except Exception as exc:
            logger.exception("Executor failed on %s", action.command)
            ok, message = False, f"Executor error: {exc}"

        self._queue.record_outcome(index, ok, action.attempt_count + 1)
        return self._session.next(True, ok, message)

    # ------------------------------------------------------------------
    # Planned actions (synchronous)
    # ------------------------------------------------------------------

    def planned_action_count(self) -> int:
        return self._queue.count()

    def get_planned_action(self, index: ActionIndex) -> ActionBase:
        return self._queue.get(index)

    def preview_text(self, index: ActionIndex) -> str:
        return self._queue.preview_text(index)

    def set_planned_action_approved(self, index: ActionIndex, approved: bool) -> None:
        self._queue.set_approved(index, approved)

    def is_planned_action_approved(self, index: ActionIndex) -> bool:
        return self._queue.is_approved(index)

    def pop_approved_planned_actions(self) -> list[ActionBase]:
        return self._queue.pop_approved()

    def clear_planned_actions(self) -> None:
        self._queue.clear()

    def record_action_outcome(self, index: ActionIndex, succeeded: bool, attempt_count: int) -> bool:
        return self._queue.record_outcome(index, succeeded, attempt_count)

    def next_pending_action_index(self) -> ActionIndex | None:
        return self._queue.next_pending_index()

    def pending_session_action_index(self) -> ActionIndex | None:
        return self._session.current_queue_index()

    def has_active_session(self) -> bool:
        return self._session.has_active_session()

    @property
    def session_state(self) -> SessionState:
        return self._session.state

    @property
    def session_status(self) -> str:
        return self._session.session.status

    @property
    def session_id(self) -> str:
        return self._session.session.session_id

    @property
    def last_plan_summary(self) -> str:
        return self._session.last_summary

    @property
    def context_usage_label(self) -> str:
        return self._usage.label

    @property
    def context_usage_tooltip(self) -> str:
        return self._usage.tooltip

    def reset(self) -> None:
        self._session.reset()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def get_provider_status(self, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            reply = self._call("GET", "/v1/credentials/status")
            providers = reply.get("providers")
            if not isinstance(providers, list) or not providers:
                return OperationResult(ok=True, message="No providers reported.")
            lines = []
            for entry in providers:
                if not isinstance(entry, dict) or not isinstance(entry.get("provider"), str):
                    continue
                state = "configured" if entry.get("configured") is True else "missing API key"
                lines.append(f"{provider_label(entry['provider'])}: {state}")
            return OperationResult(ok=True, message="\n".join(lines))

        return self._submit(operation, on_complete)

    def set_provider_api_key(self, provider: str, api_key: str, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            if not api_key.strip():
                return OperationResult(ok=False, message="API key is empty.", error="ValueError")
            self._call("POST", "/v1/credentials/set", {"provider": provider, "apiKey": api_key.strip()})
            return OperationResult(ok=True, message=f"Saved API key for {provider_label(provider)}.")

        return self._submit(operation, on_complete)

    def delete_provider_api_key(self, provider: str, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            self._call("POST", "/v1/credentials/delete", {"provider": provider})
            return OperationResult(ok=True, message=f"Removed API key for {provider_label(provider)}.")

        return self._submit(operation, on_complete)

    def test_provider_api_key(self, provider: str, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            reply = self._call("POST", "/v1/credentials/test", {"provider": provider})
            message = reply.get("message")
            if isinstance(message, str) and message:
                return OperationResult(ok=True, message=message)
            return OperationResult(ok=True, message=f"API key for {provider_label(provider)} works.")

        return self._submit(operation, on_complete)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    @property
    def available_models(self) -> list[ModelOption]:
        return list(self._models)

    @property
    def preferred_models(self) -> list[ModelOption]:
        return list(self._preferred_models)

    def refresh_model_options(self, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            reply = self._call("GET", "/v1/models")
            self._models = _records(ModelOption, reply.get("models"))
            self._preferred_models = _records(ModelOption, reply.get("preferred"))
            return OperationResult(ok=True, message=f"Loaded {len(self._models)} model option(s).")

        return self._submit(operation, on_complete)

    def save_preferred_models(self, preferred: list[ModelOption], on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            payload = [option.model_dump() for option in preferred]
            self._call("POST", "/v1/models/preferences", {"preferred": payload})
            self._preferred_models = list(preferred)
            return OperationResult(ok=True, message=f"Saved {len(preferred)} preferred model(s).")

        return self._submit(operation, on_complete)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    @property
    def chats(self) -> list[ChatSummary]:
        return list(self._chats)

    @property
    def active_chat_id(self) -> str:
        return self._active_chat_id

    @property
    def chat_history(self) -> list[ChatHistoryEntry]:
        return list(self._chat_history)

    def set_active_chat(self, chat_id: str) -> None:
        if chat_id != self._active_chat_id:
            self._active_chat_id = chat_id
            self._chat_history = []

    def refresh_chats(self, include_archived: bool = False, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            path = "/v1/chats?includeArchived=true" if include_archived else "/v1/chats"
            reply = self._call("GET", path)
            self._chats = _records(ChatSummary, reply.get("chats"))
            if self._active_chat_id and all(chat.id != self._active_chat_id for chat in self._chats):
                self.set_active_chat("")
            return OperationResult(ok=True, message=f"Loaded {len(self._chats)} chat(s).")

        return self._submit(operation, on_complete)

    def create_chat(self, title: str = "", on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            reply = self._call("POST", "/v1/chats", {"title": title})
            created = _records(ChatSummary, [reply.get("chat")])
            if not created:
                raise ServerRejectedError("Agent service did not return the new chat.")
            self._chats.insert(0, created[0])
            self.set_active_chat(created[0].id)
            return OperationResult(ok=True, message=f"Created chat {created[0].title or created[0].id}.")

        return self._submit(operation, on_complete)

    def rename_chat(self, chat_id: str, title: str, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            self._call("POST", f"/v1/chats/{chat_id}/rename", {"title": title})
            self._chats = [
                chat.model_copy(update={"title": title}) if chat.id == chat_id else chat for chat in self._chats
            ]
            return OperationResult(ok=True, message=f"Renamed chat to {title}.")

        return self._submit(operation, on_complete)

    def archive_chat(self, chat_id: str, on_complete: Callback | None = None) -> Future:
        return self._set_archived(chat_id, True, on_complete)

    def restore_chat(self, chat_id: str, on_complete: Callback | None = None) -> Future:
        return self._set_archived(chat_id, False, on_complete)

    def _set_archived(self, chat_id: str, archived: bool, on_complete: Callback | None) -> Future:
        verb = "archive" if archived else "restore"

        def operation() -> OperationResult:
            self._call("POST", f"/v1/chats/{chat_id}/{verb}", {})
            self._chats = [
                chat.model_copy(update={"archived": archived}) if chat.id == chat_id else chat for chat in self._chats
            ]
            if archived and chat_id == self._active_chat_id:
                self.set_active_chat("")
            return OperationResult(ok=True, message=f"Chat {verb}d.")

        return self._submit(operation, on_complete)

    def delete_chat(self, chat_id: str, on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            self._call("POST", f"/v1/chats/{chat_id}/delete", {})
            self._chats = [chat for chat in self._chats if chat.id != chat_id]
            if chat_id == self._active_chat_id:
                self.set_active_chat("")
            return OperationResult(ok=True, message="Chat deleted.")

        return self._submit(operation, on_complete)

    def load_chat_history(self, chat_id: str = "", on_complete: Callback | None = None) -> Future:
        def operation() -> OperationResult:
            target = chat_id or self._active_chat_id
            if not target:
                return OperationResult(ok=False, message="No active chat.", error="ValueError")
            reply = self._call("GET", f"/v1/chats/{target}/history")
            self.set_active_chat(target)
            self._chat_history = _records(ChatHistoryEntry, reply.get("entries"))
            self._usage.update_from_body(reply)
            return OperationResult(ok=True, message=f"Loaded {len(self._chat_history)} history entries.")

        return self._submit(operation, on_complete)


def _records(model: type, items: Any) -> list:
    """Validate a list of flat records, skipping entries that do not fit."""
    if not isinstance(items, list):
        return []
    records = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            records.append(model.model_validate(item))
        except ValueError:
            logger.debug("Skipped malformed %s entry", model.__name__)
    return records
