# usage.py
# Keeps the latest context-window usage text for display.

import threading
from typing import Any

from pydantic import ValidationError

from scene_agent.models import ContextUsage

_STATUS_TEXT = {
    "ok": "OK",
    "near_limit": "near limit",
    "full": "full",
    "overflow": "over limit",
}


def _tokens(value: int) -> str:
    if value < 1000:
        return str(value)
    if value < 1_000_000:
        return f"{value / 1000:.1f}".rstrip("0").rstrip(".") + "k"
    return f"{value / 1_000_000:.1f}".rstrip("0").rstrip(".") + "M"


def usage_label(usage: ContextUsage) -> str:
    return (
        f"Context {usage.used_percent:.0f}% "
        f"({_tokens(usage.used_tokens)} / {_tokens(usage.context_window_tokens)})"
    )


def usage_tooltip(usage: ContextUsage) -> str:
    status = _STATUS_TEXT.get(usage.status, usage.status)
    if usage.estimated:
        status += " (estimated)"
    lines = [
        f"Provider: {usage.provider or 'unknown'}",
        f"Model: {usage.model or 'unknown'}",
        f"Used: {usage.used_tokens:,} / {usage.context_window_tokens:,} tokens ({usage.used_percent:g}%)",
        f"Remaining: {usage.remaining_tokens:,} tokens",
        f"Status: {status}",
    ]
    return "\n".join(lines)


class ContextUsageTracker:
    """
    Holds the label and tooltip from the most recent reply that carried
    usage metadata. Replies without it leave the previous text in place.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._label = ""
        self._tooltip = ""

    @property
    def label(self) -> str:
        with self._lock:
            return self._label

    @property
    def tooltip(self) -> str:
        with self._lock:
            return self._tooltip

    def update_from_body(self, body: dict[str, Any]) -> bool:
        usage = body.get("contextUsage", body.get("usage"))
        return self.update(usage)

    def update(self, usage: Any) -> bool:
        """Returns True when the stored text was overwritten."""
        if not isinstance(usage, dict) or not usage:
            return False

        label = usage.get("label")
        tooltip = usage.get("tooltip")
        if isinstance(label, str) and label.strip():
            with self._lock:
                self._label = label.strip()
                self._tooltip = tooltip.strip() if isinstance(tooltip, str) else ""
            return True

        try:
            snapshot = ContextUsage.model_validate(usage)
        except ValidationError:
            return False
        if snapshot.context_window_tokens <= 0:
            return False

        with self._lock:
            self._label = usage_label(snapshot)
            self._tooltip = usage_tooltip(snapshot)
        return True

    def reset(self) -> None:
        with self._lock:
            self._label = ""
            self._tooltip = ""
