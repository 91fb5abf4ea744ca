import httpx
import pytest

from scene_agent import run
from scene_agent.client import AgentClient

PLAN_REPLY = {
    "ok": True,
    "plan": {
        "summary": "Two cubes",
        "steps": ["spawn"],
        "actions": [
            {"command": "scene.createActor", "params": {"actorClass": "Cube"}},
            {"command": "scene.deleteActor", "params": {}, "risk": "high"},
        ],
    },
}

SESSION_PENDING = {
    "ok": True,
    "sessionId": "s1",
    "status": "awaiting_approval",
    "summary": "Delete the selection",
    "nextActionIndex": 0,
    "nextAction": {"command": "scene.deleteActor", "params": {}, "risk": "high"},
}

SESSION_DONE = {"ok": True, "sessionId": "s1", "status": "completed", "summary": "Delete the selection"}


@pytest.fixture
def routes(monkeypatch):
    replies = {}

    def handler(request: httpx.Request) -> httpx.Response:
        reply = replies.get(request.url.path)
        if reply is None:
            return httpx.Response(404, json={"ok": False, "error": "Session not found"})
        return httpx.Response(200, json=reply)

    monkeypatch.setattr(
        run,
        "AgentClient",
        lambda settings: AgentClient(settings, http_transport=httpx.MockTransport(handler)),
    )
    return replies


def test_select_flag_collects_targets():
    args = run._build_parser().parse_args(["plan", "move up", "--select", "Cube_1", "--select", "Cube_2"])
    assert args.select == ["Cube_1", "Cube_2"]
    assert args.apply is False


def test_health(routes, capsys):
    routes["/health"] = {"ok": True, "provider": "openai"}
    run.main(["health"])
    assert "Agent service is healthy" in capsys.readouterr().out


def test_plan_and_apply_dry_runs_approved_actions(routes, monkeypatch, capsys):
    routes["/v1/task/plan"] = PLAN_REPLY
    asked = []

    def ask(index, preview):
        asked.append(index)
        return index == 0

    monkeypatch.setattr(run.display, "ask_approval", ask)

    run.main(["plan", "two cubes", "--apply"])

    out = capsys.readouterr().out
    assert asked == [0, 1]
    assert "Dry run: [Low] Create Actor" in out
    assert "Dry run: [High]" not in out


def test_run_session_with_approval(routes, monkeypatch, capsys):
    routes["/v1/session/start"] = SESSION_PENDING
    routes["/v1/session/approve"] = SESSION_DONE
    monkeypatch.setattr(run.display, "ask_approval", lambda index, preview: True)

    run.main(["run", "delete the selection"])

    assert "Session: completed" in capsys.readouterr().out


def test_resume_unknown_session(routes, capsys):
    run.main(["resume", "s-missing"])
    assert "was not found" in capsys.readouterr().out
