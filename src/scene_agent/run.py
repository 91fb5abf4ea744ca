# run.py
# Entry point. Config and wiring only, no logic lives here.
#
#   scene-agent health
#   scene-agent plan "move the selection up 200" --select Cube_1 --select Cube_2 [--apply]
#   scene-agent run "create 5 cubes in a row"
#   scene-agent resume <session-id>
#
# Actions are applied with DryRunExecutor: the command line has no editor to
# mutate, it only walks the approval flow.

import argparse

from scene_agent import display
from scene_agent.client import AgentClient, DryRunExecutor
from scene_agent.config import Settings
from scene_agent.log import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scene-agent", description="Negotiate scene plans with the agent service.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check that the agent service is reachable.")

    plan = sub.add_parser("plan", help="Request a one-shot plan.")
    plan.add_argument("prompt")
    plan.add_argument("--select", action="append", default=[], metavar="ACTOR", help="Target actor name.")
    plan.add_argument("--apply", action="store_true", help="Dry-run the approved actions.")

    run = sub.add_parser("run", help="Start an agent session with step-by-step approval.")
    run.add_argument("prompt")
    run.add_argument("--select", action="append", default=[], metavar="ACTOR", help="Target actor name.")

    resume = sub.add_parser("resume", help="Resume an existing agent session.")
    resume.add_argument("session_id")

    return parser


def _plan(client: AgentClient, prompt: str, targets: list[str], apply: bool) -> None:
    display.prompt_sent(prompt, targets)
    result = client.plan_task(prompt, targets=targets).result()
    display.operation_result("PLAN", result)
    if not result.ok:
        return

    actions = [client.get_planned_action(index) for index in range(client.planned_action_count())]
    display.planned_actions(actions, client.last_plan_summary)
    display.context_usage(client.context_usage_label, client.context_usage_tooltip)

    if not apply:
        return

    for index in range(client.planned_action_count()):
        approved = display.ask_approval(index, client.preview_text(index))
        client.set_planned_action_approved(index, approved)

    executor = DryRunExecutor()
    for number, action in enumerate(client.pop_approved_planned_actions()):
        ok, message = executor.execute(action)
        display.action_outcome(number, ok, message)


def _session(client: AgentClient, prompt: str, targets: list[str], resume_id: str = "") -> None:
    executor = DryRunExecutor()

    if resume_id:
        result = client.resume_session(resume_id).result()
        if result.ok:
            result = client.run_agent_loop(executor, resume_only=True).result()
    else:
        display.prompt_sent(prompt, targets)
        result = client.run_agent_loop(executor, prompt=prompt, targets=targets).result()

    while True:
        display.operation_result("SESSION", result)
        if not result.ok or not client.has_active_session():
            break

        index = client.pending_session_action_index()
        if client.session_status not in ("awaiting_approval", "ready_to_execute"):
            display.halt("Session stopped without a pending decision.")
            break

        if index is None:
            preview = "The agent proposed an action this client could not read."
        else:
            preview = client.preview_text(index)
        approved = display.ask_approval(index, preview)
        result = client.approve_current_action(approved).result()
        if result.ok and client.has_active_session():
            result = client.run_agent_loop(executor, resume_only=True).result()

    actions = [client.get_planned_action(index) for index in range(client.planned_action_count())]
    display.planned_actions(actions, client.last_plan_summary)
    display.context_usage(client.context_usage_label, client.context_usage_tooltip)


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    display.banner(settings.base_url, settings.provider, settings.model)

    with AgentClient(settings) as client:
        if args.command == "health":
            display.operation_result("HEALTH", client.check_health().result())
        elif args.command == "plan":
            _plan(client, args.prompt, args.select, args.apply)
        elif args.command == "run":
            _session(client, args.prompt, args.select)
        elif args.command == "resume":
            _session(client, "", [], resume_id=args.session_id)


if __name__ == "__main__":
    main()
