"""
Tool: Focus Planner CLI
Purpose: Plan and record focus sessions from the command line

History lives in a JSON file (a list of session records, or an object with
a "sessions" list). Planner state lives in SQLite (data/planner.db). The
plan action stores the plan it hands out in the history file as "pending",
and the record action evaluates the finished session against that plan.

Usage:
    python -m focusplan.cli --action plan --history sessions.json --intensity Hard
    python -m focusplan.cli --action record --history sessions.json --focus 1620 --stop-reason COMPLETED
    python -m focusplan.cli --action state --user alice
    python -m focusplan.cli --action reset --user alice
    python -m focusplan.cli --action simulate --profile plateau

Output:
    "OK <message>" or "ERROR <message>", then the JSON result
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Any

from focusplan.logging_config import get_logger, log_context, setup_logging
from focusplan.planning.blend_engine import build_planning_metrics
from focusplan.planning.config import PlannerConfig, load_config
from focusplan.planning.models import Intensity, Metrics, Plan, PlanContext, SessionRecord
from focusplan.planning.planner import WavePlanner
from focusplan.planning.session_outcome import count_sessions_today, evaluate_session
from focusplan.planning.simulate import PROFILES, run_scenario, summarize
from focusplan.planning.state_store import SQLiteStateStore, StateStoreError

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# History file
# ─────────────────────────────────────────────────────────────────────────────


def load_history(path: Path) -> tuple[list[SessionRecord], dict[str, Any] | None]:
    """Read sessions and the pending plan; a missing file is an empty history."""
    if not path.exists():
        return [], None
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        rows, pending = data, None
    elif isinstance(data, dict):
        rows, pending = data.get("sessions") or [], data.get("pending")
    else:
        raise ValueError(f"{path} must contain a list or an object with 'sessions'")
    records = [SessionRecord.from_dict(row) for row in rows if isinstance(row, dict)]
    return records, pending if isinstance(pending, dict) else None


def save_history(path: Path, history: list[SessionRecord], pending: dict[str, Any] | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload: dict[str, Any] = {"sessions": [r.to_dict() for r in history]}
    if pending:
        payload["pending"] = pending
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    tmp.replace(path)


def _metrics_from_dict(data: dict[str, Any]) -> Metrics:
    known = {f.name for f in fields(Metrics)}
    return Metrics(**{k: v for k, v in data.items() if k in known})


# ─────────────────────────────────────────────────────────────────────────────
# Actions
# ─────────────────────────────────────────────────────────────────────────────


def plan_session(
    planner: WavePlanner,
    history_path: Path,
    intensity: str = "Balanced",
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or datetime.now()
    history, _ = load_history(history_path)

    planning = build_planning_metrics(history, now, planner.config)
    context = PlanContext(
        intensity=Intensity.parse(intensity),
        blocks_today=count_sessions_today(history, now),
        bucket=planning.bucket,
        bucket_sessions=planning.bucket_sessions,
        now=now,
    )
    plan = planner.plan_next(history, planning.metrics, context)

    pending = {"plan": plan.to_dict(), "metrics": planning.metrics.to_dict(), "planned_at": now.isoformat()}
    save_history(history_path, history, pending)

    return {
        "success": True,
        "message": f"{plan.mode.value} {plan.block_type.value}: {plan.goal_sec // 60}m {plan.goal_sec % 60}s",
        "plan": plan.to_dict(),
    }


def record_session(
    planner: WavePlanner,
    history_path: Path,
    focus_seconds: int,
    stop_reason: str = "COMPLETED",
    recovered: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or datetime.now()
    history, pending = load_history(history_path)
    if not pending or "plan" not in pending:
        return {"success": False, "error": "No pending plan; run --action plan first"}

    plan = Plan.from_dict(pending["plan"])
    metrics = _metrics_from_dict(pending.get("metrics") or {})
    record = evaluate_session(
        focus_seconds,
        plan,
        metrics,
        stop_reason,
        now,
        count_sessions_today(history, now),
        recovered=recovered,
        breaks=planner.config.breaks,
    )
    history.append(record)
    save_history(history_path, history)
    planner.update_after_block(record)

    return {
        "success": True,
        "message": f"Recorded {record.focus_seconds}s (win={record.is_win}, crash={record.crash})",
        "session": record.to_dict(),
        "break_seconds": record.break_seconds,
    }


def show_state(store: SQLiteStateStore, user_id: str) -> dict[str, Any]:
    state = store.load(user_id)
    return {"success": True, "message": "No stored state" if state is None else "Planner state", "state": state}


def reset_state(planner: WavePlanner) -> dict[str, Any]:
    planner.reset()
    return {"success": True, "message": f"Planner state cleared for {planner.user_id}"}


def simulate_profile(profile: str, config: PlannerConfig) -> dict[str, Any]:
    history = run_scenario(profile, config)
    return {
        "success": True,
        "message": f"Simulated {len(history)} sessions ({profile})",
        "summary": summarize(history),
    }


def _dispatch(args: argparse.Namespace, config: PlannerConfig, store: SQLiteStateStore) -> dict[str, Any]:
    if args.action == "plan":
        return plan_session(WavePlanner(config, store, user_id=args.user), args.history, args.intensity)

    if args.action == "record":
        if args.focus is None:
            return {"success": False, "error": "--focus required for record"}
        planner = WavePlanner(config, store, user_id=args.user)
        return record_session(planner, args.history, args.focus, args.stop_reason, args.recovered)

    if args.action == "state":
        return show_state(store, args.user)

    if args.action == "reset":
        return reset_state(WavePlanner(config, store, user_id=args.user))

    return simulate_profile(args.profile, config)


def main():
    parser = argparse.ArgumentParser(description="Focus Planner")
    parser.add_argument(
        "--action",
        required=True,
        choices=["plan", "record", "state", "reset", "simulate"],
        help="Action to perform",
    )
    parser.add_argument("--history", type=Path, default=Path("sessions.json"), help="Session history JSON file")
    parser.add_argument("--user", default="default", help="User ID")
    parser.add_argument("--db", type=Path, help="State database path (default: data/planner.db)")
    parser.add_argument("--config", type=Path, help="Config YAML (default: args/planner.yaml)")
    parser.add_argument("--intensity", choices=[i.value for i in Intensity], default="Balanced")
    parser.add_argument("--focus", type=int, help="Focused seconds (record)")
    parser.add_argument("--stop-reason", default="COMPLETED", help="Why the session ended (record)")
    parser.add_argument("--recovered", action="store_true", help="Session restored after an interruption")
    parser.add_argument("--profile", choices=sorted(PROFILES), default="steady", help="Simulation profile")

    args = parser.parse_args()
    setup_logging()

    config = load_config(args.config)
    store = SQLiteStateStore(args.db)

    try:
        with log_context(user=args.user, action=args.action):
            result = _dispatch(args, config, store)
    except (OSError, ValueError, StateStoreError) as e:
        logger.error(f"{args.action} failed: {e}")
        result = {"success": False, "error": str(e)}

    if result.get("success"):
        print(f"OK {result.get('message', 'Success')}")
    else:
        print(f"ERROR {result.get('error')}")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
