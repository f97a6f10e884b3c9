from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

import structlog

from pulse_common.config import AppConfig
from pulse_common.logging import bind_user, setup_logging
from pulse_state.errors import StateStoreError
from pulse_state.json_store import JsonStateStore
from pulse_state.models import ActivityRecord
from pulse_state.repository import StateRepository
from pulse_state.service import StateService
from pulse_state.session import UserSession


logger = structlog.get_logger(__name__)

Command = Callable[[StateService, argparse.Namespace], Dict[str, Any]]


def build_service(config: AppConfig) -> StateService:
    """Wire store, repository and session for one process."""
    store = JsonStateStore(config.data_dir)
    session = UserSession()
    if config.user_id:
        session.set_user(config.user_id)
    return StateService(StateRepository(store), session)


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# -------- Commands --------
def _state_show(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    state, started = svc.get_current_state()
    return {"ok": True, "state": state, "since": started.isoformat()}


def _state_set(svc: StateService, args: argparse.Namespace) -> Dict[str, Any]:
    ok = svc.update_current_state(args.label)
    return {"ok": ok, "state": args.label}


def _state_elapsed(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    elapsed = svc.get_elapsed_time()
    return {"ok": True, "elapsed_seconds": int(elapsed.total_seconds())}


def _history(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": True, "history": [_dump(e) for e in svc.get_state_history()]}


def _states_list(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": True, "states": svc.get_available_states()}


def _states_set(svc: StateService, args: argparse.Namespace) -> Dict[str, Any]:
    ok = svc.update_available_states(args.labels)
    return {"ok": ok, "states": list(args.labels)}


def _activities_list(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": True, "activities": [_dump(a) for a in svc.get_activities()]}


def _activities_add(svc: StateService, args: argparse.Namespace) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "time": args.time,
        "description": args.description,
        "category": args.category,
        "priority": args.priority,
    }
    if args.recurring:
        fields["date"] = None
    elif args.date is not None:
        fields["date"] = args.date
    activity = ActivityRecord(**fields)
    ok = svc.add_activity(activity)
    return {"ok": ok, "activity": _dump(activity)}


def _activities_remove(svc: StateService, args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": svc.remove_activity(args.id), "id": args.id}


def _activities_done(svc: StateService, args: argparse.Namespace) -> Dict[str, Any]:
    completed = not args.undo
    ok = svc.set_activity_completed(args.id, completed)
    return {"ok": ok, "id": args.id, "completed": completed}


def _settings_show(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": True, "settings": _dump(svc.get_user_settings())}


def _delete(svc: StateService, _args: argparse.Namespace) -> Dict[str, Any]:
    return {"ok": svc.delete_user_data(), "user": svc.current_user_id}


# -------- Parser --------
def _priority(raw: str) -> int:
    value = int(raw)
    if not 1 <= value <= 3:
        raise argparse.ArgumentTypeError("priority must be 1, 2 or 3")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pulse", description="Track your current state and agenda.")
    parser.add_argument("--user", help="user id to act as (default: $PULSE_USER or default_user)")
    parser.add_argument("--data-dir", type=Path, help="directory holding user documents")
    sub = parser.add_subparsers(dest="command", required=True)

    state = sub.add_parser("state", help="current state")
    state_sub = state.add_subparsers(dest="action", required=True)
    state_sub.add_parser("show").set_defaults(func=_state_show)
    state_set = state_sub.add_parser("set")
    state_set.add_argument("label")
    state_set.set_defaults(func=_state_set)
    state_sub.add_parser("elapsed").set_defaults(func=_state_elapsed)

    sub.add_parser("history", help="state history").set_defaults(func=_history)

    states = sub.add_parser("states", help="selectable state labels")
    states_sub = states.add_subparsers(dest="action", required=True)
    states_sub.add_parser("list").set_defaults(func=_states_list)
    states_set = states_sub.add_parser("set")
    states_set.add_argument("labels", nargs="+")
    states_set.set_defaults(func=_states_set)

    acts = sub.add_parser("activities", help="scheduled activities")
    acts_sub = acts.add_subparsers(dest="action", required=True)
    acts_sub.add_parser("list").set_defaults(func=_activities_list)
    add = acts_sub.add_parser("add")
    add.add_argument("time")
    add.add_argument("description")
    add.add_argument("--category")
    add.add_argument("--priority", type=_priority, default=2)
    add.add_argument("--date", type=date.fromisoformat, default=None)
    add.add_argument("--recurring", action="store_true", help="no fixed date")
    add.set_defaults(func=_activities_add)
    remove = acts_sub.add_parser("remove")
    remove.add_argument("id")
    remove.set_defaults(func=_activities_remove)
    done = acts_sub.add_parser("done")
    done.add_argument("id")
    done.add_argument("--undo", action="store_true", help="mark as not completed")
    done.set_defaults(func=_activities_done)

    settings = sub.add_parser("settings", help="user settings")
    settings_sub = settings.add_subparsers(dest="action", required=True)
    settings_sub.add_parser("show").set_defaults(func=_settings_show)

    sub.add_parser("delete", help="remove all data for the user").set_defaults(func=_delete)
    return parser


def main(argv: Optional[Sequence[str]] = None, *, stdout=None) -> int:
    out = stdout or sys.stdout
    args = build_parser().parse_args(argv)

    config = AppConfig.from_env()
    overrides: Dict[str, Any] = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir
    if args.user:
        overrides["user_id"] = args.user
    if overrides:
        config = replace(config, **overrides)

    setup_logging(config)

    try:
        svc = build_service(config)
    except StateStoreError as ex:
        logger.error("service_init_failed", error=str(ex))
        print(json.dumps({"ok": False, "error": str(ex)}), file=out)
        return 1

    bind_user(svc.current_user_id)
    func: Command = args.func
    result = func(svc, args)
    print(json.dumps(result, ensure_ascii=False, indent=2), file=out)
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
