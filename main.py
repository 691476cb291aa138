"""Console client for the offline task list."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from core.settings import SYNC
from core.statuses import STATUS_COMPLETED, STATUS_PENDING, STATUSES, status_label
from services.api_client import TasksApiClient
from services.connectivity import HttpConnectivity, StaticConnectivity
from services.reconciler import Reconciler, SyncReport
from services.sync_scheduler import SyncScheduler
from services.tasks import TaskService, format_minutes, is_sync_pending, task_stats
from storage.config import load_config, update_config
from storage.db import init_db


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _build(args) -> tuple[TaskService, Reconciler]:
    cfg = load_config()
    api = TasksApiClient(cfg.api_base_url, token=cfg.auth_token)
    if cfg.force_offline or args.offline:
        connectivity = StaticConnectivity(False)
    else:
        connectivity = HttpConnectivity(cfg.probe_url or cfg.api_base_url)
    return TaskService(api, connectivity), Reconciler(api, connectivity)


def _print_report(report: Optional[SyncReport]) -> None:
    if report is None:
        print("Sync already running")
    elif report.offline:
        print("Offline: nothing sent")
    elif report.aborted:
        print(f"Sync stopped at {report.failed_record_id}: {report.error}")
    else:
        print(
            f"Synced: {report.created} created, {report.updated} updated, "
            f"{report.deleted} deleted, {report.discarded} discarded"
        )


def _cmd_list(service: TaskService, args) -> int:
    tasks = service.list_tasks()
    needle = (args.search or "").strip().lower()
    for task in tasks:
        if args.filter == "active" and task.status == STATUS_COMPLETED:
            continue
        if args.filter == "completed" and task.status != STATUS_COMPLETED:
            continue
        if needle and needle not in task.title.lower() and needle not in (task.description or "").lower():
            continue
        badge = " (pending sync)" if is_sync_pending(task) else ""
        tracking = " [tracking]" if task.is_tracking else ""
        print(
            f"{task.id}  [{status_label(task.status)}] {task.title}{badge}{tracking}  "
            f"{format_minutes(task.actual_minutes)}/{format_minutes(task.estimated_minutes)}"
        )
    stats = task_stats(tasks)
    print(
        f"{stats['done']}/{stats['total']} done, {service.pending_count()} queued, "
        f"variance {stats['variance']}%"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("--offline", action="store_true", help="Never contact the server")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Create a task")
    add.add_argument("title")
    add.add_argument("-d", "--description", default="")
    add.add_argument("-s", "--status", choices=STATUSES, default=STATUS_PENDING)
    add.add_argument("-e", "--estimate", type=int, default=30, help="Estimated minutes")

    lst = sub.add_parser("list", help="Show tasks")
    lst.add_argument("--filter", choices=("all", "active", "completed"), default="all")
    lst.add_argument("--search", help="Only tasks whose title or description contains this text")

    edit = sub.add_parser("edit", help="Edit a task")
    edit.add_argument("task_id")
    edit.add_argument("--title")
    edit.add_argument("--description")
    edit.add_argument("--estimate", type=int)

    status = sub.add_parser("status", help="Change a task status")
    status.add_argument("task_id")
    status.add_argument("value", choices=STATUSES)

    for name, help_text in (
        ("done", "Complete a task"),
        ("track", "Start or stop time tracking"),
        ("rm", "Delete a task"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("task_id")

    sub.add_parser("sync", help="Replay queued changes now")
    sub.add_parser("pending", help="Show queued changes")
    watch = sub.add_parser("watch", help="Sync periodically")
    watch.add_argument("--interval", type=int, default=SYNC.auto_sync_interval_sec)

    configure = sub.add_parser("configure", help="Store connection settings")
    configure.add_argument("--api-url")
    configure.add_argument("--token")
    configure.add_argument("--probe-url")
    configure.add_argument("--force-offline", choices=("on", "off"))
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "configure":
        changes = {
            "api_base_url": args.api_url,
            "auth_token": args.token,
            "probe_url": args.probe_url,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        if args.force_offline:
            changes["force_offline"] = args.force_offline == "on"
        cfg = update_config(**changes)
        print(f"API: {cfg.api_base_url} (offline mode: {'on' if cfg.force_offline else 'off'})")
        return 0

    init_db()
    service, reconciler = _build(args)

    try:
        if args.command == "add":
            task = service.add(args.title, args.description, args.status, args.estimate)
            print(task.id)
        elif args.command == "list":
            return _cmd_list(service, args)
        elif args.command == "edit":
            fields = {
                "title": args.title,
                "description": args.description,
                "estimated_minutes": args.estimate,
            }
            service.update(args.task_id, **{k: v for k, v in fields.items() if v is not None})
        elif args.command == "status":
            service.change_status(args.task_id, args.value)
        elif args.command == "done":
            service.complete(args.task_id)
        elif args.command == "track":
            task = service.toggle_tracking(args.task_id)
            print("tracking" if task.is_tracking else f"stopped at {format_minutes(task.actual_minutes)}")
        elif args.command == "rm":
            service.remove(args.task_id)
        elif args.command == "sync":
            _print_report(SyncScheduler(reconciler).trigger())
        elif args.command == "pending":
            for op in sorted(service.outbox.list_all(), key=lambda o: o.enqueued_at):
                print(f"{op.enqueued_at.isoformat()}  {op.kind:<6} {op.client_ref or op.server_ref}")
        elif args.command == "watch":
            reconciler.subscribe(_print_report)
            try:
                asyncio.run(SyncScheduler(reconciler, interval_sec=args.interval).run_forever())
            except KeyboardInterrupt:
                pass
    except KeyError as exc:
        print(f"Unknown task: {exc.args[0]}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
