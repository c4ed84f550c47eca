import argparse
import json
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from .action_queue import ActionQueue
from .cleanup import cleanup_stale_drafts
from .config import Settings, load_settings
from .connectivity import ConnectivityMonitor
from .constants import DRAFTS_NAMESPACE
from .debounce import DebouncedWriter
from .env import load_env
from .logger import get_logger
from .models import ActionType, Job, JobStatus, UserProfile
from .ranking import compute_match, get_recommendations, rank_candidates
from .schema import validate_job, validate_profile
from .session import SessionContext
from .storage import (
    PersistentStore,
    QuotaExceededError,
    get_job,
    get_jobs,
    get_users,
    open_store,
    save_job,
    save_user,
    set_job_status,
)


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    if getattr(args, "db", None):
        settings.db_path = Path(args.db)
    return settings


def _store(settings: Settings) -> PersistentStore:
    return open_store(settings.db_path, prefix=settings.prefix, quota_bytes=settings.quota_bytes)


def _queue(store: PersistentStore, settings: Settings) -> ActionQueue:
    return ActionQueue(
        store,
        replay_delay=settings.replay_delay_ms / 1000,
        max_attempts=settings.max_attempts,
        backoff_base_ms=settings.backoff_base_ms,
        backoff_max_ms=settings.backoff_max_ms,
    )


def _monitor(settings: Settings, store: PersistentStore) -> ConnectivityMonitor:
    return ConnectivityMonitor(
        url=settings.heartbeat_url,
        timeout=settings.heartbeat_timeout,
        notifier=store.notifier,
    )


def _require_user(session: SessionContext) -> UserProfile:
    user = session.current_user()
    if user is None:
        raise SystemExit("No active session. Run 'matchng login --user <id>' first.")
    return user


def _load_records(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def _is_online(args: argparse.Namespace, settings: Settings, store: PersistentStore) -> bool:
    if getattr(args, "offline", False):
        return False
    if getattr(args, "online", False):
        return True
    return _monitor(settings, store).check()


def cmd_import_users(args: argparse.Namespace) -> None:
    settings = _settings(args)
    store = _store(settings)
    counts = {"new": 0, "updated": 0, "no-change": 0, "failed": 0, "validation_error": 0}
    for record in _load_records(Path(args.input)):
        errors = validate_profile(record)
        if errors:
            print(f"[validation_error] {record.get('id')} - {errors}")
            counts["validation_error"] += 1
            continue
        outcome = save_user(store, UserProfile.from_dict(record))
        counts[outcome["status"]] += 1
        print(f"[{outcome['status']}] {record['id']}")
    print("Done. " + " ".join(f"{k}={v}" for k, v in counts.items()))


def cmd_import_jobs(args: argparse.Namespace) -> None:
    settings = _settings(args)
    store = _store(settings)
    counts = {"new": 0, "updated": 0, "no-change": 0, "failed": 0, "validation_error": 0}
    for record in _load_records(Path(args.input)):
        errors = validate_job(record)
        if errors:
            print(f"[validation_error] {record.get('id')} - {errors}")
            counts["validation_error"] += 1
            continue
        outcome = save_job(store, Job.from_dict(record))
        counts[outcome["status"]] += 1
        print(f"[{outcome['status']}] {record['id']}")
    print("Done. " + " ".join(f"{k}={v}" for k, v in counts.items()))


def cmd_list_jobs(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    jobs = get_jobs(store)
    if args.status:
        jobs = [j for j in jobs if j.status.value == args.status]
    if not jobs:
        print("No jobs in store.")
        return
    print(f"Found {len(jobs)} jobs:\n")
    for job in jobs:
        print(f"ID: {job.id}")
        print(f"  Title: {job.title}")
        print(f"  Industry: {job.industry}")
        print(f"  Location: {'Remote' if job.is_remote else f'{job.location.city}, {job.location.state}'}")
        print(f"  Status: {job.status.value}")
        print()


def cmd_login(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    try:
        user = SessionContext(store).login(args.user)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Logged in as {user.full_name or user.id}")


def cmd_logout(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    SessionContext(store).logout()
    print("Logged out.")


def cmd_recommend(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    user = _require_user(SessionContext(store))
    matches = get_recommendations(user, get_jobs(store))[: args.limit]
    if not matches:
        print("No matches. Complete your profile (primary industry, primary skill, city) or check back later.")
        return
    print(f"Top matches for {user.full_name or user.id}:")
    for i, m in enumerate(matches, 1):
        print(
            f"{i}. {m.job.title} [{m.job.id}] {m.score_final * 100:.0f}% "
            f"(skill {m.score_skill:.2f}, location {m.score_location:.2f}, trend {m.score_trend:.2f})"
        )


def cmd_match(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    user = _require_user(SessionContext(store))
    job = get_job(store, args.job)
    if job is None:
        raise SystemExit(f"Unknown job: {args.job}")
    m = compute_match(user, job)
    print(f"{job.title}: {m.score_final * 100:.0f}%")
    print(f"  Skill: {m.score_skill:.2f}")
    print(f"  Location: {m.score_location:.2f}")
    print(f"  Trend: {m.score_trend:.2f}")


def cmd_candidates(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    job = get_job(store, args.job)
    if job is None:
        raise SystemExit(f"Unknown job: {args.job}")
    results = rank_candidates(job, get_users(store))[: args.limit]
    if not results:
        print("No suitable candidates.")
        return
    print(f"Candidates for {job.title}:")
    for i, c in enumerate(results, 1):
        print(f"{i}. {c.seeker.full_name or c.seeker.id} [{c.seeker.id}] {c.score_final * 100:.0f}%")


def _connect(
    args: argparse.Namespace,
    settings: Settings,
    store: PersistentStore,
    queue: ActionQueue,
    session: SessionContext,
) -> bool:
    """Probe connectivity with queued actions replayed on the online transition."""
    if getattr(args, "offline", False):
        return False
    monitor = _monitor(settings, store)
    queue.attach(monitor, session)
    if getattr(args, "online", False):
        monitor.set_online(True)
    else:
        monitor.check()
    return monitor.is_online


def _dispatch(args: argparse.Namespace, action_type: ActionType) -> None:
    settings = _settings(args)
    store = _store(settings)
    session = SessionContext(store)
    _require_user(session)
    if get_job(store, args.job) is None:
        raise SystemExit(f"Unknown job: {args.job}")

    queue = _queue(store, settings)
    backlog = len(queue)
    online = _connect(args, settings, store, queue, session)
    if online and backlog:
        print(f"Replayed queued actions, {len(queue)} still pending")
    try:
        queued = queue.dispatch(action_type, {"jobId": args.job}, session, online)
    except QuotaExceededError as e:
        raise SystemExit(f"Storage is full, drafts were cleared. Try again. ({e})")
    if queued is not None:
        print(f"Offline: {action_type.value} queued ({queued.id})")
    else:
        print(f"{action_type.value} applied for job {args.job}")


def cmd_apply(args: argparse.Namespace) -> None:
    _dispatch(args, ActionType.APPLY)


def cmd_save(args: argparse.Namespace) -> None:
    _dispatch(args, ActionType.SAVE_JOB)


def cmd_job_status(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    job = set_job_status(store, args.job, JobStatus(args.status))
    if job is None:
        raise SystemExit(f"Unknown job: {args.job}")
    print(f"Job {job.id} is now {job.status.value}")


def cmd_queue(args: argparse.Namespace) -> None:
    settings = _settings(args)
    queue = _queue(_store(settings), settings)
    if args.requeue_dead:
        print(f"Requeued {queue.requeue_dead()} dead-lettered actions.")
    pending = queue.list_pending()
    dead = queue.list_dead()
    print(f"Pending: {len(pending)}  Dead-lettered: {len(dead)}")
    for a in pending:
        print(f"  [{a.type.value}] {a.id} job={a.payload.get('jobId')} retries={a.retry_count}")
    for a in dead:
        print(f"  [DEAD {a.type.value}] {a.id} job={a.payload.get('jobId')} error={a.last_error}")


def cmd_sync(args: argparse.Namespace) -> None:
    settings = _settings(args)
    store = _store(settings)
    queue = _queue(store, settings)
    if not queue.list_pending():
        print("Nothing to sync.")
        return
    if not _is_online(args, settings, store):
        print("Still offline. Actions remain queued.")
        return
    summary = queue.replay_all(SessionContext(store))
    print("Sync done. " + " ".join(f"{k}={v}" for k, v in summary.items()))
    get_logger().log_metrics_summary()


def cmd_usage(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    print(f"Storage usage: {store.get_usage():.2f}%")


def cmd_draft(args: argparse.Namespace) -> None:
    settings = _settings(args)
    store = _store(settings)
    key = f"{DRAFTS_NAMESPACE}:{args.name}"
    if not args.value:
        value = store.get_item(key)
        print(json.dumps(value, indent=2) if value is not None else f"No draft named {args.name}.")
        return
    try:
        values = [json.loads(v) for v in args.value]
    except json.JSONDecodeError as e:
        raise SystemExit(f"Draft value must be JSON: {e}")

    # Successive autosave states collapse into one write of the last
    writer = DebouncedWriter(store, key, delay=settings.debounce_ms / 1000)
    for value in values:
        writer.set(value)
    if writer.flush():
        print(f"Draft {args.name} saved ({len(values)} updates, 1 write).")
    else:
        print(f"Draft {args.name} not saved.")


def cmd_cleanup(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    before, after = cleanup_stale_drafts(store, days=args.days)
    print(f"Drafts: {before} before, {after} after ({before - after} removed)")


def main():
    load_env()
    parser = argparse.ArgumentParser(prog="matchng", description="matchNG job matching and offline store")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite store (default: MATCHNG_DB_PATH or data/matchng.db)")

    subparsers = parser.add_subparsers(dest="command")

    iu = subparsers.add_parser("import-users", help="Import profiles from a JSON file (object or list)")
    iu.add_argument("--input", required=True, help="Path to profiles JSON")
    iu.set_defaults(func=cmd_import_users)

    ij = subparsers.add_parser("import-jobs", help="Import job postings from a JSON file (object or list)")
    ij.add_argument("--input", required=True, help="Path to jobs JSON")
    ij.set_defaults(func=cmd_import_jobs)

    lj = subparsers.add_parser("list-jobs", help="List stored jobs")
    lj.add_argument("--status", choices=[s.value for s in JobStatus], help="Only jobs with this status")
    lj.set_defaults(func=cmd_list_jobs)

    li = subparsers.add_parser("login", help="Set the active user")
    li.add_argument("--user", required=True, help="User id")
    li.set_defaults(func=cmd_login)

    lo = subparsers.add_parser("logout", help="Clear the active user")
    lo.set_defaults(func=cmd_logout)

    rec = subparsers.add_parser("recommend", help="Ranked job recommendations for the active user")
    rec.add_argument("--limit", type=int, default=10, help="Maximum results (default 10)")
    rec.set_defaults(func=cmd_recommend)

    mt = subparsers.add_parser("match", help="Score one job for the active user")
    mt.add_argument("--job", required=True, help="Job id")
    mt.set_defaults(func=cmd_match)

    cd = subparsers.add_parser("candidates", help="Rank seekers for a job")
    cd.add_argument("--job", required=True, help="Job id")
    cd.add_argument("--limit", type=int, default=10, help="Maximum results (default 10)")
    cd.set_defaults(func=cmd_candidates)

    for name, func, help_text in (
        ("apply", cmd_apply, "Apply to a job (queued when offline)"),
        ("save", cmd_save, "Toggle a saved job (queued when offline)"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--job", required=True, help="Job id")
        mode = p.add_mutually_exclusive_group()
        mode.add_argument("--offline", action="store_true", help="Skip the connectivity probe and queue")
        mode.add_argument("--online", action="store_true", help="Skip the connectivity probe and write directly")
        p.set_defaults(func=func)

    js = subparsers.add_parser("job-status", help="Change a job's status")
    js.add_argument("--job", required=True, help="Job id")
    js.add_argument("--status", required=True, choices=[s.value for s in JobStatus])
    js.set_defaults(func=cmd_job_status)

    qu = subparsers.add_parser("queue", help="Show pending and dead-lettered actions")
    qu.add_argument("--requeue-dead", action="store_true", help="Move dead-lettered actions back to pending")
    qu.set_defaults(func=cmd_queue)

    sy = subparsers.add_parser("sync", help="Replay queued actions if online")
    sy.add_argument("--online", action="store_true", help="Skip the connectivity probe")
    sy.set_defaults(func=cmd_sync)

    us = subparsers.add_parser("usage", help="Show storage usage")
    us.set_defaults(func=cmd_usage)

    dr = subparsers.add_parser("draft", help="Save or show autosaved form state")
    dr.add_argument("--name", required=True, help="Draft name, e.g. onboarding")
    dr.add_argument(
        "--value",
        action="append",
        help="JSON value to save; repeat for successive edits (only the last is written); omit to show the draft",
    )
    dr.set_defaults(func=cmd_draft)

    cl = subparsers.add_parser("cleanup", help="Remove stale drafts")
    cl.add_argument("--days", type=int, default=7, help="Keep drafts newer than this many days (default 7)")
    cl.set_defaults(func=cmd_cleanup)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
