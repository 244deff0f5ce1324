from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .analysis import VIEW_NAMES, AnalysisResult, FollowerAnalyzer, search
from .config import load_config, resolve_storage_path
from .config_schema import AppConfig
from .errors import ConfigError, ExportError, ParseError, StorageUnavailable, ValidationError
from .preferences import load_theme, save_theme
from .report import export_report, resolve_profile_url
from .run_log import RunLogger
from .storage import SnapshotStore, open_snapshot_store
from .whitelist import add_to_whitelist, load_whitelist, remove_from_whitelist


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ghosttrace")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (defaults are used when omitted).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser(
        "analyze",
        help="Compare a followers export and a following export and save a snapshot.",
    )
    analyze.add_argument("files", nargs="+", help="followers_1.json and following.json")
    analyze.add_argument("--export", choices=VIEW_NAMES, default=None, help="Also write this view as a report.")
    analyze.add_argument("--format", choices=("csv", "xlsx"), default=None)
    analyze.add_argument("--out", default=None, help="Report output directory.")
    analyze.set_defaults(_handler=_cmd_analyze)

    history = subparsers.add_parser("history", help="List recent snapshots.")
    history.add_argument("--limit", type=int, default=None)
    history.set_defaults(_handler=_cmd_history)

    show = subparsers.add_parser("show", help="Print a view of a stored snapshot.")
    show.add_argument("--snapshot", type=int, default=None, help="Snapshot id (latest by default).")
    show.add_argument("--view", choices=VIEW_NAMES, default="not_following_back")
    show.add_argument("--search", default=None, help="Only users whose name contains this text.")
    show.set_defaults(_handler=_cmd_show)

    export = subparsers.add_parser("export", help="Write a view of a stored snapshot as a report.")
    export.add_argument("--view", choices=VIEW_NAMES, required=True)
    export.add_argument("--snapshot", type=int, default=None, help="Snapshot id (latest by default).")
    export.add_argument("--format", choices=("csv", "xlsx"), default=None)
    export.add_argument("--out", default=None, help="Report output directory.")
    export.set_defaults(_handler=_cmd_export)

    wl = subparsers.add_parser("whitelist", help="Manage users hidden from not-following-back.")
    wl_sub = wl.add_subparsers(dest="whitelist_command", required=True)
    wl_add = wl_sub.add_parser("add")
    wl_add.add_argument("username")
    wl_add.set_defaults(_handler=_cmd_whitelist_add)
    wl_remove = wl_sub.add_parser("remove")
    wl_remove.add_argument("username")
    wl_remove.set_defaults(_handler=_cmd_whitelist_remove)
    wl_list = wl_sub.add_parser("list")
    wl_list.set_defaults(_handler=_cmd_whitelist_list)

    theme = subparsers.add_parser("theme", help="Print or set the theme preference.")
    theme.add_argument("value", nargs="?", choices=("light", "dark"), default=None)
    theme.set_defaults(_handler=_cmd_theme)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_counts(result: AnalysisResult, store: SnapshotStore) -> None:
    counts = result.counts(load_whitelist(store))
    print(f"snapshot_id={result.snapshot_id if result.snapshot_id is not None else ''}")
    print(f"captured_at={result.captured_at or ''}")
    print(f"has_history={str(result.has_history).lower()}")
    for name, n in counts.items():
        print(f"{name}={n}")


def _resolve_snapshot(analyzer: FollowerAnalyzer, snapshot_id: int | None) -> AnalysisResult:
    if snapshot_id is not None:
        return analyzer.load_snapshot_by_id(snapshot_id)
    latest = analyzer.load_latest()
    if latest is None:
        raise ValidationError("No snapshots stored yet; run `ghosttrace analyze` first")
    return latest


def _write_report(
    cfg: AppConfig,
    result: AnalysisResult,
    store: SnapshotStore,
    *,
    view: str,
    fmt: str | None,
    out: str | None,
    log: RunLogger,
) -> Path:
    records = result.view(view, load_whitelist(store))
    path = export_report(
        records,
        view,
        out or cfg.report.out_dir,
        fmt=fmt or cfg.report.default_format,  # type: ignore[arg-type]
        profile_url_template=cfg.report.profile_url_template,
    )
    log.info("report_exported", view=view, path=str(path), rows=len(records))
    return path


def _cmd_analyze(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    analyzer = FollowerAnalyzer(store, log=log)
    result = analyzer.analyze_files(args.files)

    if result.storage_error:
        _eprint(f"warning: snapshot not saved ({result.storage_error}); history is unavailable")

    _print_counts(result, store)

    if args.export:
        if not result.view(args.export, load_whitelist(store)):
            _eprint(f"notice: no users in {args.export}; no report written")
            return 0

        path = _write_report(
            cfg, result, store, view=args.export, fmt=args.format, out=args.out, log=log
        )
        print(f"report={path}")

    return 0


def _cmd_history(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    limit = args.limit if args.limit is not None else cfg.history.limit
    summaries = FollowerAnalyzer(store, log=log).history(limit)
    if not summaries:
        print("No previous uploads yet")
        return 0

    for s in summaries:
        print(
            f"id={s.snapshot_id} captured_at={s.captured_at} "
            f"followers={s.followers_count} following={s.following_count}"
        )
    return 0


def _cmd_show(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    result = _resolve_snapshot(FollowerAnalyzer(store, log=log), args.snapshot)
    users = search(result.view(args.view, load_whitelist(store)), args.search)

    print(f"snapshot_id={result.snapshot_id}")
    print(f"view={args.view}")
    print(f"count={len(users)}")
    for u in users:
        print(f"@{u.username}\t{resolve_profile_url(u, cfg.report.profile_url_template)}")
    return 0


def _cmd_export(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    result = _resolve_snapshot(FollowerAnalyzer(store, log=log), args.snapshot)
    path = _write_report(cfg, result, store, view=args.view, fmt=args.format, out=args.out, log=log)
    print(f"report={path}")
    return 0


def _require_available(store: SnapshotStore) -> None:
    if not store.available:
        raise StorageUnavailable("Snapshot storage is unavailable; settings cannot be saved")


def _cmd_whitelist_add(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    _require_available(store)
    wl = add_to_whitelist(store, args.username, log=log)
    print(f"whitelist_size={len(wl)}")
    return 0


def _cmd_whitelist_remove(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    _require_available(store)
    wl = remove_from_whitelist(store, args.username, log=log)
    print(f"whitelist_size={len(wl)}")
    return 0


def _cmd_whitelist_list(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    for key in sorted(load_whitelist(store)):
        print(key)
    return 0


def _cmd_theme(args: argparse.Namespace, cfg: AppConfig, store: SnapshotStore, log: RunLogger) -> int:
    if args.value is None:
        print(f"theme={load_theme(store) or ''}")
        return 0

    theme = save_theme(store, args.value)
    log.info("theme_saved", theme=theme)
    print(f"theme={theme}")
    return 0


def _run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)

    with RunLogger.open(cfg.log.path, min_level=cfg.log.min_level) as log:
        log.info("command_started", command=args.command)
        try:
            with open_snapshot_store(resolve_storage_path(cfg), log=log) as store:
                handler = getattr(args, "_handler")
                code = int(handler(args, cfg, store, log))
        except Exception as e:
            log.exception("command_failed", exc=e, command=args.command)
            raise

        log.info("command_completed", command=args.command, exit_code=code)
        return code


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        return _run(args)
    except (ConfigError, ParseError, ValidationError) as e:
        _eprint(str(e))
        return 2
    except (StorageUnavailable, ExportError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
