#!/usr/bin/env python3
"""CDDA Launcher - command line entry point"""

import argparse
import faulthandler
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from context import LauncherContext
from modinfo_schema import describe
from settings import AppPaths, LauncherSettings

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(message)s"

_handlers: list[logging.Handler] = []


def setup_logging(log_dir: Path, debug: bool = False) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "cddalauncher.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    # repeated main() calls in one process must not stack handlers
    while _handlers:
        old = _handlers.pop()
        root.removeHandler(old)
        old.close()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    _handlers.append(handler)
    if debug:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        _handlers.append(console)
    for h in _handlers:
        root.addHandler(h)
    return logging.getLogger("cddalauncher")


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler cannot go through logging after a hard crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cddalauncher", description="CDDA Launcher")
    parser.add_argument("--data-root", type=Path, help="Override the launcher data directory")
    parser.add_argument("--debug", action="store_true", help="Verbose logging to stderr")
    sub = parser.add_subparsers(dest="area", required=True)

    mods = sub.add_parser("mods", help="Manage installed mods").add_subparsers(dest="action", required=True)
    mods.add_parser("list")
    p = mods.add_parser("install")
    p.add_argument("source", type=Path, help="Mod directory or archive (.zip, .7z, .rar)")
    p = mods.add_parser("uninstall")
    p.add_argument("name")

    saves = sub.add_parser("saves", help="Manage save backups").add_subparsers(dest="action", required=True)
    saves.add_parser("list")
    saves.add_parser("backup")
    p = saves.add_parser("restore")
    p.add_argument("name", nargs="?", help="Backup to restore (latest when omitted)")
    p = saves.add_parser("rename")
    p.add_argument("name")
    p.add_argument("new_name")
    p = saves.add_parser("delete")
    p.add_argument("name")

    packs = sub.add_parser("soundpacks", help="Manage sound packs").add_subparsers(dest="action", required=True)
    packs.add_parser("list")
    p = packs.add_parser("install")
    p.add_argument("source", type=Path)
    p = packs.add_parser("delete")
    p.add_argument("name")

    return parser.parse_args(argv)


# ── Output helpers ────────────────────────────────────────────────────


def _print_progress(percent: int):
    end = "\n" if percent >= 100 else ""
    print(f"\r  {percent:3d}%", end=end, flush=True)


def _report(result) -> int:
    if result.ok:
        return 0
    print(f"Error: {result}", file=sys.stderr)
    return 1


def _not_found(what: str, name: str) -> int:
    print(f"Error: {what} '{name}' not found", file=sys.stderr)
    return 1


# ── Commands ──────────────────────────────────────────────────────────


def _run_mods(ctx: LauncherContext, args) -> int:
    manager = ctx.packages
    if args.action == "list":
        packages = manager.list_all()
        if not packages:
            print("No mods installed.")
        for package in packages:
            info = describe(package.manifest)
            title = f" - {info.name}" if info else ""
            print(f"{package.name}{title} ({len(package.files)} files)")
        return 0

    if args.action == "install":
        result = manager.install_task(args.source, _print_progress).start().join()
        if result.ok:
            print(f"Installed '{result.value.name}' ({len(result.value.files)} files)")
        return _report(result)

    package = manager.get_package(args.name)
    if package is None:
        return _not_found("Mod", args.name)
    result = manager.uninstall(package, on_trashed=lambda p: print(f"Moved to trash: {p}"))
    return _report(result)


def _run_saves(ctx: LauncherContext, args) -> int:
    manager = ctx.saves
    if args.action == "list":
        backups = manager.list_all_backups()
        if not backups:
            print("No backups.")
        for snapshot in backups:
            print(f"{snapshot.name}  {snapshot.modified:%Y-%m-%d %H:%M:%S}  {snapshot.size_mb():.2f} MB")
        return 0

    if args.action == "backup":
        result = manager.backup_current_saves(_print_progress).start().join()
        if result.ok:
            print(f"Created {result.value.name}")
        return _report(result)

    if args.action == "restore" and args.name is None:
        snapshot = manager.get_latest_backup()
        if snapshot is None:
            print("Error: no backups to restore", file=sys.stderr)
            return 1
    else:
        snapshot = manager.get_backup(args.name)
        if snapshot is None:
            return _not_found("Backup", args.name)

    if args.action == "restore":
        result = manager.restore_backup(snapshot, _print_progress).start().join()
        if result.ok:
            print(f"Restored {snapshot.name}")
            if result.value is not None:
                print(f"Previous saves moved to {result.value}")
        return _report(result)
    if args.action == "rename":
        result = manager.rename_backup(snapshot, args.new_name)
        if result.ok:
            print(f"Renamed to {result.value.name}")
        return _report(result)
    return _report(manager.delete_backup(snapshot))


def _run_soundpacks(ctx: LauncherContext, args) -> int:
    manager = ctx.soundpacks
    if args.action == "list":
        packs = manager.list_all()
        if not packs:
            print("No sound packs installed.")
        for pack in packs:
            print(f"{pack.name}  {pack.size / (1024 * 1024):.2f} MB")
        return 0

    if args.action == "install":
        result = manager.install_task(args.source, _print_progress).start().join()
        if result.ok:
            print(f"Installed sound pack '{result.value.name}'")
        return _report(result)

    pack = next((p for p in manager.list_all() if p.name == args.name), None)
    if pack is None:
        return _not_found("Sound pack", args.name)
    result = manager.delete(pack)
    if result.ok:
        print(f"Moved to trash: {result.value}")
    return _report(result)


COMMANDS = {
    "mods": _run_mods,
    "saves": _run_saves,
    "soundpacks": _run_soundpacks,
}


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = LauncherSettings.load(args.data_root)
    debug = args.debug or settings.debug

    log_dir = AppPaths.from_settings(settings).log_dir
    logger = setup_logging(log_dir, debug)
    if argv is None:
        install_crash_handler(logger, log_dir)
    logger.info("Starting CDDA Launcher (%s %s)", args.area, args.action)

    ctx = LauncherContext.build(settings)
    try:
        return COMMANDS[args.area](ctx, args)
    finally:
        ctx.shutdown()


if __name__ == "__main__":
    sys.exit(main())
