"""CLI entry point: python -m checkin_tracker.

Usage:
    python -m checkin_tracker init
    python -m checkin_tracker add-site --name Bank --url https://bank.example --email me@example.com
    python -m checkin_tracker list --status pending
    python -m checkin_tracker check-in --all
    python -m checkin_tracker audit
    python -m checkin_tracker export --encrypt --output backup.json
    python -m checkin_tracker import backup.json
    python -m checkin_tracker --self-test
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from checkin_tracker.backends import FileStorage
from checkin_tracker.config import THEMES, load_config
from checkin_tracker.crypto import generate_password, password_strength
from checkin_tracker.errors import DecryptionError, TrackerError, friendly_error, wrap_main
from checkin_tracker.insights import QUICK_FILTERS
from checkin_tracker.journal import ActivityJournal
from checkin_tracker.security import RedactionLevel
from checkin_tracker.state import StateFacade
from checkin_tracker.store import PersistenceStore


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="checkin_tracker",
        description="Track daily check-ins for your site credentials, stored locally.",
    )
    p.add_argument("--data-dir", type=Path, help="Directory holding the tracker data (default: ~/.checkin-tracker)")
    p.add_argument("--env", type=Path, help="Path to a .env file with CHECKIN_* overrides")
    p.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    p.add_argument("--self-test", action="store_true", help="Run invariant self-test suite")
    p.add_argument("--version", action="store_true", help="Show version and exit")

    sub = p.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("init", help="Create or upgrade the data store")

    ls = sub.add_parser("list", help="List sites and today's check-in status")
    ls.add_argument("--search", default="", help="Case-insensitive text filter")
    ls.add_argument("--status", choices=["all", "done", "pending"], default="all")
    ls.add_argument("--category", help="Only sites in this category")
    ls.add_argument("--tag", action="append", dest="tags", metavar="TAG", help="Match any of these tags (repeatable)")
    ls.add_argument("--quick", action="append", choices=sorted(QUICK_FILTERS), metavar="FILTER",
                    help=f"Preset filter, all must match (repeatable): {', '.join(sorted(QUICK_FILTERS))}")
    ls.add_argument("--redaction-level", choices=[lvl.value for lvl in RedactionLevel], default="partial",
                    help="How passwords are shown (default: partial)")
    ls.add_argument("--json", action="store_true", help="Print sites as JSON to stdout")

    add = sub.add_parser("add-site", help="Add a site, optionally with one credential")
    add.add_argument("--name", required=True)
    add.add_argument("--url", required=True)
    add.add_argument("--category")
    add.add_argument("--tag", action="append", dest="tags", metavar="TAG")
    add.add_argument("--notes", default="")
    add.add_argument("--email", help="Email or username of a first credential")
    add.add_argument("--label", default="")
    add.add_argument("--password", default="")

    cred = sub.add_parser("add-credential", help="Add a credential to a site")
    cred.add_argument("site_id")
    cred.add_argument("--email", required=True)
    cred.add_argument("--label", default="")
    cred.add_argument("--password", default="")
    cred.add_argument("--generate", action="store_true", help="Generate a strong password")

    check = sub.add_parser("check-in", help="Mark credentials as checked in today")
    check.add_argument("site_id", nargs="?")
    check.add_argument("credential_id", nargs="?")
    check.add_argument("--all", action="store_true", help="Check in everything still pending today")

    reset = sub.add_parser("reset", help="Clear today's check-in")
    reset.add_argument("site_id", nargs="?")
    reset.add_argument("credential_id", nargs="?")
    reset.add_argument("--all", action="store_true", help="Clear every check-in")

    stats = sub.add_parser("stats", help="Show progress and streaks")
    stats.add_argument("--json", action="store_true", help="Print stats as JSON to stdout")

    audit = sub.add_parser("audit", help="Report weak, reused, expiring passwords and neglected sites")
    audit.add_argument("--days", type=int, help="Neglected after this many days (default: staleDays setting)")
    audit.add_argument("--json", action="store_true", help="Print the report as JSON to stdout")

    exp = sub.add_parser("export", help="Export data as JSON (optionally encrypted) or CSV")
    exp.add_argument("--format", choices=["json", "csv"], default="json")
    exp.add_argument("--output", type=Path, help="Write to file instead of stdout")
    exp.add_argument("--encrypt", action="store_true", help="Encrypt the JSON export with a password")
    exp.add_argument("--password", help="Export password (prompted for when omitted)")
    exp.add_argument("--no-history", action="store_true", help="Leave check-in history out")
    exp.add_argument("--force-insecure-output", action="store_true", help="Skip file permission check")

    imp = sub.add_parser("import", help="Merge sites from an export file")
    imp.add_argument("path", type=Path)
    imp.add_argument("--password", help="Password for an encrypted export (prompted for when needed)")

    gen = sub.add_parser("generate-password", help="Print a random password")
    gen.add_argument("--length", type=int, default=16)
    gen.add_argument("--no-lowercase", action="store_true")
    gen.add_argument("--no-uppercase", action="store_true")
    gen.add_argument("--no-digits", action="store_true")
    gen.add_argument("--no-symbols", action="store_true")

    bk = sub.add_parser("backups", help="List pre-migration backups")
    bk.add_argument("--restore", type=int, metavar="INDEX", help="Restore backup INDEX (0 = newest)")

    theme = sub.add_parser("theme", help="Show or set the theme preference")
    theme.add_argument("value", nargs="?", choices=sorted(THEMES))
    return p


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _failed(state: StateFacade, console: Console, context: str) -> int:
    error = state.store.last_error or TrackerError("operation failed")
    console.print(friendly_error(error, context), style="red", markup=False)
    return 1


def _list(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    from checkin_tracker.output import render_sites

    state.set_filters(
        search=args.search, status=args.status, category=args.category, tags=args.tags or [], quick=args.quick or [],
    )
    sites = state.get_filtered_sites()
    if args.json:
        print(json.dumps([s.to_dict(include_history=False) for s in sites], indent=2, ensure_ascii=False))
        return 0
    if not sites:
        console.print("[yellow]No matching sites.[/yellow]")
        return 0
    render_sites(sites, state.today(), console, RedactionLevel(args.redaction_level))
    return 0


def _add_site(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    data = {"name": args.name, "url": args.url, "notes": args.notes, "tags": args.tags or []}
    if args.category:
        data["category"] = args.category
    if args.email:
        data["credentials"] = [{"email": args.email, "label": args.label, "password": args.password}]
    site = state.add_site(data)
    if site is None:
        return _failed(state, console, "adding the site")
    console.print(f"[green]Added {site.name}[/green] [dim]{site.id}[/dim]")
    return 0


def _add_credential(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    password = generate_password() if args.generate else args.password
    cred = state.add_credential(args.site_id, {"email": args.email, "label": args.label, "password": password})
    if cred is None:
        return _failed(state, console, "adding the credential")
    console.print(f"[green]Added credential[/green] [dim]{cred.id}[/dim] strength: {cred.strength}")
    if args.generate:
        print(password)
    return 0


def _check_in(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    if args.all:
        count = state.mark_all_done()
        console.print(f"[green]Checked in {count} credential(s).[/green]")
        return 0
    if not args.site_id:
        console.print("[red]Give a SITE_ID (and optionally CREDENTIAL_ID), or use --all[/red]")
        return 2
    if args.credential_id:
        targets = [args.credential_id]
    else:
        site = state.get_site(args.site_id)
        if site is None:
            console.print(f"[red]Site not found: {args.site_id}[/red]")
            return 1
        targets = [c.id for c in site.credentials if not c.is_checked_in_on(state.today())]
    for credential_id in targets:
        if not state.check_in_credential(args.site_id, credential_id):
            return _failed(state, console, "checking in")
    console.print(f"[green]Checked in {len(targets)} credential(s).[/green]")
    return 0


def _reset(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    if args.all:
        ok = state.reset_all_credentials()
    elif args.site_id and args.credential_id:
        ok = state.reset_credential(args.site_id, args.credential_id)
    else:
        console.print("[red]Give SITE_ID and CREDENTIAL_ID, or use --all[/red]")
        return 2
    if not ok:
        return _failed(state, console, "resetting check-ins")
    console.print("[green]Reset.[/green]")
    return 0


def _stats(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    progress = state.get_progress_stats()
    analytics = state.get_analytics()
    if args.json:
        print(json.dumps({"progress": progress, "analytics": analytics.to_dict()}, indent=2))
        return 0
    t = Table(title=f"Progress for {state.today()}", show_header=False)
    t.add_column("Metric", style="cyan")
    t.add_column("Value", justify="right")
    t.add_row("Checked in today", f"{progress['checked']}/{progress['total']} ({progress['percentage']}%)")
    t.add_row("Current streak", str(analytics.current_streak))
    t.add_row("Longest streak", str(analytics.longest_streak))
    t.add_row("Total check-ins", str(analytics.total_check_ins))
    t.add_row("Sites added / archived", f"{analytics.sites_added} / {analytics.sites_archived}")
    t.add_row("Last check-in", analytics.last_check_in or "never")
    console.print(t)
    return 0


def _audit(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    from checkin_tracker.output import render_audit

    report = {
        "passwordHealth": state.get_password_health_overview().to_dict(),
        "weak": [r.to_dict() for r in state.find_weak_passwords()],
        "duplicates": [g.to_dict() for g in state.find_duplicate_passwords()],
        "expired": [r.to_dict() for r in state.find_expired_passwords()],
        "expiringSoon": [r.to_dict() for r in state.find_expiring_soon_passwords()],
        "neglected": [s.to_dict() for s in state.get_neglected_sites(args.days)],
        "categories": [c.to_dict() for c in state.get_category_distribution()],
    }
    if args.json:
        print(json.dumps(report, indent=2, ensure_ascii=False))
        return 0
    render_audit(report, console)
    return 0


def _password(given: Optional[str], prompt: str) -> str:
    return given if given else getpass.getpass(prompt)


def _export(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    from checkin_tracker.output import write_export

    encrypt = args.encrypt and args.format == "json"
    password = _password(args.password, "Export password: ") if encrypt else None
    data = asyncio.run(state.export_data(args.format, not args.no_history, encrypt, password))
    if data is None:
        return _failed(state, console, "exporting")
    if args.output:
        return 0 if write_export(data, args.output, args.force_insecure_output, console) else 2
    print(data)
    return 0


def _import(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    text = args.path.read_text(encoding="utf-8")
    password = args.password
    if password is None and '"algorithm"' in text:
        password = _password(None, "Import password: ")
    try:
        ok = asyncio.run(state.import_data(text, password))
    except DecryptionError as exc:
        console.print(friendly_error(exc, "importing"), markup=False)
        return 1
    if not ok:
        return _failed(state, console, "importing")
    console.print(f"[green]Imported. {len(state.get_sites())} site(s) in total.[/green]")
    return 0


def _generate(args: argparse.Namespace, console: Console) -> int:
    password = generate_password(
        args.length,
        lowercase=not args.no_lowercase,
        uppercase=not args.no_uppercase,
        digits=not args.no_digits,
        symbols=not args.no_symbols,
    )
    print(password)
    console.print(f"[dim]strength: {password_strength(password)[1]}[/dim]")
    return 0


def _backups(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    from checkin_tracker.output import render_backups

    if args.restore is not None:
        if not state.store.restore_backup(args.restore):
            return _failed(state, console, "restoring the backup")
        state.init()
        console.print(f"[green]Restored backup {args.restore}.[/green]")
        return 0
    render_backups(state.store.migrator.get_backups(), console)
    return 0


def _theme(state: StateFacade, args: argparse.Namespace, console: Console) -> int:
    if args.value is None:
        print(state.store.get_theme())
        return 0
    if not state.set_theme(args.value):
        return _failed(state, console, "setting the theme")
    console.print(f"[green]Theme set to {args.value}.[/green]")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    _setup_logging(args.verbose)
    console = Console(stderr=True)

    if args.version:
        from checkin_tracker import __version__
        print(f"checkin_tracker {__version__}")
        return 0

    if args.self_test:
        from checkin_tracker.self_test import run_self_test
        ok = asyncio.run(run_self_test(console))
        return 0 if ok else 1

    if not args.command:
        parser.print_help(sys.stderr)
        return 2

    if args.command == "generate-password":
        return _generate(args, console)

    config = load_config(args.env)
    if args.data_dir:
        config.data_dir = args.data_dir.expanduser()
    store = PersistenceStore(
        FileStorage(config.data_dir),
        config=config,
        journal=ActivityJournal(config.data_dir / "activity.log"),
    )
    state = StateFacade(store)
    if not state.init():
        return _failed(state, console, "opening the data store")

    if args.command == "init":
        console.print(
            f"[green]Ready:[/green] {len(state.get_sites())} site(s) in {config.data_dir} "
            f"(schema {state.document.version})"
        )
        return 0

    handlers = {
        "list": _list,
        "add-site": _add_site,
        "add-credential": _add_credential,
        "check-in": _check_in,
        "reset": _reset,
        "stats": _stats,
        "audit": _audit,
        "export": _export,
        "import": _import,
        "backups": _backups,
        "theme": _theme,
    }
    return handlers[args.command](state, args, console)


def run() -> int:
    return wrap_main(main, "running checkin_tracker")


if __name__ == "__main__":
    sys.exit(run())
