"""Output formatting: Rich tables for the CLI and permission-checked export files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from checkin_tracker.backups import Backup
from checkin_tracker.models import Site
from checkin_tracker.security import RedactionLevel, check_output_permissions, redact_secret

_STRENGTH_COLORS = {
    "Very Weak": "red bold",
    "Weak": "red",
    "Moderate": "yellow",
    "Good": "green",
    "Strong": "green bold",
    "Very Strong": "green bold",
}


def render_sites(
    sites: list[Site],
    today: str,
    console: Optional[Console] = None,
    redaction_level: RedactionLevel = RedactionLevel.PARTIAL,
) -> None:
    """Print one row per credential, grouped by site."""
    console = console or Console()
    table = Table(title=f"Check-ins for {today}", show_lines=True)
    table.add_column("Site", style="cyan")
    table.add_column("Credential")
    table.add_column("Email")
    table.add_column("Password")
    table.add_column("Strength")
    table.add_column("Today")

    for site in sites:
        site_cell = Text(site.name)
        site_cell.append(f"\n{site.id}", style="dim")
        if not site.credentials:
            table.add_row(site_cell, "[dim]no credentials[/dim]", "", "", "", "")
            continue
        for cred in site.credentials:
            email = cred.email if isinstance(cred.email, str) else "[encrypted]"
            done = cred.is_checked_in_on(today)
            color = _STRENGTH_COLORS.get(cred.strength, "white")
            table.add_row(
                site_cell,
                Text(f"{cred.label or '-'}\n{cred.id}"),
                Text(email),
                Text(redact_secret(cred.password, redaction_level)),
                f"[{color}]{cred.strength}[/{color}]",
                "[green]done[/green]" if done else "[yellow]pending[/yellow]",
            )
            site_cell = Text("")

    console.print(table)


def render_backups(backups: list[Backup], console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title=f"Backups ({len(backups)})")
    table.add_column("#", justify="right")
    table.add_column("Version", style="cyan")
    table.add_column("Taken")
    table.add_column("Sites", justify="right")
    for index, backup in enumerate(backups):
        sites = backup.data.get("sites") if isinstance(backup.data, dict) else None
        table.add_row(str(index), backup.version, backup.timestamp, str(len(sites)) if isinstance(sites, list) else "?")
    console.print(table)


def render_audit(report: dict, console: Optional[Console] = None) -> None:
    """Print the password health summary and one row per finding.

    ``report`` is the JSON shape built by the ``audit`` command.
    """
    console = console or Console()
    health = report["passwordHealth"]
    summary = Table(title="Password health", show_header=False)
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", justify="right")
    summary.add_row("Credentials", str(health["total"]))
    summary.add_row("Strong", f"[green]{health['strong']}[/green] ({health['strongPercent']}%)")
    summary.add_row("Moderate", f"[yellow]{health['moderate']}[/yellow] ({health['moderatePercent']}%)")
    summary.add_row("Weak or unknown", f"[red]{health['weak']}[/red] ({health['weakPercent']}%)")
    console.print(summary)

    findings = Table(title="Findings")
    findings.add_column("Issue", style="bold")
    findings.add_column("Site", style="cyan")
    findings.add_column("Credential")
    for issue, key in (("weak", "weak"), ("expired", "expired"), ("expiring soon", "expiringSoon")):
        for ref in report[key]:
            findings.add_row(issue, ref["siteName"], Text(ref["label"] or ref["email"]))
    for group in report["duplicates"]:
        for ref in group["credentials"]:
            findings.add_row(f"reused x{group['count']}", ref["siteName"], Text(ref["label"] or ref["email"]))
    for site in report["neglected"]:
        since = "never checked in" if site["daysSince"] is None else f"{site['daysSince']} days ago"
        findings.add_row("neglected", site["name"], since)

    if findings.row_count:
        console.print(findings)
    else:
        console.print("[green]No findings.[/green]")


def write_export(
    payload: str,
    path: Path,
    force_insecure: bool = False,
    console: Optional[Console] = None,
) -> bool:
    """Write an export to ``path``. Returns True on success."""
    console = console or Console(stderr=True)
    if not check_output_permissions(path, force=force_insecure):
        console.print(
            f"[red]Refusing to write to {path}: it is a link or world-readable. "
            f"Use --force-insecure-output to override.[/red]"
        )
        return False
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(payload + "\n")
    console.print(f"[green]Export written to {path}[/green]")
    return True
