"""Terminal rendering for the chatguard CLI.

Rich output for preflight results, the check registry and per-IP abuse
state, plus the questionary confirmation used by destructive commands.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Sequence

import questionary
from questionary import Style as QStyle
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

if TYPE_CHECKING:
    from chatguard.preflight.check import PreflightCheck
    from chatguard.preflight.types import CheckRunRecord

console = Console(
    theme=Theme({"pass": "green", "fail": "red", "muted": "dim", "label": "bold"}),
    highlight=False,
)

_PROMPT_STYLE = QStyle([("qmark", "fg:red bold"), ("question", "bold")])

# Severity -> style, matching the display payload's severity values
_SEVERITY = {"info": "dim", "warning": "yellow", "error": "bold red"}

_WIDTH = 88


def _width() -> int:
    return min(console.width, _WIDTH)


def success(msg: str) -> None:
    console.print(f"  [pass]✓[/] {msg}")


def error(msg: str, hint: Optional[str] = None) -> None:
    console.print(f"  [fail]✗ {msg}[/]")
    if hint:
        console.print(f"    [muted]{hint}[/]")


def warning(msg: str) -> None:
    console.print(f"  [yellow]![/] {msg}")


def note(msg: str) -> None:
    console.print(f"  [muted]{msg}[/]")


def _table(title: str, *columns: str) -> Table:
    table = Table(
        title=title,
        title_justify="left",
        header_style="muted",
        border_style="muted",
        width=_width(),
        padding=(0, 1),
    )
    for column in columns:
        table.add_column(column)
    return table


def print_blocked(check_name: Optional[str], payload: Mapping[str, Any]) -> None:
    """Summarize a blocked run from its display payload."""
    severity = payload.get("severity", "error")
    console.print()
    console.print(
        Text.assemble(
            "  Blocked by ",
            (check_name or "unknown", "label"),
            "  ",
            (severity, _SEVERITY.get(severity, "")),
        )
    )
    for label, key in (("Code", "code"), ("Title", "error"), ("Message", "message")):
        console.print(f"    [label]{label}:[/] {payload.get(key, '')}")


def print_check_records(records: Iterable["CheckRunRecord"]) -> None:
    table = _table("Checks", "Check", "Status", "Code", "Time")
    for record in records:
        table.add_row(
            record.check_name,
            "[pass]pass[/]" if record.result.passed else "[fail]fail[/]",
            record.result.code,
            f"{record.execution_time_ms:.1f}ms",
        )
    console.print()
    console.print(table)


def print_registry(checks: Sequence["PreflightCheck"], overrides: Mapping[str, bool]) -> None:
    """List checks by tier. Overrides come from the preflight.checks setting."""
    table = _table("Preflight Checks", "Tier", "Name", "Enabled", "Description")
    for item in sorted(checks, key=lambda c: c.tier):
        enabled = overrides.get(item.name, item.enabled)
        table.add_row(
            str(item.tier),
            item.name,
            "[pass]yes[/]" if enabled else "[muted]no[/]",
            item.description,
        )
    console.print()
    console.print(table)


def print_denied_ips(ips: Sequence[str]) -> None:
    if not ips:
        note("Deny list is empty")
        return
    table = _table("Denied IPs", "IP")
    for ip in ips:
        table.add_row(ip)
    console.print()
    console.print(table)


def print_ip_status(ip: str, fields: Mapping[str, str]) -> None:
    body = "\n".join(f"[label]{k}:[/] {v}" for k, v in fields.items())
    console.print()
    console.print(
        Panel(body, title=ip, title_align="left", border_style="muted", width=_width())
    )


def spinner(message: str) -> Any:
    return console.status(f"  {message}", spinner="dots")


def confirm(message: str, default: bool = False) -> bool:
    """Ask yes/no. Ctrl-C exits without changing anything."""
    answer = questionary.confirm(message, default=default, style=_PROMPT_STYLE).ask()
    if answer is None:
        raise SystemExit(0)
    return answer


def is_interactive() -> bool:
    return sys.stdin.isatty()
