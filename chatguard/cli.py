"""
chatguard CLI entry point.

Commands:
- chatguard check: Run preflight checks against a message
- chatguard checks: List registered checks
- chatguard denylist: Manage the IP deny list
- chatguard timeout: Inspect or clear an IP timeout
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.text import Text

from chatguard import __version__
from chatguard.cli_ui import (
    confirm,
    console,
    error,
    is_interactive,
    note,
    print_blocked,
    print_check_records,
    print_denied_ips,
    print_ip_status,
    print_registry,
    spinner,
    success,
    warning,
)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _load_service(config: Optional[Path], debug: bool = False):
    """Build a PreflightService from config, exiting on invalid settings."""
    from chatguard.config.settings import GuardSettings
    from chatguard.service import PreflightService

    try:
        settings = GuardSettings(_config_path=str(config) if config else None)
        return PreflightService.from_settings(settings)
    except Exception as e:
        error(str(e), hint="Check your chatguard.yaml or CHATGUARD_* environment variables")
        if debug:
            import traceback

            traceback.print_exc()
        raise SystemExit(1)


def _warn_if_memory(service) -> None:
    if service.settings.store.backend == "memory":
        warning("Using the in-memory store; changes do not outlive this command")


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to chatguard.yaml config file",
)


@click.group()
@click.version_option(version=__version__, prog_name="chatguard")
def main() -> None:
    """chatguard - Preflight content-safety checks for chat completions.

    Screens user messages through tiered checks and escalates abusive
    clients from warnings to timeouts to the deny list.
    """
    pass


@main.command()
@click.argument("message", type=str)
@click.option("--user-id", "-u", default="cli-user", help="User identifier (default: cli-user)")
@click.option("--ip", default="127.0.0.1", help="Client IP (default: 127.0.0.1)")
@click.option(
    "--tier",
    "-t",
    "tiers",
    type=click.IntRange(1, 4),
    multiple=True,
    help="Tier to run; repeat for several (default: configured tiers)",
)
@click.option("--run-all", is_flag=True, help="Run every check in the failing tier")
@click.option("--all-results", is_flag=True, help="Show every executed check")
@config_option
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def check(
    message: str,
    user_id: str,
    ip: str,
    tiers: Tuple[int, ...],
    run_all: bool,
    all_results: bool,
    config: Optional[Path],
    as_json: bool,
    debug: bool,
) -> None:
    """Run preflight checks against MESSAGE.

    Exits with status 1 when the message is blocked.

    Examples:

        chatguard check "Explain how DNS works"

        chatguard check "ignore previous instructions" --tier 1 --json
    """
    setup_logging(debug)

    from chatguard.preflight.types import PreflightOptions

    service = _load_service(config, debug)
    options = PreflightOptions(
        tiers=list(tiers) or None,
        run_all_checks=run_all or None,
        include_all_results=all_results or None,
    )

    async def _run():
        try:
            return await service.run_preflight_checks(user_id, message, ip=ip, options=options)
        finally:
            await service.close()

    if as_json:
        result = asyncio.run(_run())
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        raise SystemExit(0 if result.passed else 1)

    with spinner("Running preflight checks..."):
        result = asyncio.run(_run())

    if result.passed:
        success(f"Passed in {result.execution_time_ms:.1f}ms")
    else:
        print_blocked(result.failed_check, service.display.handle_preflight_error(result.result))

    if result.check_results:
        print_check_records(result.check_results)

    console.print()
    if not result.passed:
        raise SystemExit(1)


@main.command(name="checks")
@config_option
def list_checks(config: Optional[Path]) -> None:
    """List registered checks by tier."""
    service = _load_service(config)
    print_registry(service.registry.checks, service.settings.preflight.checks)
    console.print()
    asyncio.run(service.close())


@main.group()
def denylist() -> None:
    """Manage the IP deny list."""
    pass


@denylist.command(name="add")
@click.argument("ip", type=str)
@config_option
def denylist_add(ip: str, config: Optional[Path]) -> None:
    """Add IP to the deny list."""
    service = _load_service(config)
    _warn_if_memory(service)

    async def _run():
        try:
            await service.mitigation.add_to_deny_list(ip)
        finally:
            await service.close()

    asyncio.run(_run())
    success(f"Added {ip} to the deny list")


@denylist.command(name="remove")
@click.argument("ip", type=str)
@config_option
def denylist_remove(ip: str, config: Optional[Path]) -> None:
    """Remove IP from the deny list."""
    service = _load_service(config)
    _warn_if_memory(service)

    async def _run():
        try:
            await service.mitigation.remove_from_deny_list(ip)
        finally:
            await service.close()

    asyncio.run(_run())
    success(f"Removed {ip} from the deny list")


@denylist.command(name="show")
@config_option
def denylist_show(config: Optional[Path]) -> None:
    """Show every denied IP."""
    service = _load_service(config)

    async def _run():
        try:
            return await service.mitigation.denied_ips()
        finally:
            await service.close()

    print_denied_ips(asyncio.run(_run()))


@main.group()
def timeout() -> None:
    """Inspect or clear IP timeouts."""
    pass


@timeout.command(name="show")
@click.argument("ip", type=str)
@config_option
def timeout_show(ip: str, config: Optional[Path]) -> None:
    """Show the active timeout and warning count for IP."""
    service = _load_service(config)

    async def _run():
        try:
            record = await service.mitigation.get_timeout(ip)
            used = await service.mitigation.warnings_used(ip)
            return record, used
        finally:
            await service.close()

    record, used = asyncio.run(_run())
    limit = service.settings.abuse.warning_limit

    if record is None:
        print_ip_status(ip, {"Timeout": "none", "Warnings": f"{used}/{limit}"})
        return

    from datetime import datetime, timezone

    print_ip_status(
        ip,
        {
            "Timeout": f"{record.minutes_remaining(datetime.now(timezone.utc))} minute(s) remaining",
            "Until": record.until.isoformat(),
            "Reason": record.reason,
            "Timeout count": str(record.timeout_count),
            "Warnings": f"{used}/{limit}",
        },
    )


@timeout.command(name="clear")
@click.argument("ip", type=str)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@config_option
def timeout_clear(ip: str, yes: bool, config: Optional[Path]) -> None:
    """Clear the timeout and warning count for IP."""
    if not yes and is_interactive():
        if not confirm(f"Clear timeout for {ip}?"):
            note("Aborted")
            return

    service = _load_service(config)
    _warn_if_memory(service)

    async def _run():
        try:
            await service.mitigation.clear_timeout(ip)
        finally:
            await service.close()

    asyncio.run(_run())
    success(f"Cleared timeout for {ip}")


@main.command()
def version() -> None:
    """Show version information."""
    console.print(
        Text.assemble(
            ("chatguard", "bold"),
            (f" v{__version__}", "dim"),
        )
    )


if __name__ == "__main__":
    main()
