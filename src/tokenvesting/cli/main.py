#!/usr/bin/env python3
"""
Token vesting CLI - read-only inspection of allocations and schedules.

Commands:
- leaf: leaf hash for an allocation tuple
- verify: check a merkle proof against a commitment root
- schedule: vested amounts of a schedule at chosen timestamps
- delegation-digest: message hash the delegation authority signs
- check-config: validate TOKENVESTING_* environment configuration
"""

from __future__ import annotations

import logging
import sys

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tokenvesting.blockchain.merkle import compute_leaf, verify_allocation
from tokenvesting.blockchain.vesting import (
    VestingSchedule,
    claimable_amount,
    validate_schedule_terms,
    vested_amount,
)
from tokenvesting.core.blockchain_exceptions import (
    VestingError,
    get_error_context,
    is_recoverable_error,
)
from tokenvesting.core.config import VestingConfig
from tokenvesting.core.delegation import delegation_digest
from tokenvesting.core.logging_config import setup_logging_from_env

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler."""
    logger.error("CLI error: %s", exc, extra={"event": "cli.error", **get_error_context(exc)})
    console.print(f"[bold red]Error:[/] {escape(str(exc))}")
    if is_recoverable_error(exc):
        console.print("[yellow]This request can be resubmitted later.[/]")
    sys.exit(exit_code)


def _allocation_options(func):
    func = click.option("--unlock-pct", required=True, type=int, help="Initial unlock percentage (0-100)")(func)
    func = click.option("--end", "end_timestamp", required=True, type=int, help="Vesting end timestamp")(func)
    func = click.option("--start", "start_timestamp", required=True, type=int, help="Vesting start timestamp")(func)
    func = click.option("--allocation", required=True, type=int, help="Allocated amount (base units)")(func)
    return func


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override TOKENVESTING_LOG_LEVEL",
)
def cli(log_level: str | None):
    """Token vesting ledger tools."""
    logger_root = setup_logging_from_env()
    if log_level:
        logger_root.setLevel(log_level.upper())


@cli.command("leaf")
@click.option("--identity", required=True, help="32-byte identity (hex)")
@_allocation_options
def leaf(identity: str, allocation: int, start_timestamp: int, end_timestamp: int, unlock_pct: int):
    """Print the merkle leaf committed for an allocation."""
    try:
        leaf_hash = compute_leaf(identity, allocation, start_timestamp, end_timestamp, unlock_pct)
    except VestingError as exc:
        _handle_cli_error(exc)
        return
    click.echo("0x" + leaf_hash.hex())


@cli.command("verify")
@click.option("--root", required=True, help="Commitment root (hex)")
@click.option("--identity", required=True, help="32-byte identity (hex)")
@_allocation_options
@click.option("--proof", "-p", multiple=True, help="Sibling hash, leaf to root (repeatable)")
def verify(
    root: str,
    identity: str,
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    unlock_pct: int,
    proof: tuple[str, ...],
):
    """
    Check an allocation proof against a commitment root.

    Example:
        tokenvesting verify --root 0xab.. --identity 0x00.. --allocation 1000 \\
            --start 0 --end 100 --unlock-pct 10 -p 0xcd..
    """
    valid = verify_allocation(
        identity, allocation, start_timestamp, end_timestamp, unlock_pct, list(proof), root
    )
    if valid:
        console.print("[bold green]valid[/]")
    else:
        console.print("[bold red]invalid[/]")
        sys.exit(1)


@cli.command("schedule")
@_allocation_options
@click.option("--claimed", default=0, type=int, help="Amount already released")
@click.option("--at", "timestamps", multiple=True, required=True, type=int, help="Timestamp to evaluate (repeatable)")
def schedule(
    allocation: int,
    start_timestamp: int,
    end_timestamp: int,
    unlock_pct: int,
    claimed: int,
    timestamps: tuple[int, ...],
):
    """Show vested and claimable amounts at the given timestamps."""
    try:
        validate_schedule_terms(allocation, start_timestamp, end_timestamp, unlock_pct)
    except VestingError as exc:
        _handle_cli_error(exc)
        return

    terms = VestingSchedule(
        allocation=allocation,
        claimed=claimed,
        start_timestamp=start_timestamp,
        end_timestamp=end_timestamp,
        init_unlock_percentage=unlock_pct,
    )
    table = Table(title="Vesting schedule", box=box.SIMPLE)
    table.add_column("Timestamp", justify="right")
    table.add_column("Vested", justify="right")
    table.add_column("Claimable", justify="right")
    for ts in timestamps:
        table.add_row(str(ts), str(vested_amount(terms, ts)), str(claimable_amount(terms, ts)))
    console.print(table)


@cli.command("delegation-digest")
@click.option("--identity", required=True, help="32-byte identity (hex)")
@click.option("--recipient", required=True, help="Recipient address to delegate to")
def delegation_digest_cmd(identity: str, recipient: str):
    """Print the hash the authority signs (EIP-191) to delegate an identity."""
    try:
        digest = delegation_digest(identity, recipient)
    except VestingError as exc:
        _handle_cli_error(exc)
        return
    click.echo("0x" + digest.hex())


@cli.command("check-config")
def check_config():
    """Validate deployment configuration from the environment."""
    try:
        config = VestingConfig.from_env()
    except VestingError as exc:
        _handle_cli_error(exc)
        return
    click.echo(f"owner: {config.owner}")
    click.echo(f"authority signer: {config.authority_signer}")
    click.echo(f"commitment root: {config.commitment_root}")


def main():
    return cli(prog_name="tokenvesting")


if __name__ == "__main__":
    sys.exit(main() or 0)
