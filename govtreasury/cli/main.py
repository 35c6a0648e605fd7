"""
Main CLI entry point for govtreasury.

Provides command-line access to the governance simulator:
- Showing the effective deployment settings
- Replaying scripted scenarios against a fresh deployment
"""

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from ..config import GovernanceSettings
from ..core.errors import GovernanceError
from ..core.logging import configure_logging
from ..core.scenario import ScenarioError, ScenarioRunner, load_scenario, run_scenario
from ..datastructures.governance_types import ProposalState
from ..datastructures.type_aliases import format_units

console = Console()

STATE_STYLES = {
    ProposalState.PENDING: "yellow",
    ProposalState.ACTIVE: "cyan",
    ProposalState.CANCELED: "dim",
    ProposalState.DEFEATED: "red",
    ProposalState.SUCCEEDED: "green",
    ProposalState.QUEUED: "blue",
    ProposalState.EXPIRED: "dim",
    ProposalState.EXECUTED: "bold green",
}


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, verbose: bool):
    """
    Governance and treasury simulator.

    Deploys a governor, timelock and treasury in memory and replays
    proposal lifecycles and withdrawals against them.
    """
    settings = GovernanceSettings()
    configure_logging(
        "DEBUG" if verbose else settings.log_level,
        debug_scopes=settings.debug_scopes,
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command("show-config")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def show_config(ctx, output: str):
    """Show the effective deployment settings."""
    settings: GovernanceSettings = ctx.obj["settings"]
    data = settings.model_dump(mode="json")

    if output == "json":
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Governance Settings")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


@cli.command()
@click.argument("scenario_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def simulate(ctx, scenario_path: str, output: str):
    """Replay a scripted scenario against a freshly deployed system."""
    settings: GovernanceSettings = ctx.obj["settings"]
    try:
        runner = run_scenario(load_scenario(scenario_path), settings)
    except (ScenarioError, GovernanceError) as e:
        console.print(f"[red]Scenario failed: {e}[/red]")
        sys.exit(1)

    if output == "json":
        click.echo(json.dumps(_summary(runner), indent=2, default=str))
        return

    _display_steps(runner)
    _display_proposals(runner)
    _display_treasury(runner)


def _summary(runner: ScenarioRunner) -> dict:
    system = runner.system
    return {
        "block_number": system.block_number,
        "timestamp": system.now,
        "steps": [outcome.to_dict() for outcome in runner.outcomes],
        "proposals": {
            name: {
                "proposal_id": proposal_id,
                "state": system.state(proposal_id).name,
                "votes": system.governor.proposal_votes(proposal_id).to_dict(),
            }
            for name, (proposal_id, _, _) in runner.proposals.items()
        },
        "treasury": {
            "balances": dict(system.treasury.balances),
            "daily_limit": system.treasury.daily_withdrawal_limit,
            "remaining_allowance": system.treasury.remaining_allowance(system.now),
            "assets": system.treasury.get_all_assets(),
        },
        "events": [event.to_dict() for event in system.events],
    }


def _display_steps(runner: ScenarioRunner) -> None:
    table = Table(title="Scenario Steps")
    table.add_column("#", justify="right")
    table.add_column("Operation", style="cyan")
    table.add_column("Result", justify="center")
    table.add_column("Detail")
    for outcome in runner.outcomes:
        result = "[green]ok[/green]" if outcome.ok else "[yellow]rejected[/yellow]"
        table.add_row(str(outcome.index), outcome.op, result, outcome.detail)
    console.print(table)


def _display_proposals(runner: ScenarioRunner) -> None:
    if not runner.proposals:
        return
    system = runner.system
    table = Table(title="Proposals")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Proposal ID", style="magenta")
    table.add_column("State", justify="center")
    table.add_column("For", justify="right")
    table.add_column("Against", justify="right")
    table.add_column("Abstain", justify="right")
    for name, (proposal_id, _, _) in runner.proposals.items():
        state = system.state(proposal_id)
        votes = system.governor.proposal_votes(proposal_id)
        table.add_row(
            name,
            proposal_id[:18],
            f"[{STATE_STYLES[state]}]{state.name}[/{STATE_STYLES[state]}]",
            format_units(votes.for_votes, runner.decimals),
            format_units(votes.against_votes, runner.decimals),
            format_units(votes.abstain_votes, runner.decimals),
        )
    console.print(table)


def _display_treasury(runner: ScenarioRunner) -> None:
    system = runner.system
    treasury = system.treasury
    table = Table(title="Treasury")
    table.add_column("Asset", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Active", justify="center")
    table.add_column("Balance", justify="right", style="green")
    tokens = list(dict.fromkeys([*treasury.get_all_assets(), *treasury.balances]))
    for token in tokens:
        asset = treasury.get_asset(token)
        table.add_row(
            token,
            asset.name if asset else "-",
            ("yes" if asset.is_active else "no") if asset else "-",
            format_units(treasury.get_token_balance(token), runner.decimals),
        )
    console.print(table)
    console.print(
        f"Daily limit {format_units(treasury.daily_withdrawal_limit, runner.decimals)}, "
        f"remaining {format_units(treasury.remaining_allowance(system.now), runner.decimals)}"
    )


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
