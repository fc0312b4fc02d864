"""
CLI entry point for policybridge.

This module provides the Typer-based command-line interface.

Commands:
    check            Evaluate one transfer read-only
    simulate         Execute a list of transfers in mutating mode
    messages         List restriction messages
    classify         Classify raw engine failure data
    validate-config  Check that a configuration file builds

Architecture Note:
    The CLI only parses arguments and renders results. All behaviour lives
    in Bridge and the modules it wires together.
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from policybridge import __version__
from policybridge.bridge import Bridge
from policybridge.errors import BridgeError
from policybridge.policy.failures import classify_failure
from policybridge.schema import EvaluationMode, EvaluationOutcome, load_transfers

app = typer.Typer(
    name="policybridge",
    help="Validate ledger transfers against pluggable compliance policies.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

ConfigArgument = Annotated[
    Path,
    typer.Argument(
        help="Path to the bridge configuration YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]policybridge[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log evaluation details to stderr.",
        ),
    ] = False,
) -> None:
    """
    policybridge - Compliance validation for ledger transfers.

    Evaluate transfers against policy engines and report stable restriction
    codes and messages.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_bridge(config_path: Path, json_output: bool, debug: bool) -> Bridge:
    try:
        return Bridge.from_file(config_path)
    except Exception as e:
        if json_output:
            _output_json_error("config_error", str(e), debug)
        else:
            console.print(f"[red]Error loading configuration: {e}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=1)


@app.command()
def check(
    config_path: ConfigArgument,
    validator: Annotated[
        str,
        typer.Option("--validator", "-n", help="Name of the validator or rule set."),
    ],
    from_: Annotated[str, typer.Option("--from", help="Sender identity.")],
    to: Annotated[str, typer.Option("--to", help="Recipient identity.")],
    amount: Annotated[int, typer.Option("--amount", help="Transfer amount.", min=0)],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
) -> None:
    """
    Evaluate one transfer without changing any policy state.

    Exits with code 1 if the transfer is restricted.

    Example:
        $ policybridge check bridge.yaml -n main --from 0x.. --to 0x.. --amount 10
    """
    bridge = _load_bridge(config_path, json_output, debug)
    try:
        outcome = bridge.evaluate(validator, from_, to, amount, EvaluationMode.READ_ONLY)
    except (BridgeError, ValueError) as e:
        if json_output:
            _output_json_error("evaluation_error", str(e), debug)
        else:
            console.print(f"[red]Evaluation error: {e}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps(_outcome_dict(outcome), indent=2))
    else:
        _display_outcome(validator, outcome)

    raise typer.Exit(code=0 if outcome.allowed else 1)


@app.command()
def simulate(
    config_path: ConfigArgument,
    transfers_path: Annotated[
        Path,
        typer.Argument(
            help="Path to a YAML list of transfers.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
) -> None:
    """
    Execute transfers in order, updating policy state as a ledger would.

    Each transfer runs in its own engine transaction; a restricted transfer
    leaves no state behind. Exits with code 1 if any transfer is restricted.
    """
    bridge = _load_bridge(config_path, json_output, debug)
    try:
        batch = load_transfers(transfers_path)
        results = [
            (request, bridge.execute(request.validator, request.from_, request.to, request.amount))
            for request in batch.transfers
        ]
    except Exception as e:
        if json_output:
            _output_json_error("simulation_error", str(e), debug)
        else:
            console.print(f"[red]Simulation error: {e}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=1)

    if json_output:
        output = [
            {
                "validator": request.validator,
                "from": request.from_,
                "to": request.to,
                "amount": request.amount,
                **_outcome_dict(outcome),
            }
            for request, outcome in results
        ]
        print(json.dumps(output, indent=2))
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", style="dim", width=3)
        table.add_column("Validator", style="cyan")
        table.add_column("Amount", justify="right")
        table.add_column("Code", justify="right")
        table.add_column("Details")
        for index, (request, outcome) in enumerate(results, start=1):
            code = f"[green]{outcome.code}[/green]" if outcome.allowed else f"[red]{outcome.code}[/red]"
            details = outcome.message
            if outcome.reason:
                details = f"{details}: {outcome.reason}"
            table.add_row(str(index), request.validator, str(request.amount), code, details)
        console.print(table)

    restricted = sum(1 for _, outcome in results if not outcome.allowed)
    if not json_output:
        console.print(f"{len(results) - restricted} allowed, {restricted} restricted")
    raise typer.Exit(code=0 if restricted == 0 else 1)


@app.command()
def messages(config_path: ConfigArgument) -> None:
    """List the restriction messages a configuration produces."""
    bridge = _load_bridge(config_path, json_output=False, debug=False)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Code", justify="right")
    table.add_column("Message")
    for code, message in bridge.registry.as_dict().items():
        table.add_row(str(code), message)
    console.print(table)


@app.command()
def classify(
    data: Annotated[str, typer.Argument(help="Failure data as hex (0x prefix optional).")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """Classify raw failure data reported by a policy engine."""
    text = data[2:] if data.lower().startswith("0x") else data
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        console.print(f"[red]Not valid hex: {data}[/red]")
        raise typer.Exit(code=1)

    failure = classify_failure(raw)
    if json_output:
        print(json.dumps(failure.to_dict(), indent=2))
        return

    console.print(f"[bold]{failure.__class__.__name__}[/bold]")
    console.print(f"  Restriction code: {failure.restriction_code}")
    if failure.reason is not None:
        console.print(f"  Reason: {failure.reason}")
    console.print(f"  [dim]{failure.message}[/dim]")


@app.command("validate-config")
def validate_config(config_path: ConfigArgument) -> None:
    """Check that a configuration file loads and wires up."""
    bridge = _load_bridge(config_path, json_output=False, debug=False)
    console.print(f"[green]✓[/green] {config_path.name} is valid")
    for name in bridge.names():
        validator = bridge.validator(name)
        console.print(f"  {name}: [dim]{validator!r}[/dim]")


def _outcome_dict(outcome: EvaluationOutcome) -> dict:
    return outcome.model_dump()


def _display_outcome(name: str, outcome: EvaluationOutcome) -> None:
    """Display one outcome."""
    if outcome.allowed:
        console.print(f"[green]✓[/green] [bold]{name}[/bold]: allowed (code 0)")
    else:
        console.print(f"[red]✗[/red] [bold]{name}[/bold]: restricted (code {outcome.code})")
    console.print(f"  Message: {outcome.message}")
    if outcome.reason:
        console.print(f"  Reason: {outcome.reason}")


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    app()
