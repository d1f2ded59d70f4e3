"""
dicelang command line interface.

Commands:
    roll      Evaluate an expression
    explain   Evaluate and print a step-by-step explanation
    validate  Check an expression for lexical and syntax errors
    range     Show the minimum, maximum, and average of an expression
    stats     Roll an expression many times and summarize the values
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dicelang._version import get_version
from dicelang.core.config import (
    DicelangConfig,
    ExplanationOptions,
    apply_env_overrides,
    load_config,
)
from dicelang.core.engine import DiceExpressionSystem
from dicelang.core.errors import DicelangError
from dicelang.core.sequences import summarize

app = typer.Typer(
    help="dicelang - evaluate tabletop dice expressions",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dicelang {get_version()}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Log evaluation details")] = False,
) -> None:
    """Global options."""
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config", "-c", help="Path to a dicelang.toml file", exists=True, dir_okay=False
    ),
]
SeedOption = Annotated[int | None, typer.Option("--seed", "-s", help="Seed for reproducible rolls")]


def _build_system(
    config_path: Path | None,
    seed: int | None = None,
    max_rerolls: int | None = None,
    timeout: float | None = None,
    explanation: ExplanationOptions | None = None,
) -> DiceExpressionSystem:
    """Merge file, environment, and command line settings, in that order."""
    try:
        config = load_config(config_path) if config_path else DicelangConfig()
        config = apply_env_overrides(config)
        evaluator = config.evaluator.with_overrides(
            random_seed=seed, max_rerolls=max_rerolls, max_execution_time=timeout
        )
    except DicelangError as e:
        _fail(e)
    return DiceExpressionSystem(
        DicelangConfig(
            tokenizer=config.tokenizer,
            evaluator=evaluator,
            explanation=explanation or config.explanation,
        )
    )


def _fail(error: DicelangError) -> NoReturn:
    console.print(f"[red]Error ({error.kind.value}):[/red] {escape(error.message)}")
    if error.context is not None and error.context.expression:
        console.print(escape(error.context.format()), highlight=False)
    raise typer.Exit(code=1)


@app.command()
def roll(
    expression: Annotated[str, typer.Argument(help='Dice expression, e.g. "4d6+2"')],
    seed: SeedOption = None,
    detailed: Annotated[
        bool, typer.Option("--detailed", "-d", help="Show every roll and the value range")
    ] = False,
    max_rerolls: Annotated[
        int | None, typer.Option("--max-rerolls", help="Rerolls allowed per evaluation")
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Time budget in milliseconds")
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Evaluate a dice expression."""
    system = _build_system(config_path, seed, max_rerolls, timeout)
    try:
        result = system.evaluate_detailed(expression)
    except DicelangError as e:
        _fail(e)

    console.print(f"[bold]{escape(expression)}[/bold] = [green]{result.value}[/green]")
    if not detailed:
        return

    for dice in result.dice:
        rolls = escape(str(dice.rolls))
        console.print(f"  {dice.count}d{dice.sides}: {rolls} (total {dice.total})")
    console.print(f"  [dim]range {result.min_value}..{result.max_value}[/dim]")
    if result.max_rerolls_reached:
        console.print("  [yellow]reroll limit reached; some dice kept their last face[/yellow]")


@app.command()
def explain(
    expression: Annotated[str, typer.Argument(help="Dice expression to explain")],
    fmt: Annotated[
        str, typer.Option("--format", "-f", help="Output format: text or markdown")
    ] = "text",
    verbose: Annotated[bool, typer.Option("--verbose", help="Include step details")] = False,
    seed: SeedOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Evaluate an expression and print how the result was reached."""
    if fmt not in ("text", "markdown"):
        console.print(f"[red]Unknown format:[/red] {escape(fmt)} (use text or markdown)")
        raise typer.Exit(code=2)

    options = ExplanationOptions(verbose=verbose, include_timestamps=verbose)
    system = _build_system(config_path, seed, explanation=options)
    try:
        text = system.explain(expression, fmt=fmt)
    except DicelangError as e:
        _fail(e)
    typer.echo(text)


@app.command()
def validate(
    expression: Annotated[str, typer.Argument(help="Dice expression to check")],
    config_path: ConfigOption = None,
) -> None:
    """Check an expression without rolling it."""
    system = _build_system(config_path)
    try:
        tree = system.parse(expression)
    except DicelangError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Valid: {escape(str(tree))}")


@app.command(name="range")
def range_command(
    expression: Annotated[str, typer.Argument(help="Dice expression to analyze")],
    config_path: ConfigOption = None,
) -> None:
    """Show the possible values of an expression."""
    system = _build_system(config_path)
    try:
        bounds = system.expression_range(expression)
    except DicelangError as e:
        _fail(e)

    table = Table(title=f"Range of {escape(expression)}")
    table.add_column("Minimum", justify="right")
    table.add_column("Maximum", justify="right")
    table.add_column("Average", justify="right")
    table.add_row(str(bounds.minimum), str(bounds.maximum), f"{bounds.average:.2f}")
    console.print(table)


@app.command()
def stats(
    expression: Annotated[str, typer.Argument(help="Dice expression to sample")],
    samples: Annotated[
        int, typer.Option("--samples", "-n", min=1, help="Number of evaluations")
    ] = 1000,
    seed: SeedOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Roll an expression repeatedly and summarize the results."""
    system = _build_system(config_path, seed)
    try:
        values = [system.evaluate(expression).value for _ in range(samples)]
        bounds = system.expression_range(expression)
    except DicelangError as e:
        _fail(e)

    summary = summarize(values)
    table = Table(title=f"{samples} rolls of {escape(expression)}")
    table.add_column("Statistic")
    table.add_column("Observed", justify="right")
    table.add_column("Possible", justify="right")
    table.add_row("Minimum", str(summary.minimum), str(bounds.minimum))
    table.add_row("Maximum", str(summary.maximum), str(bounds.maximum))
    table.add_row("Mean", f"{summary.mean:.2f}", f"{bounds.average:.2f}")
    table.add_row("Median", f"{summary.median:g}", "")
    console.print(table)

    common = ", ".join(f"{value} ({count}x)" for value, count in summary.most_common)
    console.print(f"[dim]Most common: {common}[/dim]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
