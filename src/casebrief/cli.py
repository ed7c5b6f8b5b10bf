"""CLI interface for casebrief.

Requires the 'cli' extra: pip install casebrief[cli]
"""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

try:
    import typer
    from rich.console import Console
    from rich.table import Table
except ImportError:
    print(
        "CLI dependencies not installed. Install with: pip install casebrief[cli]",
        file=sys.stderr,
    )
    sys.exit(1)

from pydantic import BaseModel, Field, ValidationError

from casebrief import __version__
from casebrief.context import ContextAssembler
from casebrief.models import (
    DEFAULT_BACKEND_LIMIT,
    DEFAULT_TOTAL_TOKENS,
    ContextCategory,
    PrecedentHit,
    ReferenceHit,
    SourceDocument,
    default_evidence_budget,
    default_rate_limit_policy,
)
from casebrief.tokens import get_default_estimator

app = typer.Typer(
    name="casebrief",
    help="Bounded-context, staged generation of case briefs.",
    add_completion=False,
)
console = Console()


class AssemblyInput(BaseModel):
    """JSON payload accepted by ``casebrief assemble``."""

    case_context: str = ""
    sources: list[SourceDocument] = Field(default_factory=list)
    references: list[ReferenceHit] = Field(default_factory=list)
    precedents: list[PrecedentHit] = Field(default_factory=list)


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
) -> None:
    if version:
        console.print(f"casebrief {__version__}")
        raise typer.Exit()


@app.command()
def info() -> None:
    """Show information about the casebrief installation."""
    table = Table(title="casebrief info")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Version", __version__)
    table.add_row("Python", sys.version.split()[0])

    for dep_name in ["pydantic", "anthropic", "tiktoken", "redis"]:
        try:
            mod = importlib.import_module(dep_name)
            ver = getattr(mod, "__version__", "installed")
            table.add_row(dep_name, str(ver))
        except ImportError:
            table.add_row(dep_name, "[red]not installed[/red]")

    console.print(table)


@app.command()
def budget(
    total: int = typer.Option(DEFAULT_TOTAL_TOKENS, "--total", "-t", help="Total prompt budget in tokens"),
    backend_limit: int = typer.Option(
        DEFAULT_BACKEND_LIMIT, "--backend-limit", "-b", help="Backend context limit in tokens"
    ),
) -> None:
    """Show the default category caps for a total budget."""
    try:
        token_budget = default_evidence_budget(total, backend_limit=backend_limit)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1) from None

    table = Table(title=f"Budget for {total:,} tokens")
    table.add_column("Category", style="cyan")
    table.add_column("Cap", justify="right", style="green")
    table.add_column("Share", justify="right")
    for category in ContextCategory:
        table.add_row(
            category.value,
            f"{token_budget.get_allocation(category):,}",
            f"{token_budget.ratio(category):.1%}",
        )
    table.add_row("unallocated", f"{token_budget.shared_pool:,}", "")
    console.print(table)
    console.print(f"Headroom below backend limit: {token_budget.headroom_tokens:,} tokens")


@app.command()
def estimate(
    path: Path = typer.Argument(..., help="Path to a text file"),  # noqa: B008
    cap: int | None = typer.Option(None, "--cap", "-c", help="Token cap to check against"),
) -> None:
    """Estimate the token count of a file."""
    if not path.is_file():
        console.print(f"[red]Error: {path} does not exist[/red]")
        raise typer.Exit(code=1)

    content = path.read_text()
    estimator = get_default_estimator()
    tokens = estimator.count_tokens(content)
    console.print(f"  File: {path.name} ({len(content):,} chars, ~{tokens:,} tokens)")
    if cap is not None:
        if tokens <= cap:
            console.print(f"  [green]Fits within {cap:,} tokens[/green]")
        else:
            try:
                kept = len(estimator.truncate_to_tokens(content, cap))
            except ValueError as exc:
                console.print(f"[red]Error: {exc}[/red]")
                raise typer.Exit(code=1) from None
            console.print(f"  [yellow]Exceeds {cap:,} tokens; would be truncated to {kept:,} chars[/yellow]")


@app.command()
def assemble(
    path: Path = typer.Argument(..., help="JSON file with case_context, sources, references, precedents"),  # noqa: B008
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the assembled text here"),  # noqa: B008
    total: int = typer.Option(DEFAULT_TOTAL_TOKENS, "--total", "-t", help="Total prompt budget in tokens"),
) -> None:
    """Assemble a bounded prompt body from a JSON payload."""
    if not path.is_file():
        console.print(f"[red]Error: {path} does not exist[/red]")
        raise typer.Exit(code=1)
    try:
        payload = AssemblyInput.model_validate_json(path.read_text())
        assembler = ContextAssembler(default_evidence_budget(total))
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(code=1) from None

    context = assembler.assemble(
        payload.case_context, payload.sources, payload.references, payload.precedents,
    )

    table = Table(title="Assembled context")
    table.add_column("Section", style="cyan")
    table.add_column("Items", justify="right")
    table.add_column("Tokens", justify="right", style="green")
    table.add_column("Cap", justify="right")
    table.add_column("Truncated")
    for section in context.sections:
        table.add_row(
            section.label,
            f"{section.items_considered}/{section.items_available}",
            f"{section.estimated_tokens:,}",
            f"{section.cap:,}",
            "yes" if section.truncated else "no",
        )
    console.print(table)
    console.print(
        f"Total: {context.estimated_tokens:,} / {context.total_budget:,} tokens "
        f"({context.utilization:.0%})"
    )
    if context.final_truncation_applied:
        console.print("[yellow]Final whole-body truncation applied[/yellow]")

    if output is not None:
        output.write_text(context.text)
        console.print(f"[dim]Wrote {len(context.text):,} chars to {output}[/dim]")


@app.command()
def limits() -> None:
    """Show the default rate-limit policy."""
    policy = default_rate_limit_policy()
    table = Table(title="Rate limits")
    table.add_column("Operation", style="cyan")
    table.add_column("Limit", justify="right", style="green")
    table.add_column("Window", justify="right")
    table.add_column("Key prefix", style="dim")
    for op, rule in policy.rules.items():
        table.add_row(op.value, str(rule.limit), f"{rule.window_seconds:g}s", rule.prefix)
    console.print(table)


if __name__ == "__main__":
    app()
