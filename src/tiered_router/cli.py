import asyncio

import typer
from rich.console import Console
from rich.table import Table

from tiered_router.config import settings
from tiered_router.intent.signatures import SignatureRegistry
from tiered_router.intent.types import Intent, RoutingDecision
from tiered_router.learning.keywords import KeywordEvent, KeywordLog
from tiered_router.logging import configure_logging
from tiered_router.router import TieredRouter

app = typer.Typer(help="Tiered intent router.")
console = Console()

_TIER_STYLES = {"deterministic": "green", "local": "cyan", "api": "yellow"}

_confidence_option = typer.Option(
    0.8, "--confidence", "-c", min=0.0, max=1.0, help="Confidence of the learned keyword."
)
_validated_by_option = typer.Option(
    "manual", "--validated-by", help="Who validated it: manual | agent | user_feedback."
)
_warmup_option = typer.Option(False, "--warmup", help="Warm up the classifier model first.")


@app.callback()
def main():
    """Tiered intent router."""
    configure_logging(settings)


def _decision_table(text: str, decision: RoutingDecision) -> Table:
    table = Table(title=f"Routing: {text!r}")
    table.add_column("Field", style="magenta")
    table.add_column("Value", style="yellow")
    style = _TIER_STYLES.get(decision.tier.value, "white")
    table.add_row("tier", f"[{style}]{decision.tier.value}[/{style}]")
    table.add_row("intent", decision.intent.value)
    table.add_row("confidence", f"{decision.confidence:.2f}")
    table.add_row("params", ", ".join(f"{k}={v}" for k, v in decision.params.items()) or "-")
    table.add_row("reason", decision.reason)
    table.add_row("model", decision.model or "-")
    table.add_row("source", decision.source)
    table.add_row("latency", f"{decision.latency_ms}ms")
    return table


@app.command()
def route(text: str, warmup: bool = _warmup_option):
    """Route a single message and print the decision."""

    async def _run() -> RoutingDecision:
        router = TieredRouter(settings=settings)
        try:
            if warmup:
                await router.warmup()
            return await router.route(text)
        finally:
            await router.close()

    decision = asyncio.run(_run())
    console.print(_decision_table(text, decision))


@app.command()
def signatures():
    """List the fast-path signatures, including learned keywords."""
    registry = SignatureRegistry(
        settings, keyword_log=KeywordLog(settings.LEARNED_KEYWORDS_PATH)
    )
    table = Table(title="Fast-path signatures")
    table.add_column("Intent", style="magenta")
    table.add_column("Tier")
    table.add_column("Primary", style="yellow")
    table.add_column("Secondary")
    table.add_column("Min score", justify="right")
    for row in registry.describe():
        table.add_row(
            str(row["intent"]),
            str(row["tier"]),
            ", ".join(row["primary"]),  # type: ignore[arg-type]
            ", ".join(row["secondary"]),  # type: ignore[arg-type]
            f"{row['min_score']:.2f}",
        )
    console.print(table)


@app.command()
def learn(
    intent: str,
    keyword: str,
    confidence: float = _confidence_option,
    validated_by: str = _validated_by_option,
):
    """Append a learned keyword for an intent."""
    parsed = Intent.parse(intent)
    if parsed == Intent.UNKNOWN:
        console.print(f"[bold red]Unknown intent: {intent}[/bold red]")
        raise typer.Exit(1)

    log = KeywordLog(settings.LEARNED_KEYWORDS_PATH)
    try:
        log.append(
            KeywordEvent(
                intent=parsed,
                keyword=keyword,
                confidence=confidence,
                validated_by=validated_by,
            )
        )
    except ValueError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(1)

    if confidence < settings.LEARNED_KEYWORD_MIN_CONFIDENCE:
        console.print(
            f"[yellow]Recorded, but confidence {confidence:.2f} is below "
            f"{settings.LEARNED_KEYWORD_MIN_CONFIDENCE:.2f}; it will not be used.[/yellow]"
        )
    else:
        console.print(f"[green]Learned '{keyword}' for {parsed.value}[/green]")


@app.command()
def serve():
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run(
        "tiered_router.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    app()
