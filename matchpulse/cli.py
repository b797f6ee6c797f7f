"""
MatchPulse CLI

Run the live alert pipeline, inspect the effective configuration, replay
recorded feeds and decode Bet365 ZAP frames.
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List
import click
from prometheus_client import start_http_server
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from matchpulse import __version__
from matchpulse.core.config import get_settings
from matchpulse.core.logging import get_logger, setup_logging
from matchpulse.ingestion import CONNECTORS, ReplaySession
from matchpulse.ingestion.zap import ZapParser
from matchpulse.models.alerts import Alert, AlertSeverity
from matchpulse.monitoring.metrics import PipelineMetrics
from matchpulse.realtime import AlertDispatcher, DedupGate, Pipeline, build_pipeline
from matchpulse.rules import RuleEngine, default_rules

console = Console()
logger = get_logger(__name__)

SEVERITY_STYLES = {
    AlertSeverity.HIGH: "bold red",
    AlertSeverity.MEDIUM: "yellow",
    AlertSeverity.LOW: "cyan",
    AlertSeverity.INFO: "dim",
}


def print_alert(alert: Alert) -> None:
    style = SEVERITY_STYLES.get(alert.severity, "white")
    console.print(Panel(
        alert.message,
        title=f"[{style}]{alert.type}[/{style}]",
        subtitle=f"{alert.source or '-'} | match {alert.match_id or '-'}",
        border_style=style,
    ))


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """
    ⚽ MatchPulse - live match event alerts
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(level='DEBUG' if verbose else None)


@cli.command()
def run():
    """Connect to every configured source and stream alerts until interrupted."""
    settings = get_settings()

    async def run_pipeline():
        metrics = PipelineMetrics()
        if settings.metrics_port:
            start_http_server(settings.metrics_port, registry=metrics.registry)
            logger.info("Metrics endpoint started", port=settings.metrics_port)

        pipeline = build_pipeline(settings, sink=print_alert, metrics=metrics)
        if not pipeline.connectors:
            console.print("[red]No sources configured. Set SOFASCORE_WS_URL, BWIN_WS_URL or BET365_WS_URL.[/red]")
            sys.exit(1)

        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except NotImplementedError:
                pass

        await pipeline.start()
        console.print(f"[green]Pipeline running with {len(pipeline.connectors)} connector(s). Ctrl+C to stop.[/green]")
        await shutdown.wait()

        console.print("[yellow]Shutting down...[/yellow]")
        await pipeline.stop()

    asyncio.run(run_pipeline())


@cli.command()
def config():
    """Show the effective configuration."""
    settings = get_settings()

    for section, values in settings.to_display_dict().items():
        table = Table(title=section.title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in values.items():
            table.add_row(key, "-" if value is None else str(value))
        console.print(table)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--source', '-s', type=click.Choice(sorted(CONNECTORS)), required=True, help='Source the recording came from')
@click.option('--json-output', is_flag=True, help='Print alerts as JSON lines')
@click.option('--include-system', is_flag=True, help='Also print pipeline start/stop notices')
def replay(file, source, json_output, include_system):
    """Replay a recorded feed (one raw message per line) through the rules."""
    settings = get_settings()
    alerts: List[Alert] = []
    if json_output:
        setup_logging(level='WARNING')

    async def run_replay():
        pipeline = Pipeline(
            rule_engine=RuleEngine(default_rules(settings)),
            dedup_gate=DedupGate(ttl=settings.dedup_ttl),
            dispatcher=AlertDispatcher(alerts.append, maxsize=max(settings.dispatch_queue_maxsize, 1000)),
        )
        normalizer = CONNECTORS[source].normalizer_class()
        session = ReplaySession.from_file(file)

        await pipeline.start()
        await session.open()
        while True:
            frame = await session.receive()
            if frame is None:
                break
            event = normalizer.normalize(frame)
            if event is not None:
                await pipeline.submit(event)
        await session.close()
        await pipeline.stop()
        return pipeline.get_stats(), normalizer.stats

    stats, normalizer_stats = asyncio.run(run_replay())

    for alert in alerts:
        if alert.type == "system" and not include_system:
            continue
        if json_output:
            click.echo(json.dumps(alert.to_dict(), ensure_ascii=False, default=str))
        else:
            print_alert(alert)

    if not json_output:
        table = Table(title="Replay Summary")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green")
        for key in ("normalized", "ignored", "malformed"):
            table.add_row(f"frames {key}", str(normalizer_stats[key]))
        for key in ("events_processed", "duplicates_suppressed", "alerts_emitted"):
            table.add_row(key.replace('_', ' '), str(stats[key]))
        console.print(table)


@cli.command(name='parse-zap')
@click.argument('message')
def parse_zap(message):
    """Decode one Bet365 ZAP frame. Use \\x01 and \\x14 for control characters."""
    raw = message.encode('utf-8').decode('unicode_escape')
    parsed = ZapParser.parse(raw)

    console.print(ZapParser.format(parsed), markup=False)
    if not parsed.is_zap:
        return

    table = Table(title=f"Topic {parsed.topic}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in parsed.data.items():
        table.add_row(key, str(value))
    console.print(table)

    console.print(f"Match event: {'yes' if ZapParser.is_match_event(parsed) else 'no'}")
    extracted = ZapParser.extract_match_data(parsed)
    if extracted:
        console.print_json(json.dumps(extracted, default=str))


@cli.command()
def version():
    """Show version information."""
    console.print(Panel.fit(
        f"[bold blue]MatchPulse[/bold blue] [green]{__version__}[/green]\n"
        "[dim]Live match event alerts[/dim]",
        title="⚽ MatchPulse",
        border_style="blue",
    ))


if __name__ == '__main__':
    cli()
