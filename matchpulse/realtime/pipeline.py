"""
Pipeline coordinator.

Connectors run as independent tasks and push normalized events into one
bounded fan-in queue. A single consumer takes events in arrival order and
runs them through validation, enrichment, the dedup gate and the rule
engine, then hands alerts to the dispatcher.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Optional
from matchpulse.core.exceptions import ConnectorFailedError, EventValidationError
from matchpulse.core.logging import LoggerMixin, PerformanceLogger
from matchpulse.ingestion.connector import Connector
from matchpulse.models.alerts import Alert, AlertSeverity
from matchpulse.models.events import Event, EventType, ensure_valid
from matchpulse.monitoring.metrics import PipelineMetrics
from matchpulse.realtime.dedup import DedupGate
from matchpulse.realtime.dispatch import AlertDispatcher
from matchpulse.realtime.enrichment import MatchEnricher
from matchpulse.rules import RuleEngine, RuleFn, default_rules


class BackpressurePolicy(str, Enum):
    """What producers do when the fan-in queue is full."""
    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"


class Pipeline(LoggerMixin):
    """
    Wire connectors to the dedup gate, rule engine and dispatcher.

    Every piece of state lives on the instance, so several pipelines can
    run side by side.

    Args:
        rule_engine: Rule registry; defaults to the built-in rules
        dedup_gate: Duplicate filter; defaults to a 5 second window
        dispatcher: Alert handoff; defaults to logging alerts
        enricher: Optional team-name backfill
        metrics: Prometheus metrics; a private registry by default
        queue_maxsize: Capacity of the fan-in queue
        backpressure: Policy applied when the fan-in queue is full
        stats_interval: Seconds between stats log lines; ``None`` disables
    """

    def __init__(
        self,
        rule_engine: Optional[RuleEngine] = None,
        dedup_gate: Optional[DedupGate] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        enricher: Optional[MatchEnricher] = None,
        metrics: Optional[PipelineMetrics] = None,
        queue_maxsize: int = 1000,
        backpressure: BackpressurePolicy = BackpressurePolicy.BLOCK,
        stats_interval: Optional[float] = None,
    ):
        self.rule_engine = rule_engine if rule_engine is not None else RuleEngine(default_rules())
        self.dedup_gate = dedup_gate if dedup_gate is not None else DedupGate()
        self.dispatcher = dispatcher if dispatcher is not None else AlertDispatcher()
        self.enricher = enricher
        self.metrics = metrics if metrics is not None else PipelineMetrics()
        self.queue_maxsize = queue_maxsize
        self.backpressure = BackpressurePolicy(backpressure)
        self.stats_interval = stats_interval

        if self.rule_engine.on_rule_error is None:
            self.rule_engine.on_rule_error = self.metrics.rule_error

        self.connectors: Dict[str, Connector] = {}
        self._connector_tasks: Dict[str, asyncio.Task] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._stats_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None
        self._accepting = False
        self._running = False
        self._started_at: Optional[float] = None

        self.counters = {
            "events_received": 0,
            "events_rejected": 0,
            "duplicates_suppressed": 0,
            "events_dropped": 0,
            "events_processed": 0,
            "alerts_emitted": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    def add_connector(self, connector: Connector) -> None:
        """Register a connector; it is started with the pipeline (or now, if running)."""
        if connector.name in self.connectors:
            raise ValueError(f"Connector {connector.name!r} already registered")

        connector.attach(self.submit)
        user_callback = connector.on_failed

        def on_failed(failed: Connector) -> None:
            self._on_connector_failed(failed)
            if user_callback is not None:
                user_callback(failed)

        connector.on_failed = on_failed
        self.connectors[connector.name] = connector
        self.metrics.set_connector_state(connector.name, connector.state.value)
        self.logger.info("Connector registered", connector=connector.name, source=connector.source)

        if self._running:
            self._launch(connector)

    def add_rule(self, name: str, rule: RuleFn) -> None:
        self.rule_engine.add_rule(name, rule)

    def remove_rule(self, name: str) -> bool:
        return self.rule_engine.remove_rule(name)

    async def start(self) -> None:
        """Start the dispatcher, the consumer and one task per connector."""
        if self._running:
            self.logger.warning("Pipeline already running")
            return

        self._queue = asyncio.Queue(maxsize=self.queue_maxsize)
        self._stopped = asyncio.Event()
        self.dispatcher.start()
        self._accepting = True
        self._running = True
        self._started_at = time.monotonic()
        self._consumer = asyncio.ensure_future(self._consume())

        for connector in self.connectors.values():
            self._launch(connector)

        if self.stats_interval:
            self._stats_task = asyncio.ensure_future(self._report_stats())

        names = list(self.connectors)
        self.logger.info("Pipeline started", connectors=names, backpressure=self.backpressure.value)
        self._notify_system(
            "✅ MatchPulse started\n\nConnectors: " + (", ".join(names) if names else "none"),
            connectors=names,
        )

    async def stop(self) -> None:
        """
        Shut down gracefully.

        Connectors are stopped and release their sessions, the fan-in queue
        stops accepting input and is drained, and every alert produced so
        far is handed to the sink before the dispatcher closes.
        """
        if not self._running:
            return

        self.logger.info("Stopping pipeline")
        async with PerformanceLogger("drain", self.logger, queued=self._queue.qsize()):
            for connector in self.connectors.values():
                connector.stop()
            tasks = list(self._connector_tasks.values())
            for task in tasks:
                if not task.done():
                    task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            self._connector_tasks.clear()

            self._accepting = False
            await self._queue.join()
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)

        if self._stats_task is not None:
            self._stats_task.cancel()
            await asyncio.gather(self._stats_task, return_exceptions=True)
            self._stats_task = None

        self._refresh_gauges()
        final_stats = self.get_stats()
        self._notify_system(
            "🛑 MatchPulse stopped\n\n"
            f"Events processed: {final_stats['events_processed']}\n"
            f"Alerts emitted: {final_stats['alerts_emitted']}",
            stats=final_stats,
        )
        await self.dispatcher.close()
        if self.enricher is not None:
            await self.enricher.close()

        self._running = False
        self._stopped.set()
        self.logger.info("Pipeline stopped", **{k: final_stats[k] for k in self.counters})

    async def wait_stopped(self) -> None:
        if self._stopped is not None:
            await self._stopped.wait()

    async def submit(self, event: Event) -> bool:
        """
        Fan-in point for connectors.

        Returns:
            ``False`` if the pipeline is not accepting input
        """
        if not self._accepting:
            self.logger.debug("Pipeline not accepting events", source=event.source)
            return False

        self.counters["events_received"] += 1
        self.metrics.event_received(event.source)

        if self.backpressure is BackpressurePolicy.DROP_OLDEST:
            while self._queue.full():
                dropped = self._queue.get_nowait()
                self._queue.task_done()
                self.counters["events_dropped"] += 1
                self.metrics.event_dropped(dropped.source)
                self.logger.warning(
                    "Fan-in queue full, dropping oldest event",
                    source=dropped.source,
                    match_id=dropped.match_id,
                )
            self._queue.put_nowait(event)
        else:
            await self._queue.put(event)
        return True

    async def process(self, event: Event) -> List[Alert]:
        """Validate, enrich, deduplicate and evaluate one event; dispatch its alerts."""
        started = time.perf_counter()

        try:
            event = ensure_valid(event)
        except EventValidationError as e:
            self.counters["events_rejected"] += 1
            self.metrics.event_rejected(getattr(event, "source", None))
            self.logger.warning("Invalid event received", problems=e.problems)
            return []

        if self.enricher is not None:
            event = self.enricher.apply(event)

        if not self.dedup_gate.admit(event):
            self.counters["duplicates_suppressed"] += 1
            self.metrics.duplicate_suppressed(event.source)
            return []

        alerts = await self.rule_engine.evaluate(event)
        self.counters["events_processed"] += 1
        self.metrics.event_processed(event.source, event.event_type.value)

        for alert in alerts:
            self.dispatcher.submit(alert)
            self.counters["alerts_emitted"] += 1
            self.metrics.alert_emitted(alert.type, alert.severity.value)

        if event.event_type is EventType.MATCH_END and self.enricher is not None:
            self.enricher.forget(event.match_id)

        elapsed = time.perf_counter() - started
        self.metrics.observe_processing(elapsed)
        if alerts:
            self.logger.info(
                "Event processed",
                event_type=event.event_type.value,
                match_id=event.match_id,
                alerts=[a.type for a in alerts],
                processing_ms=round(elapsed * 1000, 2),
            )
        return alerts

    def get_stats(self) -> Dict[str, Any]:
        uptime = 0.0
        if self._started_at is not None:
            uptime = round(time.monotonic() - self._started_at, 3)
        return {
            **self.counters,
            "rule_errors": sum(self.rule_engine.errors.values()),
            "rule_errors_by_rule": dict(self.rule_engine.errors),
            "per_connector_status": {
                name: connector.status() for name, connector in self.connectors.items()
            },
            "queue_depth": self._queue.qsize() if self._queue is not None else 0,
            "dispatch": self.dispatcher.get_stats(),
            "dedup": self.dedup_gate.stats(),
            "rules": self.rule_engine.rule_names,
            "uptime_seconds": uptime,
            "is_running": self._running,
        }

    def _launch(self, connector: Connector) -> None:
        if connector.failed:
            self.logger.error("Connector is failed; reset it before starting", connector=connector.name)
            return
        connector.reset()
        self._connector_tasks[connector.name] = asyncio.ensure_future(self._run_connector(connector))

    async def _run_connector(self, connector: Connector) -> None:
        try:
            await connector.run()
        except ConnectorFailedError as e:
            self.logger.error("Connector could not start", connector=connector.name, error=str(e))
        except Exception as e:
            self.logger.error("Connector task crashed", connector=connector.name, error=str(e), exc_info=True)
        finally:
            self.metrics.set_connector_state(connector.name, connector.state.value)

    def _on_connector_failed(self, connector: Connector) -> None:
        self.metrics.set_connector_state(connector.name, connector.state.value)
        self.logger.error(
            "Connector failed; other sources continue",
            connector=connector.name,
            attempts=connector.attempts,
            last_error=connector.last_error,
        )

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            except Exception as e:
                self.logger.error(
                    "Event processing error",
                    match_id=getattr(event, "match_id", None),
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def _report_stats(self) -> None:
        while True:
            await asyncio.sleep(self.stats_interval)
            self._refresh_gauges()
            stats = self.get_stats()
            self.logger.info(
                "Pipeline stats",
                **{key: stats[key] for key in self.counters},
                queue_depth=stats["queue_depth"],
                connectors={name: s["state"] for name, s in stats["per_connector_status"].items()},
            )

    def _refresh_gauges(self) -> None:
        for name, connector in self.connectors.items():
            self.metrics.set_connector_state(name, connector.state.value)
        if self._queue is not None:
            self.metrics.set_queue_depth(self._queue.qsize())

    def _notify_system(self, message: str, **data: Any) -> None:
        self.dispatcher.submit(
            Alert(
                type="system",
                severity=AlertSeverity.INFO,
                match_id=None,
                source="pipeline",
                message=message,
                data=data,
            )
        )
