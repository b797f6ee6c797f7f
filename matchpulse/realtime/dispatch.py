"""
Dispatch boundary: bounded async handoff of alerts to a notification sink.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, Optional
from matchpulse.core.logging import LoggerMixin, get_logger
from matchpulse.models.alerts import Alert

logger = get_logger(__name__)

AlertSink = Callable[[Alert], Any]


def log_sink(alert: Alert) -> None:
    """Default sink: log the rendered alert."""
    logger.info(
        alert.message,
        alert_type=alert.type,
        severity=alert.severity.value,
        match_id=alert.match_id,
        source=alert.source,
        rule=alert.rule,
    )


class AlertDispatcher(LoggerMixin):
    """
    Deliver each alert exactly once to a sink without blocking the pipeline.

    ``submit`` never waits: when the queue is full the alert is dropped and
    counted. A single worker feeds the sink in submission order; sink
    failures are logged and the alert is dropped.

    Args:
        sink: Sync or async callable receiving each alert
        maxsize: Capacity of the handoff queue
        drain_timeout: Seconds ``close`` waits for the sink; ``None`` waits forever
    """

    def __init__(
        self,
        sink: Optional[AlertSink] = None,
        maxsize: int = 100,
        drain_timeout: Optional[float] = 5.0,
    ):
        self.sink = sink or log_sink
        self.maxsize = maxsize
        self.drain_timeout = drain_timeout
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._accepting = False
        self.stats = {
            "submitted": 0,
            "delivered": 0,
            "dropped": 0,
            "failed": 0,
        }

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the delivery worker on the running loop."""
        if self.running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._accepting = True
        self._worker = asyncio.ensure_future(self._run())
        self.logger.debug("Dispatcher started", maxsize=self.maxsize)

    def submit(self, alert: Alert) -> bool:
        """Queue an alert for delivery; returns ``False`` if it was dropped."""
        if not self._accepting or self._queue is None:
            self.stats["dropped"] += 1
            self.logger.warning("Dispatcher not accepting alerts", alert_type=alert.type, match_id=alert.match_id)
            return False
        try:
            self._queue.put_nowait(alert)
        except asyncio.QueueFull:
            self.stats["dropped"] += 1
            self.logger.warning(
                "Alert queue full, dropping alert",
                alert_type=alert.type,
                match_id=alert.match_id,
                queue_size=self.maxsize,
            )
            return False
        self.stats["submitted"] += 1
        return True

    async def close(self) -> None:
        """
        Stop accepting alerts, deliver what is queued, then stop the worker.

        A sink that does not drain within ``drain_timeout`` is abandoned;
        the alert in flight and everything still queued count as dropped.
        """
        self._accepting = False
        if self._queue is not None and self.running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Alert sink did not drain in time",
                    timeout=self.drain_timeout,
                    queued=self._queue.qsize(),
                )
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
                self.stats["dropped"] += 1
        self.logger.debug("Dispatcher closed", **self.stats)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "queued": self._queue.qsize() if self._queue is not None else 0,
            "maxsize": self.maxsize,
        }

    async def _run(self) -> None:
        while True:
            alert = await self._queue.get()
            try:
                await self._deliver(alert)
            except asyncio.CancelledError:
                self.stats["dropped"] += 1
                raise
            finally:
                self._queue.task_done()

    async def _deliver(self, alert: Alert) -> None:
        try:
            result = self.sink(alert)
            if inspect.isawaitable(result):
                await result
            self.stats["delivered"] += 1
        except Exception as e:
            self.stats["failed"] += 1
            self.logger.error(
                "Alert sink failed",
                alert_type=alert.type,
                match_id=alert.match_id,
                error=str(e),
                error_type=type(e).__name__,
            )
