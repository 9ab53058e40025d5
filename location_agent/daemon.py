"""
Location Telemetry Agent.

Runs periodic flush cycles on a single worker thread:
1. Drain retry + incoming readings
2. Split into batches
3. Deliver each batch through the circuit breaker and retry policy
4. Requeue what could not be delivered

The producer only calls add(); health is only observable via status().
"""
import json
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Iterable, Optional

import structlog

from . import __version__
from .config import Config, DeliveryConfig, load_config
from .models import Reading
from .transmission import (
    Batch,
    DeliveryCircuitBreaker,
    DeliveryClient,
    DeliveryOutcome,
    OutcomeKind,
    ReadingBuffer,
    RetryPolicy,
    split_batches,
)
from .transmission.retry import Wait

logger = structlog.get_logger()


@dataclass
class FlushReport:
    """Reading counts for one flush cycle."""

    drained: int = 0
    sent: int = 0
    requeued: int = 0
    dropped: int = 0
    skipped: int = 0


class LocationTelemetryAgent:
    """
    Buffers readings and delivers them in batches on a fixed interval.

    All flush cycles run serially, so batches are delivered in order and
    the breaker counter is only touched by one cycle at a time.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[DeliveryClient] = None,
        breaker: Optional[DeliveryCircuitBreaker] = None,
        policy: Optional[RetryPolicy] = None,
        buffer: Optional[ReadingBuffer] = None,
        wait: Optional[Wait] = None
    ):
        """
        Initialize agent.

        Args:
            config: Agent tuning (defaults apply when omitted)
            client: Delivery client, built from config when omitted
            breaker: Circuit breaker, built from config when omitted
            policy: Retry policy, built from config when omitted
            buffer: Reading buffer, built from config when omitted
            wait: Retry sleeper returning True if interrupted; defaults
                to the worker's cancel event so stop() cuts sleeps short
        """
        self.config = config or Config()
        self._buffer = buffer or ReadingBuffer(retry_max=self.config.retry_buffer_max)
        self._client = client or DeliveryClient(
            connect_timeout_s=self.config.connect_timeout_s,
            read_timeout_s=self.config.read_timeout_s
        )
        self._breaker = breaker or DeliveryCircuitBreaker(
            fail_max=self.config.circuit_breaker_fail_max,
            cooldown_s=self.config.circuit_breaker_timeout_s
        )
        self._policy = policy or RetryPolicy(
            max_attempts=self.config.max_attempts,
            base_delay_s=self.config.retry_base_delay_s,
            max_delay_s=self.config.retry_max_delay_s,
            rate_limit_delay_s=self.config.rate_limit_delay_s,
            jitter_s=self.config.retry_jitter_s
        )
        self._wait = wait

        self.running = False
        self._delivery: Optional[DeliveryConfig] = None
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._cancel = threading.Event()
        self._worker: Optional[threading.Thread] = None

    @property
    def delivery(self) -> Optional[DeliveryConfig]:
        return self._delivery

    # Producer interface

    def configure(
        self,
        url: str,
        method: str = 'POST',
        headers: Optional[dict[str, str]] = None,
        additional_params: Optional[dict[str, Any]] = None,
        flush_interval_s: float = 300.0
    ) -> None:
        """
        Set the endpoint. Restarts the schedule if running; buffered
        readings and breaker state are kept.

        Raises:
            ValueError: If the endpoint settings are invalid
        """
        self.configure_delivery(DeliveryConfig(
            url=url,
            method=method,
            headers=headers or {},
            additional_params=additional_params,
            flush_interval_s=flush_interval_s
        ))

    def configure_delivery(self, delivery: DeliveryConfig) -> None:
        with self._lock:
            self._delivery = delivery
            logger.info(
                "delivery_configured",
                url=delivery.url,
                method=delivery.method,
                interval_s=delivery.flush_interval_s
            )

            if self.running:
                self._stop_worker()
                self._start_worker()
                logger.info("flush_schedule_restarted")

    def start(self) -> None:
        with self._lock:
            if self.running or self._delivery is None:
                logger.warning(
                    "agent_start_ignored",
                    running=self.running,
                    configured=self._delivery is not None
                )
                return

            self.running = True
            self._start_worker()
            logger.info("agent_started", interval_s=self._delivery.flush_interval_s)

    def stop(self) -> None:
        """
        Cancel the schedule and make one last single-attempt flush.

        Safe to call from any thread. Undelivered readings stay buffered.
        """
        with self._lock:
            if not self.running:
                return
            logger.info("agent_stopping")
            self.running = False
            self._stop_worker()

        report = self._flush_cycle(final=True)
        logger.info(
            "agent_stopped",
            sent=report.sent,
            remaining=self._buffer.size()
        )

    def add(self, reading: Reading) -> None:
        self._buffer.add(reading)

    # Operator interface

    def status(self) -> dict[str, Any]:
        """
        Get agent status.

        Returns:
            Dict with enabled, buffer_size, healthy, circuit_state and
            consecutive_failures
        """
        return {
            'enabled': self.running,
            'buffer_size': self._buffer.size(),
            'healthy': self._breaker.is_healthy(),
            'circuit_state': self._breaker.state,
            'consecutive_failures': self._breaker.failure_count,
        }

    def clear(self) -> None:
        self._buffer.clear()

    def reset_circuit_breaker(self) -> None:
        self._breaker.reset()

    def flush_now(self) -> FlushReport:
        """Run one flush cycle on the calling thread."""
        return self._flush_cycle()

    # Worker

    def _start_worker(self):
        cancel = threading.Event()
        self._cancel = cancel
        self._worker = threading.Thread(
            target=self._flush_loop,
            args=(self._delivery.flush_interval_s, cancel),
            daemon=True,
            name="location-flush"
        )
        self._worker.start()

    def _stop_worker(self):
        self._cancel.set()
        worker, self._worker = self._worker, None
        if worker is not None and worker is not threading.current_thread():
            worker.join()

    def _flush_loop(self, interval_s: float, cancel: threading.Event):
        logger.info("flush_loop_starting", interval_s=interval_s)
        sleep_time = interval_s

        while not cancel.wait(timeout=sleep_time):
            cycle_start = time.monotonic()

            try:
                self._flush_cycle(cancel=cancel)
            except Exception as e:
                logger.error("flush_cycle_failed", error=str(e))

            # Keep cycles on the configured interval
            elapsed = time.monotonic() - cycle_start
            sleep_time = max(0.0, interval_s - elapsed)

        logger.info("flush_loop_stopped")

    def _flush_cycle(
        self,
        cancel: Optional[threading.Event] = None,
        final: bool = False
    ) -> FlushReport:
        """
        Single flush cycle.

        Args:
            cancel: Set when the worker is stopping; remaining batches are
                requeued unsent and retry sleeps are interrupted
            final: Shutdown flush, one attempt per batch and no retries
        """
        with self._flush_lock:
            delivery = self._delivery
            if delivery is None:
                return FlushReport()

            readings = self._buffer.drain_all()
            report = FlushReport(drained=len(readings))
            if not readings:
                logger.debug("no_location_data")
                return report

            logger.info("flush_starting", points=len(readings), final=final)

            policy = self._policy.with_max_attempts(1) if final else self._policy
            wait = self._wait
            if wait is None and cancel is not None:
                wait = cancel.wait

            batches = list(split_batches(readings, self.config.batch_size, delivery.additional_params))
            handled = 0

            try:
                for batch in batches:
                    if cancel is not None and cancel.is_set():
                        self._buffer.requeue_failed(batch.readings)
                        report.requeued += len(batch)
                    else:
                        send = partial(self._client.send, batch, delivery)
                        outcome = self._breaker.call(partial(policy.execute, send, wait))
                        self._record(batch, outcome, report)
                    handled += 1
            finally:
                # Drained readings must never be lost to an unexpected error
                unsent = [r for batch in batches[handled:] for r in batch.readings]
                if unsent:
                    self._buffer.requeue_failed(unsent)
                    report.requeued += len(unsent)
                    logger.error("flush_cycle_aborted_requeued", points=len(unsent))

            logger.info(
                "flush_complete",
                sent=report.sent,
                requeued=report.requeued,
                dropped=report.dropped,
                skipped=report.skipped,
                healthy=self._breaker.is_healthy(),
                **self._buffer.stats()
            )
            return report

    def _record(self, batch: Batch, outcome: Optional[DeliveryOutcome], report: FlushReport):
        points = len(batch)

        if outcome is None:
            self._buffer.requeue_failed(batch.readings)
            report.skipped += points
            report.requeued += points
            logger.info("circuit_open_batch_requeued", points=points)

        elif outcome.succeeded:
            report.sent += points
            logger.debug("batch_delivered", points=points, attempts=outcome.attempts)

        elif outcome.kind is OutcomeKind.TERMINAL:
            report.dropped += points
            logger.error(
                "batch_dropped",
                points=points,
                status=outcome.status_code,
                error_type=type(outcome.error).__name__,
                reason=outcome.reason
            )

        else:
            self._buffer.requeue_failed(batch.readings)
            report.requeued += points
            logger.warning(
                "batch_delivery_failed_requeued",
                points=points,
                attempts=outcome.attempts,
                reason=outcome.reason
            )


def feed_readings(
    stream: Iterable[str],
    agent: LocationTelemetryAgent,
    done: threading.Event
) -> None:
    """
    Add one reading per JSON line of stream until it ends or done is set.

    Malformed lines are logged and skipped. Sets done on end of input.
    """
    accepted = 0
    for line in stream:
        if done.is_set():
            break

        line = line.strip()
        if not line:
            continue

        try:
            reading = Reading.from_dict(json.loads(line))
        except ValueError as e:
            logger.warning("reading_rejected", error=str(e))
            continue

        agent.add(reading)
        accepted += 1

    logger.info("reading_feed_closed", accepted=accepted)
    done.set()


def configure_logging(level: int = logging.INFO) -> None:
    """JSON lines on stderr; stdout is left to the reading feed."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True)
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True
    )


def main(config_path: Optional[str] = None):
    """
    Main entry point.

    Args:
        config_path: Path to configuration file (optional)
    """
    configure_logging()

    logger.info("location_agent_starting", version=__version__)

    config = load_config(config_path)
    delivery = config.delivery()

    if delivery is None:
        logger.error("endpoint_url_required")
        sys.exit(1)

    agent = LocationTelemetryAgent(config)
    agent.configure_delivery(delivery)

    shutdown = threading.Event()

    def _handle_shutdown(signum, frame):
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    agent.start()

    feeder = threading.Thread(
        target=feed_readings,
        args=(sys.stdin, agent, shutdown),
        daemon=True,
        name="reading-feed"
    )
    feeder.start()

    try:
        while not shutdown.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
    finally:
        agent.stop()

    logger.info("location_agent_stopped", **agent.status())
