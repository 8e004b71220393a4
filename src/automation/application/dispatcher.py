"""Delivery of fired rules to the external alert and actuator sinks."""

import asyncio
import time

from loguru import logger

from src.automation.domain.exceptions import (
    DispatchError,
    DispatchTimeoutError,
    EngineStoppedError,
    SinkUnavailableError,
)
from src.automation.domain.models import (
    ActionType,
    ActuatorCommandRequest,
    AlertRequest,
    CreateAlert,
    DispatchResult,
    FireEvent,
    TriggerActuator,
)
from src.automation.domain.protocols import ActuatorCommandSink, AlertSink, DispatchObserver
from src.automation.infrastructure.logging import LoggingContext


def build_alert_request(event: FireEvent, action: CreateAlert) -> AlertRequest:
    return AlertRequest(
        title=action.title,
        message=action.message,
        severity=action.severity,
        rule_id=event.rule_id,
        observed_value=event.observed_value,
        fired_at=event.fired_at,
    )


def build_command_request(event: FireEvent, action: TriggerActuator) -> ActuatorCommandRequest:
    return ActuatorCommandRequest(
        target_deployment_id=action.target_deployment_id,
        command=action.command,
        parameters=dict(action.parameters),
        rule_id=event.rule_id,
        fired_at=event.fired_at,
    )


class ActionDispatcher:
    """
    Turns fire events into sink calls.

    Each dispatch is attempted exactly once with a bounded timeout. A failed
    dispatch is reported to the observer and never retried: the cooldown
    slot it consumed stays consumed, because replaying a stale actuator
    command after the physical condition changed is unsafe.
    """

    def __init__(
        self,
        alert_sink: AlertSink,
        actuator_sink: ActuatorCommandSink,
        observer: DispatchObserver | None = None,
        timeout_seconds: float = 5.0,
        max_concurrent: int = 32,
    ):
        """
        Initialize dispatcher.

        Args:
            alert_sink: Receives alerts from CreateAlert rules
            actuator_sink: Receives commands from TriggerActuator rules
            observer: Observability collaborator notified of every outcome
            timeout_seconds: Upper bound for a single sink call
            max_concurrent: Maximum number of sink calls in flight
        """
        self.alert_sink = alert_sink
        self.actuator_sink = actuator_sink
        self.observer = observer
        self.timeout_seconds = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight: set[asyncio.Task] = set()
        self._accepting = True
        self._loop: asyncio.AbstractEventLoop | None = None

    async def dispatch(self, event: FireEvent) -> DispatchResult:
        """
        Deliver one fire event to the sink matching its action.

        Never raises for sink failures; they are carried in the result.
        """
        started = time.perf_counter()
        error: DispatchError | None = None

        with LoggingContext(rule_id=event.rule_id):
            try:
                if isinstance(event.action, CreateAlert):
                    request = build_alert_request(event, event.action)
                    await self._call("alert sink", self.alert_sink.send_alert(request))
                elif isinstance(event.action, TriggerActuator):
                    request = build_command_request(event, event.action)
                    await self._call("actuator sink", self.actuator_sink.send_command(request))
                else:
                    raise DispatchError(f"Unsupported action type: {type(event.action).__name__}")
            except DispatchError as e:
                error = e
            except Exception as e:
                error = SinkUnavailableError(f"Dispatch for rule {event.rule_id} failed: {e}", original_error=e)

            return self._finish(event, error, started)

    def reject(self, event: FireEvent, error: Exception) -> DispatchResult:
        """Report a fire event that could not be scheduled as a failed dispatch."""
        with LoggingContext(rule_id=event.rule_id):
            return self._finish(event, error, time.perf_counter())

    def _finish(self, event: FireEvent, error: Exception | None, started: float) -> DispatchResult:
        result = DispatchResult(
            rule_id=event.rule_id,
            action_type=ActionType(event.action.type),
            fired_at=event.fired_at,
            success=error is None,
            error=error,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

        if result.success:
            logger.info(f"✓ Rule {event.rule_id} dispatched {result.action_type} in {result.duration_ms:.1f}ms")
        else:
            logger.error(f"✗ Rule {event.rule_id} {result.action_type} dispatch failed: {error}")

        self._report(result)
        return result

    async def _call(self, sink_name: str, call) -> None:
        try:
            await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except TimeoutError:
            raise DispatchTimeoutError(sink_name, self.timeout_seconds) from None

    def _report(self, result: DispatchResult) -> None:
        if self.observer is None:
            return
        try:
            self.observer.record_dispatch(result)
        except Exception as e:
            logger.error(f"Observer failed to record dispatch for rule {result.rule_id}: {e}")

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Use ``loop`` (the running loop by default) for events submitted from other threads."""
        self._loop = loop or asyncio.get_running_loop()

    def submit(self, event: FireEvent) -> asyncio.Task | None:
        """
        Schedule a dispatch without waiting for it.

        On the event loop the dispatch task is returned. From another
        thread the event is handed to the bound loop and None is returned.

        Raises:
            EngineStoppedError: If the dispatcher has been closed or has no
                running loop to dispatch on
        """
        if not self._accepting:
            raise EngineStoppedError(
                f"Dispatcher closed, dropping fire event for rule {event.rule_id}",
                details={"rule_id": event.rule_id},
            )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            self._loop = loop
            return self._spawn(event)

        if self._loop is None or not self._loop.is_running():
            raise EngineStoppedError(
                f"No running event loop to dispatch fire event for rule {event.rule_id}",
                details={"rule_id": event.rule_id},
            )
        self._loop.call_soon_threadsafe(self._spawn, event)
        return None

    def _spawn(self, event: FireEvent) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._dispatch_bounded(event), name=f"dispatch-rule-{event.rule_id}"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _dispatch_bounded(self, event: FireEvent) -> DispatchResult:
        async with self._semaphore:
            return await self.dispatch(event)

    async def drain(self, timeout: float | None = None) -> int:
        """
        Wait for in-flight dispatches.

        Returns:
            Number of dispatches still pending when the timeout expired
        """
        pending = set(self._in_flight)
        if not pending:
            return 0

        logger.info(f"Waiting for {len(pending)} in-flight dispatch(es)")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} dispatch(es) still pending after {timeout}s")
        return len(still_pending)

    def close(self) -> None:
        """Stop accepting new fire events."""
        self._accepting = False

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)
