"""Dependency injection container for the automation engine."""

from datetime import timedelta

from dependency_injector import containers, providers

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.dispatcher import ActionDispatcher
from src.automation.application.engine import EvaluationEngine
from src.automation.application.lifecycle import RuleLifecycleManager
from src.automation.application.rule_store import RuleStore
from src.automation.application.workers import ReadingWorkerPool
from src.automation.infrastructure.observability import InMemoryDispatchLog
from src.automation.infrastructure.sinks import (
    HttpActuatorSink,
    HttpAlertSink,
    InMemoryActuatorSink,
    InMemoryAlertSink,
)
from src.config import AppConfig


def create_alert_sink(base_url: str | None, path: str, api_key: str | None, timeout_seconds: float):
    """HTTP sink when a base URL is configured, in-memory otherwise."""
    if not base_url:
        return InMemoryAlertSink()
    return HttpAlertSink(base_url, path=path, api_key=api_key, timeout_seconds=timeout_seconds)


def create_actuator_sink(base_url: str | None, path: str, api_key: str | None, timeout_seconds: float):
    """HTTP sink when a base URL is configured, in-memory otherwise."""
    if not base_url:
        return InMemoryActuatorSink()
    return HttpActuatorSink(base_url, path=path, api_key=api_key, timeout_seconds=timeout_seconds)


class EngineContainer(containers.DeclarativeContainer):
    """Dependency injection container for the automation engine."""

    config = providers.Configuration()

    # Shared state
    rule_store = providers.Singleton(RuleStore)
    cooldown_tracker = providers.Singleton(CooldownTracker)

    # Infrastructure - Observability
    dispatch_log = providers.Singleton(InMemoryDispatchLog)

    # Infrastructure - Sinks
    alert_sink = providers.Singleton(
        create_alert_sink,
        base_url=config.alert_sink.base_url,
        path=config.alert_sink.path,
        api_key=config.alert_sink.api_key,
        timeout_seconds=config.dispatch.timeout_seconds,
    )

    actuator_sink = providers.Singleton(
        create_actuator_sink,
        base_url=config.actuator_sink.base_url,
        path=config.actuator_sink.path,
        api_key=config.actuator_sink.api_key,
        timeout_seconds=config.dispatch.timeout_seconds,
    )

    # Application
    dispatcher = providers.Singleton(
        ActionDispatcher,
        alert_sink=alert_sink,
        actuator_sink=actuator_sink,
        observer=dispatch_log,
        timeout_seconds=config.dispatch.timeout_seconds,
        max_concurrent=config.dispatch.max_concurrent,
    )

    engine = providers.Singleton(
        EvaluationEngine,
        rule_store=rule_store,
        cooldowns=cooldown_tracker,
        dispatcher=dispatcher,
        observer=dispatch_log,
    )

    lifecycle = providers.Singleton(
        RuleLifecycleManager,
        rule_store=rule_store,
        cooldowns=cooldown_tracker,
        default_cooldown=providers.Callable(timedelta, minutes=config.engine.default_cooldown_minutes),
        max_rules_per_deployment=config.engine.max_rules_per_deployment,
    )

    worker_pool = providers.Singleton(
        ReadingWorkerPool,
        engine=engine,
        worker_count=config.engine.worker_count,
        queue_size=config.engine.queue_size,
        shutdown_timeout_seconds=config.engine.shutdown_timeout_seconds,
    )


# Global container instance
_container: EngineContainer | None = None


def init_container(config: AppConfig | None = None) -> EngineContainer:
    """Initialize the global container."""
    global _container
    config = config or AppConfig()
    _container = EngineContainer()
    _container.config.from_dict(config.model_dump())
    return _container


def get_container() -> EngineContainer:
    """Get the global container instance."""
    if _container is None:
        raise RuntimeError("Container not initialized. Call init_container() first.")
    return _container
