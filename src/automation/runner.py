"""
Replay recorded sensor readings through the automation engine.

Loads rules from a JSON file, feeds a readings CSV (columns
``sensor_deployment_id``, ``value``, ``observed_at``) through the worker
pool and prints the resulting overview and per-rule statistics.
"""

import argparse
import asyncio

import pandas as pd
from loguru import logger

from src.automation.domain.models import Reading
from src.automation.infrastructure.container import init_container
from src.automation.infrastructure.logging import configure_structured_logging
from src.automation.infrastructure.observability import build_overview
from src.automation.infrastructure.rule_loader import JsonFileRuleLoader
from src.automation.infrastructure.sinks import InMemoryAlertSink
from src.config import AppConfig

READING_COLUMNS = ("sensor_deployment_id", "value", "observed_at")


def load_readings(path: str) -> list[Reading]:
    """Read a CSV of readings sorted by observation time."""
    df = pd.read_csv(path)
    missing = [column for column in READING_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Readings file {path} is missing columns: {', '.join(missing)}")

    df["observed_at"] = pd.to_datetime(df["observed_at"], utc=True)
    df = df.sort_values("observed_at", kind="stable")

    return [
        Reading(
            sensor_deployment_id=int(row.sensor_deployment_id),
            value=float(row.value),
            observed_at=row.observed_at.to_pydatetime(),
        )
        for row in df.itertuples(index=False)
    ]


async def replay(rules_path: str, readings_path: str, config: AppConfig, only_active: bool = False) -> dict:
    """Run one replay and return the overview and statistics."""
    container = init_container(config)
    lifecycle = container.lifecycle()
    pool = container.worker_pool()
    dispatch_log = container.dispatch_log()

    await lifecycle.load_from(JsonFileRuleLoader(rules_path), only_active=only_active)
    readings = load_readings(readings_path)
    logger.info(f"🚀 Replaying {len(readings)} reading(s) against {len(lifecycle.list_rules())} rule(s)")

    pool.start()
    for reading in readings:
        await pool.submit(reading)
    pending = await pool.stop()
    if pending:
        logger.warning(f"{pending} dispatch(es) did not finish before shutdown")

    alert_sink = container.alert_sink()
    unread = alert_sink.unread_count if isinstance(alert_sink, InMemoryAlertSink) else 0
    overview = build_overview(lifecycle.list_rules(), dispatch_log, unread_alerts=unread)
    logger.info("✓ Replay complete")

    return {
        "overview": overview,
        "engine": container.engine().get_statistics(),
        "rules": dispatch_log.statistics_dataframe(),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay sensor readings through the automation rule engine")
    parser.add_argument("rules", help="JSON file with the rules to load")
    parser.add_argument("readings", help="CSV file with sensor_deployment_id, value, observed_at")
    parser.add_argument("--only-active", action="store_true", help="Skip rules stored as inactive")
    parser.add_argument("--workers", type=int, default=None, help="Override ENGINE_WORKER_COUNT")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    config = AppConfig()
    if args.workers is not None:
        config.engine.worker_count = args.workers
    if args.log_level is not None:
        config.logging.level = args.log_level
    configure_structured_logging(config.logging)

    result = asyncio.run(replay(args.rules, args.readings, config, only_active=args.only_active))

    print(result["overview"].model_dump_json(indent=2))
    print(result["engine"])
    if not result["rules"].empty:
        print(result["rules"].to_string())


if __name__ == "__main__":  # pragma: no cover
    main()
