from __future__ import annotations

import argparse
import random
import signal
import sys
import threading
from typing import List, Optional

import structlog

from drowsy_alerts.bootstrap import build_stream_source
from drowsy_alerts.core.config.yaml_config import load_app_config
from drowsy_alerts.domain.errors import TransportError
from drowsy_alerts.domain.models import AlertEvent, DriverStatus
from drowsy_alerts.logging_setup import configure_logging

logger = structlog.get_logger(__name__)

LOCATIONS = ["Route 9 km 14", "A1 northbound", "Depot gate", "Ring road exit 3"]


def _next_event(rnd: random.Random, driver_id: str, sleeping: bool) -> AlertEvent:
    if sleeping:
        return AlertEvent(
            driver_id=driver_id,
            status=DriverStatus.SLEEPING,
            confidence=round(rnd.uniform(0.8, 0.99), 2),
            location=rnd.choice(LOCATIONS),
        )
    return AlertEvent(driver_id=driver_id, status=DriverStatus.NORMAL, confidence=round(rnd.uniform(0.0, 0.3), 2))


def publish_loop(
    publish,
    drivers: List[str],
    period_s: float,
    flip_probability: float,
    stop_flag: threading.Event,
    seed: Optional[int] = None,
) -> int:
    """
    Publish one event per driver every `period_s` until stopped.

    Each driver flips between sleeping and normal with `flip_probability`
    per period, so the dispatcher sees both transitions and repeats.

    Returns
    -------
    int
        Number of events published.
    """
    rnd = random.Random(seed)
    sleeping = {d: False for d in drivers}
    sent = 0

    while not stop_flag.is_set():
        for d in drivers:
            if rnd.random() < flip_probability:
                sleeping[d] = not sleeping[d]
            mid = publish(_next_event(rnd, d, sleeping[d]))
            sent += 1
            logger.debug("alert_published", driver_id=d, sleeping=sleeping[d], message_id=mid)
        stop_flag.wait(period_s)

    return sent


def main(argv: Optional[List[str]] = None) -> int:
    """
    Publish synthetic driver alerts into the configured stream.

    Usage:
        python -m drowsy_alerts.dev.publish_alerts --drivers 3 --period 1.0
    """
    parser = argparse.ArgumentParser(description="Publish synthetic drowsiness alerts to Redis.")
    parser.add_argument("--config", default=None)
    parser.add_argument("--drivers", type=int, default=3)
    parser.add_argument("--period", type=float, default=1.0)
    parser.add_argument("--flip", type=float, default=0.2)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args(argv)

    cfg = load_app_config(args.config)
    configure_logging(cfg.logging.level, cfg.logging.format, f"{cfg.app_name}-publisher")

    source = build_stream_source(cfg)
    stop_flag = threading.Event()

    def _on_signal(signum, frame) -> None:
        stop_flag.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    drivers = [f"driver-{i + 1}" for i in range(args.drivers)]
    logger.info("publisher_started", stream=cfg.redis.stream, drivers=drivers)
    try:
        sent = publish_loop(source.publish, drivers, args.period, args.flip, stop_flag, args.seed)
    except TransportError as e:
        logger.error("publish_failed", error=str(e))
        return 1
    finally:
        source.close()

    logger.info("publisher_stopped", events=sent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
