from __future__ import annotations

import signal
import sys
import threading
from typing import List, Optional

import structlog

from drowsy_alerts.bootstrap import build_app_system
from drowsy_alerts.core.config.yaml_config import load_app_config
from drowsy_alerts.domain.errors import TransportError
from drowsy_alerts.logging_setup import configure_logging

logger = structlog.get_logger(__name__)


def _config_path(argv: List[str]) -> Optional[str]:
    if "--config" in argv:
        i = argv.index("--config")
        if i + 1 < len(argv):
            return argv[i + 1]
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the dispatcher until SIGINT/SIGTERM.

    Notes
    -----
    - Loads configuration from `config.yaml` by default.
    - Optional CLI usage:
        python -m drowsy_alerts.dev.run_service --config path/to/config.yaml
    - Exits with status 1 if the stream is unreachable at startup.
    """
    argv = sys.argv[1:] if argv is None else argv
    cfg = load_app_config(_config_path(argv))
    configure_logging(cfg.logging.level, cfg.logging.format, cfg.app_name)

    try:
        wiring = build_app_system(cfg=cfg)
    except TransportError as e:
        logger.error("startup_failed", error=str(e))
        return 1

    shutdown = threading.Event()

    def _on_signal(signum, frame) -> None:
        logger.warning("signal_received", signal=signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    wiring.runtime.start()
    logger.info("service_running", stream=cfg.redis.stream, group=cfg.redis.group)

    while not shutdown.wait(timeout=1.0):
        pass

    wiring.runtime.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
