from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv


@dataclass(frozen=True)
class RedisConfigData:
    """Redis stream consumer settings."""
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    stream: str = "sleeping-alerts"
    group: str = "notification-group"
    consumer: str = "notification-service"
    block_ms: int = 1000
    count: int = 10
    reconnect_delay_s: float = 1.0
    socket_timeout_s: float = 5.0


@dataclass(frozen=True)
class AlertsConfig:
    """State machine and scheduler tuning."""
    renotify_interval_s: float = 5.0
    min_interval_s: float = 5.0
    sleeping_threshold: float = 0.8
    shutdown_timeout_s: float = 5.0


@dataclass(frozen=True)
class WebhookConfigData:
    """Webhook gateway configuration (default endpoint + auth)."""
    url: Optional[str] = None
    auth_header: Optional[str] = None
    timeout_s: float = 10.0
    verify_tls: bool = True


@dataclass(frozen=True)
class DeliveryConfig:
    """Delivery worker pool sizing."""
    workers: int = 4
    max_queue: int = 1000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "console"


@dataclass(frozen=True)
class AppConfig:
    """
    Root application configuration loaded from YAML.

    Environment variables (optionally from a ``.env`` file) override the
    file for connection settings, so containers can be configured without
    editing the YAML.
    """
    app_name: str = "drowsy-alerts"
    redis: RedisConfigData = field(default_factory=RedisConfigData)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    webhook: WebhookConfigData = field(default_factory=WebhookConfigData)
    targets: Dict[str, str] = field(default_factory=dict)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a YAML mapping at the root")
    return data


def _resolve_default_config_path() -> Optional[Path]:
    """
    Resolve config.yaml location.

    Priority:
    1) APP_CONFIG env var if provided
    2) ./config.yaml in current working directory

    Returns None when neither exists; defaults and environment then apply.
    """
    env = os.getenv("APP_CONFIG")
    if env:
        return Path(env).expanduser().resolve()

    candidate = Path("config.yaml").resolve()
    return candidate if candidate.exists() else None


def _section(raw: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section '{name}' must be a mapping")
    return value


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _as_bool(value: Any, name: str) -> bool:
    """
    Interpret a YAML or environment value as a boolean.

    Accepts real booleans, 0/1, and the usual true/false words in any case.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def parse_app_config(raw: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Convert a raw mapping into typed config objects.

    Parameters
    ----------
    raw
        Mapping as read from YAML.
    env
        Environment used for overrides. Defaults to ``os.environ``.

    Raises
    ------
    ValueError
        If a value has the wrong type or is out of range.
    """
    env = os.environ if env is None else env

    # ---- redis ----
    r = _section(raw, "redis")
    redis_cfg = RedisConfigData(
        host=str(env.get("REDIS_HOST") or r.get("host", "localhost")),
        port=int(env.get("REDIS_PORT") or r.get("port", 6379)),
        password=env.get("REDIS_PASSWORD") or r.get("password"),
        db=int(env.get("REDIS_DB") or r.get("db", 0)),
        stream=str(r.get("stream", "sleeping-alerts")),
        group=str(r.get("group", "notification-group")),
        consumer=str(r.get("consumer", "notification-service")),
        block_ms=int(r.get("block_ms", 1000)),
        count=int(r.get("count", 10)),
        reconnect_delay_s=float(r.get("reconnect_delay_s", 1.0)),
        socket_timeout_s=float(r.get("socket_timeout_s", 5.0)),
    )
    if redis_cfg.socket_timeout_s * 1000 <= redis_cfg.block_ms:
        raise ValueError("redis.socket_timeout_s must be longer than redis.block_ms")

    # ---- alerts ----
    a = _section(raw, "alerts")
    alerts = AlertsConfig(
        renotify_interval_s=float(a.get("renotify_interval_s", 5.0)),
        min_interval_s=float(a.get("min_interval_s", 5.0)),
        sleeping_threshold=float(a.get("sleeping_threshold", 0.8)),
        shutdown_timeout_s=float(a.get("shutdown_timeout_s", 5.0)),
    )
    if alerts.renotify_interval_s <= 0:
        raise ValueError("alerts.renotify_interval_s must be positive")
    if alerts.min_interval_s < 0:
        raise ValueError("alerts.min_interval_s must not be negative")

    # ---- webhook ----
    w = _section(raw, "webhook")
    auth_header = w.get("auth_header")
    if auth_header and not str(auth_header).startswith("Bearer "):
        auth_header = f"Bearer {auth_header}"
    webhook = WebhookConfigData(
        url=env.get("NOTIFICATION_ENDPOINT") or w.get("url"),
        auth_header=auth_header,
        timeout_s=float(w.get("timeout_s", 10.0)),
        verify_tls=_as_bool(w.get("verify_tls", True), "webhook.verify_tls"),
    )

    # ---- targets ----
    targets = {str(k): str(v) for k, v in _section(raw, "targets").items()}

    # ---- delivery ----
    d = _section(raw, "delivery")
    delivery = DeliveryConfig(
        workers=int(d.get("workers", 4)),
        max_queue=int(d.get("max_queue", 1000)),
    )

    # ---- logging ----
    lg = _section(raw, "logging")
    logging_cfg = LoggingConfig(
        level=str(env.get("LOG_LEVEL") or lg.get("level", "INFO")),
        format=str(env.get("LOG_FORMAT") or lg.get("format", "console")),
    )

    return AppConfig(
        app_name=str(env.get("APP_NAME") or raw.get("app_name", "drowsy-alerts")),
        redis=redis_cfg,
        alerts=alerts,
        webhook=webhook,
        targets=targets,
        delivery=delivery,
        logging=logging_cfg,
    )


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """
    Load application configuration from YAML and the environment.

    A ``.env`` file in the working directory is loaded first (existing
    environment variables win).

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If an explicitly named config file does not exist.
    ValueError
        If fields are invalid.
    """
    load_dotenv(Path.cwd() / ".env")

    cfg_path = Path(path).expanduser().resolve() if path else _resolve_default_config_path()
    if cfg_path is None:
        return parse_app_config({})
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    return parse_app_config(_read_yaml(cfg_path))
