from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from drowsy_alerts.core.config.yaml_config import AppConfig, load_app_config
from drowsy_alerts.core.scheduler import RenotifyScheduler
from drowsy_alerts.core.state.alert_store import AlertStateStore
from drowsy_alerts.notification.delivery_pool import DeliveryPoolConfig, DeliveryWorkerPool
from drowsy_alerts.notification.targets import StaticTargetResolver
from drowsy_alerts.notification.webhook_notifier import WebhookConfig, WebhookNotifier
from drowsy_alerts.runtime.app_runtime import AppRuntime, AppRuntimeConfig
from drowsy_alerts.services.dispatcher import AlertDispatcher
from drowsy_alerts.transport.redis_stream import RedisStreamConfig, RedisStreamSource


@dataclass(frozen=True)
class AppWiring:
    """Everything the entry point needs to run the service."""
    config: AppConfig
    store: AlertStateStore
    dispatcher: AlertDispatcher
    runtime: AppRuntime


def build_stream_source(cfg: AppConfig) -> RedisStreamSource:
    r = cfg.redis
    return RedisStreamSource(
        RedisStreamConfig(
            host=r.host,
            port=r.port,
            password=r.password,
            db=r.db,
            stream=r.stream,
            group=r.group,
            consumer=r.consumer,
            block_ms=r.block_ms,
            count=r.count,
            socket_timeout_s=r.socket_timeout_s,
        ),
        sleeping_threshold=cfg.alerts.sleeping_threshold,
    )


def build_dispatcher(cfg: AppConfig, store: AlertStateStore) -> AlertDispatcher:
    gateway = WebhookNotifier(
        WebhookConfig(
            timeout_s=cfg.webhook.timeout_s,
            verify_tls=cfg.webhook.verify_tls,
            auth_header=cfg.webhook.auth_header,
        )
    )
    targets = StaticTargetResolver(targets=dict(cfg.targets), default=cfg.webhook.url)
    pool = DeliveryWorkerPool(
        DeliveryPoolConfig(workers=cfg.delivery.workers, max_queue=cfg.delivery.max_queue)
    )

    return AlertDispatcher(
        store=store,
        scheduler=RenotifyScheduler(interval_s=cfg.alerts.renotify_interval_s),
        gateway=gateway,
        targets=targets,
        pool=pool,
        min_interval_s=cfg.alerts.min_interval_s,
    )


def build_app_system(config_path: Optional[str] = None, cfg: Optional[AppConfig] = None) -> AppWiring:
    """
    Build and connect every component.

    Raises
    ------
    TransportError
        If the stream cannot be reached at startup (fatal: nothing to serve).
    """
    cfg = cfg or load_app_config(config_path)

    # --- STATE ---
    store = AlertStateStore()

    # --- DISPATCH ---
    dispatcher = build_dispatcher(cfg, store)

    # --- STREAM ---
    source = build_stream_source(cfg)
    source.connect()

    # --- RUNTIME ---
    runtime = AppRuntime(
        cfg=AppRuntimeConfig(
            reconnect_delay_s=cfg.redis.reconnect_delay_s,
            shutdown_timeout_s=cfg.alerts.shutdown_timeout_s,
        ),
        source=source,
        dispatcher=dispatcher,
    )

    return AppWiring(config=cfg, store=store, dispatcher=dispatcher, runtime=runtime)
