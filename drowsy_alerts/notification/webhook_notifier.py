from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests
import structlog

from drowsy_alerts.domain.errors import DeliveryError
from drowsy_alerts.notification.base import NotificationPayload

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WebhookConfig:
    """
    Configuration for webhook-based notifications.

    Parameters
    ----------
    timeout_s
        HTTP request timeout in seconds. Bounds how long one delivery can
        occupy a delivery worker.
    verify_tls
        Whether to verify TLS certificates.
    auth_header
        Optional Authorization header value (e.g., Bearer token).
    """

    timeout_s: float = 10.0
    verify_tls: bool = True
    auth_header: Optional[str] = None


class WebhookNotifier:
    """
    Notification gateway that delivers payloads via HTTP webhook.

    The target passed to :meth:`deliver` is the endpoint URL resolved for the
    driver. The payload is POSTed as JSON.

    Notes
    -----
    - This class performs side effects (network I/O).
    - Transport errors and non-2xx responses are raised as
      :class:`~drowsy_alerts.domain.errors.DeliveryError`.
    """

    def __init__(self, cfg: WebhookConfig):
        self._cfg = cfg

    def deliver(self, target: str, payload: NotificationPayload) -> None:
        """
        POST a payload to the target URL.

        Parameters
        ----------
        target
            Webhook URL.
        payload
            Notification to send; serialized with ``payload.to_dict()``.

        Raises
        ------
        DeliveryError
            If the request fails or the response status indicates an error.
        """
        headers = {"Content-Type": "application/json"}
        if self._cfg.auth_header:
            headers["Authorization"] = self._cfg.auth_header

        try:
            r = requests.post(
                target,
                json=payload.to_dict(),
                headers=headers,
                timeout=self._cfg.timeout_s,
                verify=self._cfg.verify_tls,
            )
            r.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise DeliveryError(f"notification endpoint returned HTTP {status}", status_code=status) from e
        except requests.RequestException as e:
            raise DeliveryError(f"failed to send notification: {e}") from e

        logger.info("notification_delivered", driver_id=payload.driver_id, target=target)
