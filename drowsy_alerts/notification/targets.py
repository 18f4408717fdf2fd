from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from drowsy_alerts.domain.errors import TargetNotFoundError


@dataclass
class StaticTargetResolver:
    """
    Resolve delivery targets from a fixed mapping.

    Parameters
    ----------
    targets
        Mapping driver_id -> target (webhook URL or device token).
    default
        Target used for drivers without an explicit entry. If None, such
        drivers raise `TargetNotFoundError`.

    Notes
    -----
    Entries may be added while the service runs (`register`), so a driver
    whose lookup failed on one tick can be notified on a later one.
    """

    targets: Dict[str, str] = field(default_factory=dict)
    default: Optional[str] = None

    def lookup(self, driver_id: str) -> str:
        target = self.targets.get(driver_id) or self.default
        if not target:
            raise TargetNotFoundError(driver_id)
        return target

    def register(self, driver_id: str, target: str) -> None:
        self.targets[driver_id] = target
