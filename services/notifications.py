"""
Outbound notification triggers.

After a successful commit the engine hands one trigger per committed
distribution to a Notifier. How the lead actually reaches the customer
(spreadsheet row, email, push) is the notifier's concern, not the engine's.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationTrigger:
    lead_id: UUID
    customer_id: str
    batch_id: UUID
    distribution_id: Optional[UUID]
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    postcode: Optional[str] = None
    branch: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BatchCompletedTrigger:
    """Emitted when a commit filled the last slot of a batch."""

    batch_id: UUID
    customer_id: str


class Notifier(Protocol):
    def lead_distributed(self, trigger: NotificationTrigger) -> None:
        ...

    def batch_completed(self, trigger: BatchCompletedTrigger) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records triggers in the application log only."""

    def lead_distributed(self, trigger: NotificationTrigger) -> None:
        logger.info(
            "Lead %s distributed to %s via batch %s",
            trigger.lead_id, trigger.customer_id, trigger.batch_id,
        )

    def batch_completed(self, trigger: BatchCompletedTrigger) -> None:
        logger.info("Batch %s of %s is complete", trigger.batch_id, trigger.customer_id)


__all__ = [
    "BatchCompletedTrigger",
    "LoggingNotifier",
    "NotificationTrigger",
    "Notifier",
]
