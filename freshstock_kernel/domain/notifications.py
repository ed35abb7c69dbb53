"""
Notification contract (``freshstock_kernel.domain.notifications``).

The core emits ``NotificationEvent`` values to an external sink.  Delivery
(email, push, websockets) is the sink's business.  Emission is
fire-and-forget; see ``freshstock_services.notifier`` for the dispatcher
that keeps sink failures away from the triggering operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Protocol
from uuid import UUID


class NotificationKind(str, Enum):
    """Critical events the core reports."""
    EXPIRY_WARNING = "expiry_warning"
    EXPIRY_URGENT = "expiry_urgent"
    EXPIRY_EXPIRED = "expiry_expired"
    DISPOSAL_COMPLETED = "disposal_completed"
    TRANSFER_STATUS_CHANGED = "transfer_status_changed"


@dataclass(frozen=True)
class NotificationEvent:
    """One event handed to the sink."""
    kind: NotificationKind
    occurred_at: datetime
    title: str
    branch_id: UUID | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    """External notification delivery."""

    def notify(self, event: NotificationEvent) -> None:
        ...


class NullNotificationSink:
    """Sink that drops everything."""

    def notify(self, event: NotificationEvent) -> None:
        return None
