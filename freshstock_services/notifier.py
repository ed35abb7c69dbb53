"""
freshstock_services.notifier -- Fire-and-forget notification dispatch.

Responsibility:
    Build ``NotificationEvent`` values stamped with the injected clock and
    hand them to the configured ``NotificationSink``.

Invariants enforced:
    - A failing sink never fails the triggering operation.  The failure is
      logged with the event kind and counted.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.domain.notifications import (
    NotificationEvent,
    NotificationKind,
    NotificationSink,
    NullNotificationSink,
)
from freshstock_kernel.logging_config import get_logger

logger = get_logger("services.notifier")


class NotificationDispatcher:
    """Wraps a sink so notification problems stay out of stock operations."""

    def __init__(self, sink: NotificationSink | None, clock: Clock):
        self._sink = sink or NullNotificationSink()
        self._clock = clock
        self.sent_count = 0
        self.failed_count = 0

    def emit(
        self,
        kind: NotificationKind,
        title: str,
        branch_id: UUID | None = None,
        **payload: Any,
    ) -> bool:
        """Send one event.  Returns False when the sink raised."""
        event = NotificationEvent(
            kind=kind,
            occurred_at=self._clock.now(),
            title=title,
            branch_id=branch_id,
            payload=payload,
        )
        try:
            self._sink.notify(event)
        except Exception:
            self.failed_count += 1
            logger.exception(
                "notification_failed",
                extra={"kind": kind.value, "title": title},
            )
            return False
        self.sent_count += 1
        logger.debug("notification_sent", extra={"kind": kind.value})
        return True
