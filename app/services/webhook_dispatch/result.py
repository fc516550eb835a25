"""
Webhook Dispatch - Result Module.

Module: result.py
Result returned by every webhook handler, plus the guard that turns a
handler exception into a failed result.
"""

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from app.utils.datetime_utils import elapsed_ms, monotonic_ms


@dataclass
class WebhookProcessingResult:
    """
    Outcome of applying one webhook event.

    The retry scheduler looks at success and error only; the other fields
    are copied into the event's metadata and audit records.
    """

    success: bool
    error: str | None = None
    processing_time: int | None = None
    affected_user_id: str | None = None
    affected_user_type: str | None = None
    related_resource_ids: list[str] = field(default_factory=list)

    @classmethod
    def noop(cls) -> "WebhookProcessingResult":
        """Result for event types nothing is registered for."""
        return cls(success=True, processing_time=0)

    @classmethod
    def skipped(cls, reason: str, processing_time: int = 0) -> "WebhookProcessingResult":
        """Successful skip, e.g. the instructor or payout is unknown here."""
        return cls(success=True, error=reason, processing_time=processing_time)

    def to_metadata(self) -> dict[str, Any]:
        """Fields stored in the webhook event metadata."""
        return {
            "processing_duration": self.processing_time,
            "affected_user_id": self.affected_user_id,
            "affected_user_type": self.affected_user_type,
            "related_resource_ids": list(self.related_resource_ids),
        }


Handler = Callable[[Any, dict[str, Any]], Awaitable[WebhookProcessingResult]]


def guarded_handler(event_name: str) -> Callable[[Handler], Handler]:
    """
    Catch handler exceptions and report them as a failed result.

    Also fills processing_time when the handler left it empty.
    """
    def decorator(func: Handler) -> Handler:
        @functools.wraps(func)
        async def wrapper(self: Any, event: dict[str, Any]) -> WebhookProcessingResult:
            started = monotonic_ms()
            try:
                result = await func(self, event)
            except Exception as e:
                logger.opt(exception=True).error(
                    f"Error handling {event_name} webhook: {e}",
                    extra={"stripe_event_id": event.get("id")},
                )
                return WebhookProcessingResult(
                    success=False,
                    error=str(e),
                    processing_time=elapsed_ms(started),
                )

            if result.processing_time is None:
                result.processing_time = elapsed_ms(started)
            return result

        return wrapper

    return decorator
