"""
Rate Limit Calculator
Computes the minimum safe window for spreading recipient sends and diagnoses
send-by dates that are too aggressive for the sending account.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from phishsim.core.config import RateLimitConfig
from phishsim.domain.models.campaign import RateLimitWarning

logger = logging.getLogger(__name__)


def format_duration(delta: timedelta) -> str:
    """Human-readable duration: '2 hours 5 minutes', '3 hours', '40 minutes', '30 seconds'."""
    total_seconds = int(delta.total_seconds())
    hours = total_seconds // 3600
    minutes = (total_seconds // 60) % 60

    if hours > 0:
        if minutes > 0:
            return f"{hours} hours {minutes} minutes"
        return f"{hours} hours"

    if minutes > 0:
        return f"{minutes} minutes"

    return f"{total_seconds} seconds"


class RateLimitCalculator:
    """
    Pure calculator over an injected interval.

    minimum_send_by = launch_date + recipient_count * interval
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()

    @property
    def minimum_interval(self) -> timedelta:
        return timedelta(seconds=self.config.default_send_interval_seconds)

    def calculate_minimum_send_by_date(self, launch_date: datetime, recipient_count: int) -> datetime:
        """Earliest send-by date that keeps the configured spacing."""
        return launch_date + self.minimum_interval * recipient_count

    def validate(
        self,
        launch_date: datetime,
        send_by_date: Optional[datetime],
        recipient_count: int
    ) -> Optional[RateLimitWarning]:
        """
        Check a caller-supplied window.

        Returns None when acceptable (no recipients, send-by unset, or send-by
        at or after the minimum), otherwise a RateLimitWarning.
        """
        if recipient_count <= 0:
            return None

        # Unset send-by dates are auto-assigned at creation
        if send_by_date is None:
            return None

        minimum_send_by = self.calculate_minimum_send_by_date(launch_date, recipient_count)
        if send_by_date >= minimum_send_by:
            return None

        provided_interval = (send_by_date - launch_date).total_seconds() / recipient_count
        minimum_interval = self.minimum_interval

        warning_message = (
            f"Your campaign will send emails too quickly ({provided_interval:.1f} seconds per recipient). "
            "This may trigger spam filters and lock your email account. "
            "Microsoft 365 allows 30 emails/minute but sending too fast looks suspicious. "
            f"We recommend spacing emails by {minimum_interval.total_seconds():.0f} seconds "
            f"({minimum_interval.total_seconds() / 60:.1f} minutes) per recipient."
        )

        logger.debug(
            f"Aggressive send-by date: {provided_interval:.2f}s per recipient "
            f"(minimum {minimum_interval.total_seconds():.0f}s, recipients={recipient_count})"
        )

        return RateLimitWarning(
            is_aggressive=True,
            provided_send_by_date=send_by_date,
            minimum_send_by_date=minimum_send_by,
            provided_interval_seconds=provided_interval,
            minimum_interval_seconds=minimum_interval.total_seconds(),
            total_recipients=recipient_count,
            recommended_duration=format_duration(minimum_send_by - launch_date),
            warning_message=warning_message,
        )
